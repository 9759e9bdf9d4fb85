"""
Market Data: eBay Adapters (RapidAPI ebay-search-result)

Sold listings are the marketplace's realized prices and feed the secondary
side of the blend; active listings are asking prices, stored for context
only. Both share the same search endpoint and payload shape.

Listing titles are untrusted: the keyword screen runs first, then grade and
collector number are pulled from the title and checked against the item the
search was made for.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import structlog

from market_data.config import EventType, PriceSource, settings
from market_data.engine.canonical_key import normalize_game
from market_data.engine.title_screen import parse_price, screen_title
from market_data.pipeline.base import ParsedListing, SourceAdapter, confirm_identity

logger = structlog.get_logger(__name__)

_PRICE_FIELDS = ("price", "sold_price", "soldPrice")
_LIST_FIELDS = ("results", "data", "items")


def build_search_query(item: Any) -> str:
    """Item name, plus "SET-NUMBER" when both are known."""
    parts = [item.name or ""]
    if item.set_code and item.card_number:
        parts.append(f"{item.set_code}-{item.card_number}")
    return " ".join(p for p in parts if p).strip()


def listing_event_id(listing: dict[str, Any]) -> str:
    """Vendor id, or a stable digest of the listing when the vendor omits one."""
    vendor_id = listing.get("id") or listing.get("itemId")
    if vendor_id:
        return str(vendor_id)
    basis = f"{listing.get('link') or listing.get('url') or ''}|{listing.get('title', '')}"
    return "ebay_" + hashlib.sha1(basis.encode("utf-8")).hexdigest()[:16]


class _EbayAdapter(SourceAdapter):
    """Shared search/parse logic; subclasses pick sold vs active listings."""

    source = PriceSource.EBAY.value
    listing_type = "sold"

    def __init__(self, api_key: str | None = None, **kwargs: Any):
        kwargs.setdefault("request_delay", settings.EBAY_REQUEST_DELAY_SECONDS)
        super().__init__(api_key=api_key or settings.EBAY_RAPIDAPI_KEY, **kwargs)
        self.base_url = f"https://{settings.EBAY_RAPIDAPI_HOST}"

    def _headers(self) -> dict[str, str]:
        return {
            "X-RapidAPI-Key": self._api_key,
            "X-RapidAPI-Host": settings.EBAY_RAPIDAPI_HOST,
        }

    async def fetch_listings(self, item: Any) -> list[dict[str, Any]]:
        query = build_search_query(item)
        logger.info("ebay_search", query=query, listing_type=self.listing_type)

        data = await self._request(
            "GET",
            f"/search/{quote(query, safe='')}",
            params={"page": 1, "type": self.listing_type},
        )
        await self.throttle()

        listings: list[dict[str, Any]] = []
        if isinstance(data, dict):
            for field in _LIST_FIELDS:
                if isinstance(data.get(field), list):
                    listings = data[field]
                    break
        elif isinstance(data, list):
            listings = data

        logger.info("ebay_search_complete", query=query, listings=len(listings))
        return listings[: settings.MAX_LISTINGS_PER_ITEM]

    def parse_listing(self, payload: dict[str, Any], item: Any) -> list[ParsedListing]:
        price = None
        for field in _PRICE_FIELDS:
            price = parse_price(payload.get(field))
            if price is not None:
                break
        if price is None:
            return []

        title = payload.get("title") or ""
        screen = screen_title(title, normalize_game(item.category))

        canonical_key = unmatched_reason = None
        if not screen.is_outlier:
            canonical_key, unmatched_reason = confirm_identity(
                item, screen.set_code, screen.card_number
            )

        is_sale = self.event_type == EventType.SALE
        return [
            ParsedListing(
                source_event_id=listing_event_id(payload),
                event_type=self.event_type,
                amount=price,
                currency="USD",
                amount_usd=price,
                condition=screen.condition,
                grade_company=screen.grade_company,
                grade_value=screen.grade_value,
                canonical_key=canonical_key,
                match_confidence=settings.MATCH_CONFIDENCE_KEY_EXACT if canonical_key else None,
                unmatched_reason=unmatched_reason,
                is_outlier=screen.is_outlier,
                outlier_reason=screen.outlier_reason,
                title=title,
                external_url=payload.get("link") or payload.get("url"),
                sold_at=datetime.now(timezone.utc) if is_sale else None,
                raw_payload=payload,
            )
        ]


class EbaySoldAdapter(_EbayAdapter):
    """Completed sales; secondary blend source."""

    listing_type = "sold"
    event_type = EventType.SALE


class EbayActiveAdapter(_EbayAdapter):
    """Open listings (asking prices); never blended."""

    listing_type = "active"
    event_type = EventType.LISTING
