"""
Market Data: PriceCharting Adapter

Graded-price feed. One product quotes several markets at once, in cents:
the loose price is the raw bucket and the graded price is reported as the
PSA 9 bucket. Each bucket becomes its own daily "trend" event so raw and
graded copies never mix downstream.

Free tier allows one request per second.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from market_data.config import EventType, PriceSource, settings
from market_data.engine.canonical_key import normalize_game
from market_data.engine.title_screen import GRADED, RAW, parse_card_number, parse_price, screen_title
from market_data.pipeline.base import ParsedListing, SourceAdapter, confirm_identity

logger = structlog.get_logger(__name__)

CENTS = Decimal("100")


def cents_to_dollars(value: Any) -> Decimal | None:
    cents = parse_price(value)
    if cents is None:
        return None
    return (cents / CENTS).quantize(Decimal("0.01"))


class PriceChartingAdapter(SourceAdapter):
    source = PriceSource.PRICECHARTING.value
    event_type = EventType.TREND

    def __init__(self, api_key: str | None = None, run_date: date | None = None, **kwargs: Any):
        kwargs.setdefault("request_delay", settings.PRICECHARTING_REQUEST_DELAY_SECONDS)
        super().__init__(api_key=api_key or settings.PRICECHARTING_API_KEY, **kwargs)
        self.base_url = settings.PRICECHARTING_BASE_URL
        self.run_date = run_date or datetime.now(timezone.utc).date()

    async def fetch_listings(self, item: Any) -> list[dict[str, Any]]:
        logger.info("pricecharting_search", name=item.name)

        data = await self._request("GET", "/products", params={"t": self._api_key, "q": item.name})
        await self.throttle()

        if isinstance(data, dict):
            products = data.get("products") or []
        else:
            products = data or []

        logger.info("pricecharting_search_complete", name=item.name, products=len(products))
        return products[: settings.MAX_LISTINGS_PER_ITEM]

    def parse_listing(self, payload: dict[str, Any], item: Any) -> list[ParsedListing]:
        product_name = payload.get("product-name") or ""
        game = normalize_game(item.category)
        screen = screen_title(product_name, game)

        canonical_key = unmatched_reason = None
        if not screen.is_outlier:
            set_code, card_number = parse_card_number(product_name, game)
            canonical_key, unmatched_reason = confirm_identity(item, set_code, card_number)

        buckets: list[tuple[str, Decimal | None, str | None, Decimal | None]] = [
            (RAW, cents_to_dollars(payload.get("loose-price")), None, None),
            (
                GRADED,
                cents_to_dollars(payload.get("graded-price")),
                settings.PRICECHARTING_GRADED_COMPANY,
                settings.PRICECHARTING_GRADED_VALUE,
            ),
        ]

        listings = []
        for condition, price, grade_company, grade_value in buckets:
            if price is None:
                continue
            listings.append(
                ParsedListing(
                    source_event_id=f"pc_{payload.get('id')}_{condition}_{self.run_date.isoformat()}",
                    event_type=self.event_type,
                    amount=price,
                    currency="USD",
                    amount_usd=price,
                    condition=condition,
                    grade_company=grade_company,
                    grade_value=grade_value,
                    canonical_key=canonical_key,
                    match_confidence=(
                        settings.MATCH_CONFIDENCE_KEY_EXACT if canonical_key else None
                    ),
                    unmatched_reason=unmatched_reason,
                    is_outlier=screen.is_outlier,
                    outlier_reason=screen.outlier_reason,
                    title=product_name,
                    external_url=f"https://www.pricecharting.com/offers?product={payload.get('id')}",
                    raw_payload=payload,
                )
            )
        return listings
