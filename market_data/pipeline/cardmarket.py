"""
Market Data: Cardmarket Adapter (RapidAPI cardmarket-api-tcg)

Primary blend source. The feed is a product catalog with a daily trend
price, not individual listings, so each matched card yields one "trend"
event per day. Identity requires an exact collector-number match against
the market item; name similarity alone never links a product.

Prices are EUR. No USD figure is supplied, and none is derived.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from market_data.config import EventType, PriceSource, settings
from market_data.engine.canonical_key import normalize_game
from market_data.engine.title_screen import parse_price
from market_data.pipeline.base import NO_IDENTITY, ParsedListing, SourceAdapter, confirm_identity

logger = structlog.get_logger(__name__)

GAME_SLUGS: dict[str, str] = {
    "pokemon": "pokemon",
    "lorcana": "lorcana",
    "mtg": "magic-the-gathering",
    "yugioh": "yugioh",
    "onepiece": "one-piece",
}

SEARCH_CANDIDATES = 5

_LIST_FIELDS = ("data", "cards", "products")
_PRICE_FIELDS = ("averageSellPrice", "trendPrice", "priceEUR", "lowestPrice")
_NESTED_PRICE_FIELDS = ("trend", "30d_average", "7d_average", "lowest_near_mint")


def card_price(card: dict[str, Any]) -> Decimal | None:
    """First usable EUR price on a Cardmarket product payload."""
    for field in _PRICE_FIELDS:
        price = parse_price(card.get(field))
        if price is not None:
            return price
    nested = (card.get("prices") or {}).get("cardmarket") or {}
    for field in _NESTED_PRICE_FIELDS:
        price = parse_price(nested.get(field))
        if price is not None:
            return price
    return None


def card_set_code(card: dict[str, Any]) -> str | None:
    episode = card.get("episode")
    if isinstance(episode, dict) and episode.get("code"):
        return str(episode["code"])
    expansion = card.get("expansion")
    if isinstance(expansion, dict):
        return expansion.get("code")
    return None


class CardmarketAdapter(SourceAdapter):
    source = PriceSource.CARDMARKET.value
    event_type = EventType.TREND

    def __init__(self, api_key: str | None = None, run_date: date | None = None, **kwargs: Any):
        kwargs.setdefault("request_delay", settings.CARDMARKET_REQUEST_DELAY_SECONDS)
        super().__init__(api_key=api_key or settings.CARDMARKET_RAPIDAPI_KEY, **kwargs)
        self.base_url = f"https://{settings.CARDMARKET_RAPIDAPI_HOST}"
        self.run_date = run_date or datetime.now(timezone.utc).date()

    def _headers(self) -> dict[str, str]:
        return {
            "X-RapidAPI-Key": self._api_key,
            "X-RapidAPI-Host": settings.CARDMARKET_RAPIDAPI_HOST,
        }

    async def fetch_listings(self, item: Any) -> list[dict[str, Any]]:
        game = GAME_SLUGS.get(normalize_game(item.category) or "", "pokemon")
        logger.info("cardmarket_search", game=game, name=item.name)

        data = await self._request(
            "GET", f"/{game}/cards", params={"search": item.name, "page": 1}
        )
        await self.throttle()

        cards: list[dict[str, Any]] = []
        if isinstance(data, dict):
            for field in _LIST_FIELDS:
                if isinstance(data.get(field), list):
                    cards = data[field]
                    break
        elif isinstance(data, list):
            cards = data

        logger.info("cardmarket_search_complete", name=item.name, cards=len(cards))
        return cards[:SEARCH_CANDIDATES]

    def parse_listing(self, payload: dict[str, Any], item: Any) -> list[ParsedListing]:
        price = card_price(payload)
        if price is None:
            return []

        number = payload.get("number") or payload.get("collector_number") or payload.get("card_number")
        canonical_key, unmatched_reason = confirm_identity(
            item, card_set_code(payload), str(number) if number is not None else None
        )
        if unmatched_reason == NO_IDENTITY:
            unmatched_reason = "Product has no collector number"

        game = GAME_SLUGS.get(normalize_game(item.category) or "", "pokemon")
        card_id = payload.get("id")
        return [
            ParsedListing(
                source_event_id=f"cm_{card_id}_{self.run_date.isoformat()}",
                event_type=self.event_type,
                amount=price,
                currency="EUR",
                amount_usd=None,
                canonical_key=canonical_key,
                match_confidence=settings.MATCH_CONFIDENCE_KEY_EXACT if canonical_key else None,
                unmatched_reason=unmatched_reason,
                title=payload.get("name"),
                external_url=payload.get("url")
                or f"https://www.cardmarket.com/en/{game}/Cards/{card_id}",
                raw_payload=payload,
            )
        ]
