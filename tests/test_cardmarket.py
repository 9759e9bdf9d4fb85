"""
Tests for market_data.pipeline.cardmarket: Cardmarket trend adapter.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
import respx

from market_data.config import EventType
from market_data.pipeline.cardmarket import CardmarketAdapter, card_price, card_set_code

CARDMARKET_HOST = "cardmarket-api-tcg.p.rapidapi.com"
RUN_DATE = date(2026, 3, 1)


def _item(**attrs) -> SimpleNamespace:
    values = {
        "name": "Pikachu",
        "category": "pokemon",
        "set_code": "SV1",
        "card_number": "25",
        "variant": None,
        "language": None,
    }
    values.update(attrs)
    return SimpleNamespace(**values)


def _adapter() -> CardmarketAdapter:
    return CardmarketAdapter(api_key="test", run_date=RUN_DATE, request_delay=0)


class TestCardPrice:
    def test_top_level_field_order(self) -> None:
        assert card_price({"trendPrice": 3, "averageSellPrice": "2.50"}) == Decimal("2.50")

    def test_nested_prices(self) -> None:
        assert card_price({"prices": {"cardmarket": {"7d_average": 4.2}}}) == Decimal("4.2")

    def test_no_price(self) -> None:
        assert card_price({"prices": {"cardmarket": {}}}) is None

    def test_set_code(self) -> None:
        assert card_set_code({"episode": {"code": "sv1"}}) == "sv1"
        assert card_set_code({"expansion": {"code": "MEW"}}) == "MEW"
        assert card_set_code({}) is None


class TestParseListing:
    def test_matched_trend(self) -> None:
        [listing] = _adapter().parse_listing(
            {"id": 123, "name": "Pikachu", "number": "25", "averageSellPrice": 9.5},
            _item(),
        )
        assert listing.source_event_id == "cm_123_2026-03-01"
        assert listing.event_type == EventType.TREND
        assert listing.currency == "EUR"
        assert listing.amount == Decimal("9.5")
        assert listing.amount_usd is None
        assert listing.canonical_key == "pokemon:set=sv1:num=25"

    def test_numeric_card_number(self) -> None:
        [listing] = _adapter().parse_listing(
            {"id": 7, "card_number": 25, "prices": {"cardmarket": {"trend": 4.2}}}, _item()
        )
        assert listing.is_matched

    def test_number_mismatch(self) -> None:
        [listing] = _adapter().parse_listing(
            {"id": 8, "name": "Pikachu", "number": "26", "trendPrice": 1}, _item()
        )
        assert listing.canonical_key is None
        assert listing.unmatched_reason == "Card number mismatch: found 26, expected 25"

    def test_missing_number(self) -> None:
        [listing] = _adapter().parse_listing({"id": 9, "name": "Pikachu", "trendPrice": 1}, _item())
        assert listing.unmatched_reason == "Product has no collector number"

    def test_product_names_are_not_keyword_screened(self) -> None:
        [listing] = _adapter().parse_listing(
            {"id": 10, "name": "Random Receiver", "number": "25", "trendPrice": 1}, _item()
        )
        assert listing.is_outlier is False
        assert listing.is_matched

    def test_no_price_yields_nothing(self) -> None:
        assert _adapter().parse_listing({"id": 11, "number": "25"}, _item()) == []


class TestFetchListings:
    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        cards = [{"id": n, "number": "25", "trendPrice": 1} for n in range(8)]
        with respx.mock:
            route = respx.get(host=CARDMARKET_HOST, path="/pokemon/cards").mock(
                return_value=httpx.Response(200, json={"data": cards})
            )
            async with _adapter() as adapter:
                result = await adapter.fetch_listings(_item())

        assert len(result) == 5
        assert route.calls.last.request.url.params["search"] == "Pikachu"

    @pytest.mark.asyncio
    async def test_one_piece_slug(self) -> None:
        with respx.mock:
            route = respx.get(host=CARDMARKET_HOST, path="/one-piece/cards").mock(
                return_value=httpx.Response(200, json=[])
            )
            async with _adapter() as adapter:
                result = await adapter.fetch_listings(_item(category="onepiece"))

        assert result == []
        assert route.called
