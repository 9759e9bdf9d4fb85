"""
Tests for market_data.pipeline.ingest: ingestion of vendor observations.
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
import respx
from sqlalchemy import func, select

from conftest import make_market_item
from market_data.models import PriceEvent, UnmatchedItem
from market_data.pipeline.ebay import EbaySoldAdapter
from market_data.pipeline.ingest import ADAPTERS, run_ingestion

EBAY_HOST = "ebay-search-result.p.rapidapi.com"

LISTINGS = {
    "results": [
        {"id": "1", "title": "Pikachu #25/198 SV1 NM", "price": "$10.00", "link": "https://e/1"},
        {"id": "2", "title": "Pikachu lot bundle", "price": "$5"},
        {"id": "3", "title": "Pikachu holo", "price": "12"},
        {"id": "4", "title": "Pikachu #26/198", "price": "11"},
        {"id": "5", "title": "Pikachu #25", "price": "N/A"},
    ]
}


def _adapter() -> EbaySoldAdapter:
    return EbaySoldAdapter(api_key="test", request_delay=0, base_backoff=0, max_retries=0)


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def test_registry() -> None:
    assert set(ADAPTERS) == {"ebay_sold", "ebay_active", "cardmarket", "pricecharting"}


class TestRunIngestion:
    @pytest.mark.asyncio
    async def test_listings_routed_by_outcome(self, db_session) -> None:
        item = make_market_item()
        db_session.add(item)
        await db_session.commit()

        with respx.mock:
            respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(200, json=LISTINGS)
            )
            summary = await run_ingestion(db_session, _adapter())

        assert summary.source == "ebay"
        assert summary.items_processed == 1
        assert summary.fetched == 5
        assert summary.events_created == 1
        assert summary.outliers == 1
        assert summary.unmatched == 2
        assert summary.errors == []

        events = (await db_session.execute(select(PriceEvent).order_by(PriceEvent.source_event_id))).scalars().all()
        assert [e.source_event_id for e in events] == ["1", "2"]
        matched, outlier = events
        assert matched.matched_market_item_id == item.id
        assert matched.amount == Decimal("10.00")
        assert matched.external_canonical_key == "pokemon:set=sv1:num=25"
        assert matched.is_outlier is False
        assert outlier.is_outlier is True
        assert outlier.outlier_reason == 'Contains "lot"'

        unmatched = (await db_session.execute(select(UnmatchedItem))).scalars().all()
        assert {u.external_id for u in unmatched} == {"3", "4"}
        assert all(u.market_item_id == item.id for u in unmatched)

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent(self, db_session) -> None:
        db_session.add(make_market_item())
        await db_session.commit()

        with respx.mock:
            respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(200, json=LISTINGS)
            )
            await run_ingestion(db_session, _adapter())
            second = await run_ingestion(db_session, _adapter())

        assert second.events_created == 0
        assert await _count(db_session, PriceEvent) == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_recorded_and_batch_continues(self, db_session) -> None:
        first = make_market_item(name="Pikachu")
        second = make_market_item(name="Raichu", card_number="26")
        db_session.add_all([first, second])
        await db_session.commit()
        # the failed item rolls the session back, expiring loaded instances
        first_id = first.id

        with respx.mock:
            respx.get(host=EBAY_HOST, path__regex=r"^/search/Pikachu").mock(
                return_value=httpx.Response(404)
            )
            respx.get(host=EBAY_HOST, path__regex=r"^/search/Raichu").mock(
                return_value=httpx.Response(
                    200, json={"results": [{"id": "r1", "title": "Raichu #26", "price": "3"}]}
                )
            )
            summary = await run_ingestion(db_session, _adapter())

        assert summary.items_processed == 1
        assert summary.events_created == 1
        assert summary.errors == [f"{first_id}: ebay: API error 404"]

    @pytest.mark.asyncio
    async def test_empty_search_recorded_as_unmatched(self, db_session) -> None:
        item = make_market_item()
        db_session.add(item)
        await db_session.commit()

        with respx.mock:
            respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(200, json={"results": []})
            )
            summary = await run_ingestion(db_session, _adapter())

        assert summary.items_processed == 1
        assert summary.fetched == 0
        assert summary.unmatched == 1

        unmatched = (await db_session.execute(select(UnmatchedItem))).scalar_one()
        assert unmatched.source == "ebay"
        assert unmatched.external_id is None
        assert unmatched.market_item_id == item.id
        assert unmatched.reason == "No results from ebay search"
        assert unmatched.raw_payload == {"search_query": "Pikachu", "market_item_id": item.id}
        assert await _count(db_session, PriceEvent) == 0

    @pytest.mark.asyncio
    async def test_items_without_card_number_skipped(self, db_session) -> None:
        db_session.add(make_market_item(card_number=None))
        await db_session.commit()

        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(200, json=LISTINGS)
            )
            summary = await run_ingestion(db_session, _adapter())

        assert summary.items_processed == 0
        assert not route.called

    @pytest.mark.asyncio
    async def test_item_filter(self, db_session) -> None:
        first = make_market_item()
        second = make_market_item(name="Raichu", card_number="26")
        db_session.add_all([first, second])
        await db_session.commit()

        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(200, json={"results": []})
            )
            summary = await run_ingestion(db_session, _adapter(), market_item_ids=[second.id])

        assert summary.items_processed == 1
        assert route.call_count == 1
