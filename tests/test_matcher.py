"""
Tests for market_data.pipeline.matcher and catalog: the auto-map job.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import make_catalog_card, make_market_item
from market_data.models import CatalogCard, CatalogCardMap, MarketItem, MatchReviewQueueEntry
from market_data.pipeline.matcher import run_auto_map


async def _mappings(session) -> list[tuple[str, str, str, Decimal]]:
    result = await session.execute(
        select(
            CatalogCardMap.catalog_card_id,
            CatalogCardMap.market_item_id,
            CatalogCardMap.match_method,
            CatalogCardMap.confidence,
        ).order_by(CatalogCardMap.catalog_card_id)
    )
    return [tuple(row) for row in result.all()]


class TestKeyRefresh:
    @pytest.mark.asyncio
    async def test_keys_computed_on_both_sides(self, db_session) -> None:
        card = make_catalog_card(card_number="#025/198")
        item = make_market_item()
        db_session.add_all([card, item])
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.normalized_keys_updated == 2
        stored_card = await db_session.get(CatalogCard, card.id)
        stored_item = await db_session.get(MarketItem, item.id)
        assert stored_card.normalized_key == "pokemon:set=sv1:num=25"
        assert stored_item.normalized_key == "pokemon:set=sv1:num=25"

    @pytest.mark.asyncio
    async def test_unkeyable_card_reported(self, db_session) -> None:
        card = make_catalog_card(set_code=None, card_number=None)
        db_session.add(card)
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.errors == [f"catalog {card.id}: missing set_code and card_number"]
        assert summary.mappings_created == 0


class TestRunAutoMap:
    @pytest.mark.asyncio
    async def test_exact_key_mapping(self, db_session) -> None:
        card = make_catalog_card(canonical_key="pkm-sv1-25")
        item = make_market_item(card_number="025")
        db_session.add_all([card, item])
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.mappings_created == 1
        assert summary.exact_key_matches == 1
        assert await _mappings(db_session) == [(card.id, item.id, "key_exact", Decimal("1.00"))]

        row = (await db_session.execute(select(CatalogCardMap))).scalar_one()
        assert row.canonical_key == "pkm-sv1-25"

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, db_session) -> None:
        db_session.add_all([make_catalog_card(), make_market_item()])
        await db_session.commit()

        await run_auto_map(db_session)
        first = await _mappings(db_session)
        await run_auto_map(db_session)
        second = await _mappings(db_session)

        assert first == second
        assert len(second) == 1

    @pytest.mark.asyncio
    async def test_set_number_mapping(self, db_session) -> None:
        card = make_catalog_card()
        item = make_market_item(variant="holo")
        db_session.add_all([card, item])
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.set_number_matches == 1
        assert await _mappings(db_session) == [(card.id, item.id, "set_number_exact", Decimal("0.98"))]

    @pytest.mark.asyncio
    async def test_tie_goes_to_review_queue(self, db_session) -> None:
        card = make_catalog_card()
        first = make_market_item(variant="holo")
        second = make_market_item(variant="reverse-holo")
        db_session.add_all([card, first, second])
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.mappings_created == 0
        assert summary.review_queue_entries == 1
        assert await _mappings(db_session) == []

        entry = (await db_session.execute(select(MatchReviewQueueEntry))).scalar_one()
        assert entry.kind == "ambiguous_match"
        assert entry.source == "automap"
        assert entry.status == "pending"
        assert entry.source_event_id == f"match_{card.id}"
        assert entry.catalog_card_id == card.id
        assert sorted(entry.candidate_market_item_ids) == sorted([first.id, second.id])
        assert entry.candidate_scores == [0.98, 0.98]

    @pytest.mark.asyncio
    async def test_repeated_tie_does_not_duplicate_entry(self, db_session) -> None:
        db_session.add_all([
            make_catalog_card(),
            make_market_item(variant="holo"),
            make_market_item(variant="reverse-holo"),
        ])
        await db_session.commit()

        await run_auto_map(db_session)
        await run_auto_map(db_session)

        entries = (await db_session.execute(select(MatchReviewQueueEntry))).scalars().all()
        assert len(entries) == 1

    @pytest.mark.asyncio
    async def test_no_candidate_is_unresolved(self, db_session) -> None:
        db_session.add_all([make_catalog_card(card_number="99"), make_market_item()])
        await db_session.commit()

        summary = await run_auto_map(db_session)

        assert summary.unresolved == 1
        assert summary.mappings_created == 0

    @pytest.mark.asyncio
    async def test_game_filter(self, db_session) -> None:
        db_session.add_all([
            make_catalog_card(),
            make_market_item(),
            make_catalog_card(game="One Piece", set_code="OP07", card_number="51"),
        ])
        await db_session.commit()

        summary = await run_auto_map(db_session, game="pokemon")

        assert summary.catalog_cards_processed == 1
        assert summary.mappings_created == 1
