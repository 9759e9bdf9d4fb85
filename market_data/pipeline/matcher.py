"""
Market Data: Auto-Map Job

Links catalog cards to market items:

1. Refresh normalized keys on both sides (catalog store).
2. Index the market item pool and run the matching ladder per card.
3. Upsert mappings on (catalog_card_id, market_item_id); send ties to the
   review queue.

Re-running with no data change yields the same mapping set. Cards already
linked by a manual review decision are left alone.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.config import settings
from market_data.db import upsert
from market_data.engine.matching import (
    KEY_EXACT,
    MANUAL_REVIEW,
    SET_NUMBER_EXACT,
    MarketItemIndex,
    MatchCandidate,
    MatchOutcome,
    match_catalog_card,
)
from market_data.errors import AmbiguousMatchError
from market_data.models import CatalogCardMap, ReviewKind
from market_data.pipeline.catalog import load_catalog_card_rows, load_market_item_rows, refresh_normalized_keys
from market_data.pipeline.review import AUTOMAP_SOURCE, enqueue_review, match_review_event_id
from market_data.pipeline.summary import MatchRunSummary

logger = structlog.get_logger(__name__)


async def upsert_mapping(
    session: AsyncSession,
    card: Any,
    candidate: MatchCandidate,
) -> None:
    await upsert(
        session,
        CatalogCardMap,
        {
            "catalog_card_id": card.id,
            "market_item_id": candidate.market_item_id,
            "canonical_key": card.canonical_key,
            "confidence": candidate.confidence,
            "match_method": candidate.method,
        },
        conflict_columns=["catalog_card_id", "market_item_id"],
    )


async def _manually_mapped_card_ids(session: AsyncSession) -> set[str]:
    result = await session.execute(
        select(CatalogCardMap.catalog_card_id).where(CatalogCardMap.match_method == MANUAL_REVIEW)
    )
    return set(result.scalars().all())


async def run_auto_map(
    session: AsyncSession,
    game: str | None = None,
    limit: int | None = None,
    force_recompute: bool = False,
) -> MatchRunSummary:
    """
    Run one auto-map batch.

    Args:
        session: Async DB session. Commits per catalog card.
        game: Restrict to one game (catalog game / market item category).
        limit: Maximum catalog cards (and key refreshes) this run.
        force_recompute: Recompute normalized keys even when already set.

    Returns:
        MatchRunSummary with per-outcome counts and per-card errors.
    """
    limit = limit or settings.DEFAULT_AUTOMAP_LIMIT
    summary = MatchRunSummary()

    logger.info("automap_start", game=game, limit=limit, force_recompute=force_recompute)

    await refresh_normalized_keys(
        session, summary, game=game, limit=limit, force_recompute=force_recompute
    )

    # Full pool: a card may match an item outside this run's limit
    index = MarketItemIndex(await load_market_item_rows(session, category=game))
    cards = await load_catalog_card_rows(session, game=game, limit=limit)
    manually_mapped = await _manually_mapped_card_ids(session)

    logger.info("automap_matching", catalog_cards=len(cards), market_items=index.size)

    for card in cards:
        if card.id in manually_mapped:
            continue
        try:
            decision = match_catalog_card(card, index)

            if decision.outcome == MatchOutcome.MAPPED:
                await upsert_mapping(session, card, decision.chosen)
                summary.mappings_created += 1
                if decision.chosen.method == KEY_EXACT:
                    summary.exact_key_matches += 1
                elif decision.chosen.method == SET_NUMBER_EXACT:
                    summary.set_number_matches += 1

            elif decision.outcome == MatchOutcome.QUEUED:
                error = AmbiguousMatchError(
                    card.id, [c.market_item_id for c in decision.candidates]
                )
                written = await enqueue_review(
                    session,
                    kind=ReviewKind.AMBIGUOUS_MATCH,
                    source=AUTOMAP_SOURCE,
                    source_event_id=match_review_event_id(card.id),
                    reason=str(error),
                    catalog_card_id=card.id,
                    candidates=decision.candidates,
                    proposed_market_item_id=decision.candidates[0].market_item_id,
                    proposed_confidence=decision.candidates[0].confidence,
                )
                if written:
                    summary.review_queue_entries += 1

            else:
                summary.unresolved += 1

            await session.commit()

        except Exception as e:
            await session.rollback()
            logger.error("automap_card_failed", catalog_card_id=card.id, error=str(e))
            summary.record_error(card.id, e)

    logger.info("automap_complete", **summary.model_dump(exclude={"errors"}), errors=len(summary.errors))
    return summary
