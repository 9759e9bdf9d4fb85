"""
Market Data: Review Resolution

Applies a human decision to a pending review entry. The pipeline never
calls this; it backs whatever admin surface sits on top of the queue.

- approve an ambiguous match -> mapping with method "manual_review"
- approve a gated price      -> APPLIED transition with the proposed price
- reject                     -> status only, nothing else changes
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.config import settings
from market_data.engine.matching import MANUAL_REVIEW, MatchCandidate
from market_data.errors import DataError
from market_data.models import CatalogCard, MarketItem, MatchReviewQueueEntry, ReviewKind, ReviewStatus
from market_data.pipeline.aggregator import apply_price
from market_data.pipeline.matcher import upsert_mapping

logger = structlog.get_logger(__name__)


async def _approve_match(
    session: AsyncSession,
    entry: MatchReviewQueueEntry,
    market_item_id: str | None,
) -> None:
    chosen = market_item_id or entry.proposed_market_item_id
    candidates = entry.candidate_market_item_ids or []
    if chosen is None or (candidates and chosen not in candidates):
        raise DataError(f"{entry.id}: {chosen} is not a candidate")

    card = await session.get(CatalogCard, entry.catalog_card_id)
    if card is None:
        raise DataError(f"{entry.id}: catalog card {entry.catalog_card_id} not found")

    await upsert_mapping(
        session,
        card,
        MatchCandidate(chosen, settings.MATCH_CONFIDENCE_MANUAL, MANUAL_REVIEW, 0),
    )


async def _approve_gated_price(session: AsyncSession, entry: MatchReviewQueueEntry) -> None:
    item = await session.get(MarketItem, entry.proposed_market_item_id)
    if item is None:
        raise DataError(f"{entry.id}: market item {entry.proposed_market_item_id} not found")

    proposed = (entry.external_data or {}).get("proposed_price")
    if proposed is None:
        raise DataError(f"{entry.id}: no proposed price")

    apply_price(item, Decimal(proposed))


async def resolve_review_entry(
    session: AsyncSession,
    entry_id: str,
    approve: bool,
    note: str | None = None,
    market_item_id: str | None = None,
) -> MatchReviewQueueEntry:
    """
    Resolve one pending entry and commit.

    Args:
        session: Async DB session.
        entry_id: Review entry id.
        approve: Apply the proposal (True) or reject it (False).
        note: Free-text resolution note.
        market_item_id: For ambiguous matches, the candidate picked by the
            reviewer. Defaults to the top-ranked candidate.

    Raises:
        DataError: unknown entry, entry already decided, or an approval that
            cannot be applied.
    """
    entry = await session.get(MatchReviewQueueEntry, entry_id)
    if entry is None:
        raise DataError(f"review entry {entry_id} not found")
    if entry.status != ReviewStatus.PENDING.value:
        raise DataError(f"review entry {entry_id} is already {entry.status}")

    if approve:
        if entry.kind == ReviewKind.AMBIGUOUS_MATCH.value:
            await _approve_match(session, entry, market_item_id)
        elif entry.kind == ReviewKind.VOLATILITY_GATE.value:
            await _approve_gated_price(session, entry)
        else:
            raise DataError(f"review entry {entry_id} has unknown kind {entry.kind}")
        entry.status = ReviewStatus.RESOLVED.value
    else:
        entry.status = ReviewStatus.REJECTED.value

    entry.resolution_note = note
    entry.resolved_at = datetime.now(timezone.utc)
    await session.commit()

    logger.info(
        "review_resolved",
        entry_id=entry_id,
        kind=entry.kind,
        status=entry.status,
    )
    return entry
