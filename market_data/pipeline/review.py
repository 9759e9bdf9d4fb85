"""
Market Data: Review Queue & Aggregation Log writes

The review queue is the only place where a human (or higher-trust process)
takes a decision; the pipeline writes to it and never resolves entries
itself. The aggregation log holds exactly one row per (market item, run
date) whatever the outcome, so any day's change (or non-change) can be
explained afterwards without replaying the run.

Both writes are upserts on natural keys and are safe to repeat.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.db import upsert
from market_data.engine.matching import MatchCandidate
from market_data.models import AggregationLogEntry, MatchReviewQueueEntry, ReviewKind, ReviewStatus

logger = structlog.get_logger(__name__)

AUTOMAP_SOURCE = "automap"
AGGREGATION_SOURCE = "aggregation"


def match_review_event_id(catalog_card_id: str) -> str:
    return f"match_{catalog_card_id}"


def gate_review_event_id(market_item_id: str, run_date: date) -> str:
    return f"agg_{market_item_id}_{run_date.isoformat()}"


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


async def upsert_aggregation_log(
    session: AsyncSession,
    market_item_id: str,
    run_date: date,
    outcome: str,
    previous_price: Decimal | None = None,
    new_price: Decimal | None = None,
    price_change_pct: Decimal | None = None,
    sample_count: int = 0,
    cardmarket_price: Decimal | None = None,
    ebay_median: Decimal | None = None,
    blended_price: Decimal | None = None,
    was_updated: bool = False,
    skip_reason: str | None = None,
) -> None:
    """Write the (market_item_id, run_date) trace row, replacing a same-day one."""
    await upsert(
        session,
        AggregationLogEntry,
        {
            "market_item_id": market_item_id,
            "run_date": run_date,
            "outcome": outcome,
            "previous_price": previous_price,
            "new_price": new_price,
            "price_change_pct": price_change_pct,
            "sample_count": sample_count,
            "cardmarket_price": cardmarket_price,
            "ebay_median": ebay_median,
            "blended_price": blended_price,
            "was_updated": was_updated,
            "skip_reason": skip_reason,
        },
        conflict_columns=["market_item_id", "run_date"],
    )


async def applied_log_entry(
    session: AsyncSession,
    market_item_id: str,
    run_date: date,
) -> AggregationLogEntry | None:
    """The day's trace row when a price was already written for run_date."""
    result = await session.execute(
        select(AggregationLogEntry).where(
            AggregationLogEntry.market_item_id == market_item_id,
            AggregationLogEntry.run_date == run_date,
            AggregationLogEntry.was_updated.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def gate_approved(session: AsyncSession, market_item_id: str, run_date: date) -> bool:
    """True when a reviewer approved this run_date's volatility-gate entry."""
    result = await session.execute(
        select(MatchReviewQueueEntry.id).where(
            MatchReviewQueueEntry.source_event_id == gate_review_event_id(market_item_id, run_date),
            MatchReviewQueueEntry.status == ReviewStatus.RESOLVED.value,
        )
    )
    return result.first() is not None


async def enqueue_review(
    session: AsyncSession,
    kind: ReviewKind,
    source: str,
    source_event_id: str,
    reason: str,
    catalog_card_id: str | None = None,
    candidates: Sequence[MatchCandidate] | None = None,
    proposed_market_item_id: str | None = None,
    proposed_confidence: Decimal | None = None,
    external_data: dict[str, Any] | None = None,
) -> bool:
    """
    Create or refresh a pending review entry keyed by source_event_id.

    An entry that was already resolved or rejected is left untouched, so a
    later run cannot reopen a human decision.

    Returns:
        True when a pending entry was written, False when a decided entry
        blocked the write.
    """
    candidates = list(candidates or [])
    values: dict[str, Any] = {
        "kind": kind.value,
        "source": source,
        "source_event_id": source_event_id,
        "catalog_card_id": catalog_card_id,
        "candidate_market_item_ids": [c.market_item_id for c in candidates] or None,
        "candidate_scores": [float(c.confidence) for c in candidates] or None,
        "proposed_market_item_id": proposed_market_item_id,
        "proposed_confidence": proposed_confidence,
        "external_data": external_data,
        "reason": reason,
        "status": ReviewStatus.PENDING.value,
    }
    result = await upsert(
        session,
        MatchReviewQueueEntry,
        values,
        conflict_columns=["source_event_id"],
        update_columns=[
            "candidate_market_item_ids",
            "candidate_scores",
            "proposed_market_item_id",
            "proposed_confidence",
            "external_data",
            "reason",
        ],
        where=MatchReviewQueueEntry.status == ReviewStatus.PENDING.value,
    )

    written = result.rowcount > 0
    logger.info(
        "review_enqueued",
        kind=kind.value,
        source_event_id=source_event_id,
        candidate_count=len(candidates),
        written=written,
    )
    return written


def gate_external_data(
    previous_price: Decimal | None,
    proposed_price: Decimal | None,
    change_pct: Decimal | None,
    liquidity: str | None,
    sample_count: int,
) -> dict[str, Any]:
    """JSON payload stored on a volatility-gate entry."""
    return {
        "previous_price": _money(previous_price),
        "proposed_price": _money(proposed_price),
        "change_pct": _money(change_pct),
        "liquidity": liquidity,
        "sample_count": sample_count,
    }


async def list_pending(
    session: AsyncSession,
    kind: ReviewKind | None = None,
    limit: int = 100,
) -> Sequence[MatchReviewQueueEntry]:
    """Pending entries, oldest first."""
    stmt = (
        select(MatchReviewQueueEntry)
        .where(MatchReviewQueueEntry.status == ReviewStatus.PENDING.value)
        .order_by(MatchReviewQueueEntry.created_at, MatchReviewQueueEntry.id)
        .limit(limit)
    )
    if kind is not None:
        stmt = stmt.where(MatchReviewQueueEntry.kind == kind.value)
    result = await session.execute(stmt)
    return result.scalars().all()
