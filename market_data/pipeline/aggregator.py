"""
Market Data: Daily Price Aggregation Job

For every identified market item:

1. Gather non-outlier raw-condition PriceEvents from the trailing window.
2. Split by source: the primary source (any event type) and secondary
   source sales. Other sources and graded buckets never enter the blend.
3. Blend per-source medians, then pass the result through the volatility
   gate.
4. APPLIED writes the new price with its history cascade; GATED writes a
   review entry; SKIPPED records why. Every outcome writes exactly one
   aggregation log row for (item, run_date).

Each item commits on its own; one item's failure is recorded and the run
moves on.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, NamedTuple, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.config import EventType, PriceConfidence, settings
from market_data.engine.blend import INSUFFICIENT_DATA, PriceBlend, compute_blend, confidence_tier
from market_data.engine.canonical_key import normalize_game
from market_data.engine.outliers import screen_outliers
from market_data.engine.title_screen import RAW
from market_data.engine.volatility import (
    VOLATILITY_GATE,
    GateDecision,
    GateState,
    evaluate_volatility_gate,
    percent_change,
)
from market_data.errors import InsufficientDataError
from market_data.models import MarketItem, PriceEvent, ReviewKind
from market_data.pipeline.review import (
    AGGREGATION_SOURCE,
    applied_log_entry,
    enqueue_review,
    gate_approved,
    gate_external_data,
    gate_review_event_id,
    upsert_aggregation_log,
)
from market_data.pipeline.summary import AggregationRunSummary

logger = structlog.get_logger(__name__)

MAD_FILTER = "mad_filter"


class SourceSamples(NamedTuple):
    """Window events for one item, split into the two blend sides."""
    primary: list[PriceEvent]
    secondary: list[PriceEvent]


def event_amount(event: PriceEvent) -> Decimal:
    """USD figure when the vendor supplied one, the quoted amount otherwise."""
    return event.amount_usd if event.amount_usd is not None else event.amount


def split_samples(events: Iterable[PriceEvent]) -> SourceSamples:
    primary_source = settings.PRIMARY_SOURCE.value
    secondary_source = settings.SECONDARY_SOURCE.value
    samples = SourceSamples([], [])
    for event in events:
        if event.source == primary_source:
            samples.primary.append(event)
        elif event.source == secondary_source and event.event_type == EventType.SALE.value:
            samples.secondary.append(event)
    return samples


async def load_window_events(
    session: AsyncSession,
    market_item_id: str,
    now: datetime | None = None,
) -> list[PriceEvent]:
    """Non-outlier raw-condition events for one item inside the window."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=settings.AGGREGATION_WINDOW_DAYS)
    result = await session.execute(
        select(PriceEvent)
        .where(
            PriceEvent.matched_market_item_id == market_item_id,
            PriceEvent.is_outlier.is_(False),
            PriceEvent.condition == RAW,
            PriceEvent.ingested_at >= since,
        )
        .order_by(PriceEvent.ingested_at.desc())
    )
    return list(result.scalars().all())


def _flag_mad_outliers(events: Sequence[PriceEvent]) -> list[PriceEvent]:
    """Flag events the MAD screen dropped; return the ones that were kept."""
    screen = screen_outliers([event_amount(e) for e in events])
    kept = []
    for event in events:
        if screen.is_outlier(event_amount(event)):
            event.is_outlier = True
            event.outlier_reason = MAD_FILTER
        else:
            kept.append(event)
    return kept


def apply_price(
    item: MarketItem,
    new_price: Decimal,
    confidence: PriceConfidence | None = None,
    primary_median: Decimal | None = None,
    secondary_median: Decimal | None = None,
    now: datetime | None = None,
) -> None:
    """
    APPLIED transition: cascade the history snapshots and write the new price.

    Change fields are measured against the snapshots as they were before the
    cascade.
    """
    previous = item.current_price
    old_7d = item.price_7d_ago
    old_30d = item.price_30d_ago

    item.price_30d_ago = item.price_7d_ago or previous
    item.price_7d_ago = item.price_24h_ago or previous
    item.price_24h_ago = previous

    item.current_price = new_price
    item.blended_market_price = new_price
    if primary_median is not None or secondary_median is not None:
        item.cardmarket_trend = primary_median
        item.ebay_avg_30d = secondary_median

    item.change_24h = percent_change(previous, new_price)
    item.change_7d = percent_change(old_7d, new_price)
    item.change_30d = percent_change(old_30d, new_price)

    if confidence is not None:
        item.price_confidence = confidence.value
    item.price_updated_at = now or datetime.now(timezone.utc)


async def _record_outcome(
    session: AsyncSession,
    item: MarketItem,
    run_date: date,
    blend: PriceBlend,
    decision: GateDecision,
) -> None:
    was_updated = decision.state == GateState.APPLIED
    skip_reason = None
    if decision.state == GateState.SKIPPED:
        skip_reason = decision.reason
    elif decision.state == GateState.GATED:
        skip_reason = VOLATILITY_GATE

    await upsert_aggregation_log(
        session,
        market_item_id=item.id,
        run_date=run_date,
        outcome=decision.state.value,
        previous_price=decision.previous_price,
        new_price=decision.proposed_price,
        price_change_pct=decision.change_pct,
        sample_count=blend.sample_count,
        cardmarket_price=blend.primary_median,
        ebay_median=blend.secondary_median,
        blended_price=blend.blended_price,
        was_updated=was_updated,
        skip_reason=skip_reason,
    )


async def aggregate_item(
    session: AsyncSession,
    item: MarketItem,
    run_date: date,
    force_update: bool = False,
) -> GateDecision:
    """
    Run one item through blend and gate and persist the outcome.

    The caller owns the transaction. A retry for a run_date that already
    applied a price, by the batch or by an approved gate review, returns
    without writing, so the history snapshots cascade at most once per day.
    """
    applied = await applied_log_entry(session, item.id, run_date)
    if applied is not None:
        logger.info(
            "aggregation_item_already_applied",
            market_item_id=item.id,
            run_date=run_date.isoformat(),
        )
        return GateDecision(
            GateState.APPLIED,
            applied.previous_price,
            applied.new_price,
            applied.price_change_pct,
            None,
        )

    if await gate_approved(session, item.id, run_date):
        logger.info(
            "aggregation_item_gate_approved",
            market_item_id=item.id,
            run_date=run_date.isoformat(),
        )
        return GateDecision(GateState.APPLIED, None, item.current_price, None, None)

    events = await load_window_events(session, item.id)
    samples = split_samples(events)

    try:
        blend = compute_blend(
            [event_amount(e) for e in samples.primary],
            [event_amount(e) for e in samples.secondary],
        )
    except InsufficientDataError as e:
        blend = PriceBlend(
            None, None, None, e.sample_count, confidence_tier(e.sample_count), e.reason
        )

    decision = evaluate_volatility_gate(
        previous_price=item.current_price,
        proposed_price=blend.blended_price,
        liquidity=item.liquidity,
        force_update=force_update,
        skip_reason=blend.skip_reason,
    )

    if decision.state == GateState.APPLIED:
        apply_price(
            item,
            decision.proposed_price,
            confidence=blend.confidence,
            primary_median=blend.primary_median,
            secondary_median=blend.secondary_median,
        )
        consumed: list[PriceEvent] = []
        if blend.primary_median is not None:
            consumed.extend(_flag_mad_outliers(samples.primary))
        if blend.secondary_median is not None:
            consumed.extend(_flag_mad_outliers(samples.secondary))
        if consumed:
            await session.execute(
                update(PriceEvent)
                .where(PriceEvent.id.in_([e.id for e in consumed]))
                .values(is_processed=True)
            )

    elif decision.state == GateState.GATED:
        await enqueue_review(
            session,
            kind=ReviewKind.VOLATILITY_GATE,
            source=AGGREGATION_SOURCE,
            source_event_id=gate_review_event_id(item.id, run_date),
            reason=decision.reason,
            proposed_market_item_id=item.id,
            proposed_confidence=settings.GATE_REVIEW_CONFIDENCE,
            external_data=gate_external_data(
                decision.previous_price,
                decision.proposed_price,
                decision.change_pct,
                item.liquidity,
                blend.sample_count,
            ),
        )

    await _record_outcome(session, item, run_date, blend, decision)

    logger.info(
        "aggregation_item_done",
        market_item_id=item.id,
        state=decision.state.value,
        previous_price=str(decision.previous_price),
        proposed_price=str(decision.proposed_price),
        sample_count=blend.sample_count,
        reason=decision.reason,
    )
    return decision


async def _select_item_ids(
    session: AsyncSession,
    category: str | None,
    limit: int,
) -> list[str]:
    stmt = (
        select(MarketItem.id)
        .where(MarketItem.normalized_key.is_not(None))
        .order_by(MarketItem.id)
        .limit(limit)
    )
    if category:
        stmt = stmt.where(MarketItem.category == normalize_game(category))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def run_daily_aggregation(
    session: AsyncSession,
    category: str | None = None,
    limit: int | None = None,
    force_update: bool = False,
    run_date: date | None = None,
) -> AggregationRunSummary:
    """
    Run one aggregation batch.

    Args:
        session: Async DB session. Commits per market item.
        category: Restrict to one market item category.
        limit: Maximum market items this run.
        force_update: Bypass the volatility gate (operator override).
        run_date: Date keying the log and review entries. Defaults to today
            (UTC).

    Returns:
        AggregationRunSummary.
    """
    limit = limit or settings.DEFAULT_AGGREGATION_LIMIT
    run_date = run_date or datetime.now(timezone.utc).date()
    summary = AggregationRunSummary(run_date=run_date)

    item_ids = await _select_item_ids(session, category, limit)
    logger.info(
        "aggregation_start",
        category=category,
        items=len(item_ids),
        force_update=force_update,
        run_date=run_date.isoformat(),
    )

    for item_id in item_ids:
        summary.processed += 1
        try:
            item = await session.get(MarketItem, item_id)
            decision = await aggregate_item(session, item, run_date, force_update)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("aggregation_item_failed", market_item_id=item_id, error=str(e))
            summary.record_error(item_id, e)
            continue

        if decision.state == GateState.APPLIED:
            summary.updated += 1
        elif decision.state == GateState.GATED:
            summary.volatility_gated += 1
        else:
            summary.skipped += 1
            if decision.reason == INSUFFICIENT_DATA:
                summary.insufficient_data += 1

    logger.info(
        "aggregation_complete",
        run_date=run_date.isoformat(),
        processed=summary.processed,
        updated=summary.updated,
        skipped=summary.skipped,
        volatility_gated=summary.volatility_gated,
        insufficient_data=summary.insufficient_data,
        errors=len(summary.errors),
    )
    return summary
