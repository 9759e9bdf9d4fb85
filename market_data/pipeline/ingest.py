"""
Market Data: Ingestion Job

Drives one SourceAdapter over a batch of market items and appends what it
observes to price_events:

- matched listings      -> PriceEvent linked to the item
- keyword-excluded      -> PriceEvent with is_outlier set (kept for audit)
- no confirmed identity -> pricing_unmatched_items, never dropped
- empty vendor search   -> pricing_unmatched_items with a no-results reason

Re-ingesting the same vendor observation is a no-op: events are
insert-or-ignore on (source, source_event_id). Ingestion never touches
market item prices.
"""

from __future__ import annotations

from typing import Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.config import settings
from market_data.db import upsert
from market_data.engine.canonical_key import normalize_game
from market_data.models import MarketItem, PriceEvent, UnmatchedItem
from market_data.pipeline.base import ParsedListing, SourceAdapter
from market_data.pipeline.cardmarket import CardmarketAdapter
from market_data.pipeline.ebay import EbayActiveAdapter, EbaySoldAdapter
from market_data.pipeline.pricecharting import PriceChartingAdapter
from market_data.pipeline.summary import IngestRunSummary

logger = structlog.get_logger(__name__)

# Adapter registry keyed by the name used on the command line and in logs
ADAPTERS: dict[str, type[SourceAdapter]] = {
    "ebay_sold": EbaySoldAdapter,
    "ebay_active": EbayActiveAdapter,
    "cardmarket": CardmarketAdapter,
    "pricecharting": PriceChartingAdapter,
}


async def _select_item_ids(
    session: AsyncSession,
    category: str | None,
    limit: int,
    market_item_ids: Sequence[str] | None,
) -> list[str]:
    stmt = (
        select(MarketItem.id)
        .where(MarketItem.card_number.is_not(None))
        .order_by(MarketItem.id)
        .limit(limit)
    )
    if category:
        stmt = stmt.where(MarketItem.category == normalize_game(category))
    if market_item_ids:
        stmt = stmt.where(MarketItem.id.in_(list(market_item_ids)))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def store_price_event(
    session: AsyncSession,
    source: str,
    listing: ParsedListing,
    market_item_id: str | None,
) -> bool:
    """Insert one event; False when (source, source_event_id) already exists."""
    result = await upsert(
        session,
        PriceEvent,
        {
            "source": source,
            "source_event_id": listing.source_event_id,
            "event_type": listing.event_type.value,
            "amount": listing.amount,
            "currency": listing.currency,
            "amount_usd": listing.amount_usd,
            "condition": listing.condition,
            "grade_company": listing.grade_company,
            "grade_value": listing.grade_value,
            "external_canonical_key": listing.canonical_key,
            "external_url": listing.external_url,
            "raw_payload": listing.raw_payload,
            "matched_market_item_id": market_item_id,
            "match_confidence": listing.match_confidence,
            "is_outlier": listing.is_outlier,
            "outlier_reason": listing.outlier_reason,
            "sold_at": listing.sold_at,
        },
        conflict_columns=["source", "source_event_id"],
        update_columns=[],
    )
    return result.rowcount > 0


def record_unmatched(
    session: AsyncSession,
    source: str,
    listing: ParsedListing,
    market_item_id: str,
) -> None:
    session.add(
        UnmatchedItem(
            source=source,
            external_id=listing.source_event_id,
            market_item_id=market_item_id,
            raw_payload={
                "title": listing.title,
                "price": str(listing.amount),
                "currency": listing.currency,
                "url": listing.external_url,
                "condition": listing.condition,
            },
            reason=listing.unmatched_reason or "Unmatched",
            suggested_matches=[],
        )
    )


def record_no_results(session: AsyncSession, source: str, item: MarketItem) -> None:
    """An empty vendor search is queued for follow-up like any other miss."""
    session.add(
        UnmatchedItem(
            source=source,
            external_id=None,
            market_item_id=item.id,
            raw_payload={"search_query": item.name, "market_item_id": item.id},
            reason=f"No results from {source} search",
            suggested_matches=[],
        )
    )


async def run_ingestion(
    session: AsyncSession,
    adapter: SourceAdapter,
    category: str | None = None,
    limit: int | None = None,
    market_item_ids: Sequence[str] | None = None,
) -> IngestRunSummary:
    """
    Fetch and record one source's observations for a batch of market items.

    Args:
        session: Async DB session. Commits per market item.
        adapter: Vendor adapter (opened here for the duration of the run).
        category: Restrict to one market item category.
        limit: Maximum market items this run.
        market_item_ids: Restrict to these items.

    Returns:
        IngestRunSummary. A failed fetch is recorded against its item and
        the batch continues.
    """
    limit = limit or settings.DEFAULT_INGEST_LIMIT
    summary = IngestRunSummary(source=adapter.source)
    item_ids = await _select_item_ids(session, category, limit, market_item_ids)

    logger.info("ingest_start", source=adapter.source, category=category, items=len(item_ids))

    async with adapter:
        for item_id in item_ids:
            try:
                item = await session.get(MarketItem, item_id)
                payloads = await adapter.fetch_listings(item)
                summary.fetched += len(payloads)

                if not payloads:
                    record_no_results(session, adapter.source, item)
                    summary.unmatched += 1

                for payload in payloads:
                    for listing in adapter.parse_listing(payload, item):
                        if listing.is_outlier:
                            summary.outliers += 1
                            await store_price_event(session, adapter.source, listing, item_id)
                        elif listing.is_matched:
                            if await store_price_event(session, adapter.source, listing, item_id):
                                summary.events_created += 1
                        else:
                            record_unmatched(session, adapter.source, listing, item_id)
                            summary.unmatched += 1

                await session.commit()
                summary.items_processed += 1

            except Exception as e:
                await session.rollback()
                logger.error(
                    "ingest_item_failed",
                    source=adapter.source,
                    market_item_id=item_id,
                    error=str(e),
                )
                summary.record_error(item_id, e)

    logger.info(
        "ingest_complete",
        source=adapter.source,
        items=summary.items_processed,
        fetched=summary.fetched,
        events_created=summary.events_created,
        outliers=summary.outliers,
        unmatched=summary.unmatched,
        errors=len(summary.errors),
    )
    return summary
