"""
Market Data: Catalog Entry Store

Reads CatalogCard / MarketItem base rows (supplied by the catalog import)
and keeps their normalized keys current. Identity is never originated here:
rows without enough attributes for a key are reported and left alone.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market_data.engine.canonical_key import build_normalized_key, normalize_game
from market_data.errors import DataError
from market_data.models import CatalogCard, MarketItem
from market_data.pipeline.summary import MatchRunSummary

logger = structlog.get_logger(__name__)


def catalog_card_key(card: CatalogCard) -> str:
    key = build_normalized_key(
        card.game, card.set_code, card.card_number, card.variant, card.finish, card.language
    )
    if key is None:
        raise DataError("missing set_code and card_number")
    return key


def market_item_key(item: MarketItem) -> str:
    # market items carry no finish
    key = build_normalized_key(
        item.category, item.set_code, item.card_number, item.variant, None, item.language
    )
    if key is None:
        raise DataError("missing set_code and card_number")
    return key


async def load_catalog_cards(
    session: AsyncSession,
    game: str | None = None,
    limit: int | None = None,
    only_unkeyed: bool = False,
) -> Sequence[CatalogCard]:
    stmt = select(CatalogCard).order_by(CatalogCard.id)
    if game:
        stmt = stmt.where(CatalogCard.game == normalize_game(game))
    if only_unkeyed:
        stmt = stmt.where(CatalogCard.normalized_key.is_(None))
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


async def load_market_items(
    session: AsyncSession,
    category: str | None = None,
    limit: int | None = None,
    item_ids: Sequence[str] | None = None,
    only_unkeyed: bool = False,
) -> Sequence[MarketItem]:
    stmt = select(MarketItem).order_by(MarketItem.id)
    if category:
        stmt = stmt.where(MarketItem.category == normalize_game(category))
    if item_ids:
        stmt = stmt.where(MarketItem.id.in_(list(item_ids)))
    if only_unkeyed:
        stmt = stmt.where(MarketItem.normalized_key.is_(None))
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


async def load_catalog_card_rows(
    session: AsyncSession,
    game: str | None = None,
    limit: int | None = None,
) -> Sequence[Any]:
    """Keyed catalog cards as plain rows, detached from the session."""
    stmt = (
        select(
            CatalogCard.id,
            CatalogCard.game,
            CatalogCard.set_code,
            CatalogCard.card_number,
            CatalogCard.normalized_key,
            CatalogCard.canonical_key,
        )
        .where(CatalogCard.normalized_key.is_not(None))
        .order_by(CatalogCard.id)
    )
    if game:
        stmt = stmt.where(CatalogCard.game == normalize_game(game))
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return result.all()


async def load_market_item_rows(
    session: AsyncSession,
    category: str | None = None,
) -> Sequence[Any]:
    """The whole market item pool as plain rows for index building."""
    stmt = select(
        MarketItem.id,
        MarketItem.category,
        MarketItem.set_code,
        MarketItem.set_name,
        MarketItem.card_number,
        MarketItem.variant,
        MarketItem.language,
        MarketItem.normalized_key,
    ).order_by(MarketItem.id)
    if category:
        stmt = stmt.where(MarketItem.category == normalize_game(category))
    result = await session.execute(stmt)
    return result.all()


async def refresh_normalized_keys(
    session: AsyncSession,
    summary: MatchRunSummary,
    game: str | None = None,
    limit: int | None = None,
    force_recompute: bool = False,
) -> None:
    """
    Compute normalized keys for catalog cards and market items.

    Only rows without a key are touched unless force_recompute is set.
    Rows that cannot produce a key are recorded as DataErrors in the summary
    and skipped.
    """
    cards = await load_catalog_cards(
        session, game=game, limit=limit, only_unkeyed=not force_recompute
    )
    for card in cards:
        summary.catalog_cards_processed += 1
        try:
            key = catalog_card_key(card)
        except DataError as e:
            summary.record_error(f"catalog {card.id}", e)
            continue
        if card.normalized_key != key:
            card.normalized_key = key
            summary.normalized_keys_updated += 1

    items = await load_market_items(
        session, category=game, limit=limit, only_unkeyed=not force_recompute
    )
    for item in items:
        summary.market_items_processed += 1
        try:
            key = market_item_key(item)
        except DataError as e:
            summary.record_error(f"market {item.id}", e)
            continue
        if item.normalized_key != key:
            item.normalized_key = key
            summary.normalized_keys_updated += 1

    await session.commit()

    logger.info(
        "catalog_keys_refreshed",
        catalog_cards=len(cards),
        market_items=len(items),
        keys_updated=summary.normalized_keys_updated,
        force_recompute=force_recompute,
    )
