"""
Market Data: Shared pytest Fixtures

- In-memory aiosqlite database built from the model metadata
- Row factories for catalog cards, market items and price events
"""

from __future__ import annotations

import itertools
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from market_data.models import Base, CatalogCard, MarketItem, PriceEvent


@pytest.fixture
async def db_engine():
    """Fresh in-memory SQLite engine with every table created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

_event_ids = itertools.count(1)


def make_catalog_card(**overrides: Any) -> CatalogCard:
    values: dict[str, Any] = {
        "game": "pokemon",
        "name": "Pikachu",
        "set_code": "SV1",
        "card_number": "25",
    }
    values.update(overrides)
    return CatalogCard(**values)


def make_market_item(**overrides: Any) -> MarketItem:
    values: dict[str, Any] = {
        "name": "Pikachu",
        "category": "pokemon",
        "set_code": "SV1",
        "card_number": "25",
    }
    values.update(overrides)
    return MarketItem(**values)


def make_price_event(market_item_id: str, amount: str, **overrides: Any) -> PriceEvent:
    price = Decimal(amount)
    values: dict[str, Any] = {
        "source": "ebay",
        "event_type": "sale",
        "amount": price,
        "currency": "USD",
        "amount_usd": price,
        "matched_market_item_id": market_item_id,
    }
    values.update(overrides)
    values.setdefault("source_event_id", f"evt_{next(_event_ids)}")
    return PriceEvent(**values)
