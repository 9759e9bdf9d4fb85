"""
Market Data: Market Item Model

The tradable representation of a catalog entry, carrying live pricing.

current_price and the snapshot / change columns are written only by the
price aggregator (through the volatility gate). Adapters and the matcher
never touch them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, new_id


class MarketItem(Base):
    """Commercial entity for one card, with reference price and history."""

    __tablename__ = "market_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    category: Mapped[str] = mapped_column(
        String, nullable=False, comment="Game slug, same vocabulary as catalog_cards.game"
    )
    set_code: Mapped[str | None] = mapped_column(String, nullable=True)
    set_name: Mapped[str | None] = mapped_column(String, nullable=True)
    card_number: Mapped[str | None] = mapped_column(String, nullable=True)
    variant: Mapped[str | None] = mapped_column(String, nullable=True)
    language: Mapped[str | None] = mapped_column(String, nullable=True)
    normalized_key: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    # --- Reference price ---
    current_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    price_24h_ago: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    price_7d_ago: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    price_30d_ago: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    change_24h: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Percent change vs price_24h_ago"
    )
    change_7d: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    change_30d: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)

    # --- Blend inputs of the last applied run ---
    blended_market_price: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 2), nullable=True
    )
    cardmarket_trend: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 2), nullable=True, comment="Primary source median"
    )
    ebay_avg_30d: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 2), nullable=True, comment="Secondary source median"
    )

    liquidity: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="high | medium | low | none"
    )
    price_confidence: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="high | medium | low"
    )
    price_updated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_market_items_category_set_number", "category", "set_code", "card_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<MarketItem id={self.id!r} category={self.category!r} "
            f"price={self.current_price}>"
        )
