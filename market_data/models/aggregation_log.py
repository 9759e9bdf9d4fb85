"""
Market Data: Price Aggregation Log Model

Exactly one upserted row per (market_item_id, run_date), whatever the
outcome. Explains any day's change (or non-change) without replaying the
pipeline.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    DATE,
    DECIMAL,
    INTEGER,
    TIMESTAMP,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, new_id


class AggregationLogEntry(Base):
    """Audit trace of one aggregation run for one market item."""

    __tablename__ = "price_aggregation_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    market_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    run_date: Mapped[date] = mapped_column(DATE, nullable=False)

    previous_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    new_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    price_change_pct: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    sample_count: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    cardmarket_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    ebay_median: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    blended_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)

    was_updated: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    outcome: Mapped[str] = mapped_column(
        String, nullable=False, comment="applied | gated | skipped"
    )
    skip_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("market_item_id", "run_date", name="uq_aggregation_log_item_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<AggregationLogEntry item={self.market_item_id!r} "
            f"date={self.run_date} outcome={self.outcome!r}>"
        )
