"""
Market Data: Price Event Model

Append-only observations from external sources. After insert, only the
outlier flag (with its reason) and is_processed may change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    DECIMAL,
    TIMESTAMP,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, JSONType, new_id, utcnow


class PriceEvent(Base):
    """
    One observed price data point from one source at one point in time.

    (source, source_event_id) is the natural key, so re-ingesting the same
    vendor listing is a no-op.
    """

    __tablename__ = "price_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    source: Mapped[str] = mapped_column(
        String, nullable=False, comment="cardmarket | ebay | pricecharting | manual"
    )
    source_event_id: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(
        String, nullable=False, comment="sale | listing | trend"
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_usd: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 2),
        nullable=True,
        comment="USD figure from the vendor (or amount for USD events); never converted",
    )

    # --- Raw vs graded bucket ---
    condition: Mapped[str] = mapped_column(
        String, nullable=False, default="raw", comment="raw | graded"
    )
    grade_company: Mapped[str | None] = mapped_column(String, nullable=True)
    grade_value: Mapped[Decimal | None] = mapped_column(DECIMAL(3, 1), nullable=True)

    # --- Identity ---
    external_canonical_key: Mapped[str | None] = mapped_column(String, nullable=True)
    external_url: Mapped[str | None] = mapped_column(String, nullable=True)
    raw_payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    matched_market_item_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    match_confidence: Mapped[Decimal | None] = mapped_column(DECIMAL(4, 2), nullable=True)

    # --- Mutable flags ---
    is_outlier: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    outlier_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    is_processed: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)

    sold_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    ingested_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("source", "source_event_id", name="uq_price_events_source_event"),
        Index(
            "ix_price_events_item_ingested",
            "matched_market_item_id",
            "ingested_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PriceEvent source={self.source!r} type={self.event_type!r} "
            f"amount={self.amount} {self.currency} outlier={self.is_outlier}>"
        )
