"""
Market Data: Unmatched Item Model

Vendor listings an adapter could not tie to a card identity with enough
confidence. Kept for the review surface instead of being dropped.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, String, func
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, JSONType, new_id


class UnmatchedItem(Base):
    __tablename__ = "pricing_unmatched_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    source: Mapped[str] = mapped_column(String, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    market_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    raw_payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    suggested_matches: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UnmatchedItem source={self.source!r} reason={self.reason!r}>"
