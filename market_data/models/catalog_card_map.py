"""
Market Data: Catalog Card Map Model

Many-to-many link between catalog_cards and market_items, one row per pair.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, TIMESTAMP, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, new_id


class CatalogCardMap(Base):
    """
    Mapping row written by the matching ladder or a review approval.

    confidence strictly orders tiers: key_exact 1.00 > set_number_exact 0.98.
    """

    __tablename__ = "catalog_card_map"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    catalog_card_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("catalog_cards.id", ondelete="CASCADE"), nullable=False
    )
    market_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("market_items.id", ondelete="CASCADE"), nullable=False
    )
    canonical_key: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[Decimal] = mapped_column(
        DECIMAL(4, 2), nullable=False, comment="Match confidence in [0, 1]"
    )
    match_method: Mapped[str] = mapped_column(
        String, nullable=False, comment="key_exact | set_number_exact | manual_review"
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
        UniqueConstraint(
            "catalog_card_id", "market_item_id", name="uq_catalog_card_map_pair"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogCardMap catalog={self.catalog_card_id!r} "
            f"market={self.market_item_id!r} method={self.match_method!r}>"
        )
