"""
Market Data: Catalog Card Model

Canonical reference card definitions, independent of any marketplace
listing. Rows are supplied by the catalog import; the pipeline only fills in
normalized_key.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, new_id


class CatalogCard(Base):
    """
    Reference card entity.

    canonical_key is the stable business identifier assigned at import time.
    normalized_key is derived by the canonical key builder and is what the
    matching ladder compares.
    """

    __tablename__ = "catalog_cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    game: Mapped[str] = mapped_column(
        String, nullable=False, comment="Game slug (pokemon, onepiece, mtg, ...)"
    )
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    set_code: Mapped[str | None] = mapped_column(String, nullable=True)
    set_name: Mapped[str | None] = mapped_column(String, nullable=True)
    card_number: Mapped[str | None] = mapped_column(String, nullable=True)
    variant: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Print variant (reverse holo, alt art, ...)"
    )
    finish: Mapped[str | None] = mapped_column(String, nullable=True)
    language: Mapped[str | None] = mapped_column(String, nullable=True)
    rarity: Mapped[str | None] = mapped_column(String, nullable=True)
    normalized_key: Mapped[str | None] = mapped_column(
        String, nullable=True, index=True, comment="Derived deterministic identity key"
    )
    canonical_key: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True, comment="Stable business identifier"
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
        Index("ix_catalog_cards_game_set_number", "game", "set_code", "card_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogCard id={self.id!r} game={self.game!r} "
            f"key={self.normalized_key!r}>"
        )
