"""
Market Data: Match Review Queue Model

Inbox of pending human decisions: ambiguous catalog matches and
volatility-gated price changes. The pipeline writes entries and never
resolves them itself.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DECIMAL, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from market_data.models.base import Base, JSONType, new_id


class ReviewKind(str, Enum):
    AMBIGUOUS_MATCH = "ambiguous_match"
    VOLATILITY_GATE = "volatility_gate"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class MatchReviewQueueEntry(Base):
    """
    One pending decision.

    source_event_id is the natural key ("match_{catalog_card_id}" or
    "agg_{market_item_id}_{run_date}") so repeated runs do not duplicate
    entries.
    """

    __tablename__ = "match_review_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(
        String, nullable=False, comment="automap | aggregation"
    )
    source_event_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    catalog_card_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    candidate_market_item_ids: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    candidate_scores: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    proposed_market_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    proposed_confidence: Mapped[Decimal | None] = mapped_column(DECIMAL(4, 2), nullable=True)
    external_data: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="previous/proposed price, change %, samples"
    )
    reason: Mapped[str] = mapped_column(String, nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ReviewStatus.PENDING.value
    )
    resolution_note: Mapped[str | None] = mapped_column(String, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_match_review_queue_status_kind", "status", "kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<MatchReviewQueueEntry kind={self.kind!r} "
            f"key={self.source_event_id!r} status={self.status!r}>"
        )
