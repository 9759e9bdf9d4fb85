"""Initial schema: catalog, market items, price events, review queue, aggregation log

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-03-02
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- catalog_cards (reference identity) ---
    op.create_table(
        "catalog_cards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("game", sa.String(), nullable=False, comment="Game slug (pokemon, onepiece, mtg, ...)"),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("set_code", sa.String(), nullable=True),
        sa.Column("set_name", sa.String(), nullable=True),
        sa.Column("card_number", sa.String(), nullable=True),
        sa.Column("variant", sa.String(), nullable=True, comment="Print variant (reverse holo, alt art, ...)"),
        sa.Column("finish", sa.String(), nullable=True),
        sa.Column("language", sa.String(), nullable=True),
        sa.Column("rarity", sa.String(), nullable=True),
        sa.Column("normalized_key", sa.String(), nullable=True, comment="Derived deterministic identity key"),
        sa.Column("canonical_key", sa.String(), nullable=True, unique=True, comment="Stable business identifier"),
        *_timestamps(),
    )
    op.create_index("ix_catalog_cards_normalized_key", "catalog_cards", ["normalized_key"])
    op.create_index("ix_catalog_cards_game_set_number", "catalog_cards", ["game", "set_code", "card_number"])

    # --- market_items (tradable entity, carries the reference price) ---
    op.create_table(
        "market_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("set_code", sa.String(), nullable=True),
        sa.Column("set_name", sa.String(), nullable=True),
        sa.Column("card_number", sa.String(), nullable=True),
        sa.Column("variant", sa.String(), nullable=True),
        sa.Column("language", sa.String(), nullable=True),
        sa.Column("normalized_key", sa.String(), nullable=True),
        sa.Column("current_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("price_24h_ago", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("price_7d_ago", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("price_30d_ago", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("change_24h", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("change_7d", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("change_30d", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("blended_market_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("cardmarket_trend", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("ebay_avg_30d", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("liquidity", sa.String(), nullable=True, comment="high | medium | low | none"),
        sa.Column("price_confidence", sa.String(), nullable=True, comment="high | medium | low"),
        sa.Column("price_updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_market_items_normalized_key", "market_items", ["normalized_key"])
    op.create_index("ix_market_items_category_set_number", "market_items", ["category", "set_code", "card_number"])

    # --- catalog_card_map ---
    op.create_table(
        "catalog_card_map",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "catalog_card_id",
            sa.String(36),
            sa.ForeignKey("catalog_cards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "market_item_id",
            sa.String(36),
            sa.ForeignKey("market_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("canonical_key", sa.String(), nullable=True),
        sa.Column("confidence", sa.DECIMAL(4, 2), nullable=False, comment="Match confidence in [0, 1]"),
        sa.Column("match_method", sa.String(), nullable=False, comment="key_exact | set_number_exact | manual_review"),
        *_timestamps(),
        sa.UniqueConstraint("catalog_card_id", "market_item_id", name="uq_catalog_card_map_pair"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_catalog_card_map_confidence"),
    )

    # --- price_events (append-only observations) ---
    op.create_table(
        "price_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", sa.String(), nullable=False, comment="cardmarket | ebay | pricecharting | manual"),
        sa.Column("source_event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False, comment="sale | listing | trend"),
        sa.Column("amount", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("amount_usd", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("condition", sa.String(), nullable=False, server_default="raw", comment="raw | graded"),
        sa.Column("grade_company", sa.String(), nullable=True),
        sa.Column("grade_value", sa.DECIMAL(3, 1), nullable=True),
        sa.Column("external_canonical_key", sa.String(), nullable=True),
        sa.Column("external_url", sa.String(), nullable=True),
        sa.Column("raw_payload", JSONB(), nullable=True),
        sa.Column("matched_market_item_id", sa.String(36), nullable=True),
        sa.Column("match_confidence", sa.DECIMAL(4, 2), nullable=True),
        sa.Column("is_outlier", sa.BOOLEAN(), nullable=False, server_default="false"),
        sa.Column("outlier_reason", sa.String(), nullable=True),
        sa.Column("is_processed", sa.BOOLEAN(), nullable=False, server_default="false"),
        sa.Column("sold_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("ingested_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("source", "source_event_id", name="uq_price_events_source_event"),
    )
    op.create_index("ix_price_events_matched_market_item_id", "price_events", ["matched_market_item_id"])
    op.create_index("ix_price_events_item_ingested", "price_events", ["matched_market_item_id", "ingested_at"])

    # --- match_review_queue (human decisions) ---
    op.create_table(
        "match_review_queue",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False, comment="automap | aggregation"),
        sa.Column("source_event_id", sa.String(), nullable=False, unique=True),
        sa.Column("catalog_card_id", sa.String(36), nullable=True),
        sa.Column("candidate_market_item_ids", JSONB(), nullable=True),
        sa.Column("candidate_scores", JSONB(), nullable=True),
        sa.Column("proposed_market_item_id", sa.String(36), nullable=True),
        sa.Column("proposed_confidence", sa.DECIMAL(4, 2), nullable=True),
        sa.Column("external_data", JSONB(), nullable=True),
        sa.Column("reason", sa.String(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("resolution_note", sa.String(), nullable=True),
        sa.Column("resolved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('pending', 'resolved', 'rejected')", name="ck_match_review_queue_status"),
    )
    op.create_index("ix_match_review_queue_status_kind", "match_review_queue", ["status", "kind"])

    # --- price_aggregation_log (one row per item per run date) ---
    op.create_table(
        "price_aggregation_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("market_item_id", sa.String(36), nullable=False),
        sa.Column("run_date", sa.DATE(), nullable=False),
        sa.Column("previous_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("new_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("price_change_pct", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("sample_count", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("cardmarket_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("ebay_median", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("blended_price", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("was_updated", sa.BOOLEAN(), nullable=False, server_default="false"),
        sa.Column("outcome", sa.String(), nullable=False),
        sa.Column("skip_reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("market_item_id", "run_date", name="uq_aggregation_log_item_date"),
    )

    # --- pricing_unmatched_items ---
    op.create_table(
        "pricing_unmatched_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("market_item_id", sa.String(36), nullable=True),
        sa.Column("raw_payload", JSONB(), nullable=True),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("suggested_matches", JSONB(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_pricing_unmatched_items_source", "pricing_unmatched_items", ["source", "created_at"])


def downgrade() -> None:
    op.drop_table("pricing_unmatched_items")
    op.drop_table("price_aggregation_log")
    op.drop_table("match_review_queue")
    op.drop_table("price_events")
    op.drop_table("catalog_card_map")
    op.drop_table("market_items")
    op.drop_table("catalog_cards")
