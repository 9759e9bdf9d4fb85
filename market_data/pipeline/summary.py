"""
Market Data: Run Summaries

Every batch returns a structured summary. Each entity ends a run in exactly
one counted outcome; failures land in `errors` as "entity_id: message"
strings instead of aborting the batch.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class RunSummary(BaseModel):
    errors: list[str] = Field(default_factory=list)

    def record_error(self, entity_id: str, error: Exception | str) -> None:
        self.errors.append(f"{entity_id}: {error}")


class IngestRunSummary(RunSummary):
    source: str
    items_processed: int = 0
    fetched: int = 0
    events_created: int = 0
    outliers: int = 0
    unmatched: int = 0


class MatchRunSummary(RunSummary):
    catalog_cards_processed: int = 0
    market_items_processed: int = 0
    normalized_keys_updated: int = 0
    mappings_created: int = 0
    exact_key_matches: int = 0
    set_number_matches: int = 0
    review_queue_entries: int = 0
    unresolved: int = 0


class AggregationRunSummary(RunSummary):
    run_date: date
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    volatility_gated: int = 0
    insufficient_data: int = 0
