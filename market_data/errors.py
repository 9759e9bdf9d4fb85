"""
Market Data: Error taxonomy

Every error is captured per unit of work (one market item, one catalog card)
and folded into the run summary; none of them aborts a batch. Volatility
gating is a deliberate hold state and is not represented here.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all reconciliation pipeline errors."""


class DataError(PipelineError):
    """Malformed or missing key inputs. The row is skipped locally."""


class SourceError(PipelineError):
    """HTTP failure or rate limit from a vendor.

    Recorded against the entity being fetched; retried only on the next
    scheduled run.
    """

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class InsufficientDataError(PipelineError):
    """No qualifying samples for this run. Terminal for the entity."""

    def __init__(self, reason: str = "insufficient_data", sample_count: int = 0) -> None:
        super().__init__(reason)
        self.reason = reason
        self.sample_count = sample_count


class AmbiguousMatchError(PipelineError):
    """Several candidates tie; routed to review, no mapping created."""

    def __init__(self, catalog_card_id: str, candidate_ids: list[str]) -> None:
        super().__init__(
            f"{catalog_card_id}: {len(candidate_ids)} tied candidates"
        )
        self.catalog_card_id = catalog_card_id
        self.candidate_ids = candidate_ids
