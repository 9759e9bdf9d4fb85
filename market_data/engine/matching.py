"""
Market Data: Catalog Matching Ladder

Links a CatalogCard to MarketItems with a two-tier, confidence-scored
ladder. There is no fuzzy tier: anything the hard tiers cannot settle is
handed to human review.

    Tier A  exact normalized_key               confidence 1.00  "key_exact"
    Tier B  exact (game, set_code, number)     confidence 0.98  "set_number_exact"
            (evaluated only when Tier A is empty)

One candidate at the highest reached tier is mapped. Several candidates are
ranked by metadata completeness; the top one is mapped only when it is
strictly more complete than the runner-up, otherwise the card is queued
with up to five ranked candidates.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, NamedTuple

import structlog

from market_data.config import settings
from market_data.engine.canonical_key import set_number_key

logger = structlog.get_logger(__name__)

KEY_EXACT = "key_exact"
SET_NUMBER_EXACT = "set_number_exact"
MANUAL_REVIEW = "manual_review"


class MatchOutcome(str, Enum):
    MAPPED = "mapped"
    QUEUED = "queued"
    UNRESOLVED = "unresolved"


class MatchCandidate(NamedTuple):
    market_item_id: str
    confidence: Decimal
    method: str
    completeness: int


class MatchDecision(NamedTuple):
    outcome: MatchOutcome
    catalog_card_id: str
    chosen: MatchCandidate | None
    candidates: list[MatchCandidate]


def metadata_completeness(item: Any) -> int:
    """
    Rank how fully a market item is described.

    An explicit variant outweighs an explicit language, which outweighs a
    set name.
    """
    score = 0
    if getattr(item, "variant", None):
        score += 4
    if getattr(item, "language", None):
        score += 2
    if getattr(item, "set_name", None):
        score += 1
    return score


class MarketItemIndex:
    """
    Lookup tables over the market item pool for one matching run.

    Items only need id, category, normalized_key, set_code, card_number and
    the optional metadata attributes.
    """

    def __init__(self, items: Iterable[Any]) -> None:
        self.by_key: dict[str, list[Any]] = defaultdict(list)
        self.by_set_number: dict[tuple[str, str, str], list[Any]] = defaultdict(list)
        self.size = 0

        for item in items:
            self.size += 1
            if item.normalized_key:
                self.by_key[item.normalized_key].append(item)
            triple = set_number_key(item.category, item.set_code, item.card_number)
            if triple is not None:
                self.by_set_number[triple].append(item)


def _rank(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    # id as final key keeps the ordering deterministic across runs
    return sorted(
        candidates,
        key=lambda c: (-c.confidence, -c.completeness, c.market_item_id),
    )


def find_candidates(card: Any, index: MarketItemIndex) -> list[MatchCandidate]:
    """Candidates at the highest tier that produced any, best first."""
    exact = index.by_key.get(card.normalized_key, []) if card.normalized_key else []
    if exact:
        return _rank([
            MatchCandidate(
                item.id, settings.MATCH_CONFIDENCE_KEY_EXACT, KEY_EXACT,
                metadata_completeness(item),
            )
            for item in exact
        ])

    triple = set_number_key(card.game, card.set_code, card.card_number)
    if triple is None:
        return []
    return _rank([
        MatchCandidate(
            item.id, settings.MATCH_CONFIDENCE_SET_NUMBER, SET_NUMBER_EXACT,
            metadata_completeness(item),
        )
        for item in index.by_set_number.get(triple, [])
    ])


def match_catalog_card(card: Any, index: MarketItemIndex) -> MatchDecision:
    """
    Run the ladder for one catalog card.

    Returns:
        MatchDecision: MAPPED with the chosen candidate, QUEUED with the
        ranked candidates (at most REVIEW_MAX_CANDIDATES), or UNRESOLVED
        when no tier produced a candidate.
    """
    candidates = find_candidates(card, index)

    if not candidates:
        return MatchDecision(MatchOutcome.UNRESOLVED, card.id, None, [])

    if len(candidates) == 1:
        return MatchDecision(MatchOutcome.MAPPED, card.id, candidates[0], candidates)

    top, runner_up = candidates[0], candidates[1]
    if top.confidence > runner_up.confidence or top.completeness > runner_up.completeness:
        logger.debug(
            "match_tie_broken",
            catalog_card_id=card.id,
            market_item_id=top.market_item_id,
            candidate_count=len(candidates),
        )
        return MatchDecision(MatchOutcome.MAPPED, card.id, top, candidates)

    logger.info(
        "match_ambiguous",
        catalog_card_id=card.id,
        method=top.method,
        candidate_count=len(candidates),
    )
    return MatchDecision(
        MatchOutcome.QUEUED,
        card.id,
        None,
        candidates[: settings.REVIEW_MAX_CANDIDATES],
    )
