"""
Market Data: Volatility Gate

Per run, per entity:  CANDIDATE -> APPLIED | GATED | SKIPPED

- SKIPPED: no usable blended price. Price untouched, skip_reason recorded.
- GATED:   |change| > 30% AND liquidity is low/none AND no force override.
           Price untouched, review entry written.
- APPLIED: everything else.

Thin markets swing on one or two new listings; holding those swings for a
human keeps the automated price from feeding on itself.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import NamedTuple

import structlog

from market_data.config import Liquidity, settings

logger = structlog.get_logger(__name__)

VOLATILITY_GATE = "volatility_gate"


class GateState(str, Enum):
    CANDIDATE = "candidate"
    APPLIED = "applied"
    GATED = "gated"
    SKIPPED = "skipped"


class GateDecision(NamedTuple):
    state: GateState
    previous_price: Decimal | None
    proposed_price: Decimal | None
    change_pct: Decimal | None
    reason: str | None


def _raw_change(previous: Decimal | None, current: Decimal | None) -> Decimal | None:
    if previous is None or current is None or previous <= 0:
        return None
    return (current - previous) / previous * Decimal("100")


def percent_change(previous: Decimal | None, current: Decimal | None) -> Decimal | None:
    """Percent change from previous to current, None without a positive base."""
    change = _raw_change(previous, current)
    if change is None:
        return None
    return change.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def is_illiquid(liquidity: str | None) -> bool:
    """Unknown liquidity counts as none."""
    if liquidity is None:
        return True
    illiquid = {tier.value for tier in settings.ILLIQUID_TIERS}
    return liquidity.strip().lower() in illiquid


def evaluate_volatility_gate(
    previous_price: Decimal | None,
    proposed_price: Decimal | None,
    liquidity: str | None,
    force_update: bool = False,
    skip_reason: str | None = None,
) -> GateDecision:
    """
    Decide the terminal state of one entity for this run.

    Args:
        previous_price: Stored current_price before the run.
        proposed_price: Blended reference price, None when unavailable.
        liquidity: Stored liquidity tier of the entity.
        force_update: Operator override that bypasses the gate.
        skip_reason: Reason carried into a SKIPPED decision.
    """
    if proposed_price is None:
        return GateDecision(
            GateState.SKIPPED, previous_price, None, None, skip_reason or "insufficient_data"
        )

    # Compare unrounded; only the stored percentage is rounded.
    raw_change = _raw_change(previous_price, proposed_price) or Decimal("0")
    change = percent_change(previous_price, proposed_price)
    if change is None:
        change = Decimal("0.00")

    threshold = settings.VOLATILITY_THRESHOLD_PCT
    if abs(raw_change) > threshold and is_illiquid(liquidity) and not force_update:
        reason = f"Volatility gate: {change:.1f}% change with {liquidity or Liquidity.NONE.value} liquidity"
        logger.info(
            "volatility_gate_held",
            previous_price=str(previous_price),
            proposed_price=str(proposed_price),
            change_pct=str(change),
            liquidity=liquidity,
        )
        return GateDecision(GateState.GATED, previous_price, proposed_price, change, reason)

    return GateDecision(GateState.APPLIED, previous_price, proposed_price, change, None)
