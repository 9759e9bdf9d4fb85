"""
Tests for market_data.engine.volatility: the volatility gate state machine.
"""

from __future__ import annotations

from decimal import Decimal

from market_data.engine.volatility import (
    GateState,
    evaluate_volatility_gate,
    is_illiquid,
    percent_change,
)


def test_large_move_on_illiquid_item_is_gated() -> None:
    decision = evaluate_volatility_gate(Decimal("100"), Decimal("140"), "low")
    assert decision.state == GateState.GATED
    assert decision.change_pct == Decimal("40.00")
    assert decision.reason == "Volatility gate: 40.0% change with low liquidity"


def test_large_drop_on_illiquid_item_is_gated() -> None:
    decision = evaluate_volatility_gate(Decimal("100"), Decimal("60"), "none")
    assert decision.state == GateState.GATED
    assert decision.change_pct == Decimal("-40.00")


def test_large_move_on_liquid_item_is_applied() -> None:
    decision = evaluate_volatility_gate(Decimal("100"), Decimal("140"), "high")
    assert decision.state == GateState.APPLIED
    assert decision.proposed_price == Decimal("140")


def test_force_update_bypasses_gate() -> None:
    decision = evaluate_volatility_gate(
        Decimal("100"), Decimal("140"), "low", force_update=True
    )
    assert decision.state == GateState.APPLIED


def test_unknown_liquidity_counts_as_illiquid() -> None:
    assert is_illiquid(None) is True
    decision = evaluate_volatility_gate(Decimal("100"), Decimal("140"), None)
    assert decision.state == GateState.GATED


def test_threshold_is_exclusive() -> None:
    decision = evaluate_volatility_gate(Decimal("100"), Decimal("130"), "low")
    assert decision.state == GateState.APPLIED


def test_move_just_over_threshold_is_gated() -> None:
    # 100 / 333.33 is 30.0003%, stored as 30.00
    decision = evaluate_volatility_gate(Decimal("333.33"), Decimal("433.33"), "low")
    assert decision.state == GateState.GATED
    assert decision.change_pct == Decimal("30.00")


def test_first_price_is_applied() -> None:
    decision = evaluate_volatility_gate(None, Decimal("42.00"), "low")
    assert decision.state == GateState.APPLIED
    assert decision.change_pct == Decimal("0.00")


def test_missing_proposal_is_skipped() -> None:
    decision = evaluate_volatility_gate(Decimal("100"), None, "high")
    assert decision.state == GateState.SKIPPED
    assert decision.reason == "insufficient_data"


def test_skip_reason_carried() -> None:
    decision = evaluate_volatility_gate(
        Decimal("100"), None, "high", skip_reason="no_valid_prices"
    )
    assert decision.reason == "no_valid_prices"


def test_percent_change() -> None:
    assert percent_change(Decimal("80"), Decimal("100")) == Decimal("25.00")
    assert percent_change(Decimal("0"), Decimal("100")) is None
    assert percent_change(None, Decimal("100")) is None
