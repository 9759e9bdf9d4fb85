"""
Tests for market_data.engine.outliers: MAD outlier filter.
"""

from __future__ import annotations

from decimal import Decimal

from market_data.engine.outliers import filter_outliers, screen_outliers


def _d(*values: int) -> list[Decimal]:
    return [Decimal(v) for v in values]


def test_zero_mad_returns_input_unfiltered() -> None:
    """All-but-one equal samples give D = 0, so nothing is dropped."""
    samples = _d(10, 10, 10, 10, 1000)
    screen = screen_outliers(samples)
    assert screen.kept == samples
    assert screen.dropped == []
    assert screen.mad == 0


def test_too_few_samples_returns_input_unfiltered() -> None:
    samples = _d(10, 10, 10, 1000)
    screen = screen_outliers(samples)
    assert screen.kept == samples
    assert screen.threshold is None


def test_extreme_value_dropped() -> None:
    screen = screen_outliers(_d(10, 11, 12, 13, 1000))
    assert screen.median == Decimal(12)
    assert screen.mad == Decimal(1)
    assert screen.threshold == Decimal(4)
    assert screen.kept == _d(10, 11, 12, 13)
    assert screen.dropped == _d(1000)


def test_is_outlier_uses_threshold() -> None:
    screen = screen_outliers(_d(10, 11, 12, 13, 1000))
    assert screen.is_outlier(Decimal(1000)) is True
    assert screen.is_outlier(Decimal(16)) is False


def test_custom_multiplier() -> None:
    kept = filter_outliers(_d(10, 11, 12, 13, 20), multiplier=Decimal(2))
    assert Decimal(20) not in kept


def test_empty_input() -> None:
    assert filter_outliers([]) == []
