"""
Market Data: Multi-Source Price Blend

Each source's samples are filtered and reduced to their own median before
blending. Sources are weighted, never pooled, so a high-volume source
cannot drown out a thin one.

    two qualifying sources:  ref = primary * 0.6 + secondary * 0.4
    one qualifying source:   ref = that source's median
    none:                    InsufficientDataError

The secondary source only qualifies with at least SECONDARY_MIN_SAMPLES
filtered samples.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from statistics import median
from typing import NamedTuple, Sequence

import structlog

from market_data.config import PriceConfidence, settings
from market_data.engine.outliers import OutlierScreen, screen_outliers
from market_data.errors import InsufficientDataError

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

INSUFFICIENT_DATA = "insufficient_data"
NO_VALID_PRICES = "no_valid_prices"


class SourceMedian(NamedTuple):
    """One source reduced to a single figure."""
    median: Decimal | None
    sample_count: int
    screen: OutlierScreen


class PriceBlend(NamedTuple):
    """Blended reference price for one entity and one run."""
    blended_price: Decimal | None
    primary_median: Decimal | None
    secondary_median: Decimal | None
    sample_count: int
    confidence: PriceConfidence
    skip_reason: str | None


def source_median(prices: Sequence[Decimal], min_samples: int = 1) -> SourceMedian:
    """Filter one source's samples and take the median of what survives."""
    screen = screen_outliers(prices)
    if len(screen.kept) < max(min_samples, 1):
        return SourceMedian(median=None, sample_count=len(prices), screen=screen)
    return SourceMedian(median=median(screen.kept), sample_count=len(prices), screen=screen)


def blend_prices(
    primary_median: Decimal | None,
    secondary_median: Decimal | None,
    primary_weight: Decimal | None = None,
    secondary_weight: Decimal | None = None,
) -> Decimal | None:
    """Weighted blend of two source medians, or whichever one exists."""
    w_primary = primary_weight if primary_weight is not None else settings.BLEND_PRIMARY_WEIGHT
    w_secondary = (
        secondary_weight if secondary_weight is not None else settings.BLEND_SECONDARY_WEIGHT
    )

    if primary_median is not None and secondary_median is not None:
        blended = primary_median * w_primary + secondary_median * w_secondary
    elif primary_median is not None:
        blended = primary_median
    elif secondary_median is not None:
        blended = secondary_median
    else:
        return None
    return blended.quantize(CENT, rounding=ROUND_HALF_UP)


def confidence_tier(sample_count: int) -> PriceConfidence:
    """high >= 10 samples, medium >= 5, low otherwise."""
    if sample_count >= settings.CONFIDENCE_HIGH_MIN_SAMPLES:
        return PriceConfidence.HIGH
    if sample_count >= settings.CONFIDENCE_MEDIUM_MIN_SAMPLES:
        return PriceConfidence.MEDIUM
    return PriceConfidence.LOW


def compute_blend(
    primary_prices: Sequence[Decimal],
    secondary_prices: Sequence[Decimal],
) -> PriceBlend:
    """
    Reduce both sources and blend them.

    Args:
        primary_prices: Non-outlier raw samples from the primary source.
        secondary_prices: Non-outlier raw samples from the secondary source.

    Returns:
        PriceBlend.

    Raises:
        InsufficientDataError: No samples at all, or no source qualified.
    """
    sample_count = len(primary_prices) + len(secondary_prices)
    confidence = confidence_tier(sample_count)

    if sample_count == 0:
        raise InsufficientDataError(INSUFFICIENT_DATA, 0)

    primary = source_median(primary_prices)
    secondary = source_median(secondary_prices, min_samples=settings.SECONDARY_MIN_SAMPLES)
    blended = blend_prices(primary.median, secondary.median)

    logger.debug(
        "price_blend_computed",
        primary_median=str(primary.median),
        secondary_median=str(secondary.median),
        blended_price=str(blended),
        sample_count=sample_count,
        confidence=confidence.value,
    )

    if blended is None:
        raise InsufficientDataError(NO_VALID_PRICES, sample_count)

    return PriceBlend(
        blended_price=blended,
        primary_median=primary.median,
        secondary_median=secondary.median,
        sample_count=sample_count,
        confidence=confidence,
        skip_reason=None,
    )
