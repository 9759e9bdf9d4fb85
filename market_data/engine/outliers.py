"""
Market Data: MAD Outlier Filter

Collectible price distributions are heavy-tailed: a handful of extreme
listings would drag a mean/stddev estimator, so the screen uses the median
and the Median Absolute Deviation instead.

Algorithm (per entity, per source, trailing window):
    1. N < 5 samples -> return unfiltered (too few for a robust estimate).
    2. M = median(x), D = median(|x - M|).
    3. D == 0 -> return unfiltered (all-equal degenerate case).
    4. Drop every x where |x - M| > k * D, k = 4.

k = 4 is deliberately generous; condition and grade variance is wide and
over-trimming loses real signal.
"""

from __future__ import annotations

from decimal import Decimal
from statistics import median
from typing import NamedTuple, Sequence

import structlog

from market_data.config import settings

logger = structlog.get_logger(__name__)


class OutlierScreen(NamedTuple):
    """Result of the MAD screen over one sample set."""
    kept: list[Decimal]
    dropped: list[Decimal]
    median: Decimal | None
    mad: Decimal | None
    threshold: Decimal | None   # k * MAD, None when the screen did not apply

    def is_outlier(self, value: Decimal) -> bool:
        if self.threshold is None or self.median is None:
            return False
        return abs(value - self.median) > self.threshold


def median_absolute_deviation(values: Sequence[Decimal], center: Decimal) -> Decimal:
    """MAD around a given center. 0 for an empty input."""
    if not values:
        return Decimal("0")
    return median([abs(v - center) for v in values])


def screen_outliers(
    values: Sequence[Decimal],
    multiplier: Decimal | None = None,
    min_samples: int | None = None,
) -> OutlierScreen:
    """
    Apply the MAD screen and report what was kept and dropped.

    Args:
        values: Price samples for one entity and one source.
        multiplier: k, defaults to settings.OUTLIER_MAD_MULTIPLIER.
        min_samples: Below this count the input is returned unfiltered.
    """
    k = multiplier if multiplier is not None else settings.OUTLIER_MAD_MULTIPLIER
    floor = min_samples if min_samples is not None else settings.OUTLIER_MIN_SAMPLES
    samples = list(values)

    if len(samples) < floor:
        return OutlierScreen(kept=samples, dropped=[], median=None, mad=None, threshold=None)

    center = median(samples)
    mad = median_absolute_deviation(samples, center)
    if mad == 0:
        return OutlierScreen(kept=samples, dropped=[], median=center, mad=mad, threshold=None)

    threshold = k * mad
    kept = [v for v in samples if abs(v - center) <= threshold]
    dropped = [v for v in samples if abs(v - center) > threshold]

    if dropped:
        logger.debug(
            "outliers_dropped",
            sample_count=len(samples),
            dropped_count=len(dropped),
            median=str(center),
            mad=str(mad),
            threshold=str(threshold),
        )
    return OutlierScreen(kept=kept, dropped=dropped, median=center, mad=mad, threshold=threshold)


def filter_outliers(
    values: Sequence[Decimal],
    multiplier: Decimal | None = None,
    min_samples: int | None = None,
) -> list[Decimal]:
    """Return the samples that survive the MAD screen."""
    return screen_outliers(values, multiplier=multiplier, min_samples=min_samples).kept
