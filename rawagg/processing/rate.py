"""
Canonical Sample Rate
=====================
The aggregation grid rate is derived once per run from the first respondent
that normalizes successfully, then shared read-only by every resampling call.
"""

from typing import Optional

import numpy as np

from rawagg.processing.normalizer import NormalizedSeries


class RateEstimator:
    """Estimates a series' native rate as round(1000 / median gap)."""

    @staticmethod
    def estimate(series: NormalizedSeries) -> int:
        """
        Args:
            series: Normalized series with at least two samples

        Returns:
            Rate in Hz (samples per second)

        Raises:
            ValueError: if the rate cannot be estimated or rounds to zero
        """
        timestamps = series.timestamps
        if len(timestamps) < 2:
            raise ValueError("need at least two samples to estimate a rate")

        median_gap = float(np.median(np.diff(timestamps)))
        if median_gap <= 0:
            raise ValueError(f"median sample gap is {median_gap} ms")

        rate = int(round(1000.0 / median_gap))
        if rate <= 0:
            raise ValueError(f"median sample gap of {median_gap:.0f} ms is below 1 Hz")
        return rate


class AggregationContext:
    """
    Per-run state shared by all respondents. The canonical rate is written
    exactly once and is read-only afterwards.
    """

    def __init__(self):
        self._rate_hz: Optional[int] = None

    @property
    def is_fixed(self) -> bool:
        return self._rate_hz is not None

    @property
    def rate_hz(self) -> int:
        if self._rate_hz is None:
            raise RuntimeError("canonical sample rate has not been fixed yet")
        return self._rate_hz

    def fix_rate(self, series: NormalizedSeries) -> int:
        """Fix the canonical rate from a series. Fails if already fixed."""
        if self._rate_hz is not None:
            raise RuntimeError(f"canonical sample rate already fixed at {self._rate_hz} Hz")
        self._rate_hz = RateEstimator.estimate(series)
        return self._rate_hz
