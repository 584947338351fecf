"""
Time-Series Resampling Module
============================
Maps a respondent's irregularly timed series onto the canonical regular
grid shared by every respondent of the run.
"""

import numpy as np
import pandas as pd
from typing import List, Optional
from scipy import interpolate

from rawagg.processing.normalizer import TIMESTAMP, NormalizedSeries

RESPONDENT_ID = "RespondentId"


class Resampler:
    """
    Resamples normalized series onto the grid {P/2, P/2 + P, ...} <= D,
    where P = 1000 / rate ms and D is the grid extent (by default the series' duration).

    Each grid point takes the row whose timestamp is nearest, ties going to
    the earlier row. Lookup is extended past both ends of the series so the
    grid never gains missing values at its edges.
    """

    def __init__(self, target_hz: float):
        """
        Initialize resampler.

        Args:
            target_hz: Canonical sample rate in Hz
        """
        if target_hz <= 0:
            raise ValueError(f"Sample rate must be positive, got {target_hz}")
        self.target_hz = target_hz
        self.period_ms = 1000.0 / target_hz

    def grid(self, duration_ms: float) -> np.ndarray:
        """
        Grid timestamps (ms) for a series of the given duration.

        Values depend only on the index and the rate, so grids of different
        durations agree exactly on their common prefix.
        """
        half = self.period_ms / 2
        if duration_ms < half:
            return np.array([], dtype=float)

        n_samples = int(np.floor((duration_ms - half) / self.period_ms + 1e-9)) + 1
        return half + np.arange(n_samples, dtype=float) * self.period_ms

    def resample_channel(
        self,
        timestamps: np.ndarray,
        values: np.ndarray,
        t_new: np.ndarray
    ) -> np.ndarray:
        """
        Nearest-sample lookup of values at t_new.

        Args:
            timestamps: Non-decreasing sample times (ms)
            values: Sample values, 1-D or 2-D with one row per sample
            t_new: Target times (ms)

        Returns:
            Values at t_new, shaped like values along the sample axis
        """
        if len(timestamps) == 0:
            raise ValueError("Cannot resample an empty series")

        if len(timestamps) == 1:
            return np.repeat(values[:1], len(t_new), axis=0)

        # 'nearest' rounds down at midpoints, i.e. prefers the earlier sample
        interp_func = interpolate.interp1d(
            timestamps, values,
            kind='nearest',
            axis=0,
            fill_value='extrapolate',
            bounds_error=False,
            assume_sorted=True
        )
        return interp_func(t_new)

    def resample(
        self,
        series: NormalizedSeries,
        duration_ms: Optional[float] = None
    ) -> pd.DataFrame:
        """
        Resample a respondent onto the canonical grid.

        Args:
            series: Normalized series for one respondent
            duration_ms: Grid extent; defaults to the series' own duration

        Returns:
            DataFrame with TimeStamp, RespondentId and one column per channel.
            Channels with no values stay missing at every grid point.
        """
        if duration_ms is None:
            duration_ms = series.duration_ms

        t_new = self.grid(duration_ms)
        channels: List[str] = series.channels

        resampled = pd.DataFrame({TIMESTAMP: t_new})
        resampled[RESPONDENT_ID] = series.respondent_id

        if channels and len(t_new) > 0:
            values = series.data[channels].to_numpy(dtype=float)
            v_new = self.resample_channel(series.timestamps, values, t_new)
            resampled = pd.concat(
                [resampled, pd.DataFrame(v_new, columns=channels)],
                axis=1
            )
        else:
            for channel in channels:
                resampled[channel] = np.nan

        return resampled


if __name__ == "__main__":
    # Test the resampler
    print("🔄 Testing Resampler")
    print("=" * 50)

    # 10 seconds of jittered 60 Hz samples
    n_samples = 600
    t = np.sort(np.arange(n_samples) * (1000 / 60) + np.random.uniform(0, 3, n_samples))
    v = np.sin(2 * np.pi * 0.5 * t / 1000)

    series = NormalizedSeries(
        respondent_id="demo",
        data=pd.DataFrame({TIMESTAMP: t, "Signal": v}),
        duration_ms=10000.0
    )

    resampled = Resampler(target_hz=50).resample(series)
    print(f"Original: {len(t)} samples at ~60 Hz")
    print(f"Resampled: {len(resampled)} samples at 50 Hz")
    print(f"Time range: {resampled[TIMESTAMP].iloc[0]:.1f}ms to {resampled[TIMESTAMP].iloc[-1]:.1f}ms")

    print("\n✅ Resampler working!")
