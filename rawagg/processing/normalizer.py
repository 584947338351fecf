"""
Respondent Normalization Module
===============================
Fetches one respondent's raw sensor stream and brings it onto the
stimulus timeline shared by all respondents:

1. Resolve the requested channel in the respondent's sample catalog
2. Trim rows to the StartMedia/EndMedia window from the slide events
3. Re-base timestamps onto the concatenation of the scene fragments
4. Repair duplicate or untrustworthy timestamps
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from rawagg.processing.errors import NormalizationError, ResolutionError, RetrievalError
from rawagg.processing.sensors import SensorIdentity
from rawagg.studydata.client import StudyDataError

logger = logging.getLogger(__name__)

TIMESTAMP = "TimeStamp"

# Bookkeeping columns carried by raw rows, never aggregated
DISCARDED_COLUMNS = ("EventSource", "SampleNumber")

SLIDE_EVENTS_STREAM = "SlideEvents"
SCENE_FRAGMENTS_STREAM = "SceneFragments"
START_MEDIA = "StartMedia"
END_MEDIA = "EndMedia"


@dataclass
class NormalizedSeries:
    """One respondent's rows on the fragment-concatenated timeline (ms)."""
    respondent_id: str
    data: pd.DataFrame = field(repr=False)
    duration_ms: float

    @property
    def timestamps(self) -> np.ndarray:
        return self.data[TIMESTAMP].to_numpy(dtype=float)

    @property
    def channels(self) -> List[str]:
        return [c for c in self.data.columns if c != TIMESTAMP]

    def __len__(self) -> int:
        return len(self.data)


# =============================================================================
# TIMELINE HELPERS
# =============================================================================

def prepare_raw_rows(rows: pd.DataFrame) -> pd.DataFrame:
    """
    Drop bookkeeping columns, coerce channels to float and order by time.
    Rows without a timestamp are discarded.
    """
    if TIMESTAMP not in rows.columns:
        raise ValueError(f"Sample data has no {TIMESTAMP} column")

    data = rows.drop(columns=[c for c in DISCARDED_COLUMNS if c in rows.columns])
    data = data.apply(pd.to_numeric, errors="coerce").astype(float)
    data = data.dropna(subset=[TIMESTAMP])

    # Stable sort keeps the device's order for duplicate stamps
    data = data.sort_values(TIMESTAMP, kind="stable")
    return data.reset_index(drop=True)


def active_window(events: pd.DataFrame) -> Optional[Tuple[float, float]]:
    """
    Stimulus window [StartMedia, EndMedia] from a slide-event stream.
    Returns None when either boundary is missing.
    """
    if events.empty or "EventType" not in events.columns:
        return None

    stamps = pd.to_numeric(events[TIMESTAMP], errors="coerce")
    starts = stamps[events["EventType"] == START_MEDIA].dropna()
    ends = stamps[events["EventType"] == END_MEDIA].dropna()
    if starts.empty or ends.empty:
        return None

    return float(starts.min()), float(ends.max())


def trim_to_window(data: pd.DataFrame, start: float, end: float) -> pd.DataFrame:
    """Keep rows with start <= TimeStamp <= end."""
    ts = data[TIMESTAMP]
    return data.loc[(ts >= start) & (ts <= end)].reset_index(drop=True)


def concatenate_fragments(
    data: pd.DataFrame,
    fragments: Iterable[Tuple[float, float]],
) -> Tuple[pd.DataFrame, float]:
    """
    Re-base timestamps onto the concatenation of scene fragments.

    A row at time t inside fragment k (start s_k, duration d_k) moves to
    t - s_k + sum(d_0 .. d_{k-1}). Rows outside every fragment are dropped.
    Fragments are taken in the given order; overlapping fragments are not
    reconciled.

    Args:
        data: Raw rows sorted by TimeStamp
        fragments: (start, duration) pairs in playback order

    Returns:
        Tuple of (re-based rows, total duration D)
    """
    ts = data[TIMESTAMP].to_numpy(dtype=float)
    pieces = []
    offset = 0.0

    for start, duration in fragments:
        mask = (ts >= start) & (ts <= start + duration)
        piece = data.loc[mask].copy()
        piece[TIMESTAMP] = piece[TIMESTAMP] - start + offset
        pieces.append(piece)
        offset += duration

    if not pieces:
        return data.iloc[0:0].copy(), 0.0

    return pd.concat(pieces, ignore_index=True), offset


def evenly_spaced(n_samples: int, rate_hz: float, start: float = 0.0) -> np.ndarray:
    """n_samples timestamps (ms) spaced 1000 / rate_hz apart."""
    return start + np.arange(n_samples, dtype=float) * (1000.0 / rate_hz)


def repair_duplicate_timestamps(timestamps: np.ndarray) -> Optional[np.ndarray]:
    """
    Some devices emit runs of identical stamps. When the median gap is zero,
    rebuild evenly spaced stamps at the rate implied by the mean gap.

    Returns:
        Repaired timestamps, or None if no repair was needed
    """
    if len(timestamps) < 2:
        return None

    gaps = np.diff(timestamps)
    if np.median(gaps) != 0:
        return None

    mean_gap = float(np.mean(gaps))
    if mean_gap <= 0:
        raise ValueError("all timestamps are identical")

    rate_hz = 1000.0 / mean_gap
    return evenly_spaced(len(timestamps), rate_hz, start=float(timestamps[0]))


# =============================================================================
# NORMALIZER
# =============================================================================

class RespondentNormalizer:
    """
    Produces a NormalizedSeries for each respondent of one stimulus.

    Every failure is raised as a RespondentError subclass so the batch
    runner can exclude the respondent and carry on.
    """

    def __init__(
        self,
        client,
        study_id: str,
        stimulus_id: str,
        identity: SensorIdentity,
        fixed_rate_hz: float = 30.0,
        fixed_rate_families: Iterable[str] = (),
    ):
        """
        Args:
            client: Study-data client (StudyDataClient or compatible)
            study_id: Study identifier
            stimulus_id: Stimulus identifier
            identity: Sensor whose channel is aggregated
            fixed_rate_hz: Assumed rate for families with unreliable stamps
            fixed_rate_families: Families whose stamps are always rebuilt
        """
        self.client = client
        self.study_id = study_id
        self.stimulus_id = stimulus_id
        self.identity = identity
        self.fixed_rate_hz = fixed_rate_hz
        self.fixed_rate_families = tuple(fixed_rate_families)

    def _fetch_rows(self, respondent_id: str, sample_id: str) -> pd.DataFrame:
        try:
            return self.client.get_sample_data(
                self.study_id, self.stimulus_id, respondent_id, sample_id
            )
        except StudyDataError as e:
            raise RetrievalError(respondent_id, f"sample {sample_id}: {e}") from e

    def list_catalog(self, respondent_id: str) -> List[Dict]:
        """
        The respondent's sample catalog; every entry is a mapping with an id.

        Raises:
            RetrievalError: fetch failed or the catalog is malformed
        """
        try:
            catalog = self.client.list_respondent_samples(
                self.study_id, self.stimulus_id, respondent_id
            )
        except StudyDataError as e:
            raise RetrievalError(respondent_id, f"sample catalog: {e}") from e

        if not isinstance(catalog, list):
            raise RetrievalError(respondent_id, f"sample catalog is {type(catalog).__name__}, not a list")
        for entry in catalog:
            if not isinstance(entry, dict) or entry.get("id") is None:
                raise RetrievalError(respondent_id, f"sample catalog entry without an id: {entry!r}")
        return catalog

    def resolve_channel(self, respondent_id: str, catalog: List[Dict]) -> str:
        """Id of the one catalog stream matching the sensor's (name, instance)."""
        matches = [
            entry for entry in catalog
            if self.identity.matches(entry.get("name"), entry.get("instance"))
        ]
        if len(matches) != 1:
            raise ResolutionError(
                respondent_id,
                f"{len(matches)} streams match {self.identity.name!r} "
                f"(instance {self.identity.instance!r})",
                matches=len(matches),
            )
        return str(matches[0]["id"])

    @staticmethod
    def _find_stream(catalog: List[Dict], name: str) -> Optional[str]:
        for entry in catalog:
            if entry.get("name") == name:
                return str(entry["id"])
        return None

    def _fragments(
        self,
        respondent_id: str,
        catalog: List[Dict],
        data: pd.DataFrame,
        window: Optional[Tuple[float, float]],
    ) -> List[Tuple[float, float]]:
        """Scene fragments as (start, duration); one spanning the window if none."""
        sample_id = self._find_stream(catalog, SCENE_FRAGMENTS_STREAM)
        if sample_id is not None:
            rows = self._fetch_rows(respondent_id, sample_id)
            if not rows.empty and {TIMESTAMP, "Duration"} <= set(rows.columns):
                rows = rows[[TIMESTAMP, "Duration"]].apply(pd.to_numeric, errors="coerce").dropna()
                if not rows.empty:
                    return [(float(s), float(d)) for s, d in rows.itertuples(index=False)]

        if window is not None:
            start, end = window
        else:
            start, end = float(data[TIMESTAMP].iloc[0]), float(data[TIMESTAMP].iloc[-1])
        return [(start, end - start)]

    def normalize(self, respondent_id: str) -> NormalizedSeries:
        """
        Normalize one respondent.

        Raises:
            RetrievalError: catalog or data fetch failed
            ResolutionError: channel matched zero or several streams
            NormalizationError: fewer than two usable samples, or unusable stamps
        """
        catalog = self.list_catalog(respondent_id)
        sample_id = self.resolve_channel(respondent_id, catalog)

        try:
            data = prepare_raw_rows(self._fetch_rows(respondent_id, sample_id))
        except ValueError as e:
            raise NormalizationError(respondent_id, str(e)) from e
        if data.empty:
            raise NormalizationError(respondent_id, "no samples recorded")

        window = None
        events_id = self._find_stream(catalog, SLIDE_EVENTS_STREAM)
        if events_id is not None:
            window = active_window(self._fetch_rows(respondent_id, events_id))
        if window is not None:
            data = trim_to_window(data, *window)
        else:
            logger.debug("Respondent %s: no media window, using the full recording", respondent_id)

        if data.empty:
            raise NormalizationError(respondent_id, "no samples inside the stimulus window")

        fragments = self._fragments(respondent_id, catalog, data, window)
        data, duration = concatenate_fragments(data, fragments)
        logger.debug(
            "Respondent %s: %d rows across %d fragment(s), %.1f ms",
            respondent_id, len(data), len(fragments), duration,
        )

        if len(data) < 2:
            raise NormalizationError(respondent_id, f"only {len(data)} sample(s) inside the scene fragments")

        timestamps = data[TIMESTAMP].to_numpy(dtype=float)
        try:
            repaired = repair_duplicate_timestamps(timestamps)
        except ValueError as e:
            raise NormalizationError(respondent_id, str(e)) from e
        if repaired is not None:
            logger.info("Respondent %s: duplicate timestamps, rebuilt evenly spaced", respondent_id)
            timestamps = repaired

        if self.identity.family in self.fixed_rate_families:
            timestamps = evenly_spaced(len(timestamps), self.fixed_rate_hz, start=float(timestamps[0]))

        data[TIMESTAMP] = timestamps
        return NormalizedSeries(respondent_id=respondent_id, data=data, duration_ms=duration)
