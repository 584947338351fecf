"""
Sensor Post-Processing
======================
Sensor-family specific channel selection, derived channels and display
labels, applied to the aggregate before publication.

Variants:
- EyeTrackingGlassesProcessor: eye trackers reporting 3D distance and IMU data
- EyeTrackingProcessor: screen-based eye trackers
- FacialExpressionProcessor: facial expression analyzers
- DefaultProcessor: everything else, passed through unchanged
"""

from typing import Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from rawagg.processing.aggregator import FALLOFF
from rawagg.processing.normalizer import TIMESTAMP
from rawagg.processing.sensors import SensorIdentity

DISTANCE_3D = "Distance3D"

EMOTION_SUFFIXES = (
    "Anger", "Contempt", "Disgust", "Fear", "Joy", "Sadness", "Surprise",
    "Engagement", "Sentimentality", "Confusion",
)

ACTION_UNIT_SUFFIXES = (
    "AU01", "AU02", "AU04", "AU05", "AU06", "AU07", "AU09", "AU10",
    "AU12", "AU14", "AU15", "AU17", "AU18", "AU20", "AU23", "AU24",
    "AU25", "AU26", "AU28", "AU43",
)

VALENCE_SUFFIXES = ("Valence", "Positive", "Negative", "Neutral")

# Tried in order; a channel belongs to the first suffix it ends with
FACIAL_EXPRESSION_SUFFIXES = EMOTION_SUFFIXES + ACTION_UNIT_SUFFIXES + VALENCE_SUFFIXES


class SensorPostProcessor:
    """Base variant: select columns, add derived channels, rename for display."""

    name = "default"
    labels: Dict[str, str] = {}

    def select(self, aggregate: pd.DataFrame) -> pd.DataFrame:
        return aggregate

    def derive(self, data: pd.DataFrame) -> pd.DataFrame:
        return data

    def rename(self, data: pd.DataFrame) -> pd.DataFrame:
        return data.rename(columns=self.labels)

    def apply(self, aggregate: pd.DataFrame) -> pd.DataFrame:
        return self.rename(self.derive(self.select(aggregate)))


class DefaultProcessor(SensorPostProcessor):
    pass


def _mean_of(data: pd.DataFrame, columns: Sequence[str], target: str) -> pd.DataFrame:
    """Add target = row mean of the present source columns, skipping missing."""
    present = [c for c in columns if c in data.columns]
    if present:
        data[target] = data[present].mean(axis=1)
    return data


class _WhitelistProcessor(SensorPostProcessor):
    whitelist: Tuple[str, ...] = ()

    def select(self, aggregate: pd.DataFrame) -> pd.DataFrame:
        # Channels empty for every respondent were already dropped
        return aggregate[[c for c in self.whitelist if c in aggregate.columns]].copy()


class EyeTrackingGlassesProcessor(_WhitelistProcessor):
    name = "eye-tracking/glasses"
    whitelist = (
        TIMESTAMP, "PupilLeft", "PupilRight",
        "AccX", "AccY", "AccZ", "GyroX", "GyroY", "GyroZ",
        DISTANCE_3D, FALLOFF,
    )
    labels = {
        "PupilLeft": "Pupil Left",
        "PupilRight": "Pupil Right",
        "AccX": "Accelerometer X",
        "AccY": "Accelerometer Y",
        "AccZ": "Accelerometer Z",
        "GyroX": "Gyroscope X",
        "GyroY": "Gyroscope Y",
        "GyroZ": "Gyroscope Z",
        DISTANCE_3D: "Distance 3D",
    }

    def derive(self, data: pd.DataFrame) -> pd.DataFrame:
        return _mean_of(data, ("PupilLeft", "PupilRight"), "Pupil")


class EyeTrackingProcessor(_WhitelistProcessor):
    name = "eye-tracking/standard"
    whitelist = (TIMESTAMP, "PupilLeft", "PupilRight", "DistanceLeft", "DistanceRight", FALLOFF)
    labels = {
        "PupilLeft": "Pupil Left",
        "PupilRight": "Pupil Right",
        "DistanceLeft": "Distance Left",
        "DistanceRight": "Distance Right",
    }

    def derive(self, data: pd.DataFrame) -> pd.DataFrame:
        data = _mean_of(data, ("DistanceLeft", "DistanceRight"), "Distance")
        return _mean_of(data, ("PupilLeft", "PupilRight"), "Pupil")


class FacialExpressionProcessor(SensorPostProcessor):
    """
    Keeps TimeStamp, Falloff and channels ending with an emotion, action unit
    or valence suffix. Channels are ordered by the suffix they first match,
    then by their position in the aggregate.
    """

    name = "facial-expression"

    def __init__(self, suffixes: Sequence[str] = FACIAL_EXPRESSION_SUFFIXES):
        self.suffixes = tuple(suffixes)

    def matching_channels(self, columns: Iterable[str]) -> List[str]:
        candidates = [c for c in columns if c not in (TIMESTAMP, FALLOFF)]
        claimed: Dict[str, List[str]] = {suffix: [] for suffix in self.suffixes}
        for column in candidates:
            for suffix in self.suffixes:
                if column.endswith(suffix):
                    claimed[suffix].append(column)
                    break
        return [column for suffix in self.suffixes for column in claimed[suffix]]

    def select(self, aggregate: pd.DataFrame) -> pd.DataFrame:
        columns = [TIMESTAMP] + self.matching_channels(aggregate.columns) + [FALLOFF]
        return aggregate[columns].copy()


def select_post_processor(
    identity: SensorIdentity,
    columns: Iterable[str],
    eye_tracking_families: Iterable[str] = ("Eyetracker",),
    facial_expression_families: Iterable[str] = ("Affectiva AFFDEX", "FEA"),
) -> SensorPostProcessor:
    """
    Pick the post-processing variant for a sensor.

    Eye trackers are split on whether the aggregate has a 3D distance channel.
    """
    if identity.family in tuple(eye_tracking_families):
        if DISTANCE_3D in set(columns):
            return EyeTrackingGlassesProcessor()
        return EyeTrackingProcessor()

    if identity.family in tuple(facial_expression_families):
        return FacialExpressionProcessor()

    return DefaultProcessor()
