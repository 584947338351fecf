"""Shared fixtures: an in-memory stand-in for the study-data service."""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pytest

from rawagg.config import AggregationConfig
from rawagg.studydata.client import StudyDataError

STUDY = "study-1"
STIMULUS = "stim-1"
SEGMENT = "seg-all"


class FakeStudyDataClient:
    """Serves respondents, catalogs and sample rows from memory and records calls."""

    def __init__(self):
        self.respondents: List[dict] = []
        self.segments: List[dict] = [{"id": SEGMENT, "name": "All", "respondents": []}]
        self.catalogs: Dict[str, List[dict]] = {}
        self.rows: Dict[Tuple[str, str], pd.DataFrame] = {}
        self.failing: set = set()

        self.catalog_calls: List[str] = []
        self.data_calls: List[Tuple[str, str]] = []
        self.published: List[dict] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        pass

    def add_respondent(
        self,
        respondent_id: str,
        timestamps: Sequence[float],
        channels: Dict[str, Sequence[float]],
        name: str = "GSR",
        instance: Optional[str] = "Shimmer 1",
        window: Optional[Tuple[float, float]] = None,
        fragments: Optional[Sequence[Tuple[float, float]]] = None,
        in_segment: bool = True,
    ) -> None:
        self.respondents.append({"id": respondent_id, "label": f"R-{respondent_id}"})
        if in_segment:
            self.segments[0]["respondents"].append(respondent_id)

        sample_id = f"{respondent_id}-raw"
        catalog = [{"id": sample_id, "name": name, "instance": instance}]
        data = {"TimeStamp": list(timestamps), "EventSource": "device", "SampleNumber": range(len(timestamps))}
        data.update({k: list(v) for k, v in channels.items()})
        self.rows[(respondent_id, sample_id)] = pd.DataFrame(data)

        if window is not None:
            events_id = f"{respondent_id}-events"
            catalog.append({"id": events_id, "name": "SlideEvents", "instance": None})
            self.rows[(respondent_id, events_id)] = pd.DataFrame({
                "TimeStamp": [window[0], window[1]],
                "EventType": ["StartMedia", "EndMedia"],
            })

        if fragments is not None:
            fragments_id = f"{respondent_id}-fragments"
            catalog.append({"id": fragments_id, "name": "SceneFragments", "instance": None})
            self.rows[(respondent_id, fragments_id)] = pd.DataFrame(
                list(fragments), columns=["TimeStamp", "Duration"]
            )

        self.catalogs[respondent_id] = catalog

    # Study-data service interface

    def list_stimulus_respondents(self, study_id, stimulus_id):
        return list(self.respondents)

    def list_segments(self, study_id):
        return self.segments

    def list_respondent_samples(self, study_id, stimulus_id, respondent_id):
        self.catalog_calls.append(respondent_id)
        if respondent_id in self.failing:
            raise StudyDataError("service unavailable", status_code=503)
        return self.catalogs[respondent_id]

    def get_sample_data(self, study_id, stimulus_id, respondent_id, sample_id):
        self.data_calls.append((respondent_id, sample_id))
        return self.rows[(respondent_id, sample_id)].copy()

    def publish(self, study_id, stimulus_id, segment_id, label, data):
        self.published.append({"label": label, "segment": segment_id, "data": data.copy()})


def regular(rate_hz: float, duration_ms: float, start: float = 0.0) -> np.ndarray:
    """Timestamps at rate_hz covering [start, start + duration_ms]."""
    step = 1000.0 / rate_hz
    return start + np.arange(0.0, duration_ms + step / 2, step)


@pytest.fixture
def fake_client():
    return FakeStudyDataClient()


@pytest.fixture
def aggregation_config():
    return AggregationConfig()
