import numpy as np
import pandas as pd
import pytest

from conftest import SEGMENT, STIMULUS, STUDY, regular
from rawagg.config import AggregationConfig
from rawagg.processing.processor import StimulusAggregator, aggregate_stimulus
from rawagg.studydata.client import StudyDataError

GSR_KEY = "GSR||GSR||Shimmer 1"


def run(client, sensor_key=GSR_KEY, publish=True, config=None):
    return aggregate_stimulus(
        client, STUDY, STIMULUS, SEGMENT, sensor_key,
        publish=publish, config=config or AggregationConfig(),
    )


def test_single_eligible_respondent_stops_before_fetching(fake_client):
    fake_client.add_respondent("r1", regular(10, 1000), {"GSR": np.ones(11)})
    fake_client.add_respondent("r2", regular(10, 1000), {"GSR": np.ones(11)}, in_segment=False)

    result = run(fake_client)

    assert result.warning is not None
    assert "1 eligible" in result.warning
    assert not result.published
    assert fake_client.catalog_calls == []
    assert fake_client.data_calls == []
    assert fake_client.published == []


def test_rate_is_fixed_by_first_successful_respondent(fake_client):
    # r0 has no GSR stream, so r1 (5 Hz) fixes the grid and r2 (4 Hz) follows it
    fake_client.add_respondent("r0", regular(10, 2000), {"ECG": np.ones(21)}, name="ECG")
    ts5, ts4 = regular(5, 2000), regular(4, 2000)
    fake_client.add_respondent("r1", ts5, {"GSR": np.full(len(ts5), 2.0)}, window=(0, 2000))
    fake_client.add_respondent("r2", ts4, {"GSR": np.full(len(ts4), 4.0)}, window=(0, 2000))

    result = run(fake_client)

    assert result.warning is None
    assert result.rate_hz == 5
    assert result.used == ["r1", "r2"]
    assert set(result.failures) == {"r0"}

    np.testing.assert_allclose(result.raw_data["TimeStamp"], np.arange(100, 2000, 200))
    assert not result.raw_data["GSR"].isna().any()
    assert (result.raw_data["GSR"] == 3.0).all()
    assert (result.falloff["Falloff"] == 2).all()


def test_publishes_exactly_two_artifacts(fake_client):
    for rid in ("r1", "r2", "r3"):
        ts = regular(10, 1000)
        fake_client.add_respondent(rid, ts, {"GSR": ts / 100, "Unused": np.full(len(ts), np.nan)})

    result = run(fake_client)

    assert result.published
    labels = [p["label"] for p in fake_client.published]
    assert labels == ["Aggregated Raw Data (Shimmer 1)", "Falloff (Shimmer 1)"]
    assert all(p["segment"] == SEGMENT for p in fake_client.published)

    raw, falloff = (p["data"] for p in fake_client.published)
    assert list(raw.columns) == ["TimeStamp", "GSR"]
    assert list(falloff.columns) == ["TimeStamp", "Falloff"]
    assert falloff["Falloff"].tolist() == [3] * 10
    assert raw["TimeStamp"].tolist() == falloff["TimeStamp"].tolist()


def test_failed_respondents_are_excluded(fake_client):
    for rid in ("r1", "r2", "r3"):
        fake_client.add_respondent(rid, regular(10, 1000), {"GSR": np.ones(11)})
    fake_client.failing.add("r2")

    result = run(fake_client)

    assert result.published
    assert result.used == ["r1", "r3"]
    assert "r2" in result.failures
    assert (result.falloff["Falloff"] == 2).all()


def test_all_respondents_failing_publishes_nothing(fake_client):
    for rid in ("r1", "r2"):
        fake_client.add_respondent(rid, regular(10, 1000), {"GSR": np.ones(11)})
        fake_client.failing.add(rid)

    result = run(fake_client)

    assert result.warning is not None
    assert not result.published
    assert fake_client.published == []


def test_dry_run_does_not_publish(fake_client):
    for rid in ("r1", "r2"):
        fake_client.add_respondent(rid, regular(10, 1000), {"GSR": np.ones(11)})

    result = run(fake_client, publish=False)

    assert not result.published
    assert result.warning is None
    assert len(result.raw_data) == 10
    assert fake_client.published == []

    summary = result.to_summary_dict()
    assert summary["rows"] == 10
    assert summary["used_respondents"] == 2


def test_eye_tracking_glasses_end_to_end(fake_client):
    for rid, pupil in (("r1", 3.0), ("r2", 5.0)):
        ts = regular(50, 1000)
        n = len(ts)
        fake_client.add_respondent(
            rid, ts,
            {
                "PupilLeft": np.full(n, pupil),
                "PupilRight": np.full(n, pupil + 1),
                "Distance3D": np.full(n, 600.0),
                "GazeX": np.arange(n, dtype=float),
            },
            name="ET", instance="Tobii Pro Glasses 3",
        )

    result = run(fake_client, sensor_key="Eyetracker||ET||Tobii Pro Glasses 3")

    assert result.post_processor == "eye-tracking/glasses"
    assert list(result.raw_data.columns) == ["TimeStamp", "Pupil Left", "Pupil Right", "Distance 3D", "Pupil"]
    assert (result.raw_data["Pupil"] == 4.5).all()
    assert result.raw_data_label == "Aggregated Raw Data (Tobii Pro Glasses 3)"


def test_shorter_respondent_is_extended_to_the_shared_grid(fake_client):
    fake_client.add_respondent("r1", regular(10, 1000), {"GSR": np.ones(11)})
    fake_client.add_respondent("r2", regular(10, 500), {"GSR": np.ones(6)})

    result = run(fake_client)

    assert len(result.falloff) == 10
    assert (result.falloff["Falloff"] == len(result.used)).all()
    assert not result.raw_data["GSR"].isna().any()


def test_parallel_normalization_matches_sequential(fake_client):
    rng = np.random.default_rng(3)
    for rid in ("r1", "r2", "r3", "r4"):
        ts = np.sort(rng.uniform(0, 3000, 200))
        fake_client.add_respondent(rid, ts, {"GSR": rng.normal(size=200)})
    fake_client.failing.add("r1")

    sequential = run(fake_client, publish=False)
    parallel = run(fake_client, publish=False, config=AggregationConfig(max_workers=3))

    assert parallel.rate_hz == sequential.rate_hz
    assert parallel.used == sequential.used == ["r2", "r3", "r4"]
    pd.testing.assert_frame_equal(parallel.raw_data, sequential.raw_data)


def test_malformed_sensor_key_raises(fake_client):
    with pytest.raises(ValueError):
        StimulusAggregator(fake_client, config=AggregationConfig()).run(STUDY, STIMULUS, SEGMENT, "GSR")


@pytest.mark.parametrize("catalog", [
    None,
    {"id": "r2-raw", "name": "GSR"},
    [{"name": "GSR", "instance": "Shimmer 1"}],
    ["r2-raw"],
])
def test_malformed_catalog_excludes_only_that_respondent(fake_client, catalog):
    for rid in ("r1", "r2", "r3"):
        fake_client.add_respondent(rid, regular(10, 1000), {"GSR": np.ones(11)})
    fake_client.catalogs["r2"] = catalog

    result = run(fake_client)

    assert result.published
    assert result.used == ["r1", "r3"]
    assert "catalog" in result.failures["r2"]


def test_failed_second_upload_records_what_was_published(fake_client):
    for rid in ("r1", "r2"):
        fake_client.add_respondent(rid, regular(10, 1000), {"GSR": np.ones(11)})

    uploads = []

    def publish(study_id, stimulus_id, segment_id, label, data):
        if uploads:
            raise StudyDataError("upload rejected", status_code=500)
        uploads.append(label)

    fake_client.publish = publish
    aggregator = StimulusAggregator(fake_client, config=AggregationConfig())
    result = aggregator.run(STUDY, STIMULUS, SEGMENT, GSR_KEY, publish=False)

    with pytest.raises(StudyDataError):
        aggregator.publish(result)

    assert not result.published
    assert result.published_labels == ["Aggregated Raw Data (Shimmer 1)"]
