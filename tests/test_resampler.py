import numpy as np
import pandas as pd
import pytest

from rawagg.processing.normalizer import NormalizedSeries
from rawagg.processing.resampler import RESPONDENT_ID, Resampler


def make_series(timestamps, duration_ms, respondent_id="r1", **channels):
    data = pd.DataFrame({"TimeStamp": np.asarray(timestamps, dtype=float)})
    for name, values in channels.items():
        data[name] = np.asarray(values, dtype=float)
    return NormalizedSeries(respondent_id=respondent_id, data=data, duration_ms=duration_ms)


@pytest.mark.parametrize("rate_hz, duration_ms, expected", [
    (4, 1000, [125, 375, 625, 875]),
    (10, 1000, list(range(50, 1000, 100))),
    (5, 1000, [100, 300, 500, 700, 900]),
    (10, 40, []),
])
def test_grid_points(rate_hz, duration_ms, expected):
    np.testing.assert_allclose(Resampler(rate_hz).grid(duration_ms), expected)


def test_grid_depends_only_on_duration_and_rate():
    resampler = Resampler(20)
    sparse = make_series([0, 500, 1000], 1000, Value=[1, 2, 3])
    dense = make_series(np.linspace(0, 1000, 333), 1000, Value=np.arange(333))

    a = resampler.resample(sparse)
    b = resampler.resample(dense)

    assert len(a) == len(b) == 20
    assert a["TimeStamp"].tolist() == b["TimeStamp"].tolist()


def test_grids_of_different_durations_share_their_prefix():
    resampler = Resampler(30)
    short, long = resampler.grid(2000), resampler.grid(3000)

    assert short.tobytes() == long[:len(short)].tobytes()


def test_resampling_an_on_grid_series_is_identity():
    resampler = Resampler(10)
    grid = resampler.grid(1000)
    series = make_series(grid, 1000, Value=np.sin(grid), Other=np.cos(grid))

    resampled = resampler.resample(series)

    np.testing.assert_array_equal(resampled["TimeStamp"], grid)
    np.testing.assert_array_equal(resampled["Value"], np.sin(grid))
    np.testing.assert_array_equal(resampled["Other"], np.cos(grid))


def test_nearest_sample_with_ties_to_the_earlier():
    # Grid point 50 is equidistant from the samples at 0 and 100
    series = make_series([0, 100, 200], 200, Value=[1, 2, 3])

    resampled = Resampler(10).resample(series)

    assert resampled["TimeStamp"].tolist() == [50.0, 150.0]
    assert resampled["Value"].tolist() == [1.0, 2.0]


def test_edges_are_extended_without_missing_values():
    series = make_series([200, 400, 600, 800], 1000, Value=[1, 2, 3, 4])

    resampled = Resampler(10).resample(series)

    assert len(resampled) == 10
    assert not resampled["Value"].isna().any()
    assert resampled["Value"].iloc[0] == 1
    assert resampled["Value"].iloc[-1] == 4


def test_missing_channel_stays_missing_and_rows_are_tagged():
    series = make_series([0, 100, 200, 300], 300, "r7", Value=[1, 2, 3, 4], Empty=[np.nan] * 4)

    resampled = Resampler(10).resample(series)

    assert resampled["Empty"].isna().all()
    assert (resampled[RESPONDENT_ID] == "r7").all()


def test_native_rate_does_not_change_grid():
    # 5 Hz respondent forced onto a 4 Hz grid
    ts = np.arange(0, 2001, 200)
    series = make_series(ts, 2000, Value=ts)

    resampled = Resampler(4).resample(series)

    np.testing.assert_allclose(resampled["TimeStamp"], np.arange(125, 2000, 250))
    assert not resampled["Value"].isna().any()


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        Resampler(0)
