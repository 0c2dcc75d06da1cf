from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import make_tracks
from genre_cv.config import FEATURE_TRANSFORMS
from genre_cv.transform_utils import (
    AsinhTransform, LogTransform, PowerTransform, TrackTransformer,
    make_transform, skewness_table, transform_features,
)

RNG = np.random.default_rng(5)
POSITIVE = np.sort(RNG.gamma(1.5, 0.1, 200)) + 1e-3
WITH_ZEROS = np.sort(np.concatenate([np.zeros(10), RNG.beta(0.5, 4, 90)]))
SIGNED = np.sort(RNG.normal(-7, 3, 200))


@pytest.mark.parametrize("transform, x", [
    (PowerTransform(), POSITIVE),
    (PowerTransform(), WITH_ZEROS),
    (LogTransform(), POSITIVE),
    (LogTransform(), WITH_ZEROS),
    (AsinhTransform(), SIGNED),
])
def test_transform_round_trip_and_monotonic(transform, x):
    z = transform.fit(x).transform(x)

    assert np.all(np.isfinite(z))
    assert np.all(np.diff(z)[np.diff(x) > 0] > 0)
    np.testing.assert_allclose(transform.inverse_transform(z), x, rtol=1e-7, atol=1e-9)


def test_power_transform_estimates_exponent():
    tf = PowerTransform().fit(POSITIVE)
    assert tf.shift_ == 0.0
    assert np.isfinite(tf.lmbda_)

    fixed = PowerTransform(lmbda=0.5).fit(POSITIVE)
    assert fixed.lmbda_ == 0.5
    np.testing.assert_allclose(fixed.transform(POSITIVE), (np.sqrt(POSITIVE) - 1) / 0.5)


def test_shift_only_when_needed():
    assert LogTransform().fit(POSITIVE).shift_ == 0.0
    shifted = LogTransform().fit(WITH_ZEROS)
    assert shifted.shift_ > 0
    assert np.all(WITH_ZEROS + shifted.shift_ > 0)


def test_log_rejects_values_below_fitted_domain():
    tf = LogTransform().fit(POSITIVE)
    with pytest.raises(ValueError):
        tf.transform(np.array([-1.0]))


def test_make_transform_unknown_name():
    with pytest.raises(ValueError, match="Unknown transform"):
        make_transform("sqrt")


def test_track_transformer_round_trip():
    df = make_tracks(80)
    transformed, transformer = transform_features(df)

    untouched = [c for c in df.columns if c not in FEATURE_TRANSFORMS]
    pd.testing.assert_frame_equal(transformed[untouched], df[untouched])
    assert not np.allclose(transformed["loudness"], df["loudness"])

    restored = transformer.inverse_transform(transformed)
    for col in FEATURE_TRANSFORMS:
        np.testing.assert_allclose(restored[col], df[col], rtol=1e-7, atol=1e-9)

    params = transformer.fitted_params()
    assert set(params.index) == set(FEATURE_TRANSFORMS)
    assert params.loc["acousticness", "transform"] == "power"
    assert np.isnan(params.loc["loudness", "lambda"])


def test_track_transformer_missing_column():
    with pytest.raises(ValueError, match="liveness"):
        TrackTransformer().fit(make_tracks(10).drop(columns=["liveness"]))


def test_skewness_table_reduces_skew_of_power_features():
    df = make_tracks(200)
    transformed, _ = transform_features(df)
    table = skewness_table(df, transformed)

    assert {"skew_before", "skew_after", "transform"} <= set(table.columns)
    assert table.loc["speechiness", "transform"] == "power"
    assert abs(table.loc["speechiness", "skew_after"]) < abs(table.loc["speechiness", "skew_before"])
