from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import make_tracks
from genre_cv.config import FEATURE_COLS, TARGET_COL
from genre_cv.data_utils import (
    clean_tracks, get_X_y, load_tracks, summarize_tracks, validate_tracks,
)


def test_load_tracks_renames_music_genre(tracks_csv):
    df = load_tracks(tracks_csv)
    assert TARGET_COL in df
    assert "music_genre" not in df
    assert set(df[TARGET_COL]) == {"Rock", "Country"}


def test_load_tracks_requires_genre_column(tmp_path):
    path = tmp_path / "no_genre.csv"
    make_tracks(10).drop(columns=["music_genre"]).to_csv(path, index=False)
    with pytest.raises(ValueError, match="genre"):
        load_tracks(path)


def test_load_tracks_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_tracks(tmp_path / "absent.csv")


def _dirty_tracks() -> pd.DataFrame:
    df = make_tracks(120, seed=3, negative_durations=8).rename(columns={"music_genre": "genre"})
    df["tempo"] = df["tempo"].astype(object)
    df.loc[10, "tempo"] = "?"
    df.loc[11, "energy"] = np.nan
    df.loc[12:14, "genre"] = "Jazz"
    return df


def test_clean_tracks_invariants():
    df = _dirty_tracks()
    observed = set(df.loc[df["duration_ms"] >= 0, "duration_ms"])

    cleaned = clean_tracks(df, np.random.default_rng(7))

    assert len(cleaned) == 120 - 3 - 2
    assert list(cleaned.columns) == FEATURE_COLS + [TARGET_COL]
    assert not cleaned.isna().any().any()
    assert (cleaned["duration_ms"] >= 0).all()
    assert set(cleaned[TARGET_COL]) == {"Rock", "Country"}
    # PMM only ever copies observed donor values
    assert set(cleaned["duration_ms"]) <= observed


def test_clean_tracks_is_reproducible():
    df = _dirty_tracks()
    first = clean_tracks(df, np.random.default_rng(11))
    second = clean_tracks(df, np.random.default_rng(11))
    pd.testing.assert_frame_equal(first, second)


def test_clean_tracks_without_target_genres():
    df = make_tracks(20).rename(columns={"music_genre": "genre"})
    df["genre"] = "Jazz"
    with pytest.raises(ValueError, match="No records"):
        clean_tracks(df, np.random.default_rng(0))


def test_clean_tracks_missing_feature_column():
    df = make_tracks(20).rename(columns={"music_genre": "genre"}).drop(columns=["tempo"])
    with pytest.raises(ValueError, match="tempo"):
        clean_tracks(df, np.random.default_rng(0))


def test_validate_tracks_rejects_negative_duration():
    df = clean_tracks(make_tracks(40).rename(columns={"music_genre": "genre"}),
                      np.random.default_rng(0))
    df.loc[0, "duration_ms"] = -5.0
    with pytest.raises(ValueError, match="negative"):
        validate_tracks(df)


def test_get_X_y_and_summary():
    df = clean_tracks(make_tracks(40).rename(columns={"music_genre": "genre"}),
                      np.random.default_rng(0))
    X, y = get_X_y(df)
    assert list(X.columns) == FEATURE_COLS
    assert len(y) == len(X) == 40

    summary = summarize_tracks(df)
    assert list(summary.columns) == ["Country", "Rock"]
    assert summary.loc["n_tracks"].tolist() == [20, 20]
