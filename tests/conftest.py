from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

KEYS = ["A", "A#", "B", "C", "C#", "D", "D#", "E", "F", "F#", "G", "G#"]


def make_tracks(rows: int = 100, seed: int = 0, negative_durations: int = 0) -> pd.DataFrame:
    """Balanced Rock/Country table laid out like the public music-genre CSV."""
    rng = np.random.default_rng(seed)
    genre = np.array(["Rock", "Country"] * (rows // 2) + ["Rock"] * (rows % 2))
    rock = genre == "Rock"

    instrumentalness = rng.beta(0.5, 5, rows)
    instrumentalness[::7] = 0.0
    duration = rng.normal(230_000, 40_000, rows).clip(60_000)
    duration[:negative_durations] = -1

    df = pd.DataFrame({
        "instance_id": np.arange(rows) + 10_000,
        "artist_name": [f"artist_{i}" for i in range(rows)],
        "track_name": [f"track_{i}" for i in range(rows)],
        "popularity": rng.integers(20, 80, rows).astype(float),
        "acousticness": np.where(rock, rng.beta(1, 8, rows), rng.beta(3, 4, rows)),
        "danceability": rng.uniform(0.3, 0.8, rows),
        "duration_ms": duration,
        "energy": np.where(rock, rng.beta(8, 2, rows), rng.beta(4, 3, rows)),
        "instrumentalness": instrumentalness,
        "key": rng.choice(KEYS, rows),
        "liveness": rng.beta(2, 8, rows) + 0.01,
        "loudness": np.where(rock, rng.normal(-5, 1.5, rows), rng.normal(-8, 2, rows)),
        "mode": rng.choice(["Major", "Minor"], rows, p=[0.7, 0.3]),
        "speechiness": rng.beta(1.5, 25, rows) + 0.02,
        "tempo": rng.normal(120, 25, rows),
        "obtained_date": "4-Apr",
        "valence": rng.uniform(0.1, 0.9, rows),
        "music_genre": genre,
    })
    return df


@pytest.fixture
def raw_tracks() -> pd.DataFrame:
    return make_tracks()


@pytest.fixture
def tracks_csv(tmp_path, raw_tracks):
    path = tmp_path / "music_genre.csv"
    raw_tracks.to_csv(path, index=False)
    return path
