"""
config.py — Column definitions, label order, and run configuration.

Usage:
    from genre_cv.config import AnalysisConfig, NUMERIC_COLS, CATEGORICAL_COLS, LABELS
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

# ── Column definitions ───────────────────────────────────────────────────────

FEATURE_GROUPS = {
    'Audio': [
        'acousticness', 'danceability', 'energy', 'instrumentalness',
        'liveness', 'loudness', 'speechiness', 'tempo', 'valence'
    ],
    'Track': [
        'duration_ms', 'popularity'
    ],
}

NUMERIC_COLS = [f for group in FEATURE_GROUPS.values() for f in group]

CATEGORICAL_COLS = ['key', 'mode']

FEATURE_COLS = NUMERIC_COLS + CATEGORICAL_COLS

# Identifier / free-text columns with no predictive use
DROP_COLS: Sequence[str] = ('instance_id', 'artist_name', 'track_name', 'obtained_date')

TARGET_COL = 'genre'
TARGET_ALIASES: Sequence[str] = ('music_genre',)

# Alphabetical, so 'Rock' is the second level and the positive class
LABELS = ('Country', 'Rock')
POSITIVE_LABEL = 'Rock'

# ── Per-feature transforms ───────────────────────────────────────────────────
# Chosen once from the skewness of the cleaned data; not re-decided at run time.
FEATURE_TRANSFORMS = {
    'acousticness': 'power',
    'energy': 'power',
    'speechiness': 'power',
    'instrumentalness': 'log',
    'liveness': 'log',
    'loudness': 'asinh',
}

DEFAULT_MTRY_GRID = (2, 3, 4, 5)

METRICS_FILENAME = 'metrics.json'


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Settings for one run of the study.

    Parameters
    ----------
    dataset_path : Path — Music-feature CSV.
    output_dir : Path — Where figures and metrics.json are written.
    seed : int — Seeds the single generator behind folds, imputation and models.
    outer_splits, inner_splits : int — Nested CV fold counts (>= 2).
    mtry_grid : tuple of int — Random-forest features tried per split.
    n_estimators : int — Trees per forest.
    logistic_C : float — Inverse penalty strength for logistic regression.
    n_imputations : int — Completed datasets drawn for the durations.
    imputation_iter : int — Chained-equation rounds per draw.
    pmm_donors : int — Donor pool size for predictive mean matching.
    use_smote : bool — Oversample the minority genre inside each fold.
    n_jobs : int — Parallelism for the grid search.
    make_plots : bool — Save the exploratory and evaluation figures.
    """

    dataset_path: Path
    output_dir: Path = Path('outputs')
    seed: int = 1
    outer_splits: int = 5
    inner_splits: int = 5
    mtry_grid: tuple = DEFAULT_MTRY_GRID
    n_estimators: int = 500
    logistic_C: float = 1e6
    n_imputations: int = 5
    imputation_iter: int = 5
    pmm_donors: int = 5
    use_smote: bool = False
    n_jobs: int = 1
    make_plots: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, 'dataset_path', Path(self.dataset_path))
        object.__setattr__(self, 'output_dir', Path(self.output_dir))
        object.__setattr__(self, 'mtry_grid', tuple(int(m) for m in self.mtry_grid))
        if self.outer_splits < 2 or self.inner_splits < 2:
            raise ValueError('outer_splits and inner_splits must both be >= 2')
        if not self.mtry_grid:
            raise ValueError('mtry_grid must contain at least one value')

    def rng(self):
        """Fresh generator seeded from ``seed``; every random step draws from it."""
        return np.random.default_rng(self.seed)
