"""
data_utils.py — Data loading, cleaning, and feature/target extraction.

Usage:
    from genre_cv.data_utils import load_tracks, clean_tracks, get_X_y
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from genre_cv.config import (
    CATEGORICAL_COLS, DROP_COLS, FEATURE_COLS, LABELS, NUMERIC_COLS,
    TARGET_ALIASES, TARGET_COL,
)
from genre_cv.impute_utils import multiple_impute

logger = logging.getLogger(__name__)


def load_tracks(data_path) -> pd.DataFrame:
    """
    Load the music-feature table and normalise the genre column name.

    Parameters
    ----------
    data_path : str or Path
        Path to a CSV with one row per track.

    Returns
    -------
    pd.DataFrame
        Raw table with a 'genre' column.
    """
    data_path = Path(data_path)
    if not data_path.exists():
        raise FileNotFoundError(f"Dataset not found at {data_path}")

    df = pd.read_csv(data_path)

    if TARGET_COL not in df:
        for alias in TARGET_ALIASES:
            if alias in df:
                df = df.rename(columns={alias: TARGET_COL})
                break
        else:
            raise ValueError(f"Dataset at {data_path} is missing '{TARGET_COL}' column")

    logger.info("Loaded %d rows x %d columns from %s", len(df), df.shape[1], data_path)
    return df


def coerce_types(df: pd.DataFrame) -> pd.DataFrame:
    """Numeric columns to float ('?' and other junk become NaN); categoricals to str."""
    df = df.copy()
    for col in NUMERIC_COLS:
        if col in df:
            df[col] = pd.to_numeric(df[col], errors='coerce').astype(float)
    for col in CATEGORICAL_COLS:
        if col in df:
            df[col] = df[col].where(df[col].isna(), df[col].astype(str))
    return df


def clean_tracks(df: pd.DataFrame, rng: np.random.Generator, labels=LABELS,
                 n_imputations=5, max_iter=5, donors=5) -> pd.DataFrame:
    """
    Drop identifiers, keep the two genres, drop incomplete rows, and impute
    negative durations by predictive mean matching.

    Parameters
    ----------
    df : pd.DataFrame — Raw table from load_tracks.
    rng : np.random.Generator — Source of randomness for the imputation.
    labels : sequence of str — Genres to keep.
    n_imputations : int — Number of completed datasets drawn; the first is used.
    max_iter : int — Chained-equation rounds per imputation.
    donors : int — Donor pool size for predictive mean matching.

    Returns
    -------
    pd.DataFrame with FEATURE_COLS + 'genre', no missing values, duration_ms >= 0.
    """
    missing = [c for c in FEATURE_COLS + [TARGET_COL] if c not in df]
    if missing:
        raise ValueError(f"Dataset is missing required columns: {missing}")

    df = df.drop(columns=[c for c in DROP_COLS if c in df])
    df = coerce_types(df)[FEATURE_COLS + [TARGET_COL]]

    df = df[df[TARGET_COL].isin(labels)]
    if df.empty:
        raise ValueError(f"No records with genre in {list(labels)}")

    n_before = len(df)
    df = df.dropna().reset_index(drop=True)
    logger.info("Dropped %d rows with missing values; %d remain", n_before - len(df), len(df))

    # Negative durations are placeholders for unknown lengths
    negative = df['duration_ms'] < 0
    df.loc[negative, 'duration_ms'] = np.nan
    logger.info("Recoded %d negative durations as missing", int(negative.sum()))

    if negative.any():
        completed = multiple_impute(df, ['duration_ms'], rng, m=n_imputations,
                                    max_iter=max_iter, donors=donors)
        df = completed[0]

    validate_tracks(df, labels=labels)
    return df


def validate_tracks(df: pd.DataFrame, labels=LABELS) -> None:
    """Raise ValueError if the cleaned-table invariants do not hold."""
    if df.isna().any().any():
        cols = df.columns[df.isna().any()].tolist()
        raise ValueError(f"Missing values remain in columns: {cols}")
    if (df['duration_ms'] < 0).any():
        raise ValueError("duration_ms contains negative values")
    bad = set(df[TARGET_COL].unique()) - set(labels)
    if bad:
        raise ValueError(f"Unexpected genre labels: {sorted(bad)}")


def get_X_y(df: pd.DataFrame):
    """
    Extract feature matrix and target vector from the DataFrame.

    Returns
    -------
    X : pd.DataFrame of shape (n_samples, 13)
    y : pd.Series of shape (n_samples,)
    """
    X = df[FEATURE_COLS].copy()
    y = df[TARGET_COL].copy()
    return X, y


def summarize_tracks(df: pd.DataFrame) -> pd.DataFrame:
    """Per-genre mean of every numeric feature, plus class counts."""
    summary = df.groupby(TARGET_COL)[NUMERIC_COLS].mean().T
    summary.loc['n_tracks'] = df[TARGET_COL].value_counts()
    return summary
