"""
impute_utils.py — Multiple imputation by predictive mean matching (PMM).

Each draw runs statsmodels' chained-equation imputer (``MICEData``): every
incomplete column is regressed on all other columns, the coefficients are
perturbed with a posterior draw, and each missing cell takes the observed
value of a random donor among the ``donors`` rows with the closest predictions.

Usage:
    from genre_cv.impute_utils import multiple_impute
"""

import logging
import warnings
from contextlib import contextmanager

import numpy as np
import pandas as pd
from statsmodels.imputation.mice import MICEData

logger = logging.getLogger(__name__)

_MAX_SEED = 2**32 - 1


@contextmanager
def _global_seed(seed):
    # MICEData draws from numpy's global RandomState
    state = np.random.get_state()
    np.random.seed(seed)
    try:
        yield
    finally:
        np.random.set_state(state)


def _imputation_frame(df: pd.DataFrame):
    """
    Numeric copy of ``df`` for the chained equations.

    Non-numeric columns are one-hot encoded (first level dropped) and every
    column is renamed to a formula-safe ``v<i>``.

    Returns
    -------
    work : pd.DataFrame
    names : dict of {original column: work column} for the numeric columns
    """
    numeric = df.select_dtypes(include='number').columns
    work = pd.get_dummies(df.reset_index(drop=True), drop_first=True, dtype=float)
    work = work.astype(float)
    renamed = [f'v{i}' for i in range(work.shape[1])]
    names = {col: new for col, new in zip(work.columns, renamed) if col in numeric}
    work.columns = pd.Index(renamed, dtype=object)
    return work, names


def _check_imputable(df: pd.DataFrame, columns):
    for col in columns:
        if not pd.api.types.is_numeric_dtype(df[col]):
            raise ValueError(f"Column '{col}' must be numeric to impute")
        if df[col].notna().sum() < 2:
            raise ValueError(f"Column '{col}' needs at least two observed values to impute from")

    other_missing = df.drop(columns=list(columns)).isna().any()
    if other_missing.any():
        raise ValueError(
            f"Predictor columns must be complete: {other_missing[other_missing].index.tolist()}"
        )


def impute_once(df: pd.DataFrame, columns, rng: np.random.Generator,
                max_iter=5, donors=5) -> pd.DataFrame:
    """
    Produce one completed copy of ``df`` by chained PMM over ``columns``.

    Parameters
    ----------
    df : pd.DataFrame — Table whose ``columns`` contain missing cells; every
         other column must be complete.
    columns : sequence of str — Numeric columns to impute.
    rng : np.random.Generator — Seeds this draw.
    max_iter : int — Chained-equation rounds.
    donors : int — Donor pool size for predictive mean matching.

    Returns
    -------
    pd.DataFrame — Copy of ``df`` with only the missing cells of ``columns`` filled.
    """
    columns = list(columns)
    _check_imputable(df, columns)

    completed = df.copy()
    if not df[columns].isna().any().any():
        return completed

    work, names = _imputation_frame(df)
    n_observed = int(df[columns].notna().sum().min())

    with _global_seed(int(rng.integers(0, _MAX_SEED))), warnings.catch_warnings():
        warnings.simplefilter("ignore")
        imp = MICEData(work, k_pmm=min(donors, n_observed))
        imp.update_all(max_iter)

    for col in columns:
        missing = df[col].isna().to_numpy()
        filled = imp.data[names[col]].to_numpy()
        completed.loc[missing, col] = filled[missing]
    return completed


def multiple_impute(df: pd.DataFrame, columns, rng: np.random.Generator,
                    m=5, max_iter=5, donors=5):
    """
    Draw ``m`` completed datasets by predictive mean matching.

    Returns
    -------
    list of pd.DataFrame — The completed datasets in draw order.
    """
    columns = list(columns)
    n_missing = {c: int(df[c].isna().sum()) for c in columns}
    logger.info("Imputing %s with PMM (m=%d, max_iter=%d, donors=%d)",
                n_missing, m, max_iter, donors)

    return [impute_once(df, columns, rng, max_iter=max_iter, donors=donors)
            for _ in range(m)]
