"""
transform_utils.py — Variance-stabilising transforms for skewed predictors.

Key design decisions:
  - Which transform each feature gets is fixed in config.FEATURE_TRANSFORMS;
    only parameters (Box-Cox exponent, domain shift) are fitted.
  - Every transform is invertible so values can be mapped back for reporting.

Usage:
    from genre_cv.transform_utils import TrackTransformer, transform_features, skewness_table
"""

import logging

import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import boxcox as boxcox_apply, inv_boxcox
from sklearn.base import BaseEstimator, TransformerMixin

from genre_cv.config import FEATURE_TRANSFORMS, NUMERIC_COLS

logger = logging.getLogger(__name__)


def _positive_shift(x: np.ndarray) -> float:
    """
    Offset that makes every value of ``x`` strictly positive.

    Zero when already positive; otherwise the minimum is moved to half the
    smallest gap between it and the next distinct value.
    """
    x_min = np.min(x)
    if x_min > 0:
        return 0.0
    distinct = np.unique(x)
    gap = distinct[1] - distinct[0] if len(distinct) > 1 else 1.0
    return float(-x_min + gap / 2.0)


# ── Single-feature transforms ────────────────────────────────────────────────

class IdentityTransform:
    name = 'none'

    def fit(self, x):
        return self

    def transform(self, x):
        return np.asarray(x, dtype=float)

    def inverse_transform(self, z):
        return np.asarray(z, dtype=float)


class PowerTransform:
    """Box-Cox power transform with a maximum-likelihood exponent."""

    name = 'power'

    def __init__(self, lmbda=None, shift=None):
        self.lmbda = lmbda
        self.shift = shift

    def fit(self, x):
        x = np.asarray(x, dtype=float)
        if self.shift is None:
            self.shift_ = _positive_shift(x)
        else:
            self.shift_ = float(self.shift)
        if self.lmbda is None:
            self.lmbda_ = float(stats.boxcox_normmax(x + self.shift_, method='mle'))
        else:
            self.lmbda_ = float(self.lmbda)
        return self

    def transform(self, x):
        x = np.asarray(x, dtype=float) + self.shift_
        if np.any(x <= 0):
            raise ValueError("Box-Cox transform requires strictly positive input")
        return boxcox_apply(x, self.lmbda_)

    def inverse_transform(self, z):
        return inv_boxcox(np.asarray(z, dtype=float), self.lmbda_) - self.shift_


class LogTransform:
    name = 'log'

    def __init__(self, shift=None):
        self.shift = shift

    def fit(self, x):
        x = np.asarray(x, dtype=float)
        self.shift_ = _positive_shift(x) if self.shift is None else float(self.shift)
        return self

    def transform(self, x):
        x = np.asarray(x, dtype=float) + self.shift_
        if np.any(x <= 0):
            raise ValueError("Log transform requires strictly positive input")
        return np.log(x)

    def inverse_transform(self, z):
        return np.exp(np.asarray(z, dtype=float)) - self.shift_


class AsinhTransform:
    """Inverse hyperbolic sine: log-like in the tails, defined for negatives."""

    name = 'asinh'

    def fit(self, x):
        return self

    def transform(self, x):
        return np.arcsinh(np.asarray(x, dtype=float))

    def inverse_transform(self, z):
        return np.sinh(np.asarray(z, dtype=float))


TRANSFORM_REGISTRY = {
    'none': IdentityTransform,
    'power': PowerTransform,
    'log': LogTransform,
    'asinh': AsinhTransform,
}


def make_transform(name: str):
    if name not in TRANSFORM_REGISTRY:
        raise ValueError(f"Unknown transform '{name}'; expected one of {sorted(TRANSFORM_REGISTRY)}")
    return TRANSFORM_REGISTRY[name]()


# ── DataFrame-level transformer ──────────────────────────────────────────────

class TrackTransformer(BaseEstimator, TransformerMixin):
    """
    Apply a fixed per-column transform mapping to a DataFrame.

    Columns not named in ``mapping`` pass through untouched.

    Parameters
    ----------
    mapping : dict of {column: transform name}, optional
        Defaults to config.FEATURE_TRANSFORMS.
    """

    def __init__(self, mapping=None):
        self.mapping = mapping

    def _mapping(self):
        return FEATURE_TRANSFORMS if self.mapping is None else self.mapping

    def fit(self, X: pd.DataFrame, y=None):
        self.transforms_ = {}
        for col, name in self._mapping().items():
            if col not in X:
                raise ValueError(f"Column '{col}' not found for '{name}' transform")
            self.transforms_[col] = make_transform(name).fit(X[col].to_numpy())
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        X = X.copy()
        for col, tf in self.transforms_.items():
            X[col] = tf.transform(X[col].to_numpy())
        return X

    def inverse_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        X = X.copy()
        for col, tf in self.transforms_.items():
            X[col] = tf.inverse_transform(X[col].to_numpy())
        return X

    def fitted_params(self) -> pd.DataFrame:
        """Transform name, Box-Cox exponent, and shift per transformed column."""
        rows = []
        for col, tf in self.transforms_.items():
            rows.append({
                'feature': col,
                'transform': tf.name,
                'lambda': getattr(tf, 'lmbda_', np.nan),
                'shift': getattr(tf, 'shift_', 0.0),
            })
        return pd.DataFrame(rows).set_index('feature')


def transform_features(df: pd.DataFrame, mapping=None):
    """
    Fit a TrackTransformer on ``df`` and return the transformed table.

    Returns
    -------
    (pd.DataFrame, TrackTransformer)
    """
    transformer = TrackTransformer(mapping=mapping).fit(df)
    out = transformer.transform(df)
    for col, row in transformer.fitted_params().iterrows():
        logger.info("  %-17s %-6s lambda=%.4f shift=%.3g",
                    col, row['transform'], row['lambda'], row['shift'])
    return out, transformer


def skewness_table(before: pd.DataFrame, after: pd.DataFrame = None,
                   columns=None) -> pd.DataFrame:
    """Sample skewness per numeric feature, optionally before vs after transforming."""
    columns = [c for c in (columns or NUMERIC_COLS) if c in before]
    table = pd.DataFrame({'skew_before': before[columns].apply(stats.skew)})
    if after is not None:
        table['skew_after'] = after[columns].apply(stats.skew)
    table['transform'] = [FEATURE_TRANSFORMS.get(c, 'none') for c in columns]
    return table.round(4)
