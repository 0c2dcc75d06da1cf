"""
plot_utils.py — Exploratory plots: histograms, genre boxplots, category bars, importance.

Usage:
    from genre_cv.plot_utils import plot_histograms, plot_genre_boxplots
"""

import math

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from genre_cv.config import CATEGORICAL_COLS, LABELS, NUMERIC_COLS, TARGET_COL


def _grid(n, ncols=4, size=3.5):
    nrows = math.ceil(n / ncols)
    fig, axes = plt.subplots(nrows, ncols, figsize=(size * ncols, size * nrows),
                             squeeze=False)
    axes = axes.ravel()
    for ax in axes[n:]:
        ax.set_visible(False)
    return fig, axes


def _finish(fig, title, save_path):
    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, bbox_inches='tight')
    return fig


def plot_histograms(df: pd.DataFrame, columns=None, title='Feature Distributions',
                    save_path=None):
    """One histogram per numeric feature."""
    columns = [c for c in (columns or NUMERIC_COLS) if c in df]
    fig, axes = _grid(len(columns))
    for ax, col in zip(axes, columns):
        sns.histplot(df[col], bins=30, ax=ax, color='steelblue')
        ax.set_title(col, fontsize=11)
        ax.set_xlabel('')
    return _finish(fig, title, save_path)


def plot_genre_boxplots(df: pd.DataFrame, columns=None,
                        title='Feature Distributions by Genre', save_path=None):
    """Side-by-side boxplots of each numeric feature for Country vs Rock."""
    columns = [c for c in (columns or NUMERIC_COLS) if c in df]
    fig, axes = _grid(len(columns))
    for ax, col in zip(axes, columns):
        sns.boxplot(data=df, x=TARGET_COL, y=col, hue=TARGET_COL, order=list(LABELS),
                    palette='Set2', legend=False, ax=ax)
        ax.set_title(col, fontsize=11)
        ax.set_xlabel('')
        ax.set_ylabel('')
    return _finish(fig, title, save_path)


def plot_category_bars(df: pd.DataFrame, columns=None,
                       title='Categorical Features by Genre', save_path=None):
    """Bar chart of within-genre proportions for each categorical feature."""
    columns = [c for c in (columns or CATEGORICAL_COLS) if c in df]
    fig, axes = _grid(len(columns), ncols=len(columns), size=5)
    for ax, col in zip(axes, columns):
        props = (df.groupby(TARGET_COL)[col].value_counts(normalize=True)
                 .rename('proportion').reset_index())
        sns.barplot(data=props, x=col, y='proportion', hue=TARGET_COL,
                    hue_order=list(LABELS), palette='Set2', ax=ax)
        ax.set_title(col, fontsize=11)
    return _finish(fig, title, save_path)


def plot_variable_importance(importance: pd.Series, top_n=15,
                             title='Random Forest Variable Importance', save_path=None):
    """Horizontal bar chart of the ``top_n`` most important features."""
    top = importance.sort_values(ascending=False).head(top_n)
    fig, ax = plt.subplots(figsize=(7, 0.4 * len(top) + 1.5))
    sns.barplot(x=top.values, y=top.index, color='steelblue', ax=ax)
    ax.set_xlabel('Mean decrease in impurity')
    ax.set_ylabel('')
    ax.set_title(title, fontsize=13, fontweight='bold')
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, bbox_inches='tight')
    return fig
