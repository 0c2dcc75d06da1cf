"""
eval_utils.py — Evaluation metrics, confusion matrix tables/plots, and results formatting.

Usage:
    from genre_cv.eval_utils import compute_metrics, confusion_table, accuracy_from_confusion
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import (
    accuracy_score, balanced_accuracy_score,
    f1_score, precision_score, roc_auc_score,
    matthews_corrcoef, confusion_matrix
)

from genre_cv.config import LABELS, POSITIVE_LABEL


# ── Metric computation ───────────────────────────────────────────────────────

def compute_metrics(y_true, y_pred, y_prob=None) -> dict:
    """
    Compute a comprehensive set of classification metrics.

    Parameters
    ----------
    y_true : array-like — Ground truth genres ('Country' or 'Rock').
    y_pred : array-like — Predicted genres.
    y_prob : array-like, optional — Predicted probabilities for 'Rock'.

    Returns
    -------
    dict with keys: accuracy, balanced_accuracy, sensitivity, specificity,
                    precision, f1, mcc, auc_roc (None if y_prob not provided
                    or only one genre present).
    """
    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=list(LABELS)).ravel()

    y_bin = (np.asarray(y_true) == POSITIVE_LABEL).astype(int)
    auc = None
    if y_prob is not None and 0 < y_bin.sum() < len(y_bin):
        auc = roc_auc_score(y_bin, y_prob)

    metrics = {
        'accuracy': accuracy_score(y_true, y_pred),
        'balanced_accuracy': balanced_accuracy_score(y_true, y_pred),
        'sensitivity': tp / (tp + fn) if (tp + fn) > 0 else 0.0,   # recall for Rock
        'specificity': tn / (tn + fp) if (tn + fp) > 0 else 0.0,   # recall for Country
        'precision': precision_score(y_true, y_pred, pos_label=POSITIVE_LABEL, zero_division=0),
        'f1': f1_score(y_true, y_pred, pos_label=POSITIVE_LABEL, zero_division=0),
        'mcc': matthews_corrcoef(y_true, y_pred),
        'auc_roc': auc,
    }
    return metrics


def compute_cv_metrics(y_trues, y_preds, y_probs=None) -> pd.DataFrame:
    """
    Compute metrics across multiple CV folds and return mean ± std.

    Parameters
    ----------
    y_trues : list of arrays — Ground truth labels per fold.
    y_preds : list of arrays — Predicted labels per fold.
    y_probs : list of arrays, optional — Predicted probabilities per fold.

    Returns
    -------
    pd.DataFrame with columns: metric, mean, std, mean_std
    """
    all_metrics = []
    for i in range(len(y_trues)):
        prob = y_probs[i] if y_probs is not None else None
        all_metrics.append(compute_metrics(y_trues[i], y_preds[i], prob))

    df = pd.DataFrame(all_metrics).astype(float)
    summary = pd.DataFrame({
        'metric': df.columns,
        'mean': df.mean().values,
        'std': df.std().values
    })
    summary['mean_std'] = summary.apply(
        lambda r: f"{r['mean']:.4f} ± {r['std']:.4f}" if pd.notna(r['mean']) else "N/A",
        axis=1
    )
    return summary


# ── Confusion matrix ─────────────────────────────────────────────────────────

def confusion_table(y_true, y_pred, labels=LABELS) -> pd.DataFrame:
    """Counts of actual (rows) vs predicted (columns) genre."""
    cm = confusion_matrix(y_true, y_pred, labels=list(labels))
    return pd.DataFrame(cm,
                        index=pd.Index(labels, name='Actual'),
                        columns=pd.Index(labels, name='Predicted'))


def accuracy_from_confusion(cm) -> float:
    """(true positives + true negatives) / total, read off the diagonal."""
    cm = np.asarray(cm)
    if cm.ndim != 2 or cm.shape[0] != cm.shape[1]:
        raise ValueError(f"Confusion matrix must be square, got shape {cm.shape}")
    total = cm.sum()
    if total == 0:
        raise ValueError("Confusion matrix is empty")
    return float(np.trace(cm) / total)


def print_confusion_matrix(cm: pd.DataFrame, title='Confusion Matrix'):
    """Pretty-print a confusion table followed by the accuracy percentage."""
    print(f"\n{title}")
    print(cm.to_string())
    print(f"Accuracy: {accuracy_from_confusion(cm) * 100:.2f}%\n")


def plot_confusion_matrix(y_true, y_pred, title='Confusion Matrix',
                          save_path=None, ax=None):
    """
    Plot a confusion matrix with counts and percentages.

    Parameters
    ----------
    y_true : array-like — Ground truth labels.
    y_pred : array-like — Predicted labels.
    title : str — Plot title.
    save_path : str or Path, optional — If provided, save figure to this path.
    ax : matplotlib Axes, optional — Axes to plot on.
    """
    cm = confusion_matrix(y_true, y_pred, labels=list(LABELS))
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))
    else:
        fig = ax.get_figure()

    total = cm.sum()
    annot = np.array([[f'{val}\n({val/total*100:.1f}%)' for val in row] for row in cm])

    sns.heatmap(cm, annot=annot, fmt='', cmap='Blues', square=True,
                xticklabels=list(LABELS), yticklabels=list(LABELS),
                linewidths=1, ax=ax, cbar=False,
                annot_kws={'size': 14, 'fontweight': 'bold'})
    ax.set_xlabel('Predicted', fontsize=12)
    ax.set_ylabel('Actual', fontsize=12)
    ax.set_title(title, fontsize=13, fontweight='bold')

    if save_path:
        fig.savefig(save_path, bbox_inches='tight')

    return ax


# ── Results comparison table ─────────────────────────────────────────────────

def results_to_dataframe(results: dict) -> pd.DataFrame:
    """
    Convert a dict of {model_name: metrics_dict} into a formatted comparison table.

    Returns
    -------
    pd.DataFrame — Rows = models, Columns = metrics
    """
    df = pd.DataFrame(results).T
    df.index.name = 'Model'

    col_order = ['accuracy', 'balanced_accuracy', 'sensitivity', 'specificity',
                 'precision', 'f1', 'mcc', 'auc_roc']
    cols = [c for c in col_order if c in df.columns]
    return df[cols].astype(float).round(4)


def print_cv_summary(model_name: str, summary_df: pd.DataFrame):
    """Pretty-print cross-validation results for a model."""
    print(f"\n{'='*60}")
    print(f"  {model_name} — Cross-Validation Results")
    print(f"{'='*60}")
    for _, row in summary_df.iterrows():
        print(f"  {row['metric']:>20s}: {row['mean_std']}")
    print(f"{'='*60}\n")
