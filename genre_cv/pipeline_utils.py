"""
pipeline_utils.py — Fold assignment, candidate pipelines, mtry tuning, and nested CV.

Key design decisions:
  - Uses imblearn.pipeline.Pipeline (not sklearn's) so SMOTE can be switched on
    for unbalanced extracts.
  - Encoding, scaling and resampling happen INSIDE CV folds to prevent data leakage.
  - Folds come from assign_folds() with an explicit numpy Generator, never from
    global seed state; each estimator's random_state is drawn from the same generator.
  - Inner selection compares mean accuracy with strict '>', so the first candidate
    (logistic regression, then the smallest mtry) wins ties.

Usage:
    from genre_cv.pipeline_utils import (
        ModelKind, assign_folds, build_pipeline, tune_mtry, run_cv, run_nested_cv
    )
"""

import logging
import warnings
from enum import Enum

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import GridSearchCV, PredefinedSplit, cross_val_score
from sklearn.preprocessing import OneHotEncoder, OrdinalEncoder, StandardScaler
from sklearn.utils.validation import check_is_fitted
from imblearn.pipeline import Pipeline as ImbPipeline
from imblearn.over_sampling import SMOTE

from genre_cv.config import (
    CATEGORICAL_COLS, DEFAULT_MTRY_GRID, FEATURE_COLS, LABELS, NUMERIC_COLS, POSITIVE_LABEL,
)
from genre_cv.eval_utils import compute_metrics, confusion_table, accuracy_from_confusion

logger = logging.getLogger(__name__)

_MAX_SEED = 2**31 - 1


# ── Fold assignment ──────────────────────────────────────────────────────────

def assign_folds(n_samples: int, n_splits: int, rng: np.random.Generator) -> np.ndarray:
    """
    Randomly assign each of ``n_samples`` records to one of ``n_splits`` folds.

    Labels 0..n_splits-1 are repeated to length n_samples and shuffled, so
    fold sizes differ by at most one and every record gets exactly one label.
    """
    if n_splits < 2:
        raise ValueError(f"n_splits must be >= 2, got {n_splits}")
    if n_samples < n_splits:
        raise ValueError(f"Cannot split {n_samples} records into {n_splits} folds")
    return rng.permutation(np.arange(n_samples) % n_splits)


def iter_folds(folds: np.ndarray):
    """Yield (fold_label, train_idx, test_idx) for each fold label in order."""
    for label in np.unique(folds):
        yield label, np.flatnonzero(folds != label), np.flatnonzero(folds == label)


def _draw_seed(rng: np.random.Generator) -> int:
    return int(rng.integers(0, _MAX_SEED))


# ── Candidate models ─────────────────────────────────────────────────────────

class ModelKind(Enum):
    LOGISTIC_REGRESSION = 'Logistic Regression'
    RANDOM_FOREST = 'Random Forest'


# Order matters: earlier kinds win ties in select_model()
CANDIDATE_ORDER = (ModelKind.LOGISTIC_REGRESSION, ModelKind.RANDOM_FOREST)


def build_classifier(kind: ModelKind, random_state=None, mtry=None,
                     n_estimators=500, logistic_C=1e6, n_jobs=1):
    """
    Return an unfitted classifier for ``kind``.

    Parameters
    ----------
    kind : ModelKind
    random_state : int, optional — Seed for the forest's bootstrap / feature sampling.
    mtry : int, optional — Features tried per split (random forest only; None = sqrt).
    n_estimators : int — Number of trees.
    logistic_C : float — Inverse penalty strength; large values approximate plain
                 maximum likelihood.
    n_jobs : int
    """
    if kind is ModelKind.LOGISTIC_REGRESSION:
        return LogisticRegression(C=logistic_C, solver='lbfgs', max_iter=5000)
    if kind is ModelKind.RANDOM_FOREST:
        return MajorityVoteForest(n_estimators=n_estimators,
                                  max_features=mtry if mtry is not None else 'sqrt',
                                  random_state=random_state, n_jobs=n_jobs)
    raise ValueError(f"Unknown model kind: {kind!r}")


class MajorityVoteForest(RandomForestClassifier):
    """
    Random forest whose ``predict`` counts one vote per tree.

    sklearn's forest averages leaf probabilities; here each tree casts a hard
    vote and the most-voted class wins. Tied votes go to the first class in
    ``classes_`` ('Country'). ``predict_proba`` is unchanged.
    """

    def predict(self, X):
        check_is_fitted(self)
        X = self._validate_X_predict(X)
        votes = np.stack([tree.predict(X) for tree in self.estimators_]).astype(int)
        counts = np.stack([(votes == k).sum(axis=0) for k in range(len(self.classes_))])
        return self.classes_[np.argmax(counts, axis=0)]


def build_preprocessor(kind=ModelKind.LOGISTIC_REGRESSION):
    """
    Column preprocessing for ``kind``.

    Logistic regression gets one-hot key/mode plus standard-scaled numerics.
    The forest gets the 13 predictors as-is, with key/mode ordinal-coded, so
    ``mtry`` counts original features.
    """
    if kind is ModelKind.RANDOM_FOREST:
        return ColumnTransformer([
            ('num', 'passthrough', list(NUMERIC_COLS)),
            ('cat', OrdinalEncoder(handle_unknown='use_encoded_value', unknown_value=-1),
             list(CATEGORICAL_COLS)),
        ])
    return ColumnTransformer([
        ('num', StandardScaler(), list(NUMERIC_COLS)),
        ('cat', OneHotEncoder(handle_unknown='ignore', sparse_output=False),
         list(CATEGORICAL_COLS)),
    ])


def build_pipeline(classifier, use_smote=False, smote_random_state=42,
                   kind=ModelKind.LOGISTIC_REGRESSION):
    """
    Build an imblearn Pipeline: preprocessing, optional SMOTE, then the classifier.

    Parameters
    ----------
    classifier : sklearn estimator — The classifier to use.
    use_smote : bool — Whether to include SMOTE oversampling.
    smote_random_state : int — Random state for SMOTE reproducibility.
    kind : ModelKind — Selects the preprocessing (see build_preprocessor).

    Returns
    -------
    ImbPipeline
    """
    steps = [('prep', build_preprocessor(kind))]

    if use_smote:
        steps.append(('smote', SMOTE(random_state=smote_random_state)))

    steps.append(('clf', classifier))

    return ImbPipeline(steps)


def build_candidate(kind: ModelKind, rng: np.random.Generator, mtry=None,
                    n_estimators=500, logistic_C=1e6, use_smote=False, n_jobs=1):
    """Pipeline for ``kind`` with its random states drawn from ``rng``."""
    clf = build_classifier(kind, random_state=_draw_seed(rng), mtry=mtry,
                           n_estimators=n_estimators, logistic_C=logistic_C,
                           n_jobs=n_jobs)
    return build_pipeline(clf, use_smote=use_smote, smote_random_state=_draw_seed(rng),
                          kind=kind)


def get_classifiers(rng: np.random.Generator, mtry=None, n_estimators=500,
                    logistic_C=1e6, use_smote=False):
    """
    Return a dict of default candidate pipelines.

    Returns
    -------
    dict of {ModelKind: pipeline}
    """
    return {
        kind: build_candidate(kind, rng, mtry=mtry, n_estimators=n_estimators,
                              logistic_C=logistic_C, use_smote=use_smote)
        for kind in CANDIDATE_ORDER
    }


def predict_with_threshold(pipeline, X, threshold=0.5):
    """
    Label as POSITIVE_LABEL when the positive-class probability exceeds ``threshold``.

    Matches LogisticRegression.predict at 0.5: a probability of exactly 0.5
    goes to the negative class.
    """
    classes = list(pipeline.classes_)
    proba = pipeline.predict_proba(X)[:, classes.index(POSITIVE_LABEL)]
    negative = [c for c in classes if c != POSITIVE_LABEL][0]
    return np.where(proba > threshold, POSITIVE_LABEL, negative)


def _positive_proba(pipeline, X):
    classes = list(pipeline.classes_)
    if POSITIVE_LABEL not in classes:
        return None
    return pipeline.predict_proba(X)[:, classes.index(POSITIVE_LABEL)]


# ── Inner-loop scoring and tuning ────────────────────────────────────────────

def cv_accuracy(pipeline, X, y, folds: np.ndarray, n_jobs=1) -> float:
    """Mean accuracy of ``pipeline`` over a fixed fold assignment."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        scores = cross_val_score(pipeline, X, y, cv=PredefinedSplit(folds),
                                 scoring='accuracy', n_jobs=n_jobs)
    return float(np.mean(scores))


def tune_mtry(X, y, folds: np.ndarray, rng: np.random.Generator,
              mtry_grid=DEFAULT_MTRY_GRID, n_estimators=500, use_smote=False, n_jobs=1):
    """
    Choose the random-forest ``mtry`` with the best mean CV accuracy.

    Every grid value is scored on the same fold assignment with the same forest
    seed; GridSearchCV ranks ties equally and the first grid value is kept.

    Returns
    -------
    dict with keys:
        'best_mtry'  : int
        'best_score' : float — mean CV accuracy at best_mtry
        'scores'     : pd.Series — mean CV accuracy indexed by mtry
    """
    too_large = [m for m in mtry_grid if m > len(FEATURE_COLS)]
    if too_large:
        raise ValueError(f"mtry values {too_large} exceed the {len(FEATURE_COLS)} predictors")

    pipeline = build_candidate(ModelKind.RANDOM_FOREST, rng, n_estimators=n_estimators,
                               use_smote=use_smote)
    grid_search = GridSearchCV(
        pipeline, {'clf__max_features': list(mtry_grid)},
        cv=PredefinedSplit(folds),
        scoring='accuracy',
        n_jobs=n_jobs,
        refit=False
    )

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        grid_search.fit(X, y)

    scores = pd.Series(grid_search.cv_results_['mean_test_score'],
                       index=pd.Index(list(mtry_grid), name='mtry'), name='accuracy')
    best_mtry = int(grid_search.best_params_['clf__max_features'])
    return {
        'best_mtry': best_mtry,
        'best_score': float(scores.loc[best_mtry]),
        'scores': scores,
    }


def select_model(scores: dict) -> ModelKind:
    """
    Return the candidate with the highest score; the earliest in CANDIDATE_ORDER wins ties.
    """
    best_kind, best_score = None, -np.inf
    for kind in CANDIDATE_ORDER:
        if kind in scores and scores[kind] > best_score:
            best_kind, best_score = kind, scores[kind]
    if best_kind is None:
        raise ValueError("No candidate scores to select from")
    return best_kind


def select_and_fit(X, y, folds: np.ndarray, rng: np.random.Generator,
                   mtry_grid=DEFAULT_MTRY_GRID, n_estimators=500, logistic_C=1e6,
                   use_smote=False, n_jobs=1):
    """
    Score both candidate kinds by CV on ``folds``, pick the better, refit it on all of X.

    Returns
    -------
    dict with keys:
        'kind'       : ModelKind — selected candidate
        'model'      : fitted pipeline of the selected kind
        'scores'     : dict {ModelKind: mean CV accuracy}
        'best_mtry'  : int — tuned mtry (used only if the forest is selected)
        'mtry_scores': pd.Series — CV accuracy per mtry
    """
    lr_pipe = build_candidate(ModelKind.LOGISTIC_REGRESSION, rng, logistic_C=logistic_C,
                              use_smote=use_smote)
    lr_score = cv_accuracy(lr_pipe, X, y, folds, n_jobs=n_jobs)

    rf_tuning = tune_mtry(X, y, folds, rng, mtry_grid=mtry_grid,
                          n_estimators=n_estimators, use_smote=use_smote, n_jobs=n_jobs)

    scores = {
        ModelKind.LOGISTIC_REGRESSION: lr_score,
        ModelKind.RANDOM_FOREST: rf_tuning['best_score'],
    }
    kind = select_model(scores)

    model = build_candidate(kind, rng, mtry=rf_tuning['best_mtry'],
                            n_estimators=n_estimators, logistic_C=logistic_C,
                            use_smote=use_smote, n_jobs=n_jobs)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        model.fit(X, y)

    return {
        'kind': kind,
        'model': model,
        'scores': scores,
        'best_mtry': rf_tuning['best_mtry'],
        'mtry_scores': rf_tuning['scores'],
    }


# ── Plain K-fold cross-validation ────────────────────────────────────────────

def _aggregate(fold_metrics):
    metrics_df = {k: [m[k] for m in fold_metrics] for k in fold_metrics[0]}
    mean_metrics = {k: np.mean([v for v in vals if v is not None])
                    for k, vals in metrics_df.items()}
    std_metrics = {k: np.std([v for v in vals if v is not None])
                   for k, vals in metrics_df.items()}
    return mean_metrics, std_metrics


def run_cv(pipeline, X, y, folds: np.ndarray):
    """
    Run cross-validation over a fixed fold assignment and collect per-fold
    predictions and metrics.

    Parameters
    ----------
    pipeline : Pipeline — sklearn/imblearn pipeline to evaluate.
    X : pd.DataFrame of shape (n_samples, n_features)
    y : pd.Series of shape (n_samples,)
    folds : array of shape (n_samples,) — Fold label per record (see assign_folds).

    Returns
    -------
    dict with keys:
        'y_trues'  : list of arrays — true labels per fold
        'y_preds'  : list of arrays — predicted labels per fold
        'y_probs'  : list of arrays — positive-class probabilities per fold
        'fold_metrics' : list of dicts — metrics per fold
        'mean_metrics' : dict — mean metrics across folds
        'std_metrics'  : dict — std of metrics across folds
    """
    y_trues, y_preds, y_probs = [], [], []
    fold_metrics = []

    for _, train_idx, test_idx in iter_folds(folds):
        X_train, X_test = X.iloc[train_idx], X.iloc[test_idx]
        y_train, y_test = y.iloc[train_idx], y.iloc[test_idx]

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            pipeline.fit(X_train, y_train)

        y_pred = pipeline.predict(X_test)
        y_prob = _positive_proba(pipeline, X_test)

        y_trues.append(y_test.to_numpy())
        y_preds.append(y_pred)
        y_probs.append(y_prob)

        fold_metrics.append(compute_metrics(y_test, y_pred, y_prob))

    mean_metrics, std_metrics = _aggregate(fold_metrics)

    return {
        'y_trues': y_trues,
        'y_preds': y_preds,
        'y_probs': y_probs,
        'fold_metrics': fold_metrics,
        'mean_metrics': mean_metrics,
        'std_metrics': std_metrics,
    }


def run_all_baselines(X, y, folds: np.ndarray, rng: np.random.Generator, mtry=None,
                      n_estimators=500, logistic_C=1e6, use_smote=False):
    """
    Run plain CV for both candidate kinds on the same folds.

    Returns
    -------
    dict of {model_name: cv_results_dict}
    """
    classifiers = get_classifiers(rng, mtry=mtry, n_estimators=n_estimators,
                                  logistic_C=logistic_C, use_smote=use_smote)
    all_results = {}

    for kind, pipe in classifiers.items():
        logger.info("Running %s...", kind.value)
        all_results[kind.value] = run_cv(pipe, X, y, folds)

    return all_results


# ── Nested cross-validation for unbiased model selection ─────────────────────

def run_nested_cv(X, y, rng: np.random.Generator, outer_splits=5, inner_splits=5,
                  mtry_grid=DEFAULT_MTRY_GRID, n_estimators=500, logistic_C=1e6,
                  use_smote=False, n_jobs=1):
    """
    Run nested cross-validation: the inner loop picks logistic regression or a
    tuned random forest, the outer loop scores that choice on held-out records.

    Parameters
    ----------
    X, y : pd.DataFrame, pd.Series — Transformed features and genre labels.
    rng : np.random.Generator — Drives every fold split and model seed.
    outer_splits : int — Number of outer CV folds.
    inner_splits : int — Number of inner CV folds.
    mtry_grid : sequence of int — Random-forest mtry candidates.
    n_estimators, logistic_C, use_smote, n_jobs : passed to the candidates.

    Returns
    -------
    dict with same structure as run_cv, plus:
        'outer_folds'   : array — outer fold label per record
        'test_indices'  : list of arrays — validation indices per outer fold
        'chosen_models' : list of ModelKind per outer fold
        'inner_scores'  : list of {ModelKind: inner CV accuracy} per outer fold
        'best_params'   : list of {'mtry': int} per outer fold
        'y_pred'        : array — out-of-fold prediction for every record
        'confusion_matrix' : pd.DataFrame — actual (rows) x predicted (columns)
        'accuracy'      : float
    """
    X = X.reset_index(drop=True)
    y = y.reset_index(drop=True)
    outer_folds = assign_folds(len(y), outer_splits, rng)

    y_trues, y_preds, y_probs = [], [], []
    fold_metrics, test_indices = [], []
    chosen_models, inner_scores, best_params = [], [], []
    oof_pred = np.empty(len(y), dtype=object)

    for fold_idx, train_idx, test_idx in iter_folds(outer_folds):
        X_train, X_test = X.iloc[train_idx], X.iloc[test_idx]
        y_train, y_test = y.iloc[train_idx], y.iloc[test_idx]

        # Inner loop: both candidates scored on the same inner folds
        inner_folds = assign_folds(len(train_idx), inner_splits, rng)
        selection = select_and_fit(X_train, y_train, inner_folds, rng,
                                   mtry_grid=mtry_grid, n_estimators=n_estimators,
                                   logistic_C=logistic_C, use_smote=use_smote,
                                   n_jobs=n_jobs)
        model = selection['model']

        logger.info("Outer fold %d: LR=%.4f RF=%.4f (mtry=%d) -> %s",
                    fold_idx + 1,
                    selection['scores'][ModelKind.LOGISTIC_REGRESSION],
                    selection['scores'][ModelKind.RANDOM_FOREST],
                    selection['best_mtry'], selection['kind'].value)

        y_pred = model.predict(X_test)
        y_prob = _positive_proba(model, X_test)
        oof_pred[test_idx] = y_pred

        y_trues.append(y_test.to_numpy())
        y_preds.append(y_pred)
        y_probs.append(y_prob)
        test_indices.append(test_idx)
        chosen_models.append(selection['kind'])
        inner_scores.append(selection['scores'])
        best_params.append({'mtry': selection['best_mtry']})
        fold_metrics.append(compute_metrics(y_test, y_pred, y_prob))

    mean_metrics, std_metrics = _aggregate(fold_metrics)
    cm = confusion_table(y.to_numpy(), oof_pred.astype(str), labels=LABELS)

    return {
        'y_trues': y_trues,
        'y_preds': y_preds,
        'y_probs': y_probs,
        'fold_metrics': fold_metrics,
        'mean_metrics': mean_metrics,
        'std_metrics': std_metrics,
        'outer_folds': outer_folds,
        'test_indices': test_indices,
        'chosen_models': chosen_models,
        'inner_scores': inner_scores,
        'best_params': best_params,
        'y_pred': oof_pred.astype(str),
        'confusion_matrix': cm,
        'accuracy': accuracy_from_confusion(cm),
    }


def variable_importance(model, top_n=None) -> pd.Series:
    """
    Mean decrease in impurity per predictor, sorted descending.

    ``model`` must be a fitted pipeline whose 'clf' step is a random forest.
    """
    clf = model.named_steps['clf']
    if not hasattr(clf, 'feature_importances_'):
        raise ValueError(f"{type(clf).__name__} does not expose feature importances")
    names = model.named_steps['prep'].get_feature_names_out()
    names = [n.split('__', 1)[-1] for n in names]
    importance = pd.Series(clf.feature_importances_, index=names, name='importance')
    importance = importance.sort_values(ascending=False)
    return importance.head(top_n) if top_n else importance
