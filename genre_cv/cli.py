"""
cli.py — Command-line entry point for the Rock vs Country nested CV study.

Usage:
    genre-cv --dataset data/music_genre.csv --output-dir outputs
"""

import argparse
import json
import logging
from pathlib import Path

import matplotlib.pyplot as plt

from genre_cv.config import METRICS_FILENAME, TARGET_COL, AnalysisConfig
from genre_cv.data_utils import clean_tracks, get_X_y, load_tracks, summarize_tracks
from genre_cv.eval_utils import (
    compute_cv_metrics, plot_confusion_matrix, print_confusion_matrix,
    print_cv_summary, results_to_dataframe,
)
from genre_cv.pipeline_utils import (
    ModelKind, assign_folds, build_candidate, run_all_baselines, run_nested_cv,
    select_and_fit, tune_mtry, variable_importance,
)
from genre_cv.plot_utils import (
    plot_category_bars, plot_genre_boxplots, plot_histograms, plot_variable_importance,
)
from genre_cv.transform_utils import skewness_table, transform_features

logger = logging.getLogger(__name__)

_DEFAULT_DATASET = Path('data/music_genre.csv')
_DEFAULT_OUTPUT_DIR = Path('outputs')


def run_analysis(config: AnalysisConfig) -> dict:
    """
    Clean, transform, tune, compare and nest-validate, printing the report as it goes.

    Parameters
    ----------
    config : AnalysisConfig

    Returns
    -------
    dict with keys 'tracks', 'transformed', 'transform_params', 'tuning',
    'comparison', 'nested', 'final' and 'importance'.
    """
    rng = config.rng()

    raw = load_tracks(config.dataset_path)
    tracks = clean_tracks(raw, rng, n_imputations=config.n_imputations,
                          max_iter=config.imputation_iter, donors=config.pmm_donors)

    print('\nSummary statistics (cleaned):')
    print(tracks.describe().T.round(3).to_string())
    print('\nPer-genre means:')
    print(summarize_tracks(tracks).round(3).to_string())

    transformed, transformer = transform_features(tracks)
    print('\nSkewness before / after transforming:')
    print(skewness_table(tracks, transformed).to_string())

    X, y = get_X_y(transformed)
    model_opts = dict(n_estimators=config.n_estimators, use_smote=config.use_smote)

    # mtry tuned on the whole table before the nested evaluation
    folds = assign_folds(len(y), config.inner_splits, rng)
    tuning = tune_mtry(X, y, folds, rng, mtry_grid=config.mtry_grid,
                       n_jobs=config.n_jobs, **model_opts)
    print('\nRandom forest CV accuracy by mtry:')
    print(tuning['scores'].round(4).to_string())
    print(f"Best mtry: {tuning['best_mtry']}")

    baselines = run_all_baselines(X, y, folds, rng, mtry=tuning['best_mtry'],
                                  logistic_C=config.logistic_C, **model_opts)
    for name, res in baselines.items():
        print_cv_summary(name, compute_cv_metrics(res['y_trues'], res['y_preds'], res['y_probs']))
    comparison = results_to_dataframe({name: res['mean_metrics'] for name, res in baselines.items()})

    nested = run_nested_cv(X, y, rng, outer_splits=config.outer_splits,
                           inner_splits=config.inner_splits, mtry_grid=config.mtry_grid,
                           logistic_C=config.logistic_C, n_jobs=config.n_jobs, **model_opts)
    print('Nested CV model choice per outer fold:')
    for i, (kind, params) in enumerate(zip(nested['chosen_models'], nested['best_params']), 1):
        print(f"  fold {i}: {kind.value} (mtry={params['mtry']})")
    print_confusion_matrix(nested['confusion_matrix'], title='Nested CV Confusion Matrix')

    final = select_and_fit(X, y, folds, rng, mtry_grid=config.mtry_grid,
                           logistic_C=config.logistic_C, n_jobs=config.n_jobs, **model_opts)
    forest = final['model']
    if final['kind'] is not ModelKind.RANDOM_FOREST:
        forest = build_candidate(ModelKind.RANDOM_FOREST, rng, mtry=final['best_mtry'],
                                 **model_opts).fit(X, y)
    importance = variable_importance(forest)
    print(f"Final model: {final['kind'].value}")
    print('\nVariable importance:')
    print(importance.round(4).to_string())

    result = {
        'tracks': tracks,
        'transformed': transformed,
        'transform_params': transformer.fitted_params(),
        'tuning': tuning,
        'comparison': comparison,
        'nested': nested,
        'final': final,
        'importance': importance,
    }

    if config.make_plots:
        save_figures(result, config.output_dir)

    return result


def save_figures(result: dict, output_dir) -> None:
    """Write the exploratory, importance and confusion-matrix figures as PNGs."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    nested = result['nested']

    figures = [
        plot_histograms(result['tracks'], save_path=output_path / 'histograms_clean.png'),
        plot_histograms(result['transformed'], title='Transformed Feature Distributions',
                        save_path=output_path / 'histograms_transformed.png'),
        plot_genre_boxplots(result['tracks'], save_path=output_path / 'boxplots_by_genre.png'),
        plot_category_bars(result['tracks'], save_path=output_path / 'categories_by_genre.png'),
        plot_variable_importance(result['importance'],
                                 save_path=output_path / 'variable_importance.png'),
        plot_confusion_matrix(result['tracks'][TARGET_COL].to_numpy(), nested['y_pred'],
                              title='Nested CV Confusion Matrix',
                              save_path=output_path / 'confusion_matrix.png').get_figure(),
    ]
    for fig in figures:
        plt.close(fig)
    logger.info('Figures saved to %s', output_path)


def save_metrics(result: dict, output_dir) -> Path:
    """
    Write the nested CV results, tuning scores and importances to metrics.json.

    Parameters
    ----------
    result : dict — Output of run_analysis.
    output_dir : str or Path

    Returns
    -------
    Path of the written file.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    nested = result['nested']

    payload = {
        'accuracy': nested['accuracy'],
        'confusion_matrix': {actual: {pred: int(n) for pred, n in row.items()}
                             for actual, row in nested['confusion_matrix'].iterrows()},
        'chosen_models': [kind.value for kind in nested['chosen_models']],
        'inner_scores': [{kind.value: float(s) for kind, s in scores.items()}
                         for scores in nested['inner_scores']],
        'best_params': nested['best_params'],
        'mean_metrics': {k: float(v) for k, v in nested['mean_metrics'].items()},
        'tuned_mtry': result['tuning']['best_mtry'],
        'mtry_scores': {str(m): float(s) for m, s in result['tuning']['scores'].items()},
        'final_model': result['final']['kind'].value,
        'variable_importance': {k: float(v) for k, v in result['importance'].items()},
        'baseline_comparison': result['comparison'].to_dict(orient='index'),
    }
    metrics_file = output_path / METRICS_FILENAME
    with metrics_file.open('w', encoding='utf-8') as fp:
        json.dump(payload, fp, indent=2, default=float)
    return metrics_file


def _parse_mtry(value: str) -> tuple:
    return tuple(int(v) for v in value.split(',') if v.strip())


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Compare logistic regression and random forest for Rock vs Country with nested CV.')
    parser.add_argument('--dataset', type=Path, default=_DEFAULT_DATASET, help='Path to the music-feature CSV')
    parser.add_argument('--output-dir', type=Path, default=_DEFAULT_OUTPUT_DIR, help='Directory for figures and metrics.json')
    parser.add_argument('--seed', type=int, default=1, help='Seed for folds, imputation and model randomness')
    parser.add_argument('--outer-splits', type=int, default=5, help='Outer CV folds')
    parser.add_argument('--inner-splits', type=int, default=5, help='Inner CV folds')
    parser.add_argument('--mtry-grid', type=_parse_mtry, default=(2, 3, 4, 5), help='Comma-separated mtry candidates')
    parser.add_argument('--n-estimators', type=int, default=500, help='Trees per random forest')
    parser.add_argument('--logistic-c', type=float, default=1e6, help='Inverse penalty strength for logistic regression')
    parser.add_argument('--imputations', type=int, default=5, help='Number of PMM completed datasets to draw')
    parser.add_argument('--imputation-iter', type=int, default=5, help='Chained-equation rounds per imputation')
    parser.add_argument('--pmm-donors', type=int, default=5, help='Donor pool size for predictive mean matching')
    parser.add_argument('--smote', action='store_true', help='Oversample the minority genre inside each fold')
    parser.add_argument('--n-jobs', type=int, default=1, help='Parallelism for grid search')
    parser.add_argument('--no-plots', action='store_true', help='Skip saving figures')
    parser.add_argument('--log-level', default='INFO', help='Logging level')
    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Parse arguments, configure logging, run the study and save metrics.json."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    config = AnalysisConfig(
        dataset_path=args.dataset,
        output_dir=args.output_dir,
        seed=args.seed,
        outer_splits=args.outer_splits,
        inner_splits=args.inner_splits,
        mtry_grid=args.mtry_grid,
        n_estimators=args.n_estimators,
        logistic_C=args.logistic_c,
        n_imputations=args.imputations,
        imputation_iter=args.imputation_iter,
        pmm_donors=args.pmm_donors,
        use_smote=args.smote,
        n_jobs=args.n_jobs,
        make_plots=not args.no_plots,
    )
    result = run_analysis(config)
    metrics_file = save_metrics(result, config.output_dir)
    print(f"Nested CV accuracy: {result['nested']['accuracy'] * 100:.2f}%")
    print(f"Metrics saved to {metrics_file}")


if __name__ == '__main__':
    main()
