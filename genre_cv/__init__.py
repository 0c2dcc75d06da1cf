"""
genre_cv — Rock vs Country classification with nested cross-validation.

Quick imports:
    from genre_cv.data_utils import load_tracks, clean_tracks, get_X_y, FEATURE_COLS
    from genre_cv.transform_utils import transform_features, skewness_table
    from genre_cv.pipeline_utils import assign_folds, tune_mtry, run_cv, run_nested_cv
    from genre_cv.eval_utils import compute_metrics, confusion_table, plot_confusion_matrix
"""
