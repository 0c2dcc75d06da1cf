from __future__ import annotations

import dataclasses
import json
from pathlib import Path

import pytest

from conftest import make_tracks
from genre_cv.cli import _parse_args, main, run_analysis
from genre_cv.config import METRICS_FILENAME, AnalysisConfig

FAST_ARGS = ["--n-estimators", "10", "--outer-splits", "3", "--inner-splits", "3",
             "--imputations", "2", "--imputation-iter", "2"]


def test_parse_args_mtry_grid():
    args = _parse_args(["--mtry-grid", "2,4", "--smote", "--no-plots"])
    assert args.mtry_grid == (2, 4)
    assert args.smote is True
    assert args.no_plots is True


def test_config_rejects_single_fold(tmp_path: Path):
    with pytest.raises(ValueError):
        AnalysisConfig(dataset_path=tmp_path / "x.csv", outer_splits=1)


def test_config_documents_every_setting():
    doc = AnalysisConfig.__doc__
    for field in dataclasses.fields(AnalysisConfig):
        assert field.name in doc


def test_main_writes_metrics_and_figures(tmp_path: Path, capsys) -> None:
    dataset = tmp_path / "music_genre.csv"
    make_tracks(90, seed=2, negative_durations=6).to_csv(dataset, index=False)
    out_dir = tmp_path / "out"

    main(["--dataset", str(dataset), "--output-dir", str(out_dir), "--seed", "3", *FAST_ARGS])

    stdout = capsys.readouterr().out
    assert "Nested CV Confusion Matrix" in stdout
    assert "Nested CV accuracy:" in stdout

    payload = json.loads((out_dir / METRICS_FILENAME).read_text(encoding="utf-8"))
    assert 0.0 <= payload["accuracy"] <= 1.0
    assert len(payload["chosen_models"]) == 3
    assert set(payload["chosen_models"]) <= {"Logistic Regression", "Random Forest"}
    counts = payload["confusion_matrix"]
    assert sum(sum(row.values()) for row in counts.values()) == 90
    assert payload["tuned_mtry"] in (2, 3, 4, 5)
    assert set(payload["baseline_comparison"]) == {"Logistic Regression", "Random Forest"}

    for name in ("histograms_clean.png", "boxplots_by_genre.png", "categories_by_genre.png",
                 "variable_importance.png", "confusion_matrix.png"):
        assert (out_dir / name).exists()


def test_run_analysis_is_reproducible(tmp_path: Path) -> None:
    dataset = tmp_path / "music_genre.csv"
    make_tracks(100, seed=4, negative_durations=4).to_csv(dataset, index=False)
    config = AnalysisConfig(dataset_path=dataset, output_dir=tmp_path / "out", seed=5,
                            n_estimators=10, outer_splits=3, inner_splits=3,
                            n_imputations=2, imputation_iter=2, make_plots=False)

    first = run_analysis(config)
    second = run_analysis(config)

    assert (first["tracks"]["duration_ms"] == second["tracks"]["duration_ms"]).all()
    assert first["nested"]["chosen_models"] == second["nested"]["chosen_models"]
    assert first["nested"]["confusion_matrix"].equals(second["nested"]["confusion_matrix"])
    assert first["importance"].index[0] == second["importance"].index[0]
