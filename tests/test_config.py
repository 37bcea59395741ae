from __future__ import annotations

from pathlib import Path

import pytest

from clip_factory.config import load_settings, resolve_scoring_preset


def test_missing_config_file_yields_elite_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.scoring_preset == "elite"
    assert settings.scoring.windows.window_seconds == 8.0
    assert settings.scoring.thresholds.min_viral_score == 70
    assert settings.scoring.optimal_range == (3.0, 15.0)
    assert settings.jobs.max_attempts == 3


def test_yaml_scoring_values_layer_on_top_of_preset(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "scoring_preset: extended\n"
        "scoring:\n"
        "  thresholds:\n"
        "    min_viral_score: 65\n"
        "pipeline:\n"
        "  seed: 7\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.scoring.windows.window_seconds == 30.0
    assert settings.scoring.optimal_range == (15.0, 60.0)
    assert settings.scoring.thresholds.min_viral_score == 65
    assert settings.scoring.thresholds.loud_intensity == 0.5
    assert settings.pipeline.seed == 7


def test_environment_overrides_nested_values(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIP_FACTORY_SCORING__SELECTION__TOP_N", "3")
    monkeypatch.setenv("CLIP_FACTORY_SCORING__SELECTION__SUPPRESS_OVERLAPS", "true")
    monkeypatch.setenv("CLIP_FACTORY_STORAGE__BACKEND", "r2")

    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.scoring.selection.top_n == 3
    assert settings.scoring.selection.suppress_overlaps is True
    assert settings.storage.backend == "r2"


def test_environment_selects_scoring_preset(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIP_FACTORY_SCORING_PRESET", "extended")

    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.scoring_preset == "extended"
    assert settings.scoring.weights.base == 40


def test_unknown_preset_is_rejected() -> None:
    assert resolve_scoring_preset(" Elite ").windows.window_seconds == 8.0
    with pytest.raises(ValueError, match="Unsupported scoring preset"):
        resolve_scoring_preset("legendary")


def test_explicit_preset_keeps_yaml_scoring_overrides(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIP_FACTORY_SCORING_PRESET", "elite")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "scoring_preset: elite\n"
        "scoring:\n"
        "  selection:\n"
        "    suppress_overlaps: true\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path, scoring_preset="Extended")

    assert settings.scoring_preset == "extended"
    assert settings.scoring.windows.window_seconds == 30.0
    assert settings.scoring.selection.top_n == 10
    assert settings.scoring.selection.suppress_overlaps is True
