from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "CLIP_FACTORY_"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class WindowSettings(_FrozenModel):
    window_seconds: float = 8.0
    overlap_seconds: float = 1.0


class DurationSettings(_FrozenModel):
    min_clip_seconds: float = 3.0
    max_clip_seconds: float = 30.0
    optimal_min_seconds: float = 3.0
    optimal_max_seconds: float = 15.0


class ThresholdSettings(_FrozenModel):
    loud_intensity: float = 0.5
    shock_intensity: float = 0.8
    high_motion: float = 60.0
    min_viral_score: int = 70


class TimingSettings(_FrozenModel):
    context_buffer_seconds: float = 1.0
    aftermath_seconds: float = 2.0
    widen_step_seconds: float = 0.5
    optimal_timing_score: float = 1.0
    fallback_timing_score: float = 0.5


class ScoreWeights(_FrozenModel):
    base: int = 30
    shock_disbelief: int = 25
    escalation: int = 20
    timing_perfection: int = 15
    absurdity: int = 15
    status_flex: int = 15
    relatability: int = 10
    trigger_stack: int = 10
    timing: int = 10
    loud_audio: int = 10
    high_motion: int = 8
    scene_change: int = 5
    optimal_duration: int = 15
    good_duration: int = 8
    long_duration_penalty: int = -10
    reaction: int = 10
    funny: int = 8


class SelectionSettings(_FrozenModel):
    top_n: int = 15
    suppress_overlaps: bool = False
    overlap_ratio: float = 0.5


class SimulationSettings(_FrozenModel):
    loud_cutoff: float = 0.65
    scene_change_cutoff: float = 0.6
    high_motion_cutoff: float = 0.55


class ScoringConfig(_FrozenModel):
    """Every threshold, bound and weight the clip engine reads."""

    windows: WindowSettings = Field(default_factory=WindowSettings)
    durations: DurationSettings = Field(default_factory=DurationSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)

    @property
    def optimal_range(self) -> tuple[float, float]:
        return (self.durations.optimal_min_seconds, self.durations.optimal_max_seconds)


SCORING_PRESETS: dict[str, ScoringConfig] = {
    "elite": ScoringConfig(),
    "extended": ScoringConfig(
        windows=WindowSettings(window_seconds=30.0, overlap_seconds=5.0),
        durations=DurationSettings(optimal_min_seconds=15.0, optimal_max_seconds=60.0),
        thresholds=ThresholdSettings(min_viral_score=61),
        weights=ScoreWeights(base=40),
        selection=SelectionSettings(top_n=10),
    ),
}


def resolve_scoring_preset(name: str) -> ScoringConfig:
    normalized = name.lower().strip()
    if normalized not in SCORING_PRESETS:
        msg = (
            f"Unsupported scoring preset '{name}'. "
            f"Expected one of: {', '.join(sorted(SCORING_PRESETS))}."
        )
        raise ValueError(msg)
    return SCORING_PRESETS[normalized]


class PipelineSettings(BaseModel):
    output_dir: Path = Path("data/outputs")
    cache_dir: Path = Path("data/cache")
    seed: int | None = None


class ExtractionSettings(BaseModel):
    timeout_seconds: float = 30.0
    max_retries: int = 1
    backoff_seconds: float = 1.0
    analysis_fps: float = 2.0
    processing_width: int = 320
    loud_db_threshold: float = -20.0


class JobSettings(BaseModel):
    queue_path: Path = Path("data/jobs/processing_jobs.jsonl")
    submit_top_n: int = 5
    max_attempts: int = 3
    backoff_seconds: float = 0.5


class StorageSettings(BaseModel):
    backend: str = "local"
    local_root: Path = Path("data/storage")
    public_base_url: str | None = None
    bucket: str = "clip-factory"
    endpoint_url: str | None = None
    region: str = "auto"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str | None = None


class Settings(BaseModel):
    scoring_preset: str = "elite"
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None, scoring_preset: str | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides.

    ``scoring_preset`` selects the base scoring profile; values under ``scoring`` in the
    YAML file are layered on top of it. An explicit ``scoring_preset`` argument wins over
    both the YAML file and the environment.
    """

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}

    preset_name = (
        scoring_preset
        or os.getenv(f"{ENV_PREFIX}SCORING_PRESET")
        or raw_config.get("scoring_preset", "elite")
    )
    preset = resolve_scoring_preset(str(preset_name))
    raw_config["scoring_preset"] = str(preset_name).lower().strip()
    raw_config["scoring"] = _deep_merge(preset.model_dump(mode="python"), raw_config.get("scoring") or {})

    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG" or (scoring_preset and suffix == "SCORING_PRESET"):
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
