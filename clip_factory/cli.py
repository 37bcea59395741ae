from __future__ import annotations

import json
import logging
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from clip_factory.config import ScoringConfig, Settings, load_settings
from clip_factory.ingest.extract_audio import extract_audio_track
from clip_factory.ingest.probe import metadata_from_probe, probe_media
from clip_factory.jobs.queue import JsonlJobQueue, SubmissionResult, submit_candidates
from clip_factory.logging_config import configure_logging
from clip_factory.models import ClipCandidate, SignalSet
from clip_factory.pipeline_candidate_builder import CandidateBuildResult, build_candidates_from_signals
from clip_factory.propose.exporter import export_final_outputs, load_candidates
from clip_factory.render.cutter import EffectsConfig, cut_clip
from clip_factory.signals.collect import collect_signals, signal_set_from_payload, signal_set_to_payload
from clip_factory.signals.simulation import make_random_source
from clip_factory.storage.object_store import build_object_store, generate_storage_key

app = typer.Typer(help="Viral clip factory: score, cut and queue short-form clips from long videos.")
config_app = typer.Typer(help="Configuration commands.")
ingest_app = typer.Typer(help="Ingest commands.")
signals_app = typer.Typer(help="Signal extraction commands.")
propose_app = typer.Typer(help="Candidate scoring, export and review commands.")
render_app = typer.Typer(help="Clip rendering commands.")
jobs_app = typer.Typer(help="Processing job commands.")

app.add_typer(config_app, name="config")
app.add_typer(ingest_app, name="ingest")
app.add_typer(signals_app, name="signals")
app.add_typer(propose_app, name="propose")
app.add_typer(render_app, name="render")
app.add_typer(jobs_app, name="jobs")

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMPTY_RESULT_MESSAGE = "no viral-worthy clips found"

CONFIG_OPTION = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="CLIP_FACTORY_CONFIG",
    help="Path to YAML configuration file.",
)
PRESET_OPTION = typer.Option(None, "--preset", help="Scoring preset override: elite or extended.")


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _load_cached_payload(path: Path, label: str, step_index: int, total_steps: int) -> dict[str, Any] | None:
    if not path.exists():
        return None

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to load cached payload at %s (%s); recomputing step.", path, exc)
        return None

    typer.echo(f"[{step_index}/{total_steps}] {label} cached: {path}", err=True)
    return payload


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _scoring_config(settings: Settings, preset: str | None, config_path: Path) -> ScoringConfig:
    if preset:
        return load_settings(config_path, scoring_preset=preset).scoring
    return settings.scoring


def _fail(exc: Exception, context: str) -> typer.Exit:
    logger.error("%s: %s", context, exc)
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


def _result_payload(result: CandidateBuildResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": "empty" if result.is_empty else "ok",
        "clip_count": len(result.candidates),
        "windows_considered": result.windows_considered,
        "eligible_count": result.eligible_count,
        "simulated": result.simulated,
    }
    if result.is_empty:
        payload["message"] = EMPTY_RESULT_MESSAGE
    return payload


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@ingest_app.command("probe")
def probe(vod_path: str, config_path: Path = CONFIG_OPTION) -> None:
    """Probe a video with ffprobe and print normalized metadata."""

    settings = _bootstrap(config_path)
    try:
        result = probe_media(vod_path=vod_path, cache_dir=str(settings.pipeline.cache_dir))
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Probe failed") from exc
    logger.info("Probe completed for %s", vod_path)
    typer.echo(json.dumps(result, indent=2))


@ingest_app.command("extract-audio")
def extract_audio(vod_path: str, config_path: Path = CONFIG_OPTION) -> None:
    """Extract the first audio stream of a video to mono WAV in the ingest cache."""

    settings = _bootstrap(config_path)
    try:
        result = extract_audio_track(vod_path=vod_path, cache_dir=str(settings.pipeline.cache_dir))
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Audio extraction failed") from exc
    logger.info("Audio extraction completed for %s", vod_path)
    typer.echo(json.dumps(result, indent=2))


@signals_app.command("extract")
def extract_signals(
    vod_path: str,
    config_path: Path = CONFIG_OPTION,
    output_path: Path | None = typer.Option(None, "--output", "-o", help="Where to write the signal set JSON."),
) -> None:
    """Run loudness and motion extraction and write a signal set artifact."""

    settings = _bootstrap(config_path)
    resolved_vod_path = Path(vod_path).expanduser().resolve()
    try:
        probe_result = probe_media(vod_path=str(resolved_vod_path), cache_dir=str(settings.pipeline.cache_dir))
        duration = metadata_from_probe(probe_result).duration
        signals = collect_signals(
            vod_path=str(resolved_vod_path),
            duration=duration,
            settings=settings.extraction,
            cache_dir=str(settings.pipeline.cache_dir),
        )
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Signal extraction failed") from exc

    target = output_path or _signals_cache_path(settings, resolved_vod_path)
    _write_signals(target, signals)
    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "signals_path": str(target),
                "duration": duration,
                "missing_series": signals.missing_series,
            },
            indent=2,
        )
    )


@propose_app.command("build")
def build_candidates(
    signals_path: Path = typer.Argument(..., help="Path to a signal set JSON artifact."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Directory for JSON/CSV/review outputs."),
    basename: str = typer.Option("candidates_final", help="Base filename for exported artifacts."),
    vod_path: str | None = typer.Option(None, help="Optional source video path for ffmpeg command generation."),
    top_n: int | None = typer.Option(None, help="Maximum number of clips to keep (defaults to the preset)."),
    seed: int | None = typer.Option(None, help="Random seed for simulated features and metadata."),
    with_metadata: bool = typer.Option(True, help="Generate titles, captions and hashtags for selected clips."),
    preset: str | None = PRESET_OPTION,
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Score candidate clips from a cached signal set and export them."""

    settings = _bootstrap(config_path)
    try:
        scoring = _scoring_config(settings, preset, config_path)
        signals = signal_set_from_payload(json.loads(signals_path.read_text(encoding="utf-8")))
        result = build_candidates_from_signals(
            signals,
            scoring,
            make_random_source(seed if seed is not None else settings.pipeline.seed),
            top_n=top_n,
            with_metadata=with_metadata,
        )
        exported = export_final_outputs(
            result.candidates,
            output_dir or settings.pipeline.output_dir,
            basename=basename,
            vod_path=vod_path,
        )
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Candidate build failed") from exc

    typer.echo(json.dumps({**_result_payload(result), **{k: str(v) for k, v in exported.items()}}, indent=2))


@propose_app.command("review")
def review_candidates(
    candidates_path: Path = typer.Argument(..., help="Path to candidate JSON contract."),
    output_dir: Path = typer.Option(Path("data/outputs"), "--output-dir", "-o", help="Directory for JSON/CSV/review outputs."),
    basename: str = typer.Option("candidates_final", help="Base filename for exported artifacts."),
    vod_path: str | None = typer.Option(None, help="Optional source video path for ffmpeg command generation."),
    include_ffmpeg_commands: bool = typer.Option(True, help="Include ffmpeg clip commands in review manifest when vod_path is provided."),
    preset: str | None = PRESET_OPTION,
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Export final JSON/CSV contract artifacts and review manifest."""

    settings = _bootstrap(config_path)
    try:
        scoring = _scoring_config(settings, preset, config_path)
        candidates = load_candidates(candidates_path, optimal_range=scoring.optimal_range)
        exported = export_final_outputs(
            candidates,
            output_dir,
            basename=basename,
            vod_path=vod_path,
            include_ffmpeg_commands=include_ffmpeg_commands,
        )
    except (OSError, ValueError) as exc:
        raise _fail(exc, "Review export failed") from exc
    typer.echo(
        json.dumps(
            {key: str(path) for key, path in exported.items()},
            indent=2,
        )
    )


@render_app.command("clip")
def render_clip(
    vod_path: str,
    start: float = typer.Option(..., help="Clip start time in seconds."),
    end: float = typer.Option(..., help="Clip end time in seconds."),
    output_path: Path = typer.Option(..., "--output", "-o", help="Rendered clip path."),
    caption: str | None = typer.Option(None, help="Burn this caption into the clip."),
    transitions: bool = typer.Option(False, help="Add a punch-in zoom, saturation boost and short fade-in."),
    enhance_audio: bool = typer.Option(False, help="Band-pass and loudness-normalize the audio track."),
    quality: str = typer.Option("high", help="Video quality: high, medium or low."),
    upload_user_id: str | None = typer.Option(None, "--upload-for", help="Upload the clip to storage for this user id."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Cut one clip with ffmpeg and optionally upload it to object storage."""

    settings = _bootstrap(config_path)
    try:
        effects = EffectsConfig(
            add_captions=bool(caption),
            caption_text=caption or "",
            add_transitions=transitions,
            enhance_audio=enhance_audio,
            video_quality=quality,
        )
        rendered = cut_clip(vod_path, start, end, output_path, effects)
        payload: dict[str, Any] = {"status": "ok", "output_path": str(rendered)}
        if upload_user_id:
            store = build_object_store(settings.storage)
            key = generate_storage_key(upload_user_id, rendered.stem, rendered.suffix or "mp4")
            payload["storage_key"] = key
            payload["url"] = store.put(key, rendered.read_bytes(), "video/mp4")
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Render failed") from exc

    typer.echo(json.dumps(payload, indent=2))


@jobs_app.command("submit")
def submit_jobs(
    candidates_path: Path = typer.Argument(..., help="Path to candidate JSON contract."),
    user_id: str = typer.Option(..., help="Owner of the processing jobs."),
    source_url: str = typer.Option(..., help="URL or path of the source video."),
    stream_id: str | None = typer.Option(None, help="Optional stream id to link the jobs to."),
    top_n: int | None = typer.Option(None, help="Number of clips to queue (defaults to jobs.submit_top_n)."),
    preset: str | None = PRESET_OPTION,
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Queue processing jobs for the top candidates of an exported contract."""

    settings = _bootstrap(config_path)
    try:
        scoring = _scoring_config(settings, preset, config_path)
        candidates = load_candidates(candidates_path, optimal_range=scoring.optimal_range)
        result = _submit(settings, candidates, user_id=user_id, source_url=source_url, stream_id=stream_id, top_n=top_n)
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Job submission failed") from exc

    typer.echo(json.dumps(result.to_payload(), indent=2))
    if result.status == "failed":
        typer.echo("Error: no clip could be queued.", err=True)
        raise typer.Exit(code=1)


@app.command("analyze")
def analyze(
    vod_path: str,
    preset: str | None = PRESET_OPTION,
    top_n: int | None = typer.Option(None, help="Maximum number of clips to keep (defaults to the preset)."),
    seed: int | None = typer.Option(None, help="Random seed for simulated features and metadata."),
    submit_for: str | None = typer.Option(None, "--submit-for", help="Queue processing jobs for this user id."),
    stream_id: str | None = typer.Option(None, help="Optional stream id to link queued jobs to."),
    use_cache: bool = typer.Option(True, help="Reuse existing cached step artifacts when available."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Run the complete flow from a video file: probe, signals, scoring, export and jobs."""

    settings = _bootstrap(config_path)
    resolved_vod_path = Path(vod_path).expanduser().resolve()
    if not resolved_vod_path.exists():
        raise FileNotFoundError(f"Video file not found: {resolved_vod_path}")

    total_steps = 5 if submit_for else 4
    cache_root = Path(settings.pipeline.cache_dir).expanduser().resolve()
    ingest_dir = cache_root / "ingest" / resolved_vod_path.stem
    submission: SubmissionResult | None = None

    try:
        scoring = _scoring_config(settings, preset, config_path)

        probe_result = _load_cached_payload(ingest_dir / "metadata.json", "Probe media", 1, total_steps) if use_cache else None
        if probe_result is None:
            probe_result = _run_with_progress(
                1,
                total_steps,
                "Probe media",
                lambda: probe_media(vod_path=str(resolved_vod_path), cache_dir=str(settings.pipeline.cache_dir)),
            )
        duration = metadata_from_probe(probe_result).duration

        signals_path = _signals_cache_path(settings, resolved_vod_path)
        signals_payload = _load_cached_payload(signals_path, "Extract signals", 2, total_steps) if use_cache else None
        if signals_payload is not None:
            signals = signal_set_from_payload(signals_payload)
        else:
            signals = _run_with_progress(
                2,
                total_steps,
                "Extract signals",
                lambda: collect_signals(
                    vod_path=str(resolved_vod_path),
                    duration=duration,
                    settings=settings.extraction,
                    cache_dir=str(settings.pipeline.cache_dir),
                ),
            )
            _write_signals(signals_path, signals)

        rng = make_random_source(seed if seed is not None else settings.pipeline.seed)
        result = _run_with_progress(
            3,
            total_steps,
            "Score clip candidates",
            lambda: build_candidates_from_signals(signals, scoring, rng, top_n=top_n, with_metadata=True),
        )

        exported = _run_with_progress(
            4,
            total_steps,
            "Export outputs",
            lambda: export_final_outputs(
                result.candidates,
                settings.pipeline.output_dir,
                basename=f"{resolved_vod_path.stem}_candidates",
                vod_path=str(resolved_vod_path),
                include_ffmpeg_commands=True,
            ),
        )

        if submit_for and not result.is_empty:
            submission = _run_with_progress(
                5,
                total_steps,
                "Queue processing jobs",
                lambda: _submit(
                    settings,
                    result.candidates,
                    user_id=submit_for,
                    source_url=str(resolved_vod_path),
                    stream_id=stream_id,
                    top_n=None,
                ),
            )
    except (OSError, RuntimeError, ValueError) as exc:
        raise _fail(exc, "Pipeline failed") from exc

    payload = {
        **_result_payload(result),
        "vod_path": str(resolved_vod_path),
        "duration": duration,
        "missing_series": signals.missing_series,
        "signals_path": str(signals_path),
        "outputs": {k: str(v) for k, v in exported.items()},
    }
    if submission is not None:
        payload["jobs"] = submission.to_payload()
        if submission.status != "ok":
            payload["status"] = submission.status
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _submit(
    settings: Settings,
    candidates: list[ClipCandidate],
    *,
    user_id: str,
    source_url: str,
    stream_id: str | None,
    top_n: int | None,
) -> SubmissionResult:
    return submit_candidates(
        JsonlJobQueue(settings.jobs.queue_path),
        candidates,
        user_id=user_id,
        source_video_url=source_url,
        stream_id=stream_id,
        top_n=settings.jobs.submit_top_n if top_n is None else top_n,
        max_attempts=settings.jobs.max_attempts,
        backoff_seconds=settings.jobs.backoff_seconds,
    )


def _signals_cache_path(settings: Settings, vod_path: Path) -> Path:
    return Path(settings.pipeline.cache_dir).expanduser().resolve() / "signals" / vod_path.stem / "signals.json"


def _write_signals(path: Path, signals: SignalSet) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(signal_set_to_payload(signals), indent=2), encoding="utf-8")


if __name__ == "__main__":
    app()
