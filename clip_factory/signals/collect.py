from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from clip_factory.config import ExtractionSettings
from clip_factory.errors import ExtractionFailure
from clip_factory.ingest.extract_audio import extract_audio_track
from clip_factory.models import LoudnessEvent, MotionSample, SceneChangeEvent, SignalSet
from clip_factory.signals.loudness import extract_loudness
from clip_factory.signals.motion import detect_scene_changes, extract_motion

logger = logging.getLogger(__name__)

Extractor = Callable[[], list[Any]]


def collect_signals(
    vod_path: str,
    duration: float,
    settings: ExtractionSettings | None = None,
    cache_dir: str = "data/cache",
    extractors: Mapping[str, Extractor] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SignalSet:
    """Run the loudness and motion extractors concurrently and assemble a signal set.

    Scene changes are derived from the motion samples. A series whose extractor failed
    or timed out is left as ``None`` so the engine simulates it.
    """

    resolved = settings or ExtractionSettings()
    jobs = dict(extractors) if extractors is not None else default_extractors(vod_path, cache_dir, resolved)
    results = run_extractors(jobs, resolved, sleep=sleep)

    motion = results.get("motion")
    scene_changes = results.get("scene_changes")
    if scene_changes is None and motion is not None and "scene_changes" not in jobs:
        scene_changes = detect_scene_changes(motion)

    return SignalSet(
        duration=duration,
        loudness=results.get("loudness"),
        scene_changes=scene_changes,
        motion=motion,
    )


def default_extractors(vod_path: str, cache_dir: str, settings: ExtractionSettings) -> dict[str, Extractor]:
    def _loudness() -> list[LoudnessEvent]:
        audio = extract_audio_track(vod_path=vod_path, cache_dir=cache_dir)
        return extract_loudness(audio["audio_path"], loud_db_threshold=settings.loud_db_threshold)

    def _motion() -> list[MotionSample]:
        return extract_motion(
            vod_path,
            analysis_fps=settings.analysis_fps,
            processing_width=settings.processing_width,
        )

    return {"loudness": _loudness, "motion": _motion}


def run_extractors(
    extractors: Mapping[str, Extractor],
    settings: ExtractionSettings,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, list[Any] | None]:
    if not extractors:
        return {}

    with ThreadPoolExecutor(max_workers=len(extractors), thread_name_prefix="signals") as executor:
        futures = {
            name: executor.submit(_run_with_retry, name, extractor, settings, sleep)
            for name, extractor in extractors.items()
        }
        return {name: future.result() for name, future in futures.items()}


def _run_with_retry(
    name: str,
    extractor: Extractor,
    settings: ExtractionSettings,
    sleep: Callable[[float], None],
) -> list[Any] | None:
    attempts = settings.max_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            series = _run_once(name, extractor, settings.timeout_seconds)
        except ExtractionFailure as exc:
            logger.warning("%s (attempt %d/%d)", exc, attempt, attempts)
            if attempt < attempts:
                sleep(settings.backoff_seconds * (2 ** (attempt - 1)))
            continue
        logger.debug("%s extractor produced %d entries", name, len(series))
        return series

    logger.warning("Falling back to simulated %s features", name)
    return None


def _run_once(name: str, extractor: Extractor, timeout_seconds: float) -> list[Any]:
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"extract-{name}")
    future = executor.submit(extractor)
    try:
        return list(future.result(timeout=timeout_seconds))
    except FutureTimeoutError as exc:
        future.cancel()
        raise ExtractionFailure(name, f"timed out after {timeout_seconds:.1f}s") from exc
    except ExtractionFailure:
        raise
    except Exception as exc:
        raise ExtractionFailure(name, str(exc) or type(exc).__name__) from exc
    finally:
        # a hung extractor thread must not block the caller
        executor.shutdown(wait=False)


def signal_set_to_payload(signals: SignalSet) -> dict[str, Any]:
    return {
        "duration": signals.duration,
        "loudness": None
        if signals.loudness is None
        else [{"time": event.time, "intensity": event.intensity} for event in signals.loudness],
        "scene_changes": None
        if signals.scene_changes is None
        else [{"time": event.time} for event in signals.scene_changes],
        "motion": None
        if signals.motion is None
        else [{"time": sample.time, "motion_score": sample.motion_score} for sample in signals.motion],
    }


def signal_set_from_payload(payload: Mapping[str, Any]) -> SignalSet:
    """Load a signal set from JSON; absent or null series stay missing."""

    loudness = payload.get("loudness")
    scene_changes = payload.get("scene_changes")
    motion = payload.get("motion")
    return SignalSet(
        duration=float(payload["duration"]),
        loudness=None
        if loudness is None
        else [LoudnessEvent(time=float(row["time"]), intensity=float(row["intensity"])) for row in loudness],
        scene_changes=None
        if scene_changes is None
        else [SceneChangeEvent(time=float(row["time"])) for row in scene_changes],
        motion=None
        if motion is None
        else [MotionSample(time=float(row["time"]), motion_score=float(row["motion_score"])) for row in motion],
    )
