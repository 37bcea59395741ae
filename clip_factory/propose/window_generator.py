from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import TypeVar

from clip_factory.config import ScoringConfig
from clip_factory.errors import DurationTooShortError, InvalidTimeRangeError
from clip_factory.models import (
    ClipCandidate,
    FeatureBag,
    LoudnessEvent,
    MotionSample,
    SceneChangeEvent,
    SignalSet,
)
from clip_factory.signals.simulation import RandomSource, make_random_source, sample_window_signals

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", LoudnessEvent, SceneChangeEvent, MotionSample)


def generate_candidate_windows(
    signals: SignalSet,
    config: ScoringConfig | None = None,
    rng: RandomSource | None = None,
) -> list[ClipCandidate]:
    """Slide a window over the timeline and summarize each step into a candidate seed.

    Seeds carry time range, peak moment and feature bag; they are untyped, untriggered
    and unscored. Series missing from ``signals`` are replaced per window by simulated
    features drawn from ``rng``.
    """

    resolved = config or ScoringConfig()
    duration = _validate_duration(signals.duration, resolved)

    loudness = _sorted_events(signals.loudness, "loudness")
    scene_changes = _sorted_events(signals.scene_changes, "scene_changes")
    motion = _sorted_events(signals.motion, "motion")

    missing = signals.missing_series
    if missing:
        logger.info("Simulating features for missing signal series: %s", ", ".join(missing))
        rng = rng or make_random_source()

    window_seconds = resolved.windows.window_seconds
    step_seconds = window_seconds - resolved.windows.overlap_seconds
    if window_seconds <= 0 or step_seconds <= 0:
        raise ValueError(
            f"Window length ({window_seconds}s) must be positive and exceed the overlap "
            f"({resolved.windows.overlap_seconds}s)."
        )

    min_clip = resolved.durations.min_clip_seconds
    max_clip = resolved.durations.max_clip_seconds

    candidates: list[ClipCandidate] = []
    index = 0
    start = 0.0
    while start < duration:
        end = min(start + window_seconds, duration)
        window_length = round(end - start, 6)
        index += 1
        # multiply rather than accumulate so long videos do not drift
        next_start = index * step_seconds

        if not min_clip <= window_length <= max_clip:
            start = next_start
            continue

        features, peak = _aggregate_window(
            start=start,
            end=end,
            loudness=loudness,
            scene_changes=scene_changes,
            motion=motion,
            rng=rng,
            config=resolved,
        )
        candidates.append(
            ClipCandidate(
                start_time=round(start, 3),
                end_time=round(end, 3),
                peak_moment=round(peak, 3),
                features=features,
                optimal_range=resolved.optimal_range,
            )
        )
        start = next_start

    logger.debug("Generated %d candidate windows over %.1fs", len(candidates), duration)
    return candidates


def _aggregate_window(
    *,
    start: float,
    end: float,
    loudness: list[LoudnessEvent] | None,
    scene_changes: list[SceneChangeEvent] | None,
    motion: list[MotionSample] | None,
    rng: RandomSource | None,
    config: ScoringConfig,
) -> tuple[FeatureBag, float]:
    thresholds = config.thresholds
    simulated = None
    if (loudness is None or scene_changes is None or motion is None) and rng is not None:
        simulated = sample_window_signals(rng, config)

    loud_events: list[LoudnessEvent] = []
    if loudness is not None:
        in_window = _events_in_window(loudness, start, end)
        loud_events = [event for event in in_window if event.intensity > thresholds.loud_intensity]
        has_loud_audio = bool(loud_events)
        audio_intensity = max((event.intensity for event in in_window), default=0.0)
    else:
        has_loud_audio = simulated.has_loud_audio
        audio_intensity = simulated.audio_intensity

    window_scenes: list[SceneChangeEvent] = []
    if scene_changes is not None:
        window_scenes = _events_in_window(scene_changes, start, end)
        has_scene_change = bool(window_scenes)
    else:
        has_scene_change = simulated.has_scene_change

    high_motion: list[MotionSample] = []
    if motion is not None:
        in_window = _events_in_window(motion, start, end)
        high_motion = [sample for sample in in_window if sample.motion_score > thresholds.high_motion]
        has_high_motion = bool(high_motion)
        motion_score = max((sample.motion_score for sample in in_window), default=0.0)
    else:
        has_high_motion = simulated.has_high_motion
        motion_score = simulated.motion_score

    features = FeatureBag(
        has_loud_audio=has_loud_audio,
        has_scene_change=has_scene_change,
        has_high_motion=has_high_motion,
        audio_intensity=_clamp(audio_intensity, 0.0, 1.0),
        motion_score=_clamp(motion_score, 0.0, 100.0),
        simulated=simulated is not None,
    )
    return features, _peak_moment(start, end, loud_events, high_motion, window_scenes)


def _peak_moment(
    start: float,
    end: float,
    loud_events: list[LoudnessEvent],
    high_motion: list[MotionSample],
    scene_changes: list[SceneChangeEvent],
) -> float:
    """Anchor the peak on the strongest contributing event, else the window midpoint."""

    if loud_events:
        return max(loud_events, key=lambda event: (event.intensity, -event.time)).time
    if high_motion:
        return max(high_motion, key=lambda sample: (sample.motion_score, -sample.time)).time
    if scene_changes:
        return scene_changes[0].time
    return start + (end - start) / 2.0


def _events_in_window(events: list[EventT], start: float, end: float) -> list[EventT]:
    return [event for event in events if start <= event.time < end]


def _sorted_events(events: Sequence[EventT] | None, series: str) -> list[EventT] | None:
    if events is None:
        return None
    for event in events:
        if not math.isfinite(event.time) or event.time < 0:
            raise InvalidTimeRangeError(f"{series} event has invalid timestamp {event.time}.")
    return sorted(events, key=lambda event: event.time)


def _validate_duration(duration: float, config: ScoringConfig) -> float:
    if not math.isfinite(duration) or duration < 0:
        raise InvalidTimeRangeError(f"Source duration must be a non-negative number, got {duration}.")
    if duration < config.durations.min_clip_seconds:
        raise DurationTooShortError(duration, config.durations.min_clip_seconds)
    return float(duration)


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))
