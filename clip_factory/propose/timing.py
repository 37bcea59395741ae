from __future__ import annotations

from clip_factory.config import ScoringConfig
from clip_factory.errors import DurationTooShortError
from clip_factory.models import validate_time_range

_EPSILON = 1e-6


def optimize_timing(
    start_time: float,
    end_time: float,
    peak_moment: float,
    total_duration: float,
    config: ScoringConfig | None = None,
) -> tuple[float, float]:
    """Start late, end early: re-anchor a clip around its peak moment.

    The clip keeps a short context buffer before the peak and a short aftermath after
    it. The result always lasts between the configured min and max clip durations.
    """

    resolved = config or ScoringConfig()
    min_clip = resolved.durations.min_clip_seconds
    max_clip = resolved.durations.max_clip_seconds
    timing = resolved.timing

    validate_time_range(start_time, end_time)
    if total_duration < min_clip:
        raise DurationTooShortError(total_duration, min_clip)

    peak = min(max(peak_moment, 0.0), total_duration)
    optimized_start = max(0.0, peak - timing.context_buffer_seconds)
    optimized_end = min(total_duration, peak + timing.aftermath_seconds)

    if optimized_end - optimized_start < min_clip - _EPSILON:
        optimized_start = max(0.0, optimized_start - timing.widen_step_seconds)
        optimized_end = min(total_duration, optimized_end + timing.widen_step_seconds)
        if optimized_end - optimized_start < min_clip - _EPSILON:
            optimized_start, optimized_end = _slide_to_min_duration(
                optimized_start, optimized_end, total_duration, min_clip
            )
    elif optimized_end - optimized_start > max_clip + _EPSILON:
        half_width = max_clip / 2.0
        optimized_start = max(0.0, peak - half_width)
        optimized_end = min(total_duration, peak + half_width)

    return round(optimized_start, 3), round(optimized_end, 3)


def timing_score(duration: float, config: ScoringConfig | None = None) -> float:
    """How well a clip length follows the elite structure (1.0 best)."""

    resolved = config or ScoringConfig()
    low, high = resolved.optimal_range
    if low <= duration <= high:
        return resolved.timing.optimal_timing_score
    return resolved.timing.fallback_timing_score


def _slide_to_min_duration(
    start_time: float,
    end_time: float,
    total_duration: float,
    min_clip: float,
) -> tuple[float, float]:
    # clamped against a media edge: grow away from it
    if start_time <= 0.0:
        return 0.0, min(total_duration, min_clip)
    if end_time >= total_duration:
        return max(0.0, total_duration - min_clip), total_duration

    missing = min_clip - (end_time - start_time)
    start_time = max(0.0, start_time - missing / 2.0)
    return start_time, min(total_duration, start_time + min_clip)
