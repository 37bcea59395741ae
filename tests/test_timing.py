from __future__ import annotations

import pytest

from clip_factory.config import ScoringConfig, TimingSettings
from clip_factory.errors import DurationTooShortError, InvalidTimeRangeError
from clip_factory.propose.timing import optimize_timing, timing_score


def test_optimize_timing_starts_late_and_ends_early() -> None:
    assert optimize_timing(40.0, 48.0, 45.0, 120.0) == (44.0, 47.0)


def test_optimize_timing_grows_away_from_start_of_media() -> None:
    start, end = optimize_timing(0.0, 8.0, 0.2, 120.0)

    assert (start, end) == (0.0, 3.0)


def test_optimize_timing_grows_away_from_end_of_media() -> None:
    start, end = optimize_timing(56.0, 60.0, 59.5, 60.0)

    assert (start, end) == (57.0, 60.0)


def test_optimize_timing_recentres_overlong_clips_on_peak() -> None:
    config = ScoringConfig(timing=TimingSettings(context_buffer_seconds=20.0, aftermath_seconds=25.0))

    start, end = optimize_timing(30.0, 90.0, 60.0, 120.0, config)

    assert (start, end) == (45.0, 75.0)
    assert end - start == pytest.approx(30.0)


@pytest.mark.parametrize("peak", [0.0, 1.0, 2.9, 10.0, 57.1, 59.0, 60.0])
def test_optimize_timing_always_returns_bounded_duration(peak: float) -> None:
    start, end = optimize_timing(0.0, 8.0, peak, 60.0)

    assert 0.0 <= start < end <= 60.0
    assert 3.0 - 1e-6 <= end - start <= 30.0 + 1e-6


def test_optimize_timing_rejects_media_shorter_than_minimum_clip() -> None:
    with pytest.raises(DurationTooShortError, match="shorter than the minimum clip duration"):
        optimize_timing(0.0, 2.0, 1.0, 2.0)


def test_optimize_timing_rejects_inverted_range() -> None:
    with pytest.raises(InvalidTimeRangeError):
        optimize_timing(10.0, 5.0, 7.0, 60.0)


def test_timing_score_rewards_optimal_length() -> None:
    assert timing_score(3.0) == 1.0
    assert timing_score(15.0) == 1.0
    assert timing_score(20.0) == 0.5
