from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

from clip_factory.config import ScoringConfig

T = TypeVar("T")


class RandomSource(Protocol):
    """Anything that behaves like ``random.Random`` for the calls the engine makes."""

    def random(self) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...


@dataclass(frozen=True, slots=True)
class SimulatedSignals:
    """Stand-in window signals used when a real extractor produced nothing."""

    has_loud_audio: bool
    audio_intensity: float
    has_scene_change: bool
    has_high_motion: bool
    motion_score: float


def make_random_source(seed: int | None = None) -> random.Random:
    return random.Random(seed)


def sample_window_signals(rng: RandomSource, config: ScoringConfig | None = None) -> SimulatedSignals:
    """Draw one simulated signal sample for a window.

    A single activity draw drives all three flags; a second draw sets the intensity.
    """

    cutoffs = (config or ScoringConfig()).simulation
    activity = rng.random()
    intensity = rng.random()

    has_loud_audio = activity > cutoffs.loud_cutoff
    has_high_motion = activity > cutoffs.high_motion_cutoff
    return SimulatedSignals(
        has_loud_audio=has_loud_audio,
        audio_intensity=intensity if has_loud_audio else 0.0,
        has_scene_change=activity > cutoffs.scene_change_cutoff,
        has_high_motion=has_high_motion,
        motion_score=intensity * 100.0 if has_high_motion else 0.0,
    )
