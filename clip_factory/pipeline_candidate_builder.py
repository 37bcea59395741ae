from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from clip_factory.config import ScoringConfig
from clip_factory.models import ClipCandidate, SignalSet
from clip_factory.propose.metadata import generate_metadata
from clip_factory.propose.selection import collapse_duplicate_ranges, select_candidates
from clip_factory.propose.timing import optimize_timing, timing_score
from clip_factory.propose.window_generator import generate_candidate_windows
from clip_factory.scoring.clip_type import classify_clip
from clip_factory.scoring.triggers import detect_triggers
from clip_factory.scoring.viral_score import describe_candidate, score_candidate
from clip_factory.signals.simulation import RandomSource, make_random_source

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CandidateBuildResult:
    candidates: list[ClipCandidate]
    windows_considered: int
    eligible_count: int
    simulated: bool

    @property
    def is_empty(self) -> bool:
        return not self.candidates


def build_candidates_from_signals(
    signals: SignalSet,
    config: ScoringConfig | None = None,
    rng: RandomSource | None = None,
    *,
    top_n: int | None = None,
    with_metadata: bool = False,
) -> CandidateBuildResult:
    """Turn raw signal series into ranked, scored clip candidates.

    Stages run in a fixed order: window generation, clip type, triggers, timing
    optimization, scoring, collapsing of identical ranges, then ranking and selection.
    Metadata is attached to the selected clips only when ``with_metadata`` is set. No
    eligible window is a valid outcome and yields an empty candidate list.
    """

    resolved = config or ScoringConfig()
    if rng is None and (signals.missing_series or with_metadata):
        rng = make_random_source()

    seeds = generate_candidate_windows(signals, config=resolved, rng=rng)
    scored = collapse_duplicate_ranges(_score_seed(seed, signals.duration, resolved) for seed in seeds)

    eligible_count = sum(1 for candidate in scored if candidate.score >= resolved.thresholds.min_viral_score)
    selected = select_candidates(scored, top_n=top_n, config=resolved)

    if with_metadata:
        selected = [replace(candidate, metadata=generate_metadata(candidate, rng)) for candidate in selected]

    logger.info(
        "Scored %d windows, %d eligible, %d selected (threshold %d)",
        len(seeds),
        eligible_count,
        len(selected),
        resolved.thresholds.min_viral_score,
    )
    return CandidateBuildResult(
        candidates=selected,
        windows_considered=len(seeds),
        eligible_count=eligible_count,
        simulated=any(seed.features.simulated for seed in seeds),
    )


def _score_seed(seed: ClipCandidate, total_duration: float, config: ScoringConfig) -> ClipCandidate:
    clip_type = classify_clip(seed.features)
    triggers = detect_triggers(seed.features, clip_type, config)

    start_time, end_time = optimize_timing(
        seed.start_time,
        seed.end_time,
        seed.peak_moment,
        total_duration,
        config,
    )
    candidate = seed.with_time_range(start_time, end_time)

    details = score_candidate(
        features=candidate.features,
        triggers=triggers,
        clip_type=clip_type,
        duration=candidate.duration,
        timing_score=timing_score(candidate.duration, config),
        config=config,
    )
    return replace(
        candidate,
        triggers=triggers,
        clip_type=clip_type,
        score=details.score,
        reason=describe_candidate(details.score, candidate.features, triggers, candidate.optimal_length),
    )
