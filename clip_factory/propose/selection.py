from __future__ import annotations

from collections.abc import Iterable

from clip_factory.config import ScoringConfig
from clip_factory.models import ClipCandidate


def select_candidates(
    candidates: Iterable[ClipCandidate],
    top_n: int | None = None,
    config: ScoringConfig | None = None,
) -> list[ClipCandidate]:
    """Keep eligible candidates and return the best ``top_n`` in a deterministic order.

    Ordering is score descending, then trigger count descending, then start time
    ascending. With overlap suppression enabled a candidate is dropped when it overlaps
    an already kept, higher ranked candidate by more than ``overlap_ratio`` of the
    shorter of the two ranges.
    """

    resolved = config or ScoringConfig()
    limit = resolved.selection.top_n if top_n is None else top_n
    if limit < 0:
        raise ValueError(f"top_n must be >= 0, got {limit}.")

    eligible = [
        candidate for candidate in candidates if candidate.score >= resolved.thresholds.min_viral_score
    ]
    ranked = sorted(eligible, key=_rank_key)

    if not resolved.selection.suppress_overlaps:
        return ranked[:limit]

    kept: list[ClipCandidate] = []
    for candidate in ranked:
        if len(kept) >= limit:
            break
        if any(_overlap_fraction(candidate, other) > resolved.selection.overlap_ratio for other in kept):
            continue
        kept.append(candidate)
    return kept


def collapse_duplicate_ranges(candidates: Iterable[ClipCandidate]) -> list[ClipCandidate]:
    """Keep one candidate per exact ``(start_time, end_time)`` range.

    Neighbouring windows that share an event are optimized onto the same range; the
    better ranked copy survives and first-seen order is kept.
    """

    best: dict[tuple[float, float], ClipCandidate] = {}
    for candidate in candidates:
        key = (candidate.start_time, candidate.end_time)
        current = best.get(key)
        if current is None or _rank_key(candidate) < _rank_key(current):
            best[key] = candidate
    return list(best.values())


def _rank_key(candidate: ClipCandidate) -> tuple[int, int, float]:
    return (-candidate.score, -len(candidate.triggers), candidate.start_time)


def _overlap_fraction(first: ClipCandidate, second: ClipCandidate) -> float:
    overlap = min(first.end_time, second.end_time) - max(first.start_time, second.start_time)
    if overlap <= 0:
        return 0.0
    shorter = min(first.duration, second.duration)
    return overlap / shorter
