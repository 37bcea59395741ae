from __future__ import annotations

from dataclasses import dataclass

from clip_factory.config import ScoringConfig
from clip_factory.models import ClipType, FeatureBag, ViralTrigger


@dataclass(slots=True)
class ViralScoreDetails:
    """Explainable output for additive viral scoring."""

    score: int
    raw_score: float
    contributions: dict[str, float]


def viral_score(
    features: FeatureBag,
    triggers: tuple[ViralTrigger, ...] | list[ViralTrigger],
    clip_type: ClipType,
    duration: float,
    timing_score: float,
    config: ScoringConfig | None = None,
) -> int:
    """Compute the bounded 0-100 viral score for one candidate."""

    return score_candidate(
        features=features,
        triggers=triggers,
        clip_type=clip_type,
        duration=duration,
        timing_score=timing_score,
        config=config,
    ).score


def score_candidate(
    features: FeatureBag,
    triggers: tuple[ViralTrigger, ...] | list[ViralTrigger],
    clip_type: ClipType,
    duration: float,
    timing_score: float,
    config: ScoringConfig | None = None,
) -> ViralScoreDetails:
    """Score a candidate and keep every additive contribution for explainability."""

    resolved = config or ScoringConfig()
    weights = resolved.weights
    trigger_set = set(triggers)

    contributions: dict[str, float] = {"base": float(weights.base)}

    trigger_weights = {
        ViralTrigger.SHOCK_DISBELIEF: weights.shock_disbelief,
        ViralTrigger.ESCALATION: weights.escalation,
        ViralTrigger.TIMING_PERFECTION: weights.timing_perfection,
        ViralTrigger.ABSURDITY: weights.absurdity,
        ViralTrigger.STATUS_FLEX: weights.status_flex,
        ViralTrigger.RELATABILITY: weights.relatability,
    }
    for trigger, weight in trigger_weights.items():
        if trigger in trigger_set:
            contributions[f"trigger:{trigger.value}"] = float(weight)

    if len(trigger_set) >= 2:
        contributions["trigger_stack"] = float(weights.trigger_stack)

    contributions["timing"] = float(round(_clamp(timing_score) * weights.timing))

    if features.has_loud_audio:
        contributions["signal:loud_audio"] = float(weights.loud_audio)
    if features.has_high_motion:
        contributions["signal:high_motion"] = float(weights.high_motion)
    if features.has_scene_change:
        contributions["signal:scene_change"] = float(weights.scene_change)

    duration_bonus = _duration_bonus(duration, resolved)
    if duration_bonus:
        contributions["duration"] = float(duration_bonus)

    type_bonus = {ClipType.REACTION: weights.reaction, ClipType.FUNNY: weights.funny}.get(clip_type, 0)
    if type_bonus:
        contributions[f"type:{clip_type.value}"] = float(type_bonus)

    raw_score = sum(contributions.values())
    return ViralScoreDetails(
        score=int(round(_clamp(raw_score, 0.0, 100.0))),
        raw_score=raw_score,
        contributions=contributions,
    )


def describe_candidate(
    score: int,
    features: FeatureBag,
    triggers: tuple[ViralTrigger, ...] | list[ViralTrigger],
    optimal_length: bool,
) -> str:
    """Human-readable reason string shown next to a candidate."""

    reasons: list[str] = []
    if ViralTrigger.SHOCK_DISBELIEF in triggers:
        reasons.append("💥 Shock moment")
    if ViralTrigger.ESCALATION in triggers:
        reasons.append("📈 Escalation pattern")
    if ViralTrigger.TIMING_PERFECTION in triggers:
        reasons.append("⏱️ Perfect timing")
    if features.has_loud_audio:
        reasons.append("🔊 High energy")
    if features.has_high_motion:
        reasons.append("⚡ Physical reaction")
    if optimal_length:
        reasons.append("📏 Elite length")

    if score >= 90:
        return f"🔥 ELITE: {', '.join(reasons)} 🔥"
    if score >= 80:
        return f"High potential: {', '.join(reasons)}"
    if reasons:
        return f"Good clip: {', '.join(reasons)}"
    return "Good clip"


def _duration_bonus(duration: float, config: ScoringConfig) -> int:
    durations = config.durations
    weights = config.weights
    if durations.optimal_min_seconds <= duration <= durations.optimal_max_seconds:
        return weights.optimal_duration
    if durations.optimal_max_seconds < duration <= durations.max_clip_seconds:
        return weights.good_duration
    if duration > durations.max_clip_seconds:
        return weights.long_duration_penalty
    return 0


def _clamp(value: float, minimum: float = 0.0, maximum: float = 1.0) -> float:
    return max(minimum, min(maximum, value))
