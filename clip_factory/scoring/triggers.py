from __future__ import annotations

from clip_factory.config import ScoringConfig
from clip_factory.models import ClipType, FeatureBag, ViralTrigger

def detect_triggers(
    features: FeatureBag,
    clip_type: ClipType,
    config: ScoringConfig | None = None,
) -> tuple[ViralTrigger, ...]:
    """Return every viral trigger the features match, in canonical order.

    ``clip_type`` must already be classified from the same features; ``absurdity``
    depends on it.
    """

    resolved = config or ScoringConfig()
    loud_and_moving = features.has_loud_audio and features.has_high_motion

    matched: set[ViralTrigger] = set()
    if loud_and_moving and features.audio_intensity > resolved.thresholds.shock_intensity:
        matched.add(ViralTrigger.SHOCK_DISBELIEF)
    if features.has_scene_change and features.has_high_motion:
        matched.add(ViralTrigger.ESCALATION)
    if loud_and_moving:
        matched.add(ViralTrigger.TIMING_PERFECTION)
    if clip_type is ClipType.FUNNY and features.has_loud_audio:
        matched.add(ViralTrigger.ABSURDITY)

    # status_flex and relatability have no automatic rule; they only key caption pools.
    return tuple(trigger for trigger in ViralTrigger if trigger in matched)
