from __future__ import annotations

from clip_factory.models import ClipType, FeatureBag


def classify_clip(features: FeatureBag) -> ClipType:
    """Map a feature bag to exactly one clip type; the first matching rule wins."""

    if features.has_loud_audio and features.has_high_motion:
        return ClipType.REACTION
    if features.has_high_motion:
        return ClipType.ACTION
    if features.has_loud_audio:
        return ClipType.FUNNY
    if features.has_scene_change:
        return ClipType.DRAMATIC
    return ClipType.HIGHLIGHT
