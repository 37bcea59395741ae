from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from clip_factory.errors import InvalidTimeRangeError


class ViralTrigger(str, Enum):
    """Emotional/structural patterns; declaration order is the canonical order."""

    SHOCK_DISBELIEF = "shock_disbelief"
    ESCALATION = "escalation"
    TIMING_PERFECTION = "timing_perfection"
    ABSURDITY = "absurdity"
    STATUS_FLEX = "status_flex"
    RELATABILITY = "relatability"


class ClipType(str, Enum):
    REACTION = "reaction"
    ACTION = "action"
    FUNNY = "funny"
    DRAMATIC = "dramatic"
    HIGHLIGHT = "highlight"


class DetectorStatus(str, Enum):
    """Outcome of an optional detector, distinguishing "not wired" from "absent"."""

    DETECTED = "detected"
    ABSENT = "absent"
    NOT_IMPLEMENTED = "not_implemented"


@dataclass(frozen=True, slots=True)
class LoudnessEvent:
    time: float
    intensity: float


@dataclass(frozen=True, slots=True)
class SceneChangeEvent:
    time: float


@dataclass(frozen=True, slots=True)
class MotionSample:
    time: float
    motion_score: float


@dataclass(frozen=True, slots=True)
class SignalSet:
    """Signal series for one source video.

    A series set to ``None`` means its extractor was unavailable or failed, which is
    different from an empty list (the extractor ran and found nothing).
    """

    duration: float
    loudness: list[LoudnessEvent] | None = None
    scene_changes: list[SceneChangeEvent] | None = None
    motion: list[MotionSample] | None = None

    @property
    def missing_series(self) -> list[str]:
        return [
            name
            for name, series in (
                ("loudness", self.loudness),
                ("scene_changes", self.scene_changes),
                ("motion", self.motion),
            )
            if series is None
        ]


@dataclass(frozen=True, slots=True)
class MediaMetadata:
    duration: float
    fps: float = 30.0
    width: int = 1920
    height: int = 1080
    bitrate: int = 5_000_000


@dataclass(frozen=True, slots=True)
class FeatureBag:
    """Signals summarizing one candidate window."""

    has_loud_audio: bool = False
    has_scene_change: bool = False
    has_high_motion: bool = False
    audio_intensity: float = 0.0
    motion_score: float = 0.0
    faces: DetectorStatus = DetectorStatus.NOT_IMPLEMENTED
    simulated: bool = False

    @property
    def has_faces(self) -> bool:
        return self.faces is DetectorStatus.DETECTED


@dataclass(frozen=True, slots=True)
class OnScreenText:
    time: float
    text: str
    duration: float


@dataclass(frozen=True, slots=True)
class ClipMetadata:
    title: str
    caption: str
    hashtags: list[str]
    on_screen_text: list[OnScreenText]

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "caption": self.caption,
            "hashtags": list(self.hashtags),
            "onScreenText": [
                {"time": entry.time, "text": entry.text, "duration": entry.duration}
                for entry in self.on_screen_text
            ],
        }


@dataclass(frozen=True, slots=True)
class ClipCandidate:
    """A scored time range of the source video.

    Stages enrich candidates by returning updated copies. ``optimal_length`` is derived
    from the current time range on every read.
    """

    start_time: float
    end_time: float
    peak_moment: float
    features: FeatureBag = field(default_factory=FeatureBag)
    triggers: tuple[ViralTrigger, ...] = ()
    clip_type: ClipType = ClipType.HIGHLIGHT
    score: int = 0
    reason: str = ""
    optimal_range: tuple[float, float] = (3.0, 15.0)
    metadata: ClipMetadata | None = None

    def __post_init__(self) -> None:
        validate_time_range(self.start_time, self.end_time)
        if not self.start_time <= self.peak_moment <= self.end_time:
            raise InvalidTimeRangeError(
                f"Peak moment {self.peak_moment} lies outside [{self.start_time}, {self.end_time}]."
            )

    @property
    def duration(self) -> float:
        # rounded so float noise never flips a duration band
        return round(self.end_time - self.start_time, 6)

    @property
    def optimal_length(self) -> bool:
        low, high = self.optimal_range
        return low <= self.duration <= high

    @property
    def confidence(self) -> float:
        return self.score / 100.0

    def with_time_range(self, start_time: float, end_time: float) -> ClipCandidate:
        """Return a copy covering a new range, keeping the peak inside it."""

        validate_time_range(start_time, end_time)
        peak = min(max(self.peak_moment, start_time), end_time)
        return replace(self, start_time=start_time, end_time=end_time, peak_moment=peak)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "startTime": round(self.start_time, 3),
            "endTime": round(self.end_time, 3),
            "duration": round(self.duration, 3),
            "peakMoment": round(self.peak_moment, 3),
            "score": self.score,
            "reason": self.reason,
            "type": self.clip_type.value,
            "confidence": round(self.confidence, 2),
            "triggers": [trigger.value for trigger in self.triggers],
            "features": {
                "hasLoudAudio": self.features.has_loud_audio,
                "hasSceneChange": self.features.has_scene_change,
                "hasHighMotion": self.features.has_high_motion,
                "hasFaces": self.features.has_faces,
                "optimalLength": self.optimal_length,
                "audioIntensity": round(self.features.audio_intensity, 4),
                "motionScore": round(self.features.motion_score, 2),
                "simulated": self.features.simulated,
            },
        }
        if self.metadata is not None:
            payload["metadata"] = self.metadata.to_payload()
        return payload


def candidate_from_payload(
    row: dict[str, Any],
    optimal_range: tuple[float, float] = (3.0, 15.0),
) -> ClipCandidate:
    """Rebuild a candidate from its exported JSON contract."""

    features = row.get("features", {})
    metadata_row = row.get("metadata")
    metadata = None
    if metadata_row:
        metadata = ClipMetadata(
            title=str(metadata_row.get("title", "")),
            caption=str(metadata_row.get("caption", "")),
            hashtags=[str(tag) for tag in metadata_row.get("hashtags", [])],
            on_screen_text=[
                OnScreenText(time=float(item["time"]), text=str(item["text"]), duration=float(item["duration"]))
                for item in metadata_row.get("onScreenText", [])
            ],
        )

    start = float(row["startTime"])
    end = float(row["endTime"])
    return ClipCandidate(
        start_time=start,
        end_time=end,
        peak_moment=float(row.get("peakMoment", (start + end) / 2.0)),
        features=FeatureBag(
            has_loud_audio=bool(features.get("hasLoudAudio", False)),
            has_scene_change=bool(features.get("hasSceneChange", False)),
            has_high_motion=bool(features.get("hasHighMotion", False)),
            audio_intensity=float(features.get("audioIntensity", 0.0)),
            motion_score=float(features.get("motionScore", 0.0)),
            simulated=bool(features.get("simulated", False)),
        ),
        triggers=tuple(ViralTrigger(value) for value in row.get("triggers", [])),
        clip_type=ClipType(row.get("type", ClipType.HIGHLIGHT.value)),
        score=int(row.get("score", 0)),
        reason=str(row.get("reason", "")),
        optimal_range=optimal_range,
        metadata=metadata,
    )


def validate_time_range(start_time: float, end_time: float) -> None:
    if not (math.isfinite(start_time) and math.isfinite(end_time)):
        raise InvalidTimeRangeError(f"Time range must be finite, got [{start_time}, {end_time}].")
    if start_time < 0:
        raise InvalidTimeRangeError(f"Start time must be >= 0, got {start_time}.")
    if end_time <= start_time:
        raise InvalidTimeRangeError(f"End time {end_time} must be greater than start time {start_time}.")
