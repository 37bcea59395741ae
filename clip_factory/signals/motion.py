from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from clip_factory.models import MotionSample, SceneChangeEvent


def extract_motion(
    vod_path: str,
    analysis_fps: float = 2.0,
    processing_width: int = 320,
    pixel_delta_threshold: int = 25,
) -> list[MotionSample]:
    """Sample frames at ``analysis_fps`` and score motion as the percentage of changed pixels.

    The first sampled frame has no predecessor and scores 0.
    """

    source_path = Path(vod_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Video file not found: {source_path}")

    import cv2

    capture = cv2.VideoCapture(str(source_path))
    if not capture.isOpened():
        raise RuntimeError(f"Unable to open video for motion analysis: {source_path}")

    native_fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
    if native_fps <= 0:
        native_fps = max(analysis_fps, 1.0)
    frame_interval = max(int(round(native_fps / max(analysis_fps, 0.1))), 1)

    samples: list[MotionSample] = []
    prev_gray = None
    frame_index = 0

    try:
        while True:
            ok, frame = capture.read()
            if not ok:
                break

            if frame_index % frame_interval != 0:
                frame_index += 1
                continue

            timestamp_seconds = frame_index / native_fps
            resized = _resize_for_motion(frame=frame, processing_width=processing_width, cv2_module=cv2)
            gray = cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)

            if prev_gray is None:
                motion_score = 0.0
            else:
                motion_score = changed_pixel_percentage(cv2.absdiff(gray, prev_gray), pixel_delta_threshold)

            samples.append(MotionSample(time=round(timestamp_seconds, 3), motion_score=round(motion_score, 3)))
            prev_gray = gray
            frame_index += 1
    finally:
        capture.release()

    return samples


def detect_scene_changes(
    samples: Sequence[MotionSample],
    multiplier: float = 2.5,
) -> list[SceneChangeEvent]:
    """Flag samples whose motion jumps above mean + ``multiplier`` standard deviations."""

    if len(samples) < 2:
        return []

    values = np.array([sample.motion_score for sample in samples], dtype=np.float64)
    std = float(np.std(values))
    if std <= 0:
        return []

    threshold = float(np.mean(values)) + multiplier * std
    return [SceneChangeEvent(time=sample.time) for sample in samples if sample.motion_score > threshold]


def changed_pixel_percentage(diff: np.ndarray, pixel_delta_threshold: int = 25) -> float:
    if diff.size == 0:
        return 0.0
    return float(np.count_nonzero(diff > pixel_delta_threshold)) * 100.0 / float(diff.size)


def _resize_for_motion(frame: Any, processing_width: int, cv2_module: Any) -> Any:
    if processing_width <= 0:
        return frame

    height, width = frame.shape[:2]
    if width <= processing_width:
        return frame

    target_height = max(int(round(height * processing_width / width)), 1)
    return cv2_module.resize(frame, (processing_width, target_height), interpolation=cv2_module.INTER_AREA)
