from __future__ import annotations

import wave
from pathlib import Path

import numpy as np

from clip_factory.models import LoudnessEvent

SILENCE_FLOOR_DB = -60.0


def extract_loudness(
    audio_path: str,
    frame_seconds: float = 0.5,
    loud_db_threshold: float = -20.0,
) -> list[LoudnessEvent]:
    """Return one loudness event per RMS frame louder than ``loud_db_threshold`` dBFS.

    Intensity maps the frame level linearly from [-60, 0] dBFS onto [0, 1].
    """

    source_path = Path(audio_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Audio file not found: {source_path}")

    samples, sample_rate = _read_wav_mono(source_path)
    frame_size = max(int(round(sample_rate * max(frame_seconds, 0.1))), 1)

    events: list[LoudnessEvent] = []
    for start_seconds, rms in _frame_rms(samples, sample_rate, frame_size):
        level_db = rms_to_dbfs(rms)
        if level_db > loud_db_threshold:
            events.append(LoudnessEvent(time=start_seconds, intensity=round(dbfs_to_intensity(level_db), 6)))
    return events


def rms_to_dbfs(rms: float) -> float:
    if rms <= 0:
        return SILENCE_FLOOR_DB
    return max(SILENCE_FLOOR_DB, 20.0 * float(np.log10(rms)))


def dbfs_to_intensity(level_db: float) -> float:
    return min(1.0, max(0.0, (level_db - SILENCE_FLOOR_DB) / -SILENCE_FLOOR_DB))


def wav_duration_seconds(audio_path: str) -> float:
    with wave.open(str(audio_path), "rb") as wav_file:
        rate = wav_file.getframerate()
        return wav_file.getnframes() / float(rate) if rate > 0 else 0.0


def _read_wav_mono(path: Path) -> tuple[np.ndarray, int]:
    with wave.open(str(path), "rb") as wav_file:
        channels = wav_file.getnchannels()
        sample_rate = int(wav_file.getframerate())
        sample_width = wav_file.getsampwidth()
        frames = wav_file.readframes(wav_file.getnframes())

    if sample_width != 2:
        raise ValueError("Only 16-bit PCM WAV input is supported for loudness extraction.")

    samples = np.frombuffer(frames, dtype=np.int16)
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1).astype(np.int16)

    normalized = samples.astype(np.float32) / 32768.0
    return normalized, sample_rate


def _frame_rms(samples: np.ndarray, sample_rate: int, frame_size: int) -> list[tuple[float, float]]:
    if sample_rate <= 0 or len(samples) == 0:
        return []

    frames: list[tuple[float, float]] = []
    for start in range(0, len(samples), frame_size):
        segment = samples[start : start + frame_size]
        if len(segment) == 0:
            continue
        rms = float(np.sqrt(np.mean(np.square(segment))))
        frames.append((round(start / sample_rate, 3), rms))
    return frames
