from __future__ import annotations


class ClipFactoryError(Exception):
    """Base class for errors raised by the clip engine and its collaborators."""


class ExtractionFailure(ClipFactoryError, RuntimeError):
    """A signal extractor failed; callers degrade to simulated features."""

    def __init__(self, extractor: str, message: str) -> None:
        super().__init__(f"{extractor} extraction failed: {message}")
        self.extractor = extractor


class DurationTooShortError(ClipFactoryError, ValueError):
    """Source media is shorter than the minimum clip duration."""

    def __init__(self, duration_seconds: float, min_clip_seconds: float) -> None:
        super().__init__(
            f"Source duration {duration_seconds:.3f}s is shorter than the minimum "
            f"clip duration of {min_clip_seconds:.3f}s."
        )
        self.duration_seconds = duration_seconds
        self.min_clip_seconds = min_clip_seconds


class InvalidTimeRangeError(ClipFactoryError, ValueError):
    """A time range is negative, non-finite or has end <= start."""


class JobPersistenceError(ClipFactoryError, RuntimeError):
    """A clip could not be persisted to the job queue."""
