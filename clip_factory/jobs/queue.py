from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from clip_factory.errors import JobPersistenceError
from clip_factory.models import ClipCandidate, validate_time_range

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobRequest:
    """One pending processing job for a selected clip."""

    user_id: str
    source_video_url: str
    clip_start_time: float
    clip_end_time: float
    stream_id: str | None = None
    status: str = "pending"
    score: int | None = None
    clip_type: str | None = None
    metadata: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        validate_time_range(self.clip_start_time, self.clip_end_time)


@dataclass(slots=True)
class SubmissionItem:
    index: int
    start_time: float
    end_time: float
    status: str
    attempts: int
    job_id: str | None = None
    error: str | None = None


@dataclass(slots=True)
class SubmissionResult:
    status: str
    items: list[SubmissionItem] = field(default_factory=list)

    @property
    def queued_count(self) -> int:
        return sum(1 for item in self.items if item.status == "queued")

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "queued_count": self.queued_count,
            "items": [asdict(item) for item in self.items],
        }


class JobQueue(Protocol):
    def enqueue(self, request: JobRequest) -> str:
        """Persist one request and return its job id.

        Implementations should raise ``JobPersistenceError``; any other exception is
        still recorded as a failure of that clip by ``submit_candidates``.
        """
        ...


class JsonlJobQueue:
    """Append-only job store, one JSON object per line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def enqueue(self, request: JobRequest) -> str:
        job_id = uuid.uuid4().hex
        row = {
            "job_id": job_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            **asdict(request),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(row, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise JobPersistenceError(f"Could not write job to {self.path}: {exc}") from exc
        return job_id

    def list_jobs(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


def submit_candidates(
    queue: JobQueue,
    candidates: Sequence[ClipCandidate],
    *,
    user_id: str,
    source_video_url: str,
    stream_id: str | None = None,
    top_n: int = 5,
    max_attempts: int = 3,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> SubmissionResult:
    """Queue the top ``top_n`` candidates, retrying each one independently.

    Delivery is at-least-once per clip. A clip that still fails after ``max_attempts``
    is reported as failed and the remaining clips are still submitted.
    """

    selected = list(candidates)[: max(top_n, 0)]
    if not selected:
        return SubmissionResult(status="empty")

    items: list[SubmissionItem] = []
    for index, candidate in enumerate(selected, start=1):
        request = JobRequest(
            user_id=user_id,
            source_video_url=source_video_url,
            clip_start_time=candidate.start_time,
            clip_end_time=candidate.end_time,
            stream_id=stream_id,
            score=candidate.score,
            clip_type=candidate.clip_type.value,
            metadata=candidate.metadata.to_payload() if candidate.metadata else None,
        )
        items.append(_submit_one(queue, request, index, max_attempts, backoff_seconds, sleep))

    queued = sum(1 for item in items if item.status == "queued")
    if queued == len(items):
        status = "ok"
    elif queued == 0:
        status = "failed"
    else:
        status = "partial"

    logger.info("Queued %d/%d clips (%s)", queued, len(items), status)
    return SubmissionResult(status=status, items=items)


def _submit_one(
    queue: JobQueue,
    request: JobRequest,
    index: int,
    max_attempts: int,
    backoff_seconds: float,
    sleep: Callable[[float], None],
) -> SubmissionItem:
    attempts = max(max_attempts, 1)
    last_error = ""
    for attempt in range(1, attempts + 1):
        # a failure of any kind belongs to this clip only
        try:
            job_id = queue.enqueue(request)
        except Exception as exc:
            last_error = str(exc) or type(exc).__name__
            logger.warning("Job submission for clip %d failed (attempt %d/%d): %s", index, attempt, attempts, exc)
            if attempt < attempts:
                sleep(backoff_seconds * (2 ** (attempt - 1)))
            continue
        return SubmissionItem(
            index=index,
            start_time=request.clip_start_time,
            end_time=request.clip_end_time,
            status="queued",
            attempts=attempt,
            job_id=job_id,
        )

    return SubmissionItem(
        index=index,
        start_time=request.clip_start_time,
        end_time=request.clip_end_time,
        status="failed",
        attempts=attempts,
        error=last_error,
    )
