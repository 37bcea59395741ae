from __future__ import annotations

import json

import pytest

from clip_factory.errors import InvalidTimeRangeError, JobPersistenceError
from clip_factory.jobs.queue import JobRequest, JsonlJobQueue, submit_candidates
from clip_factory.models import ClipCandidate, ClipType


def _candidates(count: int) -> list[ClipCandidate]:
    return [
        ClipCandidate(
            start_time=index * 10.0,
            end_time=index * 10.0 + 3.0,
            peak_moment=index * 10.0 + 1.0,
            clip_type=ClipType.REACTION,
            score=90 - index,
        )
        for index in range(count)
    ]


class _FlakyQueue:
    """Fails the first attempts for clips starting at the given times."""

    def __init__(self, failing_starts: set[float], failures_per_clip: int) -> None:
        self.failing_starts = failing_starts
        self.failures_per_clip = failures_per_clip
        self.attempts: dict[float, int] = {}
        self.queued: list[JobRequest] = []

    def enqueue(self, request: JobRequest) -> str:
        count = self.attempts.get(request.clip_start_time, 0) + 1
        self.attempts[request.clip_start_time] = count
        if request.clip_start_time in self.failing_starts and count <= self.failures_per_clip:
            raise JobPersistenceError("database unavailable")
        self.queued.append(request)
        return f"job-{len(self.queued)}"


def test_jsonl_queue_appends_pending_jobs(tmp_path) -> None:
    queue = JsonlJobQueue(tmp_path / "jobs" / "queue.jsonl")

    job_id = queue.enqueue(
        JobRequest(user_id="user-1", source_video_url="https://cdn/v.mp4", clip_start_time=4.0, clip_end_time=9.0)
    )

    rows = queue.list_jobs()
    assert len(rows) == 1
    assert rows[0]["job_id"] == job_id
    assert rows[0]["status"] == "pending"
    assert rows[0]["clip_end_time"] == 9.0
    assert json.loads((tmp_path / "jobs" / "queue.jsonl").read_text(encoding="utf-8"))["user_id"] == "user-1"


def test_jsonl_queue_wraps_write_errors(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    queue = JsonlJobQueue(blocker / "queue.jsonl")

    with pytest.raises(JobPersistenceError):
        queue.enqueue(JobRequest(user_id="u", source_video_url="v", clip_start_time=0.0, clip_end_time=3.0))


def test_job_request_validates_time_range() -> None:
    with pytest.raises(InvalidTimeRangeError):
        JobRequest(user_id="u", source_video_url="v", clip_start_time=5.0, clip_end_time=5.0)


def test_submit_candidates_queues_top_five(tmp_path) -> None:
    queue = JsonlJobQueue(tmp_path / "queue.jsonl")

    result = submit_candidates(queue, _candidates(7), user_id="user-1", source_video_url="v.mp4", stream_id="s-1")

    assert result.status == "ok"
    assert result.queued_count == 5
    rows = queue.list_jobs()
    assert [row["score"] for row in rows] == [90, 89, 88, 87, 86]
    assert {row["stream_id"] for row in rows} == {"s-1"}


def test_submit_candidates_retries_with_exponential_backoff() -> None:
    queue = _FlakyQueue(failing_starts={0.0}, failures_per_clip=2)
    sleeps: list[float] = []

    result = submit_candidates(
        queue, _candidates(1), user_id="u", source_video_url="v", backoff_seconds=0.5, sleep=sleeps.append
    )

    assert result.status == "ok"
    assert result.items[0].attempts == 3
    assert sleeps == [0.5, 1.0]


def test_failed_clip_does_not_block_later_clips() -> None:
    queue = _FlakyQueue(failing_starts={10.0}, failures_per_clip=99)

    result = submit_candidates(queue, _candidates(3), user_id="u", source_video_url="v", sleep=lambda _: None)

    assert result.status == "partial"
    assert [item.status for item in result.items] == ["queued", "failed", "queued"]
    assert result.items[1].attempts == 3
    assert result.items[1].error == "database unavailable"
    assert [request.clip_start_time for request in queue.queued] == [0.0, 20.0]


def test_all_failures_and_empty_input_statuses() -> None:
    queue = _FlakyQueue(failing_starts={0.0, 10.0}, failures_per_clip=99)

    failed = submit_candidates(queue, _candidates(2), user_id="u", source_video_url="v", sleep=lambda _: None)
    empty = submit_candidates(queue, [], user_id="u", source_video_url="v")

    assert failed.status == "failed"
    assert empty.status == "empty"
    assert empty.items == []


def test_unexpected_queue_error_is_reported_per_clip() -> None:
    class _UnreachableQueue(_FlakyQueue):
        def enqueue(self, request: JobRequest) -> str:
            if request.clip_start_time == 0.0:
                raise ConnectionError("queue backend unreachable")
            return super().enqueue(request)

    queue = _UnreachableQueue(failing_starts=set(), failures_per_clip=0)

    result = submit_candidates(queue, _candidates(3), user_id="u", source_video_url="v", sleep=lambda _: None)

    assert result.status == "partial"
    assert [item.status for item in result.items] == ["failed", "queued", "queued"]
    assert result.items[0].error == "queue backend unreachable"
    assert [request.clip_start_time for request in queue.queued] == [10.0, 20.0]
