from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

import clip_factory.cli as cli
from clip_factory.config import JobSettings, PipelineSettings, Settings
from clip_factory.errors import JobPersistenceError
from clip_factory.jobs.queue import JobRequest
from clip_factory.models import ClipCandidate, ClipType, LoudnessEvent, MotionSample, SignalSet
from clip_factory.propose.exporter import export_candidates
from clip_factory.signals.collect import signal_set_to_payload


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        pipeline=PipelineSettings(output_dir=tmp_path / "outputs", cache_dir=tmp_path / "cache"),
        jobs=JobSettings(queue_path=tmp_path / "jobs.jsonl", backoff_seconds=0.0),
    )


def _shock_signals() -> SignalSet:
    return SignalSet(
        duration=120.0,
        loudness=[LoudnessEvent(time=50.0, intensity=0.9)],
        scene_changes=[],
        motion=[MotionSample(time=50.0, motion_score=90.0)],
    )


def _quiet_signals() -> SignalSet:
    return SignalSet(duration=120.0, loudness=[], scene_changes=[], motion=[])


def _probe_result(vod_path: Path) -> dict:
    return {"vod_path": str(vod_path), "format": {"duration_seconds": 120.0}, "streams": []}


def _prepare(tmp_path: Path, monkeypatch, signals: SignalSet) -> Path:
    vod_path = tmp_path / "sample.mkv"
    vod_path.write_bytes(b"data")
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    monkeypatch.setattr(cli, "probe_media", lambda **_: _probe_result(vod_path))
    monkeypatch.setattr(cli, "collect_signals", lambda **_: signals)
    return vod_path


class _RejectingQueue:
    def __init__(self, failing_starts: set[float]) -> None:
        self.failing_starts = failing_starts
        self.queued: list[JobRequest] = []

    def enqueue(self, request: JobRequest) -> str:
        if request.clip_start_time in self.failing_starts:
            raise JobPersistenceError("queue offline")
        self.queued.append(request)
        return f"job-{len(self.queued)}"


def test_analyze_prints_clean_error_without_traceback(tmp_path: Path, monkeypatch) -> None:
    vod_path = _prepare(tmp_path, monkeypatch, _shock_signals())
    monkeypatch.setattr(
        cli,
        "probe_media",
        lambda **_: (_ for _ in ()).throw(
            RuntimeError("ffprobe is installed but failed to start because required shared libraries are missing")
        ),
    )

    result = CliRunner().invoke(cli.app, ["analyze", str(vod_path)])

    assert result.exit_code == 1
    assert "[1/4] Probe media..." in result.output
    assert "[1/4] Probe media failed" in result.output
    assert "Error: ffprobe is installed but failed to start" in result.output
    assert "Traceback" not in result.output


def test_analyze_shows_progress_and_exports(tmp_path: Path, monkeypatch) -> None:
    vod_path = _prepare(tmp_path, monkeypatch, _shock_signals())

    result = CliRunner().invoke(cli.app, ["analyze", str(vod_path), "--seed", "11"])

    assert result.exit_code == 0
    assert "[1/4] Probe media..." in result.output
    assert "[4/4] Export outputs done" in result.output
    assert '"status": "ok"' in result.output
    assert '"clip_count": 1' in result.output

    exported = json.loads((tmp_path / "outputs" / "sample_candidates.json").read_text(encoding="utf-8"))
    assert exported[0]["startTime"] == 49.0
    assert exported[0]["type"] == "reaction"
    assert exported[0]["metadata"]["title"]
    assert (tmp_path / "cache" / "signals" / "sample" / "signals.json").exists()


def test_analyze_reports_empty_result(tmp_path: Path, monkeypatch) -> None:
    vod_path = _prepare(tmp_path, monkeypatch, _quiet_signals())

    result = CliRunner().invoke(cli.app, ["analyze", str(vod_path)])

    assert result.exit_code == 0
    assert '"status": "empty"' in result.output
    assert cli.EMPTY_RESULT_MESSAGE in result.output


def test_analyze_reuses_cached_step_artifacts(tmp_path: Path, monkeypatch) -> None:
    vod_path = _prepare(tmp_path, monkeypatch, _shock_signals())
    ingest_dir = tmp_path / "cache" / "ingest" / "sample"
    ingest_dir.mkdir(parents=True)
    (ingest_dir / "metadata.json").write_text(json.dumps(_probe_result(vod_path)), encoding="utf-8")
    signals_path = tmp_path / "cache" / "signals" / "sample" / "signals.json"
    signals_path.parent.mkdir(parents=True)
    signals_path.write_text(json.dumps(signal_set_to_payload(_shock_signals())), encoding="utf-8")

    monkeypatch.setattr(cli, "probe_media", lambda **_: (_ for _ in ()).throw(AssertionError("probe should be skipped")))
    monkeypatch.setattr(
        cli, "collect_signals", lambda **_: (_ for _ in ()).throw(AssertionError("signals should be skipped"))
    )

    result = CliRunner().invoke(cli.app, ["analyze", str(vod_path)])

    assert result.exit_code == 0
    assert "[1/4] Probe media cached" in result.output
    assert "[2/4] Extract signals cached" in result.output
    assert '"clip_count": 1' in result.output


def test_analyze_submits_jobs_as_fifth_step(tmp_path: Path, monkeypatch) -> None:
    vod_path = _prepare(tmp_path, monkeypatch, _shock_signals())

    result = CliRunner().invoke(cli.app, ["analyze", str(vod_path), "--submit-for", "user-1", "--stream-id", "s-9"])

    assert result.exit_code == 0
    assert "[5/5] Queue processing jobs done" in result.output
    assert '"queued_count": 1' in result.output
    rows = [json.loads(line) for line in (tmp_path / "jobs.jsonl").read_text(encoding="utf-8").splitlines()]
    assert rows[0]["user_id"] == "user-1"
    assert rows[0]["stream_id"] == "s-9"
    assert rows[0]["clip_start_time"] == 49.0


def test_propose_build_scores_a_signal_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    signals_path = tmp_path / "signals.json"
    signals_path.write_text(json.dumps(signal_set_to_payload(_shock_signals())), encoding="utf-8")

    result = CliRunner().invoke(
        cli.app, ["propose", "build", str(signals_path), "--output-dir", str(tmp_path / "out"), "--seed", "3"]
    )

    assert result.exit_code == 0
    assert '"status": "ok"' in result.output
    payload = json.loads((tmp_path / "out" / "candidates_final.json").read_text(encoding="utf-8"))
    assert payload[0]["triggers"] == ["shock_disbelief", "timing_perfection"]
    assert payload[0]["score"] == 100
    assert (tmp_path / "out" / "candidates_final_review.json").exists()


def test_propose_build_rejects_unknown_preset(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    signals_path = tmp_path / "signals.json"
    signals_path.write_text(json.dumps(signal_set_to_payload(_shock_signals())), encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["propose", "build", str(signals_path), "--preset", "legendary"])

    assert result.exit_code == 1
    assert "Error: Unsupported scoring preset 'legendary'" in result.output


def test_jobs_submit_reports_partial_failures(tmp_path: Path, monkeypatch) -> None:
    queue = _RejectingQueue(failing_starts={10.0})
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    monkeypatch.setattr(cli, "JsonlJobQueue", lambda _: queue)
    candidates_path = tmp_path / "candidates.json"
    export_candidates(
        [
            ClipCandidate(start_time=0.0, end_time=4.0, peak_moment=1.0, clip_type=ClipType.ACTION, score=90),
            ClipCandidate(start_time=10.0, end_time=14.0, peak_moment=11.0, clip_type=ClipType.FUNNY, score=80),
        ],
        str(candidates_path),
    )

    result = CliRunner().invoke(
        cli.app, ["jobs", "submit", str(candidates_path), "--user-id", "u-1", "--source-url", "https://cdn/v.mp4"]
    )

    assert result.exit_code == 0
    assert '"status": "partial"' in result.output
    assert [request.clip_start_time for request in queue.queued] == [0.0]


def test_jobs_submit_fails_when_nothing_is_queued(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    monkeypatch.setattr(cli, "JsonlJobQueue", lambda _: _RejectingQueue(failing_starts={0.0}))
    candidates_path = tmp_path / "candidates.json"
    export_candidates(
        [ClipCandidate(start_time=0.0, end_time=4.0, peak_moment=1.0, score=90)],
        str(candidates_path),
    )

    result = CliRunner().invoke(
        cli.app, ["jobs", "submit", str(candidates_path), "--user-id", "u-1", "--source-url", "v.mp4"]
    )

    assert result.exit_code == 1
    assert "Error: no clip could be queued." in result.output


def test_preset_flag_keeps_yaml_scoring_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "scoring:\n"
        "  selection:\n"
        "    top_n: 1\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding="utf-8",
    )
    signals_path = tmp_path / "signals.json"
    signals_path.write_text(
        json.dumps(
            signal_set_to_payload(
                SignalSet(
                    duration=120.0,
                    loudness=[LoudnessEvent(time=t, intensity=0.9) for t in (10.0, 40.0, 70.0, 100.0)],
                    scene_changes=[],
                    motion=[MotionSample(time=t, motion_score=90.0) for t in (10.0, 40.0, 70.0, 100.0)],
                )
            )
        ),
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        cli.app,
        [
            "propose",
            "build",
            str(signals_path),
            "--output-dir",
            str(tmp_path / "out"),
            "--preset",
            "extended",
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0
    assert '"windows_considered": 5' in result.output
    assert '"clip_count": 1' in result.output


def test_review_recomputes_optimal_length_for_selected_preset(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: _settings(tmp_path))
    candidates_path = tmp_path / "candidates.json"
    export_candidates(
        [ClipCandidate(start_time=0.0, end_time=20.0, peak_moment=5.0, score=75, optimal_range=(15.0, 60.0))],
        str(candidates_path),
    )
    config_path = tmp_path / "missing.yaml"

    elite = CliRunner().invoke(
        cli.app, ["propose", "review", str(candidates_path), "-o", str(tmp_path / "elite"), "-c", str(config_path)]
    )
    extended = CliRunner().invoke(
        cli.app,
        [
            "propose",
            "review",
            str(candidates_path),
            "-o",
            str(tmp_path / "extended"),
            "-c",
            str(config_path),
            "--preset",
            "extended",
        ],
    )

    assert elite.exit_code == 0
    assert extended.exit_code == 0
    elite_rows = json.loads((tmp_path / "elite" / "candidates_final.json").read_text(encoding="utf-8"))
    extended_rows = json.loads((tmp_path / "extended" / "candidates_final.json").read_text(encoding="utf-8"))
    assert elite_rows[0]["features"]["optimalLength"] is False
    assert extended_rows[0]["features"]["optimalLength"] is True
