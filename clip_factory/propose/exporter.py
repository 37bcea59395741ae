from __future__ import annotations

import csv
import json
import shlex
from pathlib import Path
from typing import Any

from clip_factory.models import ClipCandidate, candidate_from_payload
from clip_factory.render.cutter import build_cut_command


def export_candidates(candidates: list[ClipCandidate], output_path: str) -> Path:
    """Export clip candidates to JSON (default) or CSV, based on file extension."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".csv":
        _write_csv(candidates, path)
    else:
        _write_json(candidates, path)

    return path


def export_final_outputs(
    candidates: list[ClipCandidate],
    output_dir: str | Path,
    *,
    basename: str = "candidates_final",
    vod_path: str | None = None,
    include_ffmpeg_commands: bool = True,
) -> dict[str, Path]:
    """Export final JSON/CSV contract files and a review manifest for quick triage."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    json_path = resolved_output_dir / f"{basename}.json"
    csv_path = resolved_output_dir / f"{basename}.csv"
    review_path = resolved_output_dir / f"{basename}_review.json"

    export_candidates(candidates, str(json_path))
    export_candidates(candidates, str(csv_path))

    review_manifest = generate_review_manifest(
        candidates,
        vod_path=vod_path,
        include_ffmpeg_commands=include_ffmpeg_commands,
    )
    review_path.write_text(json.dumps(review_manifest, indent=2, ensure_ascii=False), encoding="utf-8")

    return {
        "json": json_path,
        "csv": csv_path,
        "review": review_path,
    }


def generate_review_manifest(
    candidates: list[ClipCandidate],
    *,
    vod_path: str | None = None,
    include_ffmpeg_commands: bool = True,
) -> list[dict[str, Any]]:
    """Build a lightweight review manifest with confidence/reason summaries."""

    manifest: list[dict[str, Any]] = []
    for idx, candidate in enumerate(candidates, start=1):
        entry = {
            "index": idx,
            "start_seconds": candidate.start_time,
            "end_seconds": candidate.end_time,
            "duration_seconds": round(candidate.duration, 3),
            "peak_seconds": candidate.peak_moment,
            "score": candidate.score,
            "type": candidate.clip_type.value,
            "triggers": [trigger.value for trigger in candidate.triggers],
            "confidence": _confidence_label(candidate.confidence),
            "reason_summary": candidate.reason or "no strong viral signals",
        }
        if candidate.metadata is not None:
            entry["title"] = candidate.metadata.title
        if include_ffmpeg_commands and vod_path:
            entry["ffmpeg_command"] = build_ffmpeg_clip_command(
                vod_path=vod_path,
                candidate=candidate,
                index=idx,
            )
        manifest.append(entry)

    return manifest


def build_ffmpeg_clip_command(
    *,
    vod_path: str,
    candidate: ClipCandidate,
    index: int,
    output_dir: str = "clips",
) -> str:
    """Generate a copy-paste ffmpeg command for a candidate clip snippet."""

    stem = Path(vod_path).stem or "clip"
    output_path = f"{output_dir.rstrip('/')}/{stem}_clip_{index:03d}.mp4"
    return shlex.join(build_cut_command(vod_path, candidate.start_time, candidate.end_time, output_path))


def load_candidates(
    path: str | Path,
    optimal_range: tuple[float, float] = (3.0, 15.0),
) -> list[ClipCandidate]:
    """Load clip candidates from the exporter JSON contract for downstream tooling."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Candidate contract must be a JSON array.")

    candidates: list[ClipCandidate] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Candidate row {idx} must be an object.")
        try:
            candidates.append(candidate_from_payload(row, optimal_range=optimal_range))
        except KeyError as exc:
            raise ValueError(f"Candidate row {idx} is missing field {exc.args[0]!r}.") from exc

    return candidates


def _write_json(candidates: list[ClipCandidate], path: Path) -> None:
    payload = [candidate.to_payload() for candidate in candidates]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _write_csv(candidates: list[ClipCandidate], path: Path) -> None:
    fields = [
        "start_seconds",
        "end_seconds",
        "duration_seconds",
        "peak_seconds",
        "score",
        "type",
        "confidence",
        "triggers",
        "reason",
        "title",
    ]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for candidate in candidates:
            writer.writerow(
                {
                    "start_seconds": f"{candidate.start_time:.3f}",
                    "end_seconds": f"{candidate.end_time:.3f}",
                    "duration_seconds": f"{candidate.duration:.3f}",
                    "peak_seconds": f"{candidate.peak_moment:.3f}",
                    "score": candidate.score,
                    "type": candidate.clip_type.value,
                    "confidence": f"{candidate.confidence:.2f}",
                    "triggers": "|".join(trigger.value for trigger in candidate.triggers),
                    "reason": candidate.reason,
                    "title": candidate.metadata.title if candidate.metadata else "",
                }
            )


def _confidence_label(confidence: float) -> str:
    if confidence >= 0.9:
        return "elite"
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"
