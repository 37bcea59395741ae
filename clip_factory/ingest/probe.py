from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

from clip_factory.models import MediaMetadata

_SHARED_LIBRARY_MARKER = "error while loading shared libraries"


def probe_media(vod_path: str, cache_dir: str = "data/cache") -> dict[str, Any]:
    """Probe media metadata via ffprobe and persist ingest artifacts."""

    source_path = _resolve_source(vod_path)

    ingest_dir = Path(cache_dir).expanduser().resolve() / "ingest" / source_path.stem
    ingest_dir.mkdir(parents=True, exist_ok=True)

    raw_probe_path = ingest_dir / "ffprobe_raw.json"
    metadata_path = ingest_dir / "metadata.json"

    ffprobe_payload = _run_ffprobe(source_path)
    normalized_metadata = _normalize_probe_payload(source_path, ffprobe_payload)

    raw_probe_path.write_text(
        json.dumps(ffprobe_payload, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    metadata_path.write_text(
        json.dumps(normalized_metadata, indent=2, sort_keys=True),
        encoding="utf-8",
    )

    return {
        **normalized_metadata,
        "cache_dir": str(ingest_dir),
        "ffprobe_raw_path": str(raw_probe_path),
        "metadata_path": str(metadata_path),
    }


def get_media_metadata(vod_path: str) -> MediaMetadata:
    """Return duration, frame rate, resolution and bitrate of a media file.

    Values ffprobe cannot report fall back to 30 fps, 1920x1080 and 5 Mbit/s; a missing
    duration is an error because every downstream stage depends on it.
    """

    source_path = _resolve_source(vod_path)
    return metadata_from_probe(_normalize_probe_payload(source_path, _run_ffprobe(source_path)))


def metadata_from_probe(normalized: dict[str, Any]) -> MediaMetadata:
    video_stream = next(
        (stream for stream in normalized.get("streams", []) if stream.get("codec_type") == "video"),
        {},
    )
    format_entry = normalized.get("format", {})

    duration = format_entry.get("duration_seconds") or video_stream.get("duration_seconds")
    if duration is None:
        raise RuntimeError(f"ffprobe did not report a duration for {normalized.get('vod_path')}.")

    defaults = MediaMetadata(duration=float(duration))
    return MediaMetadata(
        duration=float(duration),
        fps=_parse_frame_rate(video_stream.get("avg_frame_rate")) or defaults.fps,
        width=video_stream.get("width") or defaults.width,
        height=video_stream.get("height") or defaults.height,
        bitrate=format_entry.get("bit_rate") or defaults.bitrate,
    )


def _resolve_source(vod_path: str) -> Path:
    source_path = Path(vod_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"VOD file not found: {source_path}")
    return source_path


def _run_ffprobe(vod_path: Path) -> dict[str, Any]:
    command = [
        "ffprobe",
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(vod_path),
    ]

    try:
        completed = subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffprobe executable was not found. Install FFmpeg so ffprobe is available on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        if _SHARED_LIBRARY_MARKER in stderr:
            raise RuntimeError(
                "ffprobe is installed but failed to start because required shared libraries are missing. "
                f"Reinstall FFmpeg or fix the library path. ffprobe stderr: {stderr}"
            ) from exc
        details = f" ffprobe stderr: {stderr}" if stderr else ""
        raise RuntimeError(
            f"ffprobe failed while probing media file: {vod_path}.{details}"
        ) from exc

    try:
        return json.loads(completed.stdout)
    except json.JSONDecodeError as exc:
        raise RuntimeError("ffprobe returned invalid JSON output.") from exc


def _normalize_probe_payload(vod_path: Path, payload: dict[str, Any]) -> dict[str, Any]:
    stream_entries = payload.get("streams", [])
    format_entry = payload.get("format", {})

    streams = [_normalize_stream(stream) for stream in stream_entries]
    audio_streams = [stream for stream in streams if stream["codec_type"] == "audio"]

    return {
        "status": "ok",
        "vod_path": str(vod_path),
        "format": {
            "format_name": format_entry.get("format_name"),
            "duration_seconds": _to_float(format_entry.get("duration")),
            "size_bytes": _to_int(format_entry.get("size")),
            "bit_rate": _to_int(format_entry.get("bit_rate")),
        },
        "streams": streams,
        "audio_stream_count": len(audio_streams),
        "video_stream_count": sum(1 for stream in streams if stream["codec_type"] == "video"),
    }


def _normalize_stream(stream: dict[str, Any]) -> dict[str, Any]:
    return {
        "index": stream.get("index"),
        "codec_type": stream.get("codec_type"),
        "codec_name": stream.get("codec_name"),
        "sample_rate": _to_int(stream.get("sample_rate")),
        "channels": _to_int(stream.get("channels")),
        "width": _to_int(stream.get("width")),
        "height": _to_int(stream.get("height")),
        "avg_frame_rate": stream.get("avg_frame_rate"),
        "duration_seconds": _to_float(stream.get("duration")),
    }


def _parse_frame_rate(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", "", "0/0"):
        return None
    numerator, _, denominator = str(raw_value).partition("/")
    if not denominator:
        return float(numerator)
    if float(denominator) == 0:
        return None
    return float(numerator) / float(denominator)


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    return float(raw_value)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", ""):
        return None
    return int(raw_value)
