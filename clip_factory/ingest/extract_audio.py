from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

from clip_factory.ingest.probe import probe_media


def extract_audio_track(
    vod_path: str,
    cache_dir: str = "data/cache",
    target_sample_rate: int = 16000,
) -> dict[str, Any]:
    """Extract the first audio stream to mono 16-bit WAV for loudness analysis."""

    metadata = probe_media(vod_path=vod_path, cache_dir=cache_dir)
    source_path = Path(metadata["vod_path"])
    ingest_dir = Path(metadata["cache_dir"])

    audio_streams = [stream for stream in metadata["streams"] if stream["codec_type"] == "audio"]
    if not audio_streams:
        raise RuntimeError(f"No audio stream found in {source_path}.")

    stream = audio_streams[0]
    output_path = ingest_dir / f"audio_{target_sample_rate}hz_mono.wav"

    was_cached = output_path.exists()
    if not was_cached:
        _run_ffmpeg_extract(
            source_path=source_path,
            stream_index=stream["index"],
            output_path=output_path,
            target_sample_rate=target_sample_rate,
        )

    manifest = {
        "status": "ok",
        "vod_path": str(source_path),
        "cache_dir": str(ingest_dir),
        "stream_index": stream["index"],
        "source_codec": stream.get("codec_name"),
        "sample_rate": target_sample_rate,
        "audio_path": str(output_path),
        "cached": was_cached,
        "duration_seconds": metadata["format"]["duration_seconds"],
    }

    manifest_path = ingest_dir / "audio_manifest.json"
    manifest_path.write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8")

    return {
        **manifest,
        "manifest_path": str(manifest_path),
        "metadata_path": metadata["metadata_path"],
    }


def _run_ffmpeg_extract(
    source_path: Path,
    stream_index: int,
    output_path: Path,
    target_sample_rate: int,
) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-i",
        str(source_path),
        "-map",
        f"0:{stream_index}",
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(target_sample_rate),
        "-c:a",
        "pcm_s16le",
        str(output_path),
    ]
    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffmpeg executable was not found. Install FFmpeg so ffmpeg is available on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise RuntimeError(f"ffmpeg failed to extract audio from {source_path}. ffmpeg stderr: {stderr}") from exc
