from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from clip_factory.models import validate_time_range

logger = logging.getLogger(__name__)

QUALITY_CRF = {"high": 18, "medium": 23, "low": 28}
FADE_IN_SECONDS = 0.3
TRANSITION_ZOOM = 1.1
TRANSITION_SATURATION = 1.3
HIGHPASS_HZ = 80
LOWPASS_HZ = 12000


@dataclass(frozen=True, slots=True)
class EffectsConfig:
    add_captions: bool = False
    caption_text: str = ""
    add_transitions: bool = False
    enhance_audio: bool = False
    video_quality: str = "high"

    def __post_init__(self) -> None:
        if self.video_quality not in QUALITY_CRF:
            raise ValueError(
                f"Unsupported video quality '{self.video_quality}'. "
                f"Expected one of: {', '.join(QUALITY_CRF)}."
            )


def build_cut_command(
    source_path: str | Path,
    start_time: float,
    end_time: float,
    output_path: str | Path,
    effects: EffectsConfig | None = None,
) -> list[str]:
    """Build the ffmpeg argument list that cuts ``[start_time, end_time]`` out of the source."""

    validate_time_range(start_time, end_time)
    resolved = effects or EffectsConfig()

    video_filters: list[str] = []
    if resolved.add_transitions:
        # punch-in crop keeps the output size; dimensions stay even for libx264
        video_filters.extend(
            [
                f"scale=trunc(iw*{TRANSITION_ZOOM}/2)*2:trunc(ih*{TRANSITION_ZOOM}/2)*2",
                f"crop=trunc(iw/{TRANSITION_ZOOM}/2)*2:trunc(ih/{TRANSITION_ZOOM}/2)*2",
                f"eq=saturation={TRANSITION_SATURATION}",
                f"fade=t=in:st=0:d={FADE_IN_SECONDS}",
            ]
        )
    if resolved.add_captions and resolved.caption_text.strip():
        video_filters.append(
            "drawtext=text='"
            + _escape_drawtext(resolved.caption_text.strip())
            + "':fontcolor=white:fontsize=h/18:borderw=3:bordercolor=black"
            + ":x=(w-text_w)/2:y=h*0.12"
        )

    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-ss",
        f"{start_time:.3f}",
        "-i",
        str(source_path),
        "-t",
        f"{end_time - start_time:.3f}",
    ]
    if video_filters:
        command.extend(["-vf", ",".join(video_filters)])
    if resolved.enhance_audio:
        command.extend(
            ["-af", f"highpass=f={HIGHPASS_HZ},lowpass=f={LOWPASS_HZ},loudnorm=I=-14:TP=-1.5:LRA=11"]
        )
    command.extend(
        [
            "-c:v",
            "libx264",
            "-preset",
            "veryfast",
            "-crf",
            str(QUALITY_CRF[resolved.video_quality]),
            "-c:a",
            "aac",
            "-b:a",
            "160k",
            "-avoid_negative_ts",
            "make_zero",
            str(output_path),
        ]
    )
    return command


def cut_clip(
    source_path: str | Path,
    start_time: float,
    end_time: float,
    output_path: str | Path,
    effects: EffectsConfig | None = None,
) -> Path:
    """Render one clip with ffmpeg and return the output path."""

    source = Path(source_path).expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Source video not found: {source}")

    output = Path(output_path).expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    command = build_cut_command(source, start_time, end_time, output, effects)

    logger.info("Cutting %.3f-%.3f from %s", start_time, end_time, source.name)
    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffmpeg executable was not found. Install FFmpeg so ffmpeg is available on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        details = f" ffmpeg stderr: {stderr}" if stderr else ""
        raise RuntimeError(f"ffmpeg failed to cut clip from {source}.{details}") from exc

    return output


def _escape_drawtext(text: str) -> str:
    escaped = text.replace("\\", "\\\\")
    for char in (":", "'", "%", ","):
        escaped = escaped.replace(char, f"\\{char}")
    return escaped
