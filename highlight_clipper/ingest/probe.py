from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from highlight_clipper.ingest.engine import terminate_process
from highlight_clipper.models import MediaMetadata

logger = logging.getLogger(__name__)

SHARED_LIBRARY_MARKER = "error while loading shared libraries"


class MediaProber(Protocol):
    async def probe(self, path: Path) -> MediaMetadata: ...


class FFprobeProber:
    """Reads container metadata with ffprobe. Failures yield unknown duration."""

    def __init__(self, ffprobe_path: str = "ffprobe") -> None:
        self.ffprobe_path = ffprobe_path

    async def probe(self, path: Path) -> MediaMetadata:
        try:
            payload = await _run_ffprobe(Path(path), ffprobe_path=self.ffprobe_path)
        except RuntimeError as exc:
            logger.warning("Media probe unavailable for %s: %s", path, exc)
            return MediaMetadata()
        return _metadata_from_payload(payload)


async def _run_ffprobe(vod_path: Path, ffprobe_path: str = "ffprobe") -> dict[str, Any]:
    command = [
        ffprobe_path,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(vod_path),
    ]

    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffprobe executable was not found. Install FFmpeg so ffprobe is available on PATH."
        ) from exc

    try:
        stdout, stderr = await proc.communicate()
    except BaseException:
        await terminate_process(proc)
        raise
    if proc.returncode != 0:
        details = (stderr or b"").decode("utf-8", errors="replace").strip()
        if SHARED_LIBRARY_MARKER in details:
            raise RuntimeError(
                "ffprobe is installed but failed to start because required shared libraries are missing. "
                f"ffprobe stderr: {details}"
            )
        suffix = f" ffprobe stderr: {details}" if details else ""
        raise RuntimeError(f"ffprobe failed while probing media file: {vod_path}.{suffix}")

    try:
        return json.loads(stdout.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise RuntimeError("ffprobe returned invalid JSON output.") from exc


def _metadata_from_payload(payload: dict[str, Any]) -> MediaMetadata:
    normalized = _normalize_probe_payload(payload)
    video_streams = [stream for stream in normalized["streams"] if stream["codec_type"] == "video"]
    first_video = video_streams[0] if video_streams else {}

    duration = normalized["format"]["duration_seconds"]
    if duration is None:
        stream_durations = [s["duration_seconds"] for s in normalized["streams"] if s["duration_seconds"]]
        duration = max(stream_durations) if stream_durations else None

    return MediaMetadata(
        duration_seconds=duration,
        width=first_video.get("width"),
        height=first_video.get("height"),
        format_name=normalized["format"]["format_name"],
        raw=normalized,
    )


def _normalize_probe_payload(payload: dict[str, Any]) -> dict[str, Any]:
    stream_entries = payload.get("streams", [])
    format_entry = payload.get("format", {})

    streams = [_normalize_stream(stream) for stream in stream_entries]

    return {
        "format": {
            "format_name": format_entry.get("format_name"),
            "duration_seconds": _to_float(format_entry.get("duration")),
            "size_bytes": _to_int(format_entry.get("size")),
            "bit_rate": _to_int(format_entry.get("bit_rate")),
        },
        "streams": streams,
        "audio_stream_count": sum(1 for stream in streams if stream["codec_type"] == "audio"),
        "video_stream_count": sum(1 for stream in streams if stream["codec_type"] == "video"),
    }


def _normalize_stream(stream: dict[str, Any]) -> dict[str, Any]:
    return {
        "index": stream.get("index"),
        "codec_type": stream.get("codec_type"),
        "codec_name": stream.get("codec_name"),
        "width": _to_int(stream.get("width")),
        "height": _to_int(stream.get("height")),
        "avg_frame_rate": stream.get("avg_frame_rate"),
        "duration_seconds": _to_float(stream.get("duration")),
    }


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    return float(raw_value)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", ""):
        return None
    return int(raw_value)
