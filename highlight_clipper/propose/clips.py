from __future__ import annotations

import logging
import uuid
from pathlib import Path

from highlight_clipper.ingest.filesystem import ensure_directory
from highlight_clipper.models import CancelCheck, ClipArtifact, ClipWindow, MediaHandle, PipelineContext

logger = logging.getLogger(__name__)


def build_clip_command(media_path: str, window: ClipWindow, output_path: Path) -> list[str]:
    """Stream-copy extraction: no re-encode, cuts land on the nearest keyframes."""

    return [
        "-y",
        "-ss",
        f"{max(0.0, window.start):.3f}",
        "-i",
        media_path,
        "-t",
        f"{window.duration:.3f}",
        "-c",
        "copy",
        "-avoid_negative_ts",
        "make_zero",
        str(output_path),
    ]


async def extract_clip(
    ctx: PipelineContext,
    handle: MediaHandle,
    window: ClipWindow,
    output_dir: Path | None = None,
) -> Path | None:
    target_dir = output_dir or ctx.scratch_dir
    output_path = target_dir / f"clip_{uuid.uuid4().hex}{handle.path.suffix or '.mp4'}"

    result = await ctx.engine.execute(build_clip_command(str(handle.path), window, output_path))
    produced = await ctx.fs.exists(output_path)
    if produced and ctx.is_scratch(output_path):
        ctx.temps.register(output_path)

    if not result.success or not produced:
        logger.warning("Clip extraction failed for window %.2fs+%.2fs; skipping.", window.start, window.duration)
        return None
    return output_path


async def materialize_clips(
    ctx: PipelineContext,
    handle: MediaHandle,
    windows: list[ClipWindow],
    *,
    scores: dict[ClipWindow, float] | None = None,
    output_dir: Path | None = None,
    check_cancelled: CancelCheck | None = None,
) -> list[ClipArtifact]:
    """Extract one clip per window, in window order; failed windows are skipped.

    Artifact ids are sequential over the clips actually produced.
    """

    await ensure_directory(ctx.fs, output_dir or ctx.scratch_dir)
    window_scores = scores or {}
    artifacts: list[ClipArtifact] = []
    for window in windows:
        if check_cancelled is not None:
            check_cancelled()
        path = await extract_clip(ctx, handle, window, output_dir=output_dir)
        if path is None:
            continue
        artifacts.append(
            ClipArtifact(
                id=f"c_{len(artifacts) + 1:04d}",
                path=path,
                start_time=window.start,
                end_time=window.end,
                duration=window.duration,
                score=window_scores.get(window, 0.0),
            )
        )

    if len(artifacts) < len(windows):
        logger.warning("Extracted %d of %d requested clips.", len(artifacts), len(windows))
    return artifacts


async def generate_highlight_clips(
    ctx: PipelineContext,
    handle: MediaHandle,
    windows: list[ClipWindow],
    output_dir: Path | None = None,
    check_cancelled: CancelCheck | None = None,
) -> list[Path]:
    artifacts = await materialize_clips(ctx, handle, windows, output_dir=output_dir, check_cancelled=check_cancelled)
    return [artifact.path for artifact in artifacts]
