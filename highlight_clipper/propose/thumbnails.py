from __future__ import annotations

import logging
import uuid
from pathlib import Path

from highlight_clipper.config import RenderSettings
from highlight_clipper.ingest.filesystem import ensure_directory
from highlight_clipper.models import CancelCheck, MediaHandle, PipelineContext

logger = logging.getLogger(__name__)


def build_thumbnail_command(media_path: str, time_seconds: float, output_path: Path, render: RenderSettings) -> list[str]:
    return [
        "-y",
        "-ss",
        f"{max(0.0, time_seconds):.3f}",
        "-i",
        media_path,
        "-vf",
        f"scale={render.thumbnail_width}:-1",
        "-frames:v",
        "1",
        "-q:v",
        str(render.thumbnail_quality),
        str(output_path),
    ]


async def capture_thumbnail(ctx: PipelineContext, handle: MediaHandle, time_seconds: float) -> Path | None:
    output_path = ctx.scratch_dir / f"thumb_{uuid.uuid4().hex}.jpg"
    command = build_thumbnail_command(str(handle.path), time_seconds, output_path, ctx.settings.render)

    result = await ctx.engine.execute(command)
    if not await ctx.fs.exists(output_path):
        logger.warning("Thumbnail at %.2fs was not produced; skipping.", time_seconds)
        return None

    ctx.temps.register(output_path)
    if not result.success:
        logger.warning("Thumbnail at %.2fs reported failure; skipping.", time_seconds)
        return None
    return output_path


async def capture_thumbnails(
    ctx: PipelineContext,
    handle: MediaHandle,
    times: list[float],
    check_cancelled: CancelCheck | None = None,
) -> list[Path | None]:
    """One entry per requested time, ``None`` where no thumbnail was produced."""

    await ensure_directory(ctx.fs, ctx.scratch_dir)
    paths: list[Path | None] = []
    for time_seconds in times:
        if check_cancelled is not None:
            check_cancelled()
        paths.append(await capture_thumbnail(ctx, handle, time_seconds))
    return paths


async def generate_thumbnails(
    ctx: PipelineContext,
    handle: MediaHandle,
    times: list[float],
    check_cancelled: CancelCheck | None = None,
) -> list[Path]:
    captured = await capture_thumbnails(ctx, handle, times, check_cancelled)
    return [path for path in captured if path is not None]
