from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path

from highlight_clipper.config import RenderSettings
from highlight_clipper.ingest.filesystem import ensure_directory
from highlight_clipper.models import PipelineContext

logger = logging.getLogger(__name__)


def build_concat_manifest(paths: list[Path]) -> str:
    """Concat-demuxer list, one ``file '<path>'`` line per clip in order."""

    lines = []
    for path in paths:
        escaped = str(Path(path).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def vertical_filter(render: RenderSettings) -> str:
    width, height = render.vertical_width, render.vertical_height
    return f"scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height}"


def build_concat_command(manifest_path: Path, output_path: Path, render: RenderSettings) -> list[str]:
    return [
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(manifest_path),
        "-vf",
        vertical_filter(render),
        "-c:v",
        "libx264",
        "-preset",
        render.video_preset,
        "-crf",
        str(render.video_crf),
        "-c:a",
        "copy",
        str(output_path),
    ]


async def concat_and_format_vertical(ctx: PipelineContext, paths: list[Path]) -> Path | None:
    """Merge clips into one 9:16 re-encoded video in the output directory."""

    if not paths:
        return None

    await ensure_directory(ctx.fs, ctx.scratch_dir)
    manifest_path = ctx.scratch_dir / f"concat_{uuid.uuid4().hex}.txt"
    try:
        await ctx.fs.write_text(manifest_path, build_concat_manifest(paths))
    except OSError as exc:
        logger.warning("Could not write concat manifest %s: %s", manifest_path, exc)
        return None
    ctx.temps.register(manifest_path)

    await ensure_directory(ctx.fs, ctx.output_dir)
    output_path = ctx.output_dir / f"highlight_{int(time.time() * 1000)}.mp4"
    result = await ctx.engine.execute(build_concat_command(manifest_path, output_path, ctx.settings.render))

    if not result.success or not await ctx.fs.exists(output_path):
        logger.warning("Vertical compilation failed for %d clips.", len(paths))
        return None

    logger.info("Wrote vertical compilation %s", output_path)
    return output_path
