from __future__ import annotations

import logging

from highlight_clipper.features.log_events import decode_scene_events
from highlight_clipper.models import MediaHandle, PipelineContext

logger = logging.getLogger(__name__)


def build_scene_command(media_path: str, threshold: float) -> list[str]:
    return ["-i", media_path, "-vf", f"select='gt(scene,{threshold})',showinfo", "-an", "-f", "null", "-"]


async def detect_scene_changes(ctx: PipelineContext, handle: MediaHandle) -> list[float]:
    """Return ascending scene-change timestamps, relaxing the threshold until one yields hits."""

    for threshold in ctx.settings.detection.scene_thresholds:
        result = await ctx.engine.execute(build_scene_command(str(handle.path), threshold))
        if not result.success:
            logger.warning("Scene detection failed at threshold %.2f; trying next threshold.", threshold)
            continue

        times = sorted(event.time for event in decode_scene_events(result.log_text))
        if times:
            logger.info("Detected %d scene changes at threshold %.2f.", len(times), threshold)
            return times

    logger.warning("Scene detection yielded no scene changes for %s.", handle.path)
    return []
