from __future__ import annotations

import logging

from highlight_clipper.features.log_events import decode_mean_volume
from highlight_clipper.models import MediaHandle, PipelineContext

logger = logging.getLogger(__name__)


def build_volumedetect_command(media_path: str) -> list[str]:
    return ["-vn", "-i", media_path, "-af", "volumedetect", "-f", "null", "-"]


async def probe_mean_volume(ctx: PipelineContext, handle: MediaHandle) -> float | None:
    """Estimate mean audio level (dBFS) to seed adaptive silence thresholds.

    Returns None when the engine call fails or no ``mean_volume`` marker is logged;
    callers then fall back to the fixed threshold ladder.
    """

    result = await ctx.engine.execute(build_volumedetect_command(str(handle.path)))
    if not result.success:
        logger.warning("Loudness probe failed for %s; using fixed silence thresholds.", handle.path)
        return None

    mean_volume = decode_mean_volume(result.log_text)
    if mean_volume is None:
        logger.warning("Loudness probe produced no mean_volume marker for %s.", handle.path)
        return None

    logger.info("Mean volume for %s: %.1f dB", handle.path.name, mean_volume)
    return mean_volume
