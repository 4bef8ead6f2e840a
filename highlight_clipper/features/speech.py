from __future__ import annotations

import logging
from typing import Iterable

from highlight_clipper.config import DetectionSettings
from highlight_clipper.features.log_events import SilenceEnd, SilenceEvent, SilenceStart, decode_silence_events
from highlight_clipper.models import Interval, MediaHandle, PipelineContext

logger = logging.getLogger(__name__)


def silence_threshold_ladder(settings: DetectionSettings, mean_volume: float | None = None) -> list[float]:
    """Noise floors to try, most permissive first."""

    if mean_volume is None:
        return list(settings.silence_thresholds_db)
    return [round(mean_volume - offset, 2) for offset in settings.relative_silence_offsets_db]


def build_silencedetect_command(media_path: str, noise_db: float, min_silence_seconds: float) -> list[str]:
    return [
        "-vn",
        "-i",
        media_path,
        "-af",
        f"silencedetect=noise={noise_db}dB:d={min_silence_seconds}",
        "-f",
        "null",
        "-",
    ]


def speech_intervals_from_events(events: Iterable[SilenceEvent], min_duration: float = 1.0) -> list[Interval]:
    """Walk silence boundaries in order and return the speech spans between them.

    Returns an empty list when no silence marker was seen at all: the detector
    produced nothing to decode, which is not the same as "speech everywhere".
    """

    intervals: list[Interval] = []
    last_silence_end = 0.0
    saw_marker = False
    in_silence = False

    for event in events:
        saw_marker = True
        if isinstance(event, SilenceStart):
            if not in_silence and event.time > last_silence_end:
                intervals.append(Interval(start=last_silence_end, end=event.time))
            in_silence = True
        elif isinstance(event, SilenceEnd):
            last_silence_end = event.time
            in_silence = False

    if not saw_marker:
        return []

    # media that ends inside a silence has no trailing speech
    if not in_silence:
        intervals.append(Interval(start=last_silence_end, end=None))

    return [
        interval
        for interval in intervals
        if interval.start >= 0 and (interval.unbounded or interval.end - interval.start > min_duration)
    ]


def resolve_intervals(
    intervals: list[Interval],
    duration_seconds: float | None,
    min_duration: float = 1.0,
) -> list[Interval]:
    """Clamp unbounded intervals to the media duration.

    With an unknown duration, unbounded intervals are dropped rather than scored
    against an open end.
    """

    resolved: list[Interval] = []
    for interval in intervals:
        if not interval.unbounded:
            if duration_seconds is not None and interval.end > duration_seconds:
                interval = Interval(start=interval.start, end=duration_seconds)
            if interval.end - interval.start > min_duration:
                resolved.append(interval)
            continue

        if duration_seconds is None:
            logger.warning(
                "Dropping open-ended speech interval starting at %.2fs: media duration is unknown.",
                interval.start,
            )
            continue

        if duration_seconds - interval.start > min_duration:
            resolved.append(Interval(start=interval.start, end=duration_seconds))

    return resolved


async def detect_speech_sections(
    ctx: PipelineContext,
    handle: MediaHandle,
    mean_volume: float | None = None,
) -> list[Interval]:
    """Detect speech intervals, retrying down the silence-threshold ladder.

    The first threshold whose decoded result is non-empty wins. Engine failures
    move on to the next threshold; an exhausted ladder yields an empty list.
    """

    detection = ctx.settings.detection
    for noise_db in silence_threshold_ladder(detection, mean_volume):
        command = build_silencedetect_command(str(handle.path), noise_db, detection.min_silence_seconds)
        result = await ctx.engine.execute(command)
        if not result.success:
            logger.warning("silencedetect failed at %.1f dB; trying next threshold.", noise_db)
            continue

        intervals = speech_intervals_from_events(
            decode_silence_events(result.log_text),
            min_duration=detection.min_interval_seconds,
        )
        if intervals:
            logger.info("Detected %d speech intervals at %.1f dB.", len(intervals), noise_db)
            return intervals

        logger.info("No speech intervals decoded at %.1f dB.", noise_db)

    logger.warning("Silence detection yielded no speech intervals for %s.", handle.path)
    return []
