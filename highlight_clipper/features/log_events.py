"""Typed events decoded from ffmpeg analysis-filter logs.

The literal log grammar belongs to ffmpeg and changes between releases, so the
regular expressions live here and nowhere else. Detectors consume the typed
events only.

Sample lines::

    [silencedetect @ 0x7f] silence_start: 12.48
    [silencedetect @ 0x7f] silence_end: 14.02 | silence_duration: 1.54
    [Parsed_showinfo_1 @ 0x7f] n:   3 pts: 901 pts_time:30.03 ...
    [Parsed_volumedetect_0 @ 0x7f] mean_volume: -24.3 dB
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

SILENCE_START_PATTERN = re.compile(r"silence_start:\s*(-?\d+(?:\.\d+)?)")
SILENCE_END_PATTERN = re.compile(r"silence_end:\s*(-?\d+(?:\.\d+)?)")
SCENE_HIT_PATTERN = re.compile(r"showinfo.*pts_time:\s*(\d+(?:\.\d+)?)")
MEAN_VOLUME_PATTERN = re.compile(r"mean_volume:\s*(-?(?:\d+(?:\.\d+)?|inf))\s*dB")


@dataclass(frozen=True, slots=True)
class SilenceStart:
    time: float


@dataclass(frozen=True, slots=True)
class SilenceEnd:
    time: float


@dataclass(frozen=True, slots=True)
class SceneHit:
    time: float


SilenceEvent = SilenceStart | SilenceEnd


def decode_silence_events(log_text: str) -> Iterator[SilenceEvent]:
    for line in log_text.splitlines():
        match = SILENCE_START_PATTERN.search(line)
        if match:
            yield SilenceStart(float(match.group(1)))
            continue

        match = SILENCE_END_PATTERN.search(line)
        if match:
            yield SilenceEnd(float(match.group(1)))


def decode_scene_events(log_text: str) -> Iterator[SceneHit]:
    for line in log_text.splitlines():
        match = SCENE_HIT_PATTERN.search(line)
        if match:
            yield SceneHit(float(match.group(1)))


def decode_mean_volume(log_text: str) -> float | None:
    """Return the reported mean volume in dBFS, or None when absent or silent (-inf)."""

    match = MEAN_VOLUME_PATTERN.search(log_text)
    if not match or match.group(1).endswith("inf"):
        return None
    return float(match.group(1))
