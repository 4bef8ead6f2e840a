from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from highlight_clipper.config import WeightSettings
from highlight_clipper.models import Candidate, ClipWindow, Interval

logger = logging.getLogger(__name__)

ScoringStrategy = Literal["balanced", "coverage"]

MIN_SPEECH_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class WindowFeatures:
    """Raw signals measured for one candidate window."""

    start: float
    window_size: float
    speech_coverage: float
    scene_count: int


class WindowScorer(Protocol):
    def score(self, features: WindowFeatures, weights: WeightSettings) -> float: ...


class BalancedScorer:
    """Coverage plus scene density, penalized when the two signals disagree."""

    def score(self, features: WindowFeatures, weights: WeightSettings) -> float:
        coverage_ratio = features.speech_coverage / features.window_size
        imbalance = abs(features.scene_count - coverage_ratio)
        return (
            features.speech_coverage * weights.speech
            + features.scene_count * weights.scene
            - weights.balance_penalty * imbalance
        )


class CoverageScorer:
    """Plain weighted sum of speech coverage and scene count."""

    def score(self, features: WindowFeatures, weights: WeightSettings) -> float:
        return features.speech_coverage * weights.speech + features.scene_count * weights.scene


_SCORERS: dict[str, WindowScorer] = {
    "balanced": BalancedScorer(),
    "coverage": CoverageScorer(),
}


def get_scorer(strategy: str) -> WindowScorer:
    normalized = strategy.lower().strip()
    if normalized not in _SCORERS:
        msg = (
            f"Unsupported scoring strategy '{strategy}'. "
            f"Expected one of: {', '.join(sorted(_SCORERS))}."
        )
        raise ValueError(msg)
    return _SCORERS[normalized]


def count_scenes(scene_times: list[float], start: float, end: float) -> int:
    return sum(1 for t in scene_times if start <= t <= end)


def generate_candidates(
    intervals: list[Interval],
    scene_times: list[float],
    window_size: float = 30.0,
    weights: WeightSettings | None = None,
    *,
    strategy: str = "balanced",
) -> list[Candidate]:
    """Slide half-overlapping windows across each speech interval and score them.

    Scene data alone never produces a candidate. A trailing window whose speech
    span already lies inside the previous window of the same interval is skipped.
    """

    if window_size <= 0:
        raise ValueError("window_size must be positive.")

    resolved_weights = weights or WeightSettings()
    scorer = get_scorer(strategy)
    step = window_size / 2
    candidates: list[Candidate] = []

    for interval in intervals:
        if interval.unbounded:
            logger.warning("Skipping unresolved open-ended interval at %.2fs.", interval.start)
            continue
        if interval.end - interval.start <= MIN_SPEECH_SECONDS:
            continue

        index = 0
        previous_end: float | None = None
        while True:
            win_start = interval.start + index * step
            if win_start >= interval.end:
                break
            if previous_end is not None and interval.end <= previous_end:
                break

            win_end = win_start + window_size
            features = WindowFeatures(
                start=win_start,
                window_size=window_size,
                speech_coverage=min(interval.end, win_end) - win_start,
                scene_count=count_scenes(scene_times, win_start, win_end),
            )
            candidates.append(
                Candidate(
                    window=ClipWindow(start=win_start, duration=window_size),
                    score=scorer.score(features, resolved_weights),
                )
            )
            previous_end = win_end
            index += 1

    return candidates
