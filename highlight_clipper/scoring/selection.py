from __future__ import annotations

from highlight_clipper.config import WeightSettings
from highlight_clipper.models import Candidate, ClipWindow, Interval
from highlight_clipper.scoring.window_score import generate_candidates

DEFAULT_MAX_OVERLAP_RATIO = 0.6


def overlap_seconds(a: ClipWindow, b: ClipWindow) -> float:
    return max(0.0, min(a.end, b.end) - max(a.start, b.start))


def overlap_fraction(a: ClipWindow, b: ClipWindow, window_size: float) -> float:
    return overlap_seconds(a, b) / window_size


def select_windows(
    candidates: list[Candidate],
    window_size: float,
    top_k: int,
    max_overlap_ratio: float = DEFAULT_MAX_OVERLAP_RATIO,
) -> list[ClipWindow]:
    """Greedy non-max suppression over scored candidates.

    Candidates are ranked by score with ties going to the earlier start, so the
    output is deterministic for identical input.
    """

    if top_k <= 0 or not candidates:
        return []

    ranked = sorted(candidates, key=lambda candidate: (-candidate.score, candidate.window.start))
    selected: list[ClipWindow] = []

    for candidate in ranked:
        if len(selected) >= top_k:
            break
        if _violates_overlap(candidate.window, selected, window_size, max_overlap_ratio):
            continue
        selected.append(candidate.window)

    return selected


def _violates_overlap(
    window: ClipWindow,
    selected: list[ClipWindow],
    window_size: float,
    max_overlap_ratio: float,
) -> bool:
    return any(overlap_fraction(kept, window, window_size) > max_overlap_ratio for kept in selected)


def score_highlight_windows(
    intervals: list[Interval],
    scene_times: list[float],
    window_size: float = 30.0,
    top_k: int = 5,
    weights: WeightSettings | None = None,
    *,
    strategy: str = "balanced",
    max_overlap_ratio: float = DEFAULT_MAX_OVERLAP_RATIO,
) -> list[ClipWindow]:
    """Score sliding windows over speech intervals and keep at most top_k diverse ones."""

    candidates = generate_candidates(
        intervals,
        sorted(scene_times),
        window_size=window_size,
        weights=weights,
        strategy=strategy,
    )
    return select_windows(candidates, window_size=window_size, top_k=top_k, max_overlap_ratio=max_overlap_ratio)
