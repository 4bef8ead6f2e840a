from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from highlight_clipper.config import Settings
    from highlight_clipper.ingest.engine import MediaEngine
    from highlight_clipper.ingest.filesystem import Filesystem
    from highlight_clipper.ingest.probe import MediaProber
    from highlight_clipper.temp_registry import TempRegistry

# raises PipelineCancelledError when the run was asked to stop
CancelCheck = Callable[[], None]


@dataclass(frozen=True, slots=True)
class MediaHandle:
    """Reference to the source video; owned by the caller."""

    path: Path

    @classmethod
    def from_path(cls, path: str | Path) -> MediaHandle:
        return cls(path=Path(path).expanduser().resolve())


@dataclass(frozen=True, slots=True)
class Interval:
    """A speech-present span. ``end`` is ``None`` until media duration is known."""

    start: float
    end: float | None = None

    @property
    def unbounded(self) -> bool:
        return self.end is None

    @property
    def duration(self) -> float | None:
        if self.end is None:
            return None
        return self.end - self.start

    def as_pair(self) -> tuple[float, float | None]:
        return (self.start, self.end)


@dataclass(frozen=True, slots=True)
class ClipWindow:
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True, slots=True)
class Candidate:
    """A scored window, discarded after selection."""

    window: ClipWindow
    score: float


@dataclass(slots=True)
class ClipArtifact:
    """Stable clip schema shared between materialization and export."""

    id: str
    path: Path
    start_time: float
    end_time: float
    duration: float
    score: float
    thumbnail_path: Path | None = None


@dataclass(slots=True)
class MediaMetadata:
    duration_seconds: float | None = None
    width: int | None = None
    height: int | None = None
    format_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class PipelineState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    DETECTING_SPEECH = "detecting_speech"
    DETECTING_SCENES = "detecting_scenes"
    SCORING = "scoring"
    SELECTING = "selecting"
    EXTRACTING_CLIPS = "extracting_clips"
    GENERATING_THUMBNAILS = "generating_thumbnails"
    CONCATENATING = "concatenating"
    EXPORTING = "exporting"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PipelineContext:
    """Per-run collaborators and state shared between pipeline stages."""

    engine: MediaEngine
    prober: MediaProber
    fs: Filesystem
    settings: Settings
    temps: TempRegistry
    scratch_dir: Path
    output_dir: Path

    def is_scratch(self, path: Path) -> bool:
        return Path(path).resolve().is_relative_to(self.scratch_dir.resolve())


@dataclass(slots=True)
class PipelineResult:
    state: PipelineState
    windows: list[ClipWindow] = field(default_factory=list)
    artifacts: list[ClipArtifact] = field(default_factory=list)
    speech_sections: list[Interval] = field(default_factory=list)
    scene_times: list[float] = field(default_factory=list)
    duration_seconds: float | None = None
    mean_volume_db: float | None = None
    compilation_path: Path | None = None

    @property
    def partial(self) -> bool:
        """Fewer clips were produced than windows were selected."""

        return len(self.artifacts) < len(self.windows)
