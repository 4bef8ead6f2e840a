from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable

from highlight_clipper.config import Settings
from highlight_clipper.errors import PipelineCancelledError
from highlight_clipper.features.scenes import detect_scene_changes
from highlight_clipper.features.speech import detect_speech_sections, resolve_intervals
from highlight_clipper.ingest.engine import FFmpegEngine, MediaEngine
from highlight_clipper.ingest.filesystem import Filesystem, LocalFilesystem, ensure_directory
from highlight_clipper.ingest.loudness import probe_mean_volume
from highlight_clipper.ingest.probe import FFprobeProber, MediaProber
from highlight_clipper.models import (
    ClipWindow,
    Interval,
    MediaHandle,
    PipelineContext,
    PipelineResult,
    PipelineState,
)
from highlight_clipper.propose.clips import generate_highlight_clips, materialize_clips
from highlight_clipper.propose.concat import concat_and_format_vertical
from highlight_clipper.propose.exporter import export_artifacts
from highlight_clipper.propose.thumbnails import capture_thumbnails, generate_thumbnails
from highlight_clipper.scoring.selection import select_windows
from highlight_clipper.scoring.window_score import generate_candidates
from highlight_clipper.temp_registry import TempRegistry

logger = logging.getLogger(__name__)

StateListener = Callable[[PipelineState], None]


def build_context(
    settings: Settings,
    *,
    engine: MediaEngine | None = None,
    prober: MediaProber | None = None,
    fs: Filesystem | None = None,
    run_id: str | None = None,
) -> PipelineContext:
    """Assemble per-run collaborators. Each run gets its own scratch sub-directory."""

    resolved_fs = fs or LocalFilesystem()
    scratch_root = Path(settings.pipeline.scratch_dir).expanduser().resolve()
    return PipelineContext(
        engine=engine or FFmpegEngine(settings.engine.ffmpeg_path),
        prober=prober or FFprobeProber(settings.engine.ffprobe_path),
        fs=resolved_fs,
        settings=settings,
        temps=TempRegistry(resolved_fs),
        scratch_dir=scratch_root / f"run_{run_id or uuid.uuid4().hex[:12]}",
        output_dir=Path(settings.pipeline.output_dir).expanduser().resolve(),
    )


class HighlightPipeline:
    """Runs highlight detection and clip materialization for one video.

    Stages execute strictly in order. Detection and extraction failures are
    absorbed inside their stage; only EnvironmentFailureError moves the run to
    ERROR. Scratch files are removed when the run ends, however it ends.
    """

    def __init__(self, ctx: PipelineContext, on_state_change: StateListener | None = None) -> None:
        self.ctx = ctx
        self._on_state_change = on_state_change
        self._state = PipelineState.IDLE
        self._cancel_requested = False
        self._window_scores: dict[ClipWindow, float] = {}

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Request cooperative cancellation; honoured before the next engine request."""

        self._cancel_requested = True

    async def detect_speech_sections(self, handle: MediaHandle, mean_volume: float | None = None) -> list[Interval]:
        return await detect_speech_sections(self.ctx, handle, mean_volume)

    async def detect_scene_changes(self, handle: MediaHandle) -> list[float]:
        return await detect_scene_changes(self.ctx, handle)

    def score_highlight_windows(
        self,
        intervals: list[Interval],
        timestamps: list[float],
        window_size: float | None = None,
        top_k: int | None = None,
    ) -> list[ClipWindow]:
        pipeline = self.ctx.settings.pipeline
        size = window_size or pipeline.window_seconds
        candidates = generate_candidates(
            intervals,
            sorted(timestamps),
            window_size=size,
            weights=self.ctx.settings.weights,
            strategy=self.ctx.settings.scoring.strategy,
        )
        logger.info("Scored %d candidate windows.", len(candidates))
        self._window_scores.update((candidate.window, candidate.score) for candidate in candidates)
        return select_windows(
            candidates,
            window_size=size,
            top_k=pipeline.top_k if top_k is None else top_k,
            max_overlap_ratio=pipeline.max_overlap_ratio,
        )

    async def generate_highlight_clips(self, handle: MediaHandle, windows: list[ClipWindow]) -> list[Path]:
        return await generate_highlight_clips(self.ctx, handle, windows, check_cancelled=self._check_cancelled)

    async def generate_thumbnails(self, handle: MediaHandle, times: list[float]) -> list[Path]:
        return await generate_thumbnails(self.ctx, handle, times, check_cancelled=self._check_cancelled)

    async def concat_and_format_vertical(self, paths: list[Path]) -> Path | None:
        return await concat_and_format_vertical(self.ctx, paths)

    async def cleanup_temps(self) -> None:
        removed = await self.ctx.temps.cleanup()
        logger.debug("Removed %d scratch files.", removed)
        try:
            await self.ctx.fs.rmdir(self.ctx.scratch_dir)
        except OSError as exc:
            logger.debug("Scratch directory %s left in place: %s", self.ctx.scratch_dir, exc)

    async def run(self, handle: MediaHandle, *, concat: bool | None = None) -> PipelineResult:
        if self._state is not PipelineState.IDLE:
            raise RuntimeError("HighlightPipeline instances run once; build a new pipeline per video.")

        settings = self.ctx.settings
        want_concat = settings.pipeline.concat_vertical if concat is None else concat
        result = PipelineResult(state=PipelineState.IDLE)

        try:
            self._enter(PipelineState.PROBING)
            await self._prepare_directories()
            metadata = await self.ctx.prober.probe(handle.path)
            result.duration_seconds = metadata.duration_seconds
            self._check_cancelled()
            result.mean_volume_db = await probe_mean_volume(self.ctx, handle)

            self._enter(PipelineState.DETECTING_SPEECH)
            raw_sections = await self.detect_speech_sections(handle, result.mean_volume_db)
            result.speech_sections = resolve_intervals(
                raw_sections,
                result.duration_seconds,
                min_duration=settings.detection.min_interval_seconds,
            )

            self._enter(PipelineState.DETECTING_SCENES)
            result.scene_times = await self.detect_scene_changes(handle)

            self._enter(PipelineState.SCORING)
            candidates = generate_candidates(
                result.speech_sections,
                result.scene_times,
                window_size=settings.pipeline.window_seconds,
                weights=settings.weights,
                strategy=settings.scoring.strategy,
            )
            self._window_scores.update((candidate.window, candidate.score) for candidate in candidates)

            self._enter(PipelineState.SELECTING)
            result.windows = select_windows(
                candidates,
                window_size=settings.pipeline.window_seconds,
                top_k=settings.pipeline.top_k,
                max_overlap_ratio=settings.pipeline.max_overlap_ratio,
            )
            logger.info("Selected %d of %d candidate windows.", len(result.windows), len(candidates))

            self._enter(PipelineState.EXTRACTING_CLIPS)
            artifacts = await materialize_clips(
                self.ctx,
                handle,
                result.windows,
                scores=self._window_scores,
                check_cancelled=self._check_cancelled,
            )

            self._enter(PipelineState.GENERATING_THUMBNAILS)
            thumbnails = await capture_thumbnails(
                self.ctx,
                handle,
                [artifact.start_time + settings.pipeline.thumbnail_offset_seconds for artifact in artifacts],
                check_cancelled=self._check_cancelled,
            )
            for artifact, thumbnail in zip(artifacts, thumbnails):
                artifact.thumbnail_path = thumbnail

            if want_concat:
                self._enter(PipelineState.CONCATENATING)
                result.compilation_path = await self.concat_and_format_vertical([a.path for a in artifacts])

            self._enter(PipelineState.EXPORTING)
            result.artifacts = await export_artifacts(self.ctx, artifacts)
        except PipelineCancelledError:
            logger.warning("Pipeline cancelled during %s.", self._state.value)
            self._set_state(PipelineState.CANCELLED)
            result.state = PipelineState.CANCELLED
            return result
        except asyncio.CancelledError:
            self._set_state(PipelineState.CANCELLED)
            raise
        except Exception:
            self._set_state(PipelineState.ERROR)
            raise
        finally:
            await self.cleanup_temps()

        self._set_state(PipelineState.DONE)
        result.state = PipelineState.DONE
        if result.partial:
            logger.warning("Produced %d clips for %d selected windows.", len(result.artifacts), len(result.windows))
        return result

    async def _prepare_directories(self) -> None:
        await ensure_directory(self.ctx.fs, self.ctx.scratch_dir)
        await ensure_directory(self.ctx.fs, self.ctx.output_dir)

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise PipelineCancelledError("Pipeline cancelled.")

    def _enter(self, state: PipelineState) -> None:
        self._check_cancelled()
        self._set_state(state)

    def _set_state(self, state: PipelineState) -> None:
        self._state = state
        logger.debug("Pipeline state -> %s", state.value)
        if self._on_state_change is not None:
            self._on_state_change(state)
