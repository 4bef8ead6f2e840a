from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from time import perf_counter
from typing import Any, Awaitable, Callable, TypeVar

import typer

from highlight_clipper.config import Settings, load_settings
from highlight_clipper.features.speech import resolve_intervals
from highlight_clipper.ingest.loudness import probe_mean_volume
from highlight_clipper.logging_config import configure_logging
from highlight_clipper.models import Interval, MediaHandle, PipelineState
from highlight_clipper.pipeline import HighlightPipeline, build_context
from highlight_clipper.propose.exporter import artifact_to_dict, export_manifest
from highlight_clipper.scoring.selection import score_highlight_windows
from highlight_clipper.temp_registry import sweep_directory

app = typer.Typer(help="Highlight window detection and clip extraction.")
config_app = typer.Typer(help="Configuration commands.")
detect_app = typer.Typer(help="Single-signal detection commands.")

app.add_typer(config_app, name="config")
app.add_typer(detect_app, name="detect")

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        envvar="HIGHLIGHT_CLIPPER_CONFIG",
        help="Path to YAML configuration file.",
    )


STAGE_LABELS: dict[PipelineState, str] = {
    PipelineState.PROBING: "Probe media",
    PipelineState.DETECTING_SPEECH: "Detect speech",
    PipelineState.DETECTING_SCENES: "Detect scene changes",
    PipelineState.SCORING: "Score windows",
    PipelineState.SELECTING: "Select windows",
    PipelineState.EXTRACTING_CLIPS: "Extract clips",
    PipelineState.GENERATING_THUMBNAILS: "Generate thumbnails",
    PipelineState.CONCATENATING: "Concatenate vertical compilation",
    PipelineState.EXPORTING: "Export outputs",
}


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], Awaitable[T]]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = asyncio.run(work())
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


class _StageProgress:
    """Echoes stage transitions of a pipeline run as numbered progress lines."""

    def __init__(self, concat: bool) -> None:
        self.stages = [state for state in STAGE_LABELS if concat or state is not PipelineState.CONCATENATING]
        self.started_at: float | None = None
        self.current: PipelineState | None = None

    def __call__(self, state: PipelineState) -> None:
        self._finish_current(failed=state in {PipelineState.ERROR, PipelineState.CANCELLED})
        if state in self.stages:
            self.current = state
            self.started_at = perf_counter()
            typer.echo(f"[{self._index(state)}/{len(self.stages)}] {STAGE_LABELS[state]}...", err=True)

    def _finish_current(self, failed: bool) -> None:
        if self.current is None or self.started_at is None:
            return
        elapsed = perf_counter() - self.started_at
        outcome = "failed after" if failed else "done in"
        typer.echo(
            f"[{self._index(self.current)}/{len(self.stages)}] {STAGE_LABELS[self.current]} {outcome} {elapsed:.1f}s",
            err=True,
        )
        self.current = None

    def _index(self, state: PipelineState) -> int:
        return self.stages.index(state) + 1


def _bootstrap(config_path: Path | None) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path or "defaults")
    return settings


def _resolve_media(video_path: str) -> MediaHandle:
    handle = MediaHandle.from_path(video_path)
    if not handle.path.exists():
        raise FileNotFoundError(f"Video file not found: {handle.path}")
    return handle


def _interval_payload(intervals: list[Interval]) -> list[list[float | None]]:
    return [list(interval.as_pair()) for interval in intervals]


def _fail(exc: Exception) -> None:
    logger.error("Command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


@config_app.command("show")
def show_config(config_path: Path | None = _config_option()) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@detect_app.command("probe")
def probe(video_path: str, config_path: Path | None = _config_option()) -> None:
    """Print container metadata as reported by ffprobe."""

    settings = _bootstrap(config_path)
    handle = _resolve_media(video_path)
    ctx = build_context(settings)
    metadata = _run_with_progress(1, 1, "Probe media", lambda: ctx.prober.probe(handle.path))
    typer.echo(json.dumps({"duration_seconds": metadata.duration_seconds, **metadata.raw}, indent=2))


@detect_app.command("loudness")
def loudness(video_path: str, config_path: Path | None = _config_option()) -> None:
    """Print the mean audio level used to seed silence thresholds."""

    settings = _bootstrap(config_path)
    handle = _resolve_media(video_path)
    ctx = build_context(settings)
    try:
        mean_volume = _run_with_progress(1, 1, "Measure loudness", lambda: probe_mean_volume(ctx, handle))
    except (RuntimeError, ValueError) as exc:
        _fail(exc)
    typer.echo(json.dumps({"mean_volume_db": mean_volume}, indent=2))


@detect_app.command("speech")
def speech(
    video_path: str,
    config_path: Path | None = _config_option(),
    adaptive: bool = typer.Option(True, help="Seed silence thresholds from the measured mean volume."),
) -> None:
    """Detect speech intervals and print them as [start, end] pairs (end clamped to duration)."""

    settings = _bootstrap(config_path)
    handle = _resolve_media(video_path)
    pipeline = HighlightPipeline(build_context(settings))

    async def _detect() -> dict[str, Any]:
        metadata = await pipeline.ctx.prober.probe(handle.path)
        mean_volume = await probe_mean_volume(pipeline.ctx, handle) if adaptive else None
        raw = await pipeline.detect_speech_sections(handle, mean_volume)
        resolved = resolve_intervals(raw, metadata.duration_seconds, settings.detection.min_interval_seconds)
        return {
            "duration_seconds": metadata.duration_seconds,
            "mean_volume_db": mean_volume,
            "speech_sections": _interval_payload(resolved),
        }

    try:
        payload = _run_with_progress(1, 1, "Detect speech", _detect)
    except (RuntimeError, ValueError) as exc:
        _fail(exc)
    typer.echo(json.dumps(payload, indent=2))


@detect_app.command("scenes")
def scenes(video_path: str, config_path: Path | None = _config_option()) -> None:
    """Detect scene-change timestamps."""

    settings = _bootstrap(config_path)
    handle = _resolve_media(video_path)
    pipeline = HighlightPipeline(build_context(settings))
    try:
        times = _run_with_progress(1, 1, "Detect scene changes", lambda: pipeline.detect_scene_changes(handle))
    except (RuntimeError, ValueError) as exc:
        _fail(exc)
    typer.echo(json.dumps({"scene_times": times}, indent=2))


@app.command("score")
def score(
    analysis_path: Path = typer.Argument(..., help="JSON with speech_sections ([[start, end], ...]) and scene_times."),
    window_seconds: float | None = typer.Option(None, help="Window size in seconds (defaults to config)."),
    top_k: int | None = typer.Option(None, help="Maximum number of windows (defaults to config)."),
    config_path: Path | None = _config_option(),
) -> None:
    """Score and select highlight windows from previously detected signals."""

    settings = _bootstrap(config_path)
    try:
        payload = json.loads(analysis_path.read_text(encoding="utf-8"))
        intervals = [Interval(start=float(start), end=float(end)) for start, end in payload.get("speech_sections", [])]
        scene_times = [float(t) for t in payload.get("scene_times", [])]
        windows = score_highlight_windows(
            intervals,
            scene_times,
            window_size=window_seconds or settings.pipeline.window_seconds,
            top_k=settings.pipeline.top_k if top_k is None else top_k,
            weights=settings.weights,
            strategy=settings.scoring.strategy,
            max_overlap_ratio=settings.pipeline.max_overlap_ratio,
        )
    except (TypeError, ValueError, json.JSONDecodeError) as exc:
        _fail(exc)

    typer.echo(json.dumps([{"start": w.start, "duration": w.duration} for w in windows], indent=2))


@app.command("run")
def run_pipeline(
    video_path: str,
    config_path: Path | None = _config_option(),
    top_k: int | None = typer.Option(None, help="Maximum number of clips (defaults to config)."),
    window_seconds: float | None = typer.Option(None, help="Clip window size in seconds (defaults to config)."),
    concat: bool | None = typer.Option(None, "--concat/--no-concat", help="Also render one vertical 9:16 compilation."),
    basename: str | None = typer.Option(None, help="Base filename for the clip manifest. Defaults to the video stem."),
) -> None:
    """Run the complete highlight pipeline on one video."""

    settings = _bootstrap(config_path)
    overrides: dict[str, Any] = {}
    if top_k is not None:
        overrides["top_k"] = top_k
    if window_seconds is not None:
        overrides["window_seconds"] = window_seconds
    if overrides:
        settings = settings.model_copy(update={"pipeline": settings.pipeline.model_copy(update=overrides)})

    want_concat = settings.pipeline.concat_vertical if concat is None else concat
    progress = _StageProgress(concat=want_concat)

    try:
        handle = _resolve_media(video_path)
        pipeline = HighlightPipeline(build_context(settings), on_state_change=progress)
        result = asyncio.run(pipeline.run(handle, concat=want_concat))
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        _fail(exc)

    manifest = export_manifest(
        result.artifacts,
        pipeline.ctx.output_dir,
        basename=basename or f"{handle.path.stem}_highlights",
    )

    status = "ok"
    if result.state is PipelineState.CANCELLED:
        status = "cancelled"
    elif result.partial:
        status = "partial"

    typer.echo(
        json.dumps(
            {
                "status": status,
                "video_path": str(handle.path),
                "duration_seconds": result.duration_seconds,
                "mean_volume_db": result.mean_volume_db,
                "speech_section_count": len(result.speech_sections),
                "scene_change_count": len(result.scene_times),
                "window_count": len(result.windows),
                "clip_count": len(result.artifacts),
                "clips": [artifact_to_dict(artifact) for artifact in result.artifacts],
                "compilation_path": str(result.compilation_path) if result.compilation_path else None,
                "outputs": {key: str(path) for key, path in manifest.items()},
            },
            indent=2,
        )
    )


@app.command("cleanup")
def cleanup(config_path: Path | None = _config_option()) -> None:
    """Delete scratch files left behind by interrupted runs."""

    settings = _bootstrap(config_path)
    ctx = build_context(settings)
    scratch_root = ctx.scratch_dir.parent
    removed = _run_with_progress(1, 1, "Sweep scratch directory", lambda: sweep_directory(ctx.fs, scratch_root))
    typer.echo(json.dumps({"scratch_dir": str(scratch_root), "removed": removed}, indent=2))


if __name__ == "__main__":
    app()
