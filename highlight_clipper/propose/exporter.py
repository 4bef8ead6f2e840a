from __future__ import annotations

import csv
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from highlight_clipper.ingest.filesystem import ensure_directory
from highlight_clipper.models import ClipArtifact, PipelineContext

logger = logging.getLogger(__name__)


async def export_artifacts(ctx: PipelineContext, artifacts: list[ClipArtifact]) -> list[ClipArtifact]:
    """Copy scratch clips and thumbnails into the output directory.

    Artifacts already outside the scratch directory are returned unchanged. A clip
    whose copy fails is dropped; a failed thumbnail copy only clears the thumbnail.
    """

    await ensure_directory(ctx.fs, ctx.output_dir)
    exported: list[ClipArtifact] = []

    for artifact in artifacts:
        try:
            clip_path = await _export_file(ctx, artifact.path)
        except OSError as exc:
            logger.warning("Failed to export clip %s: %s", artifact.id, exc)
            continue

        thumbnail_path = artifact.thumbnail_path
        if thumbnail_path is not None:
            try:
                thumbnail_path = await _export_file(ctx, thumbnail_path)
            except OSError as exc:
                logger.warning("Failed to export thumbnail for %s: %s", artifact.id, exc)
                thumbnail_path = None

        exported.append(replace(artifact, path=clip_path, thumbnail_path=thumbnail_path))

    return exported


async def _export_file(ctx: PipelineContext, path: Path) -> Path:
    if not ctx.is_scratch(path):
        return path
    destination = ctx.output_dir / path.name
    await ctx.fs.copy_file(path, destination)
    return destination


def write_artifacts(artifacts: list[ClipArtifact], output_path: str | Path) -> Path:
    """Write artifacts as JSON (default) or CSV, based on file extension."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".csv":
        _write_csv(artifacts, path)
    else:
        _write_json(artifacts, path)

    return path


def export_manifest(
    artifacts: list[ClipArtifact],
    output_dir: str | Path,
    *,
    basename: str = "highlights",
) -> dict[str, Path]:
    """Export JSON and CSV manifests describing the final clips."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    return {
        "json": write_artifacts(artifacts, resolved_output_dir / f"{basename}.json"),
        "csv": write_artifacts(artifacts, resolved_output_dir / f"{basename}.csv"),
    }


def load_artifacts(path: str | Path) -> list[ClipArtifact]:
    """Load artifacts back from the JSON manifest."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Clip manifest must be a JSON array.")

    artifacts: list[ClipArtifact] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Clip manifest row {idx} must be an object.")
        thumbnail = row.get("thumbnail_path")
        artifacts.append(
            ClipArtifact(
                id=str(row["id"]),
                path=Path(row["path"]),
                start_time=float(row["start_time"]),
                end_time=float(row["end_time"]),
                duration=float(row["duration"]),
                score=float(row["score"]),
                thumbnail_path=Path(thumbnail) if thumbnail else None,
            )
        )

    return artifacts


def artifact_to_dict(artifact: ClipArtifact) -> dict[str, Any]:
    return {
        "id": artifact.id,
        "path": str(artifact.path),
        "start_time": round(artifact.start_time, 3),
        "end_time": round(artifact.end_time, 3),
        "duration": round(artifact.duration, 3),
        "score": round(artifact.score, 4),
        "thumbnail_path": str(artifact.thumbnail_path) if artifact.thumbnail_path else None,
    }


def _write_json(artifacts: list[ClipArtifact], path: Path) -> None:
    payload = [artifact_to_dict(artifact) for artifact in artifacts]
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _write_csv(artifacts: list[ClipArtifact], path: Path) -> None:
    fields = ["id", "path", "start_time", "end_time", "duration", "score", "thumbnail_path"]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for artifact in artifacts:
            row = artifact_to_dict(artifact)
            writer.writerow(
                {
                    **row,
                    "start_time": f"{artifact.start_time:.3f}",
                    "end_time": f"{artifact.end_time:.3f}",
                    "duration": f"{artifact.duration:.3f}",
                    "score": f"{artifact.score:.4f}",
                    "thumbnail_path": row["thumbnail_path"] or "",
                }
            )
