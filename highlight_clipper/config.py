from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "HIGHLIGHT_CLIPPER_"

logger = logging.getLogger(__name__)


class PipelineSettings(BaseModel):
    window_seconds: float = Field(default=30.0, gt=0)
    top_k: int = Field(default=5, ge=0)
    max_overlap_ratio: float = Field(default=0.6, ge=0, le=1)
    thumbnail_offset_seconds: float = 0.5
    concat_vertical: bool = False
    scratch_dir: Path = Path("data/cache/scratch")
    output_dir: Path = Path("data/outputs")


class WeightSettings(BaseModel):
    """Scoring weights, loaded once per run and immutable afterwards."""

    model_config = ConfigDict(frozen=True)

    speech: float = Field(default=1.0, gt=0)
    scene: float = Field(default=2.5, gt=0)
    balance_penalty: float = Field(default=0.0, ge=0)


class DetectionSettings(BaseModel):
    silence_thresholds_db: list[float] = Field(default_factory=lambda: [-35.0, -40.0, -45.0])
    relative_silence_offsets_db: list[float] = Field(default_factory=lambda: [10.0, 15.0, 20.0])
    min_silence_seconds: float = Field(default=0.4, gt=0)
    min_interval_seconds: float = 1.0
    scene_thresholds: list[float] = Field(default_factory=lambda: [0.35, 0.30, 0.25])


class ScoringSettings(BaseModel):
    strategy: str = "balanced"


class RenderSettings(BaseModel):
    thumbnail_width: int = Field(default=320, gt=0)
    thumbnail_quality: int = Field(default=3, ge=1, le=31)
    vertical_width: int = 1080
    vertical_height: int = 1920
    video_preset: str = "veryfast"
    video_crf: int = Field(default=23, ge=0, le=51)


class EngineSettings(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    # ffmpeg command lines are logged at DEBUG; kept quiet unless asked for
    engine_level: str = "INFO"


class Settings(BaseModel):
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    weights: WeightSettings = Field(default_factory=WeightSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides.

    The default config file is optional; an explicitly requested file must exist.
    """

    explicit_path = config_path or os.getenv(f"{ENV_PREFIX}CONFIG")
    resolved_path = Path(explicit_path or DEFAULT_CONFIG_PATH)

    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    elif explicit_path and resolved_path != DEFAULT_CONFIG_PATH:
        raise FileNotFoundError(f"Config file not found: {resolved_path}")
    else:
        raw_config = {}

    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> bool:
    """Set ``data[path...]`` from an environment string; unknown keys are reported, not created."""

    *sections, final_key = path
    target: Any = data
    for segment in sections:
        target = target.get(segment) if isinstance(target, dict) else None

    if not isinstance(target, dict) or final_key not in target:
        logger.warning("Ignoring override %s%s: no such setting.", ENV_PREFIX, "__".join(path).upper())
        return False

    target[final_key] = _coerce_value(raw_value, target[final_key])
    return True


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    """Convert an environment string to the type of the value it replaces.

    Lists accept JSON (``[-35, -40]``) or a comma-separated shorthand
    (``-35,-40``), which is how threshold ladders are usually overridden.
    """

    text = raw_value.strip()
    if isinstance(existing_value, bool):
        return text.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int):
        return int(text)
    if isinstance(existing_value, float):
        return float(text)
    if isinstance(existing_value, list):
        if text.startswith("["):
            return json.loads(text)
        return [float(part) for part in text.split(",") if part.strip()]
    if isinstance(existing_value, dict):
        return json.loads(text)
    if isinstance(existing_value, Path):
        return Path(text).expanduser()
    return text
