from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from highlight_clipper.config import PipelineSettings, Settings
from highlight_clipper.ingest.engine import EngineResult
from highlight_clipper.models import MediaHandle, MediaMetadata, PipelineContext
from highlight_clipper.pipeline import build_context


class FakeEngine:
    """Scripted media engine.

    ``logs`` maps a substring of the joined command to the log text returned for
    it. Successful commands whose last argument is a file path get that file
    written, the way ffmpeg would.
    """

    def __init__(
        self,
        logs: dict[str, str] | None = None,
        fail_when: Callable[[list[str]], bool] | None = None,
    ) -> None:
        self.logs = logs or {}
        self.fail_when = fail_when
        self.calls: list[list[str]] = []

    async def execute(self, args: list[str]) -> EngineResult:
        self.calls.append(list(args))
        joined = " ".join(args)
        log_text = next((text for key, text in self.logs.items() if key in joined), "")

        if self.fail_when is not None and self.fail_when(args):
            return EngineResult(success=False, log_text=log_text + "\nConversion failed!")

        if args and args[-1] != "-":
            output = Path(args[-1])
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(b"media")
        return EngineResult(success=True, log_text=log_text)

    def calls_matching(self, needle: str) -> list[list[str]]:
        return [call for call in self.calls if needle in " ".join(call)]


class FakeProber:
    def __init__(self, duration_seconds: float | None = 120.0) -> None:
        self.duration_seconds = duration_seconds

    async def probe(self, path: Path) -> MediaMetadata:
        return MediaMetadata(duration_seconds=self.duration_seconds)


def silence_log(*pairs: tuple[float, float]) -> str:
    lines = []
    for start, end in pairs:
        lines.append(f"[silencedetect @ 0x55d0] silence_start: {start}")
        lines.append(f"[silencedetect @ 0x55d0] silence_end: {end} | silence_duration: {end - start:.3f}")
    return "\n".join(lines)


def showinfo_log(*times: float) -> str:
    return "\n".join(
        f"[Parsed_showinfo_1 @ 0x55d0] n:{idx} pts:{int(t * 1000)} pts_time:{t} duration:1 pos:0"
        for idx, t in enumerate(times)
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        pipeline=PipelineSettings(
            scratch_dir=tmp_path / "scratch",
            output_dir=tmp_path / "outputs",
        )
    )


@pytest.fixture
def make_context(settings: Settings) -> Callable[..., PipelineContext]:
    def _make(engine: FakeEngine | None = None, prober: FakeProber | None = None, **kwargs) -> PipelineContext:
        return build_context(
            kwargs.pop("settings", settings),
            engine=engine or FakeEngine(),
            prober=prober or FakeProber(),
            run_id="test",
            **kwargs,
        )

    return _make


@pytest.fixture
def media(tmp_path: Path) -> MediaHandle:
    video = tmp_path / "match.mp4"
    video.write_bytes(b"video")
    return MediaHandle.from_path(video)
