from __future__ import annotations

from pathlib import Path

import pytest

from highlight_clipper.config import RenderSettings
from highlight_clipper.ingest.engine import EngineResult
from highlight_clipper.propose.thumbnails import (
    build_thumbnail_command,
    capture_thumbnail,
    capture_thumbnails,
    generate_thumbnails,
)
from tests.conftest import FakeEngine


def test_thumbnail_command_scales_single_frame() -> None:
    command = build_thumbnail_command("a.mp4", 12.0, Path("t.jpg"), RenderSettings())

    assert command[1:3] == ["-ss", "12.000"]
    assert "scale=320:-1" in command
    assert command[command.index("-frames:v") + 1] == "1"
    assert command[command.index("-q:v") + 1] == "3"


@pytest.mark.asyncio
async def test_thumbnails_are_jpegs_in_scratch(make_context, media) -> None:
    ctx = make_context()

    paths = await generate_thumbnails(ctx, media, [1.0, 31.0])

    assert len(paths) == 2
    assert all(path.suffix == ".jpg" and path.parent == ctx.scratch_dir for path in paths)
    assert all(path in ctx.temps for path in paths)


@pytest.mark.asyncio
async def test_failed_thumbnail_is_still_cleaned_up(make_context, media) -> None:
    class _HalfWrittenEngine(FakeEngine):
        async def execute(self, args: list[str]) -> EngineResult:
            self.calls.append(list(args))
            Path(args[-1]).write_bytes(b"partial")
            return EngineResult(success=False, log_text="Error while encoding")

    ctx = make_context(engine=_HalfWrittenEngine())
    await ctx.fs.mkdir(ctx.scratch_dir)

    assert await capture_thumbnail(ctx, media, 5.0) is None
    assert len(ctx.temps) == 1


@pytest.mark.asyncio
async def test_captured_thumbnails_stay_aligned_with_times(make_context, media) -> None:
    engine = FakeEngine(fail_when=lambda args: args[2] == "20.000")
    ctx = make_context(engine=engine)

    captured = await capture_thumbnails(ctx, media, [10.0, 20.0, 30.0])

    assert len(captured) == 3
    assert captured[1] is None
    assert captured[0] is not None and captured[2] is not None
