from __future__ import annotations

from pathlib import Path

import pytest

from highlight_clipper.ingest.filesystem import LocalFilesystem
from highlight_clipper.temp_registry import TempRegistry, sweep_directory


class _StubbornFilesystem(LocalFilesystem):
    def __init__(self, locked: Path) -> None:
        self.locked = locked

    async def unlink(self, path: Path) -> None:
        if path == self.locked:
            raise PermissionError(f"locked: {path}")
        await super().unlink(path)


@pytest.mark.asyncio
async def test_cleanup_continues_past_missing_and_locked_files(tmp_path: Path) -> None:
    kept = tmp_path / "a_clip.mp4"
    locked = tmp_path / "b_locked.jpg"
    missing = tmp_path / "c_missing.txt"
    kept.write_bytes(b"x")
    locked.write_bytes(b"x")

    registry = TempRegistry(_StubbornFilesystem(locked))
    for path in (kept, locked, missing):
        registry.register(path)

    removed = await registry.cleanup()

    assert removed == 1
    assert not kept.exists()
    assert locked.exists()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_register_is_idempotent(tmp_path: Path) -> None:
    registry = TempRegistry(LocalFilesystem())
    registry.register(tmp_path / "x.mp4")
    registry.register(str(tmp_path / "x.mp4"))

    assert len(registry) == 1
    assert tmp_path / "x.mp4" in registry


@pytest.mark.asyncio
async def test_sweep_directory_removes_leftover_files(tmp_path: Path) -> None:
    scratch = tmp_path / "scratch"
    (scratch / "run_old").mkdir(parents=True)
    (scratch / "run_old" / "clip_1.mp4").write_bytes(b"x")
    (scratch / "concat.txt").write_text("file 'a'", encoding="utf-8")

    removed = await sweep_directory(LocalFilesystem(), scratch)

    assert removed == 2
    assert not (scratch / "run_old" / "clip_1.mp4").exists()


@pytest.mark.asyncio
async def test_sweep_directory_missing_root(tmp_path: Path) -> None:
    assert await sweep_directory(LocalFilesystem(), tmp_path / "absent") == 0
