from __future__ import annotations

import asyncio

import pytest

from highlight_clipper.errors import EnvironmentFailureError
from highlight_clipper.ingest.engine import FFmpegEngine


class _FakeProcess:
    def __init__(self, returncode: int, output: bytes) -> None:
        self.returncode = returncode
        self._output = output

    async def communicate(self) -> tuple[bytes, None]:
        return self._output, None


@pytest.mark.asyncio
async def test_execute_captures_log_and_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[tuple] = []

    async def _fake_exec(*args, **kwargs):
        seen.append(args)
        return _FakeProcess(0, b"silence_start: 1.0\n")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    result = await FFmpegEngine("/opt/ffmpeg").execute(["-i", "a.mp4", "-f", "null", "-"])

    assert result.success
    assert "silence_start" in result.log_text
    assert seen[0][:3] == ("/opt/ffmpeg", "-hide_banner", "-nostdin")


@pytest.mark.asyncio
async def test_nonzero_exit_is_reported_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_exec(*args, **kwargs):
        return _FakeProcess(1, b"Invalid data found when processing input")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    result = await FFmpegEngine().execute(["-i", "broken.mp4"])

    assert not result.success
    assert "Invalid data" in result.log_text


@pytest.mark.asyncio
async def test_missing_binary_is_an_environment_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_exec(*args, **kwargs):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    with pytest.raises(EnvironmentFailureError, match="ffmpeg executable was not found"):
        await FFmpegEngine().execute(["-version"])


class _HangingProcess:
    def __init__(self) -> None:
        self.returncode: int | None = None
        self.killed = False
        self._exited = asyncio.Event()

    async def communicate(self) -> tuple[bytes, None]:
        await self._exited.wait()
        return b"", None

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


@pytest.mark.asyncio
async def test_cancelled_execute_kills_the_child(monkeypatch: pytest.MonkeyPatch) -> None:
    process = _HangingProcess()

    async def _fake_exec(*args, **kwargs):
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    task = asyncio.create_task(FFmpegEngine().execute(["-i", "long.mp4", "out.mp4"]))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert process.killed
