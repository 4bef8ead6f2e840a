from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import Protocol

from highlight_clipper.errors import EnvironmentFailureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineResult:
    success: bool
    log_text: str


class MediaEngine(Protocol):
    async def execute(self, args: list[str]) -> EngineResult:
        """Run one engine command; ``log_text`` carries every decoder event."""
        ...


class FFmpegEngine:
    """Runs ffmpeg as an asyncio subprocess with stderr folded into the log text."""

    def __init__(self, ffmpeg_path: str = "ffmpeg") -> None:
        self.ffmpeg_path = ffmpeg_path

    async def execute(self, args: list[str]) -> EngineResult:
        command = [self.ffmpeg_path, "-hide_banner", "-nostdin", *args]
        logger.debug("Running %s", shlex.join(command))

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            raise EnvironmentFailureError(
                f"ffmpeg executable was not found at '{self.ffmpeg_path}'. Install FFmpeg so it is available on PATH."
            ) from exc
        except PermissionError as exc:
            raise EnvironmentFailureError(f"ffmpeg executable is not runnable: {self.ffmpeg_path}") from exc

        try:
            stdout, _ = await proc.communicate()
        except BaseException:
            # cancelled mid-run: the child must not outlive scratch cleanup
            await terminate_process(proc)
            raise
        log_text = stdout.decode("utf-8", errors="replace") if stdout else ""

        if proc.returncode != 0:
            logger.debug("ffmpeg exited with code %s", proc.returncode)
            return EngineResult(success=False, log_text=log_text)
        return EngineResult(success=True, log_text=log_text)


async def terminate_process(proc: asyncio.subprocess.Process) -> None:
    """Kill a child that is still running and reap it."""

    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
