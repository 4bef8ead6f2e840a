from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Protocol

from highlight_clipper.errors import EnvironmentFailureError


class Filesystem(Protocol):
    async def exists(self, path: Path) -> bool: ...

    async def mkdir(self, path: Path) -> None: ...

    async def copy_file(self, source: Path, destination: Path) -> None: ...

    async def write_text(self, path: Path, text: str) -> None: ...

    async def unlink(self, path: Path) -> None: ...

    async def list_dir(self, path: Path) -> list[Path]: ...

    async def rmdir(self, path: Path) -> None: ...


class LocalFilesystem:
    """Blocking pathlib operations pushed onto worker threads."""

    async def exists(self, path: Path) -> bool:
        return await asyncio.to_thread(Path(path).exists)

    async def mkdir(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)

    async def copy_file(self, source: Path, destination: Path) -> None:
        await asyncio.to_thread(shutil.copyfile, source, destination)

    async def write_text(self, path: Path, text: str) -> None:
        await asyncio.to_thread(Path(path).write_text, text, encoding="utf-8")

    async def unlink(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).unlink)

    async def list_dir(self, path: Path) -> list[Path]:
        return await asyncio.to_thread(lambda: sorted(Path(path).iterdir()))

    async def rmdir(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).rmdir)


async def ensure_directory(fs: Filesystem, path: Path) -> None:
    """Create ``path`` or fail the run: without scratch space nothing can be produced."""

    try:
        await fs.mkdir(path)
    except OSError as exc:
        raise EnvironmentFailureError(f"Cannot create directory {path}: {exc}") from exc
