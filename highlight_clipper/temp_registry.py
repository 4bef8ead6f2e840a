from __future__ import annotations

import logging
from pathlib import Path

from highlight_clipper.ingest.filesystem import Filesystem

logger = logging.getLogger(__name__)


class TempRegistry:
    """Scratch files owned by one pipeline run, deleted best-effort on cleanup."""

    def __init__(self, fs: Filesystem) -> None:
        self._fs = fs
        self._paths: set[Path] = set()

    def register(self, path: str | Path) -> None:
        self._paths.add(Path(path))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    @property
    def paths(self) -> frozenset[Path]:
        return frozenset(self._paths)

    async def cleanup(self) -> int:
        """Delete every registered path, ignoring per-file errors. Returns the number removed."""

        removed = 0
        for path in sorted(self._paths):
            try:
                await self._fs.unlink(path)
            except FileNotFoundError:
                logger.debug("Temp file already gone: %s", path)
            except OSError as exc:
                logger.warning("Failed to delete temp file %s: %s", path, exc)
            else:
                removed += 1
        self._paths.clear()
        return removed


async def sweep_directory(fs: Filesystem, directory: Path) -> int:
    """Remove files left in a scratch directory by runs that never cleaned up."""

    if not await fs.exists(directory):
        return 0

    registry = TempRegistry(fs)
    pending = [directory]
    while pending:
        current = pending.pop()
        for entry in await fs.list_dir(current):
            if entry.is_dir():
                pending.append(entry)
            else:
                registry.register(entry)
    return await registry.cleanup()
