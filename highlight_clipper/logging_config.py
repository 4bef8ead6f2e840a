from __future__ import annotations

import logging

from highlight_clipper.config import LoggingSettings

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ENGINE_LOGGER = "highlight_clipper.ingest.engine"


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure_logging(settings: LoggingSettings) -> None:
    """Configure process-wide logging once at startup.

    Engine command lines get their own level so a DEBUG run of the pipeline does
    not print every ffmpeg invocation unless ``engine_level`` asks for it.
    """

    logging.basicConfig(level=_level(settings.level), format=DEFAULT_LOG_FORMAT, force=True)
    logging.getLogger(ENGINE_LOGGER).setLevel(_level(settings.engine_level))
    # asyncio logs every subprocess spawn at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
