"""Process-wide logging setup for the loader and API entry points."""

from __future__ import annotations

import logging
from typing import Iterable

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
ACCESS_LOGGERS = ("uvicorn.access",)


class PathFilter(logging.Filter):
    """Drops access-log lines for noisy paths such as the health probe."""

    def __init__(self, paths: Iterable[str]) -> None:
        super().__init__()
        self.paths = tuple(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in self.paths)


def setup_logging(level: str = "INFO", quiet_paths: Iterable[str] = ("/api/health",)) -> None:
    """Configure the root logger once; unknown level names fall back to INFO."""

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    access_filter = PathFilter(quiet_paths)
    for name in ACCESS_LOGGERS:
        logging.getLogger(name).addFilter(access_filter)
