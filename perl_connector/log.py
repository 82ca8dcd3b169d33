"""Process-wide logger used by the connector."""

from __future__ import annotations

import logging
import sys

TRACE = 5
OFF = logging.CRITICAL + 10

logging.addLevelName(TRACE, "TRACE")

_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "err": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": OFF,
}


class _Formatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname_lower = record.levelname.lower()
        return super().format(record)


_FORMAT = "[%(asctime)s] [core] [%(levelname_lower)s] %(message)s"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {level!r}") from None


class ConnectorLog:
    """Owns the core logger and the sink it writes to."""

    def __init__(self) -> None:
        self._logger = logging.Logger("core")
        self._logger.propagate = False
        self._install(logging.NullHandler(), TRACE)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _install(self, handler: logging.Handler, level: int) -> None:
        for old in list(self._logger.handlers):
            self._logger.removeHandler(old)
            old.close()
        handler.setFormatter(_Formatter(_FORMAT))
        self._logger.addHandler(handler)
        # A fresh sink always announces itself at info level.
        self._logger.setLevel(logging.INFO)
        self._logger.info("log started")
        self._logger.setLevel(level)

    def set_level(self, level: int | str) -> None:
        """Set the minimum level of messages that are written."""
        self._logger.setLevel(_resolve_level(level))

    def switch_to_stdout(self) -> None:
        """Write logs to the standard error stream, keeping the level."""
        self._install(logging.StreamHandler(sys.stderr), self._logger.level)

    def switch_to_file(self, filename: str) -> None:
        """Append logs to ``filename``, keeping the level."""
        handler = logging.FileHandler(filename, mode="a", encoding="utf-8")
        self._install(handler, self._logger.level)


_instance: ConnectorLog | None = None


def get_log() -> ConnectorLog:
    """Return the process-wide log object, creating it on first use."""
    global _instance
    if _instance is None:
        _instance = ConnectorLog()
    return _instance


def core_logger() -> logging.Logger:
    """Return the core logger of the process-wide log object."""
    return get_log().logger