"""Replies sent back to the monitoring engine."""

from __future__ import annotations

from typing import Protocol

from .log import core_logger
from .result import CheckResult

_BOUNDARY = b"\0\0\0\0"


class ReporterError(Exception):
    """The handle used to reach the monitoring engine failed."""


class _Writable(Protocol):
    def write(self, data: bytes) -> int: ...


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class Reporter:
    """Buffers protocol packets and writes them out when possible."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._can_report = True
        self._reported = 0

    @property
    def buffer(self) -> bytes:
        return bytes(self._buffer)

    @property
    def reported(self) -> int:
        return self._reported

    def can_report(self) -> bool:
        return self._can_report

    def error(self, handle: object) -> None:
        """Mark the reporter unusable and raise."""
        self._can_report = False
        raise ReporterError(
            "error detected on the handle used to report to the monitoring engine"
        )

    def send_result(self, result: CheckResult) -> None:
        """Queue a check result packet."""
        self._reported += 1
        core_logger().debug(
            "reporting check result #%d (check %d)", self._reported, result.command_id
        )
        error = _as_bytes(result.error) or b" "
        output = _as_bytes(result.output) or b" "
        fields = [
            b"3",
            str(result.command_id).encode(),
            b"1" if result.executed else b"0",
            str(result.exit_code).encode(),
            error,
            output,
        ]
        self._buffer += b"\0".join(fields) + _BOUNDARY

    def send_version(self, major: int, minor: int) -> None:
        """Queue a protocol version packet."""
        core_logger().debug(
            "sending protocol version %d.%d to monitoring engine", major, minor
        )
        self._buffer += b"\0".join([b"1", str(major).encode(), str(minor).encode()])
        self._buffer += _BOUNDARY

    def want_write(self, handle: object) -> bool:
        return self._can_report and bool(self._buffer)

    def write(self, handle: _Writable) -> None:
        """Write as much of the buffer as the handle accepts."""
        written = handle.write(bytes(self._buffer))
        del self._buffer[:written]