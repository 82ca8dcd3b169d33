"""Pipe file descriptors tracked process-wide."""

from __future__ import annotations

import os
import threading
from collections import Counter

from .log import core_logger

_fds: Counter[int] = Counter()
_fds_lock = threading.Lock()


class PipeError(Exception):
    """A pipe operation failed."""


def _forget(fd: int) -> None:
    if _fds[fd] > 0:
        _fds[fd] -= 1
        if not _fds[fd]:
            del _fds[fd]


def close_all_handles() -> None:
    """Close every file descriptor owned by a pipe handle."""
    with _fds_lock:
        pending = sorted(_fds.elements())
        for index, fd in enumerate(pending):
            while True:
                try:
                    os.close(fd)
                    break
                except InterruptedError:
                    continue
                except OSError as exc:
                    for done in pending[:index]:
                        _forget(done)
                    raise PipeError(exc.strerror or str(exc)) from exc
        _fds.clear()


class PipeHandle:
    """Owns one pipe file descriptor."""

    def __init__(self, fd: int = -1) -> None:
        self._fd = -1
        self.set_fd(fd)

    def __enter__(self) -> PipeHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the descriptor; errors are logged, not raised."""
        if self._fd < 0:
            return
        with _fds_lock:
            _forget(self._fd)
        try:
            os.close(self._fd)
        except OSError as exc:
            core_logger().error("could not close pipe FD: %s", exc.strerror or exc)
        self._fd = -1

    def fileno(self) -> int:
        return self._fd

    def read(self, size: int) -> bytes:
        """Read at most ``size`` bytes; an empty result means end of file."""
        try:
            return os.read(self._fd, size)
        except OSError as exc:
            raise PipeError(
                f"could not read from pipe: {exc.strerror or exc}"
            ) from exc

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        try:
            written = os.write(self._fd, data)
        except OSError as exc:
            raise PipeError(
                f"could not write to pipe: {exc.strerror or exc}"
            ) from exc
        if written <= 0:
            raise PipeError("could not write to pipe: nothing was written")
        return written

    def set_fd(self, fd: int) -> None:
        """Close the current descriptor and take ownership of ``fd``."""
        self.close()
        self._fd = fd
        if fd >= 0:
            with _fds_lock:
                _fds[fd] += 1