"""Parser of the orders sent by the monitoring engine."""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import Protocol

from .log import core_logger

_BOUNDARY = b"\0\0\0\0"
_READ_SIZE = 4096
_ULLONG_MAX = (1 << 64) - 1
_UINT_MOD = 1 << 32
_NUMBER = re.compile(rb"[ \t\n\v\f\r]*([+-]?)([0-9]+)")

_VERSION_QUERY = 0
_EXECUTE_QUERY = 2
_QUIT_QUERY = 4


class ParseError(Exception):
    """An order could not be understood."""


class OrdersListener(ABC):
    """Receives the orders issued by the monitoring engine."""

    @abstractmethod
    def on_eof(self) -> None:
        """The order stream reached its end."""

    @abstractmethod
    def on_error(self) -> None:
        """An order could not be read or parsed."""

    @abstractmethod
    def on_execute(self, cmd_id: int, timeout: float, cmd: str) -> None:
        """Run ``cmd``; ``timeout`` is an absolute time in seconds."""

    @abstractmethod
    def on_quit(self) -> None:
        """The engine asked the connector to quit."""

    @abstractmethod
    def on_version(self) -> None:
        """The engine asked for the protocol version."""


class _Readable(Protocol):
    def read(self, size: int) -> bytes: ...


def _to_unsigned(field: bytes) -> tuple[int, bytes]:
    """Read a leading unsigned number; return it with the unread rest."""
    match = _NUMBER.match(field)
    if match is None:
        return 0, field
    value = min(int(match.group(2)), _ULLONG_MAX)
    if match.group(1) == b"-":
        value = (-value) % (_ULLONG_MAX + 1)
    return value, field[match.end():]


def _show(field: bytes) -> str:
    return field.decode("utf-8", "replace")


class OrderParser:
    """Splits the incoming stream into orders and notifies a listener."""

    #: Orders flow one way; the parser never sends anything back.
    writes_back: bool = False

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._listener: OrdersListener | None = None
        self._eof = False

    @property
    def buffer(self) -> bytes:
        """Data received but not yet forming a whole order."""
        return bytes(self._buffer)

    @property
    def listener(self) -> OrdersListener | None:
        return self._listener

    def listen(self, listener: OrdersListener | None = None) -> None:
        """Change the listener notified of orders."""
        self._listener = listener

    def error(self, handle: object) -> None:
        """Error event on the handle."""
        if self._listener is not None:
            self._listener.on_error()

    def want_read(self, handle: object) -> bool:
        """Keep reading until the end of the order stream is reached."""
        return not self._eof

    def want_write(self, handle: object) -> bool:
        """The parser only reads, so it never asks to write."""
        return self.writes_back

    def read(self, handle: _Readable) -> None:
        """Read available data from ``handle`` and process it."""
        log = core_logger()
        log.debug("reading data for parsing")
        data = handle.read(_READ_SIZE)
        log.debug("read %d bytes from handle", len(data))
        if not data:
            log.debug("got eof on read handle")
            self._eof = True
            if self._listener is not None:
                self._listener.on_eof()
        else:
            self.feed(data)

    def feed(self, data: bytes) -> None:
        """Append ``data`` to the buffer and process every whole order."""
        log = core_logger()
        self._buffer += data
        while (bound := self._buffer.find(_BOUNDARY)) != -1:
            log.debug("got command boundary at offset %d", bound)
            end = bound + len(_BOUNDARY)
            cmd = bytes(self._buffer[:end])
            del self._buffer[:end]
            try:
                self._parse(cmd)
            except Exception as exc:
                log.error("orders parsing error: %s", exc)
                if self._listener is not None:
                    self._listener.on_error()

    def _parse(self, cmd: bytes) -> None:
        # cmd always ends with the four-byte boundary, so there are at
        # least five fields.
        fields = cmd.split(b"\0")
        order = _to_unsigned(fields[0])[0] % _UINT_MOD
        listener = self._listener
        if order == _VERSION_QUERY:
            if listener is not None:
                listener.on_version()
        elif order == _EXECUTE_QUERY:
            id_field, timeout_field, start_field, line = fields[1:5]
            cmd_id, rest = _to_unsigned(id_field)
            if not cmd_id or rest:
                raise ParseError(
                    "invalid execution request received: bad command ID "
                    f"({_show(id_field)})"
                )
            delay, rest = _to_unsigned(timeout_field)
            deadline = time.time()
            if rest:
                raise ParseError(
                    "invalid execution request received: bad timeout "
                    f"({_show(timeout_field)})"
                )
            deadline += delay
            _, rest = _to_unsigned(start_field)
            if rest:
                raise ParseError(
                    "invalid execution request received: bad start time "
                    f"({_show(start_field)})"
                )
            cmdline = line.decode("utf-8", "surrogateescape")
            if listener is not None:
                listener.on_execute(cmd_id, deadline, cmdline)
        elif order == _QUIT_QUERY:
            if listener is not None:
                listener.on_quit()
        else:
            raise ParseError(f"invalid command received (ID {order})")