"""A Perl check run as a child process."""

from __future__ import annotations

import os
import signal
import time
from contextlib import suppress

from . import embedded_perl, multiplexer
from .embedded_perl import EmbeddedPerl
from .log import core_logger
from .pipe_handle import PipeHandle
from .result import CheckListener, CheckResult
from .timeout import CheckTimeout

_READ_SIZE = 1024


def _kill(pid: int, sig: int) -> None:
    with suppress(ProcessLookupError):
        os.kill(pid, sig)


class Check:
    """One Perl check requested by the monitoring engine."""

    def __init__(self, perl: EmbeddedPerl | None = None) -> None:
        self._perl = perl
        self._child = -1
        self._cmd_id = 0
        self._listener: CheckListener | None = None
        self._out = PipeHandle()
        self._err = PipeHandle()
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._timeout = 0

    def __enter__(self) -> Check:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._dispose()

    @property
    def child(self) -> int:
        """PID of the running process, or -1."""
        return self._child

    @property
    def command_id(self) -> int:
        """ID of the pending command, or 0 once its result was sent."""
        return self._cmd_id

    def _dispose(self) -> None:
        # Send a result if none was sent yet, then release the pipes.
        with suppress(Exception):
            self._send_result_and_unregister(CheckResult(command_id=self._cmd_id))
        self._out.close()
        self._err.close()

    def error(self, handle: object) -> None:
        """An error occurred on one of the pipes."""
        self._send_result_and_unregister(CheckResult(command_id=self._cmd_id))

    def execute(self, cmd_id: int, cmd: str, timeout: float) -> int:
        """Start ``cmd``; ``timeout`` is an absolute time. Return the PID."""
        perl = self._perl if self._perl is not None else embedded_perl.instance()
        script = perl.run(cmd)
        self._child = script.pid
        os.close(script.stdin)
        self._out.set_fd(script.stdout)
        self._err.set_fd(script.stderr)

        core_logger().debug("check %#x has ID %d", id(self), cmd_id)
        self._cmd_id = cmd_id

        mux = multiplexer.instance()
        mux.add_handle(self._err, self)
        mux.add_handle(self._out, self)
        self._timeout = mux.add_task(CheckTimeout(self, False), timeout)
        return self._child

    def listen(self, listener: CheckListener) -> None:
        """Set the listener that receives the result."""
        core_logger().debug("check %#x is listened by %#x", id(self), id(listener))
        self._listener = listener

    def unlisten(self, listener: CheckListener) -> None:
        """Stop sending the result to the listener."""
        core_logger().debug(
            "listener %#x stops listening check %#x", id(listener), id(self)
        )
        self._listener = None

    def on_timeout(self, final: bool = True) -> None:
        """Terminate the process, gracefully first, then for good."""
        core_logger().error(
            "check %d (pid=%d) reached timeout", self._cmd_id, self._child
        )
        self._timeout = 0
        if self._child <= 0:
            return
        if final:
            _kill(self._child, signal.SIGKILL)
            self._child = -1
        else:
            _kill(self._child, signal.SIGTERM)
            self._timeout = multiplexer.instance().add_task(
                CheckTimeout(self, True), time.time() + 1
            )

    def read(self, handle: PipeHandle) -> None:
        """Collect data available on one of the process pipes."""
        data = handle.read(_READ_SIZE)
        if handle is self._err:
            core_logger().debug("reading from process %d's stderr", self._child)
            self._stderr += data
        else:
            core_logger().debug("reading from process %d's stdout", self._child)
            self._stdout += data
        if not data:
            # End of file: stop polling a pipe that stays readable forever.
            multiplexer.instance().remove_handle(handle)

    def terminated(self, exit_code: int) -> None:
        """The process exited: gather what is left and send the result."""
        core_logger().debug("reading remaining data from process %d", self._child)
        for handle, sink in ((self._out, self._stdout), (self._err, self._stderr)):
            try:
                while chunk := handle.read(_READ_SIZE):
                    sink += chunk
            except Exception:
                pass
        self._child = -1
        self._send_result_and_unregister(
            CheckResult(
                command_id=self._cmd_id,
                executed=True,
                exit_code=exit_code,
                error=bytes(self._stderr),
                output=bytes(self._stdout),
            )
        )

    def want_read(self, handle: object) -> bool:
        return True

    def write(self, handle: object) -> None:
        """Never expected: report the check as failed."""
        self._send_result_and_unregister(CheckResult(command_id=self._cmd_id))

    def _send_result_and_unregister(self, result: CheckResult) -> None:
        if self._child > 0:
            _kill(self._child, signal.SIGKILL)
            self._child = -1

        if self._timeout:
            with suppress(Exception):
                multiplexer.instance().remove_task(self._timeout)
            self._timeout = 0

        if self._cmd_id:
            multiplexer.instance().remove_handle(self)
            self._cmd_id = 0
            if self._listener is not None:
                self._listener.on_result(result)