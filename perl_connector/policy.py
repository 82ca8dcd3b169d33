"""Main loop of the connector: orders in, results out."""

from __future__ import annotations

import os
import threading
from contextlib import ExitStack, suppress

from . import multiplexer
from .check import Check
from .log import core_logger
from .parser import OrderParser, OrdersListener
from .reporter import Reporter
from .result import CheckListener, CheckResult

_POLL_INTERVAL = 0.2


class _Stream:
    """Unowned file descriptor used for the engine's stdin and stdout."""

    def __init__(self, fd: int) -> None:
        self._fd = fd

    def fileno(self) -> int:
        return self._fd

    def read(self, size: int) -> bytes:
        return os.read(self._fd, size)

    def write(self, data: bytes) -> int:
        return os.write(self._fd, data)


class Policy(OrdersListener, CheckListener):
    """Reads orders, runs checks and reports their results."""

    def __init__(self, stdin_fd: int = 0, stdout_fd: int = 1) -> None:
        self.should_exit = False
        self._checks: dict[int, Check] = {}
        self._error = False
        self._lock = threading.Lock()
        self._parser = OrderParser()
        self._reporter = Reporter()
        self._sin = _Stream(stdin_fd)
        self._sout = _Stream(stdout_fd)

        mux = multiplexer.instance()
        mux.add_handle(self._sout, self._reporter)
        self._parser.listen(self)
        mux.add_handle(self._sin, self._parser)

    def __enter__(self) -> Policy:
        return self

    def __exit__(self, *exc_info: object) -> None:
        with suppress(Exception):
            mux = multiplexer.instance()
            mux.remove_handle(self._sin)
            mux.remove_handle(self._sout)
        with ExitStack() as stack:
            for chk in self._checks.values():
                stack.enter_context(chk)
                chk.unlisten(self)
        self._checks.clear()

    def on_eof(self) -> None:
        core_logger().info("stdin is closed")
        self.on_quit()

    def on_error(self) -> None:
        core_logger().info("error occured while parsing stdin")
        self._error = True
        self.on_quit()

    def on_execute(self, cmd_id: int, timeout: float, cmd: str) -> None:
        chk = Check()
        chk.listen(self)
        try:
            child = chk.execute(cmd_id, cmd, timeout)
        except Exception as exc:
            with chk:
                chk.unlisten(self)
            core_logger().info("execution of check %d failed %s", cmd_id, exc)
            self.on_result(CheckResult(command_id=cmd_id))
        else:
            self._checks[child] = chk

    def on_quit(self) -> None:
        core_logger().info("quit request received")
        self.should_exit = True
        multiplexer.instance().remove_handle(self._sin)

    def on_result(self, result: CheckResult) -> None:
        with self._lock:
            self._reporter.send_result(result)

    def on_version(self) -> None:
        core_logger().info(
            "monitoring engine requested protocol version, sending 1.0"
        )
        self._reporter.send_version(1, 0)

    def run(self) -> bool:
        """Serve until asked to quit; return False if an error occurred."""
        self._error = False
        mux = multiplexer.instance()
        while not self.should_exit or self._checks:
            mux.multiplex(_POLL_INTERVAL)
            self._reap_children()

        core_logger().info("reporting last data to monitoring engine")
        while self._reporter.can_report() and self._reporter.want_write(self._sout):
            mux.multiplex(_POLL_INTERVAL)
        return not self._error

    def _reap_children(self) -> None:
        log = core_logger()
        while True:
            try:
                child, status = os.waitpid(0, os.WNOHANG)
            except ChildProcessError:
                return
            except OSError as exc:
                raise RuntimeError(
                    f"waitpid failed: {exc.strerror or exc}"
                ) from exc
            if child == 0:
                return
            log.info("process %d exited with status %d", child, status)
            chk = self._checks.pop(child, None)
            if chk is not None:
                with chk:
                    if os.WIFSIGNALED(status):
                        log.error(
                            "process %d exited because of a signal %d",
                            child,
                            os.WTERMSIG(status),
                        )
                    chk.terminated(
                        os.WEXITSTATUS(status) if os.WIFEXITED(status) else -1
                    )
            log.debug("%d checks still running", len(self._checks))