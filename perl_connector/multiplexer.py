"""Event loop watching handles and running timed tasks."""

from __future__ import annotations

import math
import select
import threading
import time
from typing import Any, Protocol


class _Task(Protocol):
    def run(self) -> None: ...


_READ_EVENTS = select.POLLIN | select.POLLPRI
_ERROR_EVENTS = select.POLLERR | select.POLLNVAL


def _wants(listener: Any, name: str, handle: Any) -> bool:
    method = getattr(listener, name, None)
    return bool(method(handle)) if method is not None else False


class Multiplexer:
    """Dispatches handle events to listeners and runs due tasks."""

    def __init__(self) -> None:
        self._handles: dict[int, tuple[Any, Any]] = {}
        self._tasks: dict[int, tuple[float, _Task]] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def add_handle(self, handle: Any, listener: Any) -> None:
        """Watch ``handle`` on behalf of ``listener``."""
        if handle is None or listener is None:
            raise ValueError("handle and listener are required")
        with self._lock:
            if id(handle) in self._handles:
                raise ValueError("handle is already watched")
            self._handles[id(handle)] = (handle, listener)

    def remove_handle(self, target: Any) -> int:
        """Stop watching a handle, or every handle of a listener."""
        with self._lock:
            if id(target) in self._handles:
                del self._handles[id(target)]
                return 1
            keys = [k for k, (_, lst) in self._handles.items() if lst is target]
            for key in keys:
                del self._handles[key]
            return len(keys)

    def add_task(self, task: _Task, when: float) -> int:
        """Schedule ``task`` at absolute time ``when``; return its id."""
        with self._lock:
            task_id = self._next_id
            self._next_id += 1
            self._tasks[task_id] = (when, task)
            return task_id

    def remove_task(self, task_id: int) -> bool:
        """Cancel a scheduled task; return whether it was pending."""
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def _next_deadline(self) -> float | None:
        with self._lock:
            return min((when for when, _ in self._tasks.values()), default=None)

    def _run_due(self, now: float) -> None:
        with self._lock:
            due = sorted(
                (when, task_id, task)
                for task_id, (when, task) in self._tasks.items()
                if when <= now
            )
            for _, task_id, _ in due:
                del self._tasks[task_id]
        for _, _, task in due:
            task.run()

    def multiplex(self, timeout: float | None = None) -> None:
        """Wait for events at most ``timeout`` seconds, then dispatch them."""
        wait = timeout
        deadline = self._next_deadline()
        if deadline is not None:
            until = max(0.0, deadline - time.time())
            wait = until if wait is None else min(wait, until)

        poller = select.poll()
        masks: dict[int, int] = {}
        watchers: dict[int, list[tuple[int, int]]] = {}
        with self._lock:
            entries = list(self._handles.items())
        for key, (handle, listener) in entries:
            fd = handle.fileno()
            if fd < 0:
                continue
            mask = 0
            if _wants(listener, "want_read", handle):
                mask |= _READ_EVENTS
            if _wants(listener, "want_write", handle):
                mask |= select.POLLOUT
            if not mask:
                continue
            masks[fd] = masks.get(fd, 0) | mask
            watchers.setdefault(fd, []).append((key, mask))
        if not masks and wait is None:
            return
        for fd, mask in masks.items():
            poller.register(fd, mask)

        events = poller.poll(None if wait is None else math.ceil(wait * 1000))
        for fd, revents in events:
            for key, mask in watchers.get(fd, []):
                entry = self._handles.get(key)
                if entry is None:
                    continue
                handle, listener = entry
                hangup_only = revents & select.POLLHUP and not mask & _READ_EVENTS
                if revents & _ERROR_EVENTS or hangup_only:
                    listener.error(handle)
                    continue
                if mask & _READ_EVENTS and revents & (_READ_EVENTS | select.POLLHUP):
                    listener.read(handle)
                if (
                    mask & select.POLLOUT
                    and revents & select.POLLOUT
                    and key in self._handles
                ):
                    listener.write(handle)

        self._run_due(time.time())


_instance: Multiplexer | None = None


def load() -> None:
    """Create the process-wide multiplexer if it does not exist."""
    global _instance
    if _instance is None:
        _instance = Multiplexer()


def unload() -> None:
    """Drop the process-wide multiplexer."""
    global _instance
    _instance = None


def instance() -> Multiplexer:
    """Return the process-wide multiplexer."""
    if _instance is None:
        raise RuntimeError("multiplexer is not loaded")
    return _instance