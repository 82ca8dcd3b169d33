"""Task fired when a check runs out of time."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class _TimedCheck(Protocol):
    def on_timeout(self, final: bool) -> None: ...


@dataclass
class CheckTimeout:
    """Notifies a check that its timeout was reached."""

    check: _TimedCheck | None = None
    final: bool = False

    def run(self) -> None:
        """Tell the check that it timed out."""
        if self.check is not None:
            self.check.on_timeout(self.final)