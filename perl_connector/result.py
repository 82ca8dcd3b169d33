"""Check results and the interface of those who receive them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CheckResult:
    """Outcome of one check, as reported to the monitoring engine."""

    command_id: int = 0
    error: str | bytes = ""
    executed: bool = False
    exit_code: int = -1
    output: str | bytes = ""


class CheckListener(ABC):
    """Receives check results."""

    @abstractmethod
    def on_result(self, result: CheckResult) -> None:
        """Handle a finished check."""