"""Runtime records tracked by the supervisor."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from enum import Enum

from childwatch.contracts import EXIT_EXEC_FAILED


class RecordState(str, Enum):
    CONFIGURED = "configured"
    RUNNING = "running"
    EXITED = "exited"
    RESTART_PENDING = "restart_pending"
    STALLED = "stalled"
    TERMINATED = "terminated"


# States in which a record still counts as supervised.
ACTIVE_STATES = frozenset({RecordState.RUNNING, RecordState.RESTART_PENDING})


@dataclass
class ProcessRecord:
    """One supervised command and the process currently running it."""

    index: int
    path: str
    arguments: list[str] | tuple[str, ...] = field(default_factory=list)
    pid: int | None = None
    state: RecordState = RecordState.CONFIGURED
    started_at: float | None = None
    restart_count: int = 0
    consecutive_failures: int = 0
    last_exit_code: int | None = None

    def argv(self) -> list[str]:
        """Argument vector handed to execve."""
        if self.arguments:
            return list(self.arguments)
        return [self.path]

    def describe(self) -> str:
        return f"#{self.index} {' '.join(self.argv())}"


@dataclass(frozen=True)
class ExitEvent:
    """A reaped child termination as reported by waitpid."""

    pid: int
    status: int

    @property
    def exit_code(self) -> int:
        """Exit code, or the negated signal number when killed by a signal."""
        return os.waitstatus_to_exitcode(self.status)

    @property
    def exec_failed(self) -> bool:
        return self.exit_code == EXIT_EXEC_FAILED

    def describe(self) -> str:
        code = self.exit_code
        if code < 0:
            try:
                name = signal.Signals(-code).name
            except ValueError:
                name = str(-code)
            return f"killed by {name}"
        return f"exited with code {code}"
