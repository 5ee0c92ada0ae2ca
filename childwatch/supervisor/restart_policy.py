"""Restart delay, exponential backoff and crash-loop threshold."""

from __future__ import annotations

from dataclasses import dataclass

from childwatch.contracts import DEFAULT_RESTART_DELAY_SECONDS
from childwatch.supervisor.models import ExitEvent, ProcessRecord

DEFAULT_MIN_UPTIME_SECONDS = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_DELAY_SECONDS = 60.0


@dataclass(frozen=True)
class RestartDecision:
    restart: bool
    delay: float
    reason: str


@dataclass(frozen=True)
class RestartPolicy:
    """
    A run shorter than ``min_uptime`` (or one that could not exec) is a
    failure. Consecutive failures stretch the delay geometrically, capped at
    ``max_delay`` and never below ``restart_delay``. Reaching ``max_failures``
    stops restarts for that record; ``None`` restarts forever.
    """

    restart_delay: float = DEFAULT_RESTART_DELAY_SECONDS
    min_uptime: float = DEFAULT_MIN_UPTIME_SECONDS
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS
    max_failures: int | None = None

    def __post_init__(self) -> None:
        if self.restart_delay < 0:
            raise ValueError("restart_delay must be >= 0")
        if self.min_uptime < 0:
            raise ValueError("min_uptime must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.max_failures is not None and self.max_failures < 1:
            raise ValueError("max_failures must be >= 1")

    def delay_for(self, failures: int) -> float:
        if failures <= 1:
            return self.restart_delay
        delay = self.restart_delay * (self.backoff_factor ** (failures - 1))
        return max(self.restart_delay, min(delay, self.max_delay))

    def _decide(self, record: ProcessRecord, failed: bool, reason: str) -> RestartDecision:
        if failed:
            record.consecutive_failures += 1
        else:
            record.consecutive_failures = 0
        failures = record.consecutive_failures
        if self.max_failures is not None and failures >= self.max_failures:
            return RestartDecision(
                restart=False,
                delay=0.0,
                reason=f"{reason}; {failures} consecutive failures reached limit {self.max_failures}",
            )
        return RestartDecision(restart=True, delay=self.delay_for(failures), reason=reason)

    def on_exit(self, record: ProcessRecord, event: ExitEvent, now: float) -> RestartDecision:
        """Update the record's failure count for a reaped exit and pick the delay."""
        uptime = now - record.started_at if record.started_at is not None else 0.0
        if event.exec_failed:
            return self._decide(record, True, "exec failed")
        if uptime < self.min_uptime:
            return self._decide(record, True, f"exited after {uptime:.2f}s")
        return self._decide(record, False, f"ran for {uptime:.2f}s")

    def on_launch_failure(self, record: ProcessRecord) -> RestartDecision:
        return self._decide(record, True, "launch failed")
