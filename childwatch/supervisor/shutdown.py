"""Forced teardown of every supervised process."""

from __future__ import annotations

import logging
import os
import signal
from typing import Callable

from childwatch.contracts import EXIT_OK
from childwatch.supervisor.reaper import ChildReaper
from childwatch.supervisor.registry import ProcessRegistry
from childwatch.supervisor.models import RecordState

logger = logging.getLogger("childwatch.supervisor.shutdown")


class ShutdownHandler:
    """Kill all tracked pids and release the registry, at most once."""

    def __init__(
        self,
        *,
        kill_fn: Callable[[int, int], None] = os.kill,
        reaper: ChildReaper | None = None,
    ) -> None:
        self.kill_fn = kill_fn
        self.reaper = reaper or ChildReaper()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def begin(self) -> bool:
        """Mark shutdown as started. Returns False if it already was."""
        if self._started:
            return False
        self._started = True
        return True

    def _kill(self, pid: int) -> bool:
        try:
            self.kill_fn(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.warning("pid %d already exited before kill", pid)
            return False
        except PermissionError as exc:
            logger.error("kill pid %d refused: %s", pid, exc)
            return False
        return True

    def run(self, registry: ProcessRegistry) -> int:
        """Terminate every tracked process, then release all records."""
        if registry.released:
            return EXIT_OK
        self.begin()

        records = list(registry.for_each())
        for record in records:
            record.state = RecordState.TERMINATED

        killed: list[int] = []
        for record in records:
            if record.pid is None:
                continue
            logger.info("Killing pid %d (%s)", record.pid, record.describe())
            if self._kill(record.pid):
                killed.append(record.pid)

        for pid in killed:
            event = self.reaper.reap(pid)
            if event is not None:
                logger.debug("pid %d %s", pid, event.describe())

        registry.release()
        logger.info("Shutdown complete, %d processes killed", len(killed))
        return EXIT_OK
