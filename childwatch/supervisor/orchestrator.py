"""Supervisor loop: initial launch, reap, delayed restart, shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from typing import Any, Callable

from childwatch.contracts import EXIT_NO_CHILDREN, EXIT_SYSTEM_FAILURE
from childwatch.errors import LaunchError, SystemWaitError
from childwatch.supervisor.launcher import Launcher
from childwatch.supervisor.models import ACTIVE_STATES, ExitEvent, ProcessRecord, RecordState
from childwatch.supervisor.reaper import ChildReaper
from childwatch.supervisor.registry import ProcessRegistry
from childwatch.supervisor.restart_policy import RestartPolicy
from childwatch.supervisor.shutdown import ShutdownHandler

logger = logging.getLogger("childwatch.supervisor")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Supervisor:
    """
    Keeps every configured command running until a shutdown request arrives.

    Signal handlers only set flags and wake the loop; every registry read and
    write happens on the event loop thread, in ``run`` or in a restart task.
    """

    def __init__(
        self,
        registry: ProcessRegistry,
        *,
        policy: RestartPolicy | None = None,
        launcher: Launcher | None = None,
        reaper: ChildReaper | None = None,
        shutdown_handler: ShutdownHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.policy = policy or RestartPolicy()
        self.launcher = launcher or Launcher()
        self.reaper = reaper or ChildReaper()
        self.shutdown_handler = shutdown_handler or ShutdownHandler(reaper=self.reaper)
        self.clock = clock
        self._wake = asyncio.Event()
        self._shutdown_requested = False
        self._restart_tasks: dict[int, asyncio.Task] = {}
        self._exit_code: int | None = None

    @property
    def stopping(self) -> bool:
        return self._shutdown_requested or self.shutdown_handler.started

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def notify_child_exit(self) -> None:
        """SIGCHLD relay."""
        self._wake.set()

    def request_shutdown(self) -> None:
        """SIGINT/SIGTERM relay. Safe to call any number of times."""
        if not self._shutdown_requested:
            logger.info("Shutdown requested")
        self._shutdown_requested = True
        self._wake.set()

    def has_active_records(self) -> bool:
        return any(record.state in ACTIVE_STATES for record in self.registry.for_each())

    def log_configuration(self) -> None:
        for record in self.registry.for_each():
            logger.info("Process %d: %s", record.index, record.path)
            for position, arg in enumerate(record.argv()):
                logger.debug("  arg %d: %s", position, arg)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "index": record.index,
                "path": record.path,
                "argv": record.argv(),
                "pid": record.pid,
                "state": record.state.value,
                "restart_count": record.restart_count,
                "consecutive_failures": record.consecutive_failures,
                "last_exit_code": record.last_exit_code,
            }
            for record in self.registry.for_each()
        ]

    def _launch(self, record: ProcessRecord, *, restart: bool) -> bool:
        try:
            pid = self.launcher.launch(record)
        except LaunchError as exc:
            logger.error("Could not start %s: %s", record.describe(), exc)
            decision = self.policy.on_launch_failure(record)
            if decision.restart:
                self._schedule_restart(record, decision.delay, decision.reason)
            else:
                self._stall(record, decision.reason)
            return False

        self.registry.assign_pid(record, pid)
        record.state = RecordState.RUNNING
        record.started_at = self.clock()
        if restart:
            record.restart_count += 1
            logger.info("Restarted %s as pid %d (restart #%d)", record.describe(), pid, record.restart_count)
        else:
            logger.info("Started %s as pid %d", record.describe(), pid)
        return True

    def start_all(self) -> None:
        """Freeze configuration and launch every record once."""
        self.registry.freeze()
        for record in self.registry.for_each():
            self._launch(record, restart=False)

    def _stall(self, record: ProcessRecord, reason: str) -> None:
        record.state = RecordState.STALLED
        logger.error("Giving up on %s: %s", record.describe(), reason)
        self._wake.set()

    def _schedule_restart(self, record: ProcessRecord, delay: float, reason: str) -> None:
        record.state = RecordState.RESTART_PENDING
        logger.info("Restarting %s in %.2fs (%s)", record.describe(), delay, reason)
        self._restart_tasks[record.index] = asyncio.create_task(
            self._restart_after(record, delay),
            name=f"childwatch-restart-{record.index}",
        )

    async def _restart_after(self, record: ProcessRecord, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._restart_tasks.get(record.index) is asyncio.current_task():
            del self._restart_tasks[record.index]
        if self.stopping:
            logger.debug("Skipping restart of %s, shutdown in progress", record.describe())
            return
        self._launch(record, restart=True)

    def handle_exit(self, event: ExitEvent) -> ProcessRecord | None:
        """Apply one reaped termination to the registry."""
        record = self.registry.find_by_pid(event.pid)
        if record is None:
            logger.debug("Ignoring untracked pid %d (%s)", event.pid, event.describe())
            return None

        self.registry.clear_pid(record)
        record.state = RecordState.EXITED
        record.last_exit_code = event.exit_code
        logger.warning("%s (pid %d) %s", record.describe(), event.pid, event.describe())

        if self.stopping:
            return record

        decision = self.policy.on_exit(record, event, self.clock())
        if decision.restart:
            self._schedule_restart(record, decision.delay, decision.reason)
        else:
            self._stall(record, decision.reason)
        return record

    def shutdown(self) -> int:
        """Stop restarts, kill every tracked process and release the registry."""
        self._shutdown_requested = True
        self.shutdown_handler.begin()
        for task in self._restart_tasks.values():
            task.cancel()
        self._restart_tasks.clear()
        return self.shutdown_handler.run(self.registry)

    def _finish(self, code: int) -> int:
        self._exit_code = code
        return code

    async def supervise(self) -> int:
        """Reap and restart until shutdown or until nothing is left to supervise."""
        while True:
            if self._shutdown_requested:
                return self._finish(self.shutdown())

            try:
                events = self.reaper.drain()
            except SystemWaitError as exc:
                logger.critical("Waiting for children failed: %s", exc)
                self.shutdown()
                return self._finish(EXIT_SYSTEM_FAILURE)

            for event in events:
                self.handle_exit(event)

            if not self.has_active_records():
                logger.error("No processes left to supervise")
                self.shutdown()
                return self._finish(EXIT_NO_CHILDREN)

            await self._wake.wait()
            self._wake.clear()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.add_signal_handler(signal.SIGCHLD, self.notify_child_exit)
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGCHLD, *SHUTDOWN_SIGNALS):
            loop.remove_signal_handler(sig)

    async def run(self) -> int:
        """Install signal relays, launch everything and supervise."""
        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        try:
            self.log_configuration()
            self.start_all()
            return await self.supervise()
        finally:
            self._remove_signal_handlers(loop)
            for task in self._restart_tasks.values():
                task.cancel()
            self._restart_tasks.clear()
