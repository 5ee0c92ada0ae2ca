"""Non-blocking draining of child terminations."""

import logging
import os

from childwatch.errors import SystemWaitError
from childwatch.supervisor.models import ExitEvent

logger = logging.getLogger("childwatch.supervisor.reaper")


class ChildReaper:
    """Collect every terminated child of this process.

    SIGCHLD deliveries coalesce, so one wake-up may stand for several exits.
    ``drain`` keeps calling waitpid until nothing is pending, which means no
    termination is ever lost.
    """

    def drain(self) -> list[ExitEvent]:
        events: list[ExitEvent] = []
        while True:
            try:
                pid, status = os.waitpid(-1, os.WNOHANG)
            except ChildProcessError:
                # No children left at all.
                break
            except OSError as exc:
                raise SystemWaitError(f"waitpid failed: {exc}") from exc
            if pid == 0:
                break
            event = ExitEvent(pid=pid, status=status)
            logger.debug("Reaped pid %d (%s)", pid, event.describe())
            events.append(event)
        return events

    def reap(self, pid: int) -> ExitEvent | None:
        """Block until ``pid`` terminates. Returns None if it is not our child."""
        try:
            reaped, status = os.waitpid(pid, 0)
        except ChildProcessError:
            return None
        return ExitEvent(pid=reaped, status=status)
