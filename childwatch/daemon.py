"""Detach the supervisor from its controlling terminal."""

import logging
import os

logger = logging.getLogger("childwatch.daemon")


def detach() -> int:
    """Fork into the background like daemon(3) with nochdir and noclose set.

    The parent leaves immediately with status 0; the child becomes a session
    leader and continues. Returns the pid of the detached process.
    """
    pid = os.fork()
    if pid > 0:
        os._exit(0)
    os.setsid()
    pid = os.getpid()
    logger.info("Detached as pid %d", pid)
    return pid
