"""Start supervised commands with fork + execve."""

import logging
import os

from childwatch.contracts import EXIT_EXEC_FAILED
from childwatch.errors import ForkFailedError, ImageReplacementError
from childwatch.supervisor.models import ProcessRecord

logger = logging.getLogger("childwatch.supervisor.launcher")


def _exec_child(path: str, argv: list[str]) -> None:
    """Replace the forked child's image. Never returns."""
    try:
        os.execve(path, argv, os.environ)
    except OSError as exc:
        # Logging handlers may hold locks copied from the parent, write directly.
        error = ImageReplacementError(f"execve {path}: {exc.strerror}")
        try:
            os.write(2, f"childwatch: {error}\n".encode("utf-8", "replace"))
        except OSError:
            pass
    finally:
        os._exit(EXIT_EXEC_FAILED)


class Launcher:
    """Creates one OS process per call, inheriting the supervisor environment."""

    def launch(self, record: ProcessRecord) -> int:
        argv = record.argv()
        try:
            pid = os.fork()
        except OSError as exc:
            logger.error("fork failed for %s: %s", record.describe(), exc)
            raise ForkFailedError(f"fork failed for {record.path}: {exc}") from exc

        if pid == 0:
            _exec_child(record.path, argv)

        logger.debug("Forked pid %d for %s", pid, record.describe())
        return pid
