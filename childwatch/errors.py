"""Supervisor exception hierarchy."""


class ChildwatchError(Exception):
    """Base error type for all supervisor failures."""


class ConfigurationError(ChildwatchError):
    """Configuration was rejected before any process was launched."""


class CapacityExceededError(ConfigurationError):
    """More commands were configured than the registry can hold."""

    def __init__(self, capacity: int):
        super().__init__(f"registry capacity of {capacity} commands exceeded")
        self.capacity = capacity


class NoActiveRecordError(ConfigurationError):
    """An argument was supplied before any command."""

    def __init__(self, message: str = "argument given before any command"):
        super().__init__(message)


class DuplicatePidError(ChildwatchError):
    """A pid was assigned to a record while another record still holds it."""


class LaunchError(ChildwatchError):
    """A supervised command could not be started."""


class ForkFailedError(LaunchError):
    """Process creation failed; no child exists."""


class ImageReplacementError(LaunchError):
    """execve failed inside the forked child.

    Never raised in the supervisor itself: the child reports it through the
    exit status ``EXIT_EXEC_FAILED``.
    """


class SystemWaitError(ChildwatchError):
    """Waiting for child termination failed for a reason other than no children."""
