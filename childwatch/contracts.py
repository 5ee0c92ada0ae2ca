"""Process exit status contract for the supervisor and its launched children."""

EXIT_OK = 0
EXIT_NO_CHILDREN = 69
EXIT_SYSTEM_FAILURE = 71
EXIT_CONFIG_REJECTED = 78

# Status a forked child leaves with when execve fails.
EXIT_EXEC_FAILED = 127

DEFAULT_RESTART_DELAY_SECONDS = 2.0
DEFAULT_MAX_PROCESSES = 128
