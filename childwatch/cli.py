import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

import typer

from childwatch.config import (
    PID_FILE,
    CommandSpec,
    SupervisorConfig,
    build_registry,
    load_config,
    validate_config,
)
from childwatch.contracts import EXIT_CONFIG_REJECTED, EXIT_SYSTEM_FAILURE
from childwatch.daemon import detach as detach_process
from childwatch.errors import ConfigurationError
from childwatch.log_config import configure_logging
from childwatch.supervisor.orchestrator import Supervisor

app = typer.Typer(help="Keep a fixed set of commands running, restarting them when they exit.")

logger = logging.getLogger("childwatch.cli")


def pid_exists(pid: int) -> bool:
    """Check whether pid exists in the current process table."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def read_pid_file(pid_file: Path) -> Optional[int]:
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def write_pid_file(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def remove_pid_file(pid_file: Path) -> None:
    if read_pid_file(pid_file) == os.getpid():
        pid_file.unlink(missing_ok=True)


def build_config(
    commands: Optional[List[str]] = None,
    config_file: Optional[Path] = None,
    interval: Optional[float] = None,
    detach: bool = False,
    max_processes: Optional[int] = None,
    min_uptime: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    max_delay: Optional[float] = None,
    max_failures: Optional[int] = None,
) -> SupervisorConfig:
    """Merge an optional config file with command-line overrides."""
    raw: dict = {}
    if config_file is not None:
        raw = load_config(config_file).model_dump()

    raw.setdefault("commands", [])
    for command_line in commands or []:
        raw["commands"].append(CommandSpec.from_command_line(command_line).model_dump())

    if interval is not None:
        raw["restart_delay"] = interval
    if max_processes is not None:
        raw["max_processes"] = max_processes
    if detach:
        raw["detach"] = True

    policy = dict(raw.get("restart_policy") or {})
    overrides = {
        "min_uptime": min_uptime,
        "backoff_factor": backoff_factor,
        "max_delay": max_delay,
        "max_failures": max_failures,
    }
    policy.update({key: value for key, value in overrides.items() if value is not None})
    raw["restart_policy"] = policy
    return validate_config(raw)


@app.command()
def run(
    command: Optional[List[str]] = typer.Option(
        None, "--command", "-c", help="Command line to supervise, e.g. '/bin/sleep 500'. Repeatable."
    ),
    config_file: Optional[Path] = typer.Option(None, "--config", help="JSON configuration file"),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-s", help="Seconds to wait before restarting an exited command (default 2)"
    ),
    detach: bool = typer.Option(False, "--detach", "-d", help="Run in the background"),
    max_processes: Optional[int] = typer.Option(None, "--max-processes", help="Registry capacity (default 128)"),
    min_uptime: Optional[float] = typer.Option(None, "--min-uptime", help="Runs shorter than this count as failures"),
    backoff_factor: Optional[float] = typer.Option(None, "--backoff-factor"),
    max_delay: Optional[float] = typer.Option(None, "--max-delay", help="Upper bound for backoff delays"),
    max_failures: Optional[int] = typer.Option(
        None, "--max-failures", help="Stop restarting a command after this many consecutive failures"
    ),
    pid_file: Path = typer.Option(PID_FILE, "--pid-file"),
    log_file: Optional[Path] = typer.Option(None, "--log-file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Launch the configured commands and keep them running until interrupted."""
    try:
        config = build_config(
            commands=command,
            config_file=config_file,
            interval=interval,
            detach=detach,
            max_processes=max_processes,
            min_uptime=min_uptime,
            backoff_factor=backoff_factor,
            max_delay=max_delay,
            max_failures=max_failures,
        )
        registry = build_registry(config)
        policy = config.build_restart_policy()
    except (ConfigurationError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG_REJECTED)

    configure_logging(verbose, log_file)

    existing = read_pid_file(pid_file)
    if existing is not None and existing != os.getpid() and pid_exists(existing):
        typer.echo(f"childwatch already running (PID: {existing})", err=True)
        raise typer.Exit(code=1)

    try:
        if config.detach:
            detach_process()
        write_pid_file(pid_file)
    except OSError as exc:
        logger.critical("Could not start supervisor: %s", exc)
        raise typer.Exit(code=EXIT_SYSTEM_FAILURE)

    try:
        code = asyncio.run(Supervisor(registry, policy=policy).run())
    finally:
        remove_pid_file(pid_file)
    raise typer.Exit(code=code)


@app.command()
def stop(pid_file: Path = typer.Option(PID_FILE, "--pid-file")):
    """Ask a running supervisor to kill its children and exit."""
    pid = read_pid_file(pid_file)
    if pid is None:
        typer.echo("childwatch not running (no PID file)")
        return
    try:
        os.kill(pid, signal.SIGINT)
        typer.echo(f"Sent SIGINT to childwatch (PID: {pid})")
    except ProcessLookupError:
        typer.echo("childwatch process not found. Cleaning up PID file.")
        pid_file.unlink(missing_ok=True)
    except PermissionError as exc:
        typer.echo(f"Failed to stop childwatch: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def status(pid_file: Path = typer.Option(PID_FILE, "--pid-file")):
    """Report whether a supervisor is running."""
    pid = read_pid_file(pid_file)
    if pid is not None and pid_exists(pid):
        typer.echo(f"childwatch: RUNNING (PID: {pid})")
        return
    typer.echo("childwatch: STOPPED")
    raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
