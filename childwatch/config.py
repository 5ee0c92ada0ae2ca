"""Supervisor configuration: validation, JSON loading and registry construction."""

from __future__ import annotations

import json
import os
import shlex
import shutil
from pathlib import Path
from typing import Optional

from platformdirs import user_state_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

from childwatch.contracts import DEFAULT_MAX_PROCESSES, DEFAULT_RESTART_DELAY_SECONDS
from childwatch.errors import ConfigurationError
from childwatch.supervisor.registry import ProcessRegistry
from childwatch.supervisor.restart_policy import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_MAX_DELAY_SECONDS,
    DEFAULT_MIN_UPTIME_SECONDS,
    RestartPolicy,
)

STATE_DIR = Path(user_state_dir("childwatch"))
PID_FILE = STATE_DIR / "childwatch.pid"


class CommandSpec(BaseModel):
    path: str
    args: list[str] = Field(default_factory=list)
    argv0: Optional[str] = None

    @field_validator("path")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("command path must not be empty")
        return value

    @classmethod
    def from_command_line(cls, command_line: str) -> "CommandSpec":
        """Split a shell-style command line; the first word is path and argv[0]."""
        try:
            words = shlex.split(command_line)
        except ValueError as exc:
            raise ConfigurationError(f"cannot parse command {command_line!r}: {exc}") from exc
        if not words:
            raise ConfigurationError("empty command")
        try:
            return cls(path=words[0], args=words[1:])
        except ValidationError as exc:
            raise ConfigurationError(f"invalid command {command_line!r}: {exc}") from exc


class RestartPolicyConfig(BaseModel):
    min_uptime: float = Field(default=DEFAULT_MIN_UPTIME_SECONDS, ge=0)
    backoff_factor: float = Field(default=DEFAULT_BACKOFF_FACTOR, ge=1)
    max_delay: float = Field(default=DEFAULT_MAX_DELAY_SECONDS, ge=0)
    max_failures: Optional[int] = Field(default=None, ge=1)


class SupervisorConfig(BaseModel):
    commands: list[CommandSpec] = Field(default_factory=list)
    restart_delay: float = Field(default=DEFAULT_RESTART_DELAY_SECONDS, ge=0)
    max_processes: int = Field(default=DEFAULT_MAX_PROCESSES, ge=1)
    detach: bool = False
    restart_policy: RestartPolicyConfig = Field(default_factory=RestartPolicyConfig)

    def build_restart_policy(self) -> RestartPolicy:
        return RestartPolicy(
            restart_delay=self.restart_delay,
            min_uptime=self.restart_policy.min_uptime,
            backoff_factor=self.restart_policy.backoff_factor,
            max_delay=self.restart_policy.max_delay,
            max_failures=self.restart_policy.max_failures,
        )


def validate_config(raw: dict) -> SupervisorConfig:
    """Validate a raw mapping, raising ConfigurationError on any problem."""
    if not isinstance(raw, dict):
        raise ConfigurationError("configuration must be an object")
    try:
        return SupervisorConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


def load_config(path: Path) -> SupervisorConfig:
    """Load and validate a JSON configuration file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"configuration file {path} is not valid JSON: {exc}") from exc
    return validate_config(raw)


def resolve_command_path(path: str) -> str:
    """Resolve a bare command name on PATH; paths containing a separator are kept."""
    if os.sep in path:
        return path
    resolved = shutil.which(path)
    if resolved is None:
        raise ConfigurationError(f"command not found on PATH: {path}")
    return resolved


def build_registry(config: SupervisorConfig) -> ProcessRegistry:
    """Populate a registry from validated configuration; argv[0] defaults to the command as given."""
    if not config.commands:
        raise ConfigurationError("no commands configured")
    registry = ProcessRegistry(capacity=config.max_processes)
    for command in config.commands:
        registry.add_command(resolve_command_path(command.path))
        registry.append_argument(command.argv0 or command.path)
        for arg in command.args:
            registry.append_argument(arg)
    registry.freeze()
    return registry
