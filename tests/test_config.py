"""Tests for configuration validation and registry construction."""

import json
import tempfile
import unittest
from pathlib import Path

from childwatch.config import (
    CommandSpec,
    build_registry,
    load_config,
    resolve_command_path,
    validate_config,
)
from childwatch.errors import CapacityExceededError, ConfigurationError


class ConfigTests(unittest.TestCase):
    """Validate config file handling and registry population."""

    def _write_config(self, payload) -> Path:
        tmp = tempfile.NamedTemporaryFile("w", suffix=".json", delete=False)
        with tmp:
            json.dump(payload, tmp)
        self.addCleanup(Path(tmp.name).unlink)
        return Path(tmp.name)

    def test_defaults(self) -> None:
        config = validate_config({"commands": [{"path": "/bin/true"}]})
        self.assertEqual(config.restart_delay, 2.0)
        self.assertEqual(config.max_processes, 128)
        self.assertFalse(config.detach)
        policy = config.build_restart_policy()
        self.assertEqual(policy.restart_delay, 2.0)
        self.assertIsNone(policy.max_failures)

    def test_command_line_split(self) -> None:
        spec = CommandSpec.from_command_line("/bin/sh -c 'sleep 5; exit 1'")
        self.assertEqual(spec.path, "/bin/sh")
        self.assertEqual(spec.args, ["-c", "sleep 5; exit 1"])

    def test_command_line_rejects_unbalanced_quotes(self) -> None:
        with self.assertRaises(ConfigurationError):
            CommandSpec.from_command_line("/bin/sh -c 'oops")
        with self.assertRaises(ConfigurationError):
            CommandSpec.from_command_line("   ")

    def test_build_registry_sets_argv0_and_arguments(self) -> None:
        config = validate_config(
            {
                "commands": [
                    {"path": "/bin/sleep", "args": ["500"]},
                    {"path": "/bin/sh", "argv0": "worker", "args": ["-c", "exit 0"]},
                ]
            }
        )
        registry = build_registry(config)
        first, second = list(registry)
        self.assertTrue(registry.frozen)
        self.assertEqual(first.argv(), ["/bin/sleep", "500"])
        self.assertEqual(second.argv(), ["worker", "-c", "exit 0"])

    def test_build_registry_capacity_exceeded(self) -> None:
        config = validate_config(
            {"max_processes": 2, "commands": [{"path": "/bin/true"}] * 3}
        )
        with self.assertRaises(CapacityExceededError):
            build_registry(config)

    def test_build_registry_requires_commands(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_registry(validate_config({}))

    def test_invalid_values_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            validate_config({"restart_delay": -1})
        with self.assertRaises(ConfigurationError):
            validate_config({"restart_policy": {"backoff_factor": 0.1}})
        with self.assertRaises(ConfigurationError):
            validate_config({"commands": [{"path": "  "}]})
        with self.assertRaises(ConfigurationError):
            validate_config(["not", "an", "object"])

    def test_load_config_file(self) -> None:
        path = self._write_config(
            {
                "restart_delay": 0.5,
                "restart_policy": {"max_failures": 3},
                "commands": [{"path": "/bin/sleep", "args": ["10"]}],
            }
        )
        config = load_config(path)
        self.assertEqual(config.restart_delay, 0.5)
        self.assertEqual(config.restart_policy.max_failures, 3)
        self.assertEqual(config.commands[0].args, ["10"])

    def test_load_config_rejects_bad_json_and_missing_file(self) -> None:
        tmp = tempfile.NamedTemporaryFile("w", suffix=".json", delete=False)
        with tmp:
            tmp.write("{not json")
        self.addCleanup(Path(tmp.name).unlink)
        with self.assertRaises(ConfigurationError):
            load_config(Path(tmp.name))
        with self.assertRaises(ConfigurationError):
            load_config(Path(tmp.name).with_suffix(".missing"))

    def test_resolve_command_path(self) -> None:
        self.assertEqual(resolve_command_path("/bin/true"), "/bin/true")
        resolved = resolve_command_path("sh")
        self.assertTrue(Path(resolved).is_absolute())
        with self.assertRaises(ConfigurationError):
            resolve_command_path("childwatch-no-such-command-xyz")


if __name__ == "__main__":
    unittest.main()
