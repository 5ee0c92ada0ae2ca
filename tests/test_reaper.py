"""Tests for draining child terminations."""

import errno
import time
import unittest
from unittest import mock

from childwatch.errors import SystemWaitError
from childwatch.supervisor.launcher import Launcher
from childwatch.supervisor.reaper import ChildReaper
from childwatch.supervisor.registry import ProcessRegistry


class ChildReaperTests(unittest.TestCase):
    """Validate that every termination is observed exactly once."""

    def test_drain_collects_every_exited_child(self) -> None:
        registry = ProcessRegistry()
        for code in (0, 1, 2):
            registry.add_command("/bin/sh")
            registry.append_argument("sh")
            registry.append_argument("-c")
            registry.append_argument(f"exit {code}")
        registry.freeze()
        launcher = Launcher()
        pids = {launcher.launch(record): index for index, record in enumerate(registry)}

        reaper = ChildReaper()
        collected = {}
        deadline = time.monotonic() + 10
        while len(collected) < len(pids) and time.monotonic() < deadline:
            for event in reaper.drain():
                self.assertNotIn(event.pid, collected)
                collected[event.pid] = event.exit_code
            time.sleep(0.05)

        self.assertEqual(set(collected), set(pids))
        for pid, index in pids.items():
            self.assertEqual(collected[pid], index)
        self.assertEqual(reaper.drain(), [])

    def test_drain_without_children_is_empty(self) -> None:
        with mock.patch("childwatch.supervisor.reaper.os.waitpid", side_effect=ChildProcessError()):
            self.assertEqual(ChildReaper().drain(), [])

    def test_drain_stops_when_nothing_pending(self) -> None:
        with mock.patch(
            "childwatch.supervisor.reaper.os.waitpid",
            side_effect=[(101, 0), (102, 256), (0, 0)],
        ):
            events = ChildReaper().drain()
        self.assertEqual([event.pid for event in events], [101, 102])
        self.assertEqual(events[1].exit_code, 1)

    def test_drain_raises_system_wait_error(self) -> None:
        with mock.patch(
            "childwatch.supervisor.reaper.os.waitpid",
            side_effect=OSError(errno.EINVAL, "Invalid argument"),
        ):
            with self.assertRaises(SystemWaitError):
                ChildReaper().drain()

    def test_reap_unknown_pid_returns_none(self) -> None:
        with mock.patch("childwatch.supervisor.reaper.os.waitpid", side_effect=ChildProcessError()):
            self.assertIsNone(ChildReaper().reap(999999))


if __name__ == "__main__":
    unittest.main()
