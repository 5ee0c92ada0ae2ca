"""Tests for background detach."""

import unittest
from unittest import mock

from childwatch.daemon import detach


class DetachTests(unittest.TestCase):
    def test_parent_exits_immediately(self) -> None:
        with mock.patch("childwatch.daemon.os.fork", return_value=4321), mock.patch(
            "childwatch.daemon.os._exit", side_effect=SystemExit(0)
        ) as exit_mock, mock.patch("childwatch.daemon.os.setsid") as setsid:
            with self.assertRaises(SystemExit):
                detach()
        exit_mock.assert_called_once_with(0)
        setsid.assert_not_called()

    def test_child_becomes_session_leader(self) -> None:
        with mock.patch("childwatch.daemon.os.fork", return_value=0), mock.patch(
            "childwatch.daemon.os.setsid"
        ) as setsid, mock.patch("childwatch.daemon.os.getpid", return_value=777):
            self.assertEqual(detach(), 777)
        setsid.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
