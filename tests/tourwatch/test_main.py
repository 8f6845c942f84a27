import unittest
from unittest.mock import MagicMock, patch

from tourwatch import __main__ as cli
from tourwatch.config import Settings
from tourwatch.errors import PermissionDeniedError


class TestCli(unittest.TestCase):
    @patch("tourwatch.__main__.load_settings", return_value=Settings())
    @patch("tourwatch.jobs.reminders.ReminderDispatchJob")
    def test_reminders_runs_one_tick(self, mock_job_cls, _settings):
        mock_job_cls.return_value.run_tick.return_value = {"sent": 2, "scheduled_sent": 1, "swept": 0}

        with patch("sys.argv", ["tourwatch", "reminders"]):
            cli.main()

        mock_job_cls.return_value.run_tick.assert_called_once_with()

    @patch("tourwatch.__main__.load_settings", return_value=Settings())
    @patch("tourwatch.jobs.change_fanout.ChangeFanoutJob")
    def test_fanout_refusal_exits_with_code_2(self, mock_job_cls, _settings):
        mock_job = MagicMock()
        mock_job.fanout.side_effect = PermissionDeniedError("nope", code="FORBIDDEN")
        mock_job_cls.return_value = mock_job

        with patch("sys.argv", ["tourwatch", "fanout", "--tour-id", "1", "--caller-id", "2"]):
            with self.assertRaises(SystemExit) as exc:
                cli.main()

        self.assertEqual(exc.exception.code, 2)
        mock_job.fanout.assert_called_once_with(1, 2)

    def test_jobs_have_no_entry_point_of_their_own(self):
        from tourwatch.jobs import change_fanout, reminders

        self.assertFalse(hasattr(change_fanout, "main"))
        self.assertFalse(hasattr(reminders, "main"))


if __name__ == "__main__":
    unittest.main()
