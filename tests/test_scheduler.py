"""每日定时签到调度器与后台任务的测试。"""

import pathlib
import sys
import threading
import unittest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.tasks.background_job_manager import BackgroundJobManager  # noqa: E402
from autocheckin.tasks.checkin_scheduler import CheckinScheduler  # noqa: E402


class TestCheckinScheduler(unittest.TestCase):
    def setUp(self) -> None:
        self.job_func = MagicMock()
        self.scheduler = CheckinScheduler(
            MagicMock(spec=LoggerInterface), self.job_func, "19:05", "Asia/Shanghai", tick_seconds=0.01,
        )
        self.addCleanup(self.scheduler.stop)

    def test_initial_status(self) -> None:
        self.assertEqual(self.scheduler.status(), {
            "isRunning": False,
            "checkinJobStatus": False,
            "nextCheckinDate": None,
        })

    def test_start_twice_registers_one_job(self) -> None:
        self.assertTrue(self.scheduler.start())
        self.assertFalse(self.scheduler.start())

        self.assertEqual(len(self.scheduler.scheduler.jobs), 1)
        status = self.scheduler.status()
        self.assertTrue(status["isRunning"])
        self.assertTrue(status["checkinJobStatus"])
        self.assertRegex(status["nextCheckinDate"], r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")

    def test_stop_clears_job(self) -> None:
        self.scheduler.start()
        self.scheduler.stop()

        self.assertEqual(self.scheduler.scheduler.jobs, [])
        self.assertFalse(self.scheduler.status()["isRunning"])
        self.assertIsNone(self.scheduler.status()["nextCheckinDate"])

    def test_restart_after_stop(self) -> None:
        self.scheduler.start()
        self.scheduler.stop()
        self.assertTrue(self.scheduler.start())
        self.assertEqual(len(self.scheduler.scheduler.jobs), 1)

    def test_restart_while_job_running_keeps_single_loop(self) -> None:
        entered = threading.Event()
        release = threading.Event()

        def blocking_job() -> None:
            entered.set()
            release.wait(2)

        self.job_func.side_effect = blocking_job
        self.scheduler.STOP_JOIN_TIMEOUT = 0.05
        self.addCleanup(release.set)
        self.scheduler.start()
        self.scheduler._job.next_run = datetime.now() - timedelta(seconds=1)
        old_thread = self.scheduler._thread
        self.assertTrue(entered.wait(2))

        self.scheduler.stop()
        self.assertTrue(old_thread.is_alive())
        self.assertTrue(self.scheduler.start())
        release.set()
        old_thread.join(2)

        self.assertFalse(old_thread.is_alive())
        loops = [t for t in threading.enumerate() if t.name == "CheckinScheduler" and t.is_alive()]
        self.assertEqual(len(loops), 1)
        self.assertEqual(len(self.scheduler.scheduler.jobs), 1)
        self.job_func.assert_called_once_with()

    def test_trigger_now_runs_job(self) -> None:
        self.scheduler.trigger_now()
        self.job_func.assert_called_once_with()

    def test_trigger_now_swallows_job_errors(self) -> None:
        self.job_func.side_effect = RuntimeError("boom")
        self.scheduler.trigger_now()
        self.job_func.assert_called_once_with()

    def test_trigger_now_in_background(self) -> None:
        done = threading.Event()
        self.job_func.side_effect = done.set

        self.scheduler.trigger_now(background=True)

        self.assertTrue(done.wait(2))


class TestBackgroundJobManager(unittest.TestCase):
    def setUp(self) -> None:
        self.run_event = threading.Event()
        self.run_event.set()
        self.manager = BackgroundJobManager(MagicMock(spec=LoggerInterface), self.run_event)
        self.addCleanup(self.manager.stop_jobs)

    def test_rejects_non_positive_interval(self) -> None:
        self.assertFalse(self.manager.add_job(lambda: None, 0, "bad"))
        self.assertEqual(self.manager.jobs, [])

    def test_runs_job_periodically_and_survives_errors(self) -> None:
        calls = []
        done = threading.Event()

        def task() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first run fails")
            done.set()

        self.assertTrue(self.manager.add_job(task, 0.01, "cleanup"))
        self.manager.start_jobs()

        self.assertTrue(done.wait(2))
        self.manager.stop_jobs()
        self.assertEqual(self.manager.threads, [])

    def test_does_not_start_when_app_stopped(self) -> None:
        self.run_event.clear()
        self.manager.add_job(lambda: None, 0.01, "cleanup")
        self.manager.start_jobs()
        self.assertEqual(self.manager.threads, [])


if __name__ == "__main__":
    unittest.main()
