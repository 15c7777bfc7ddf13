"""单次签到、定时签到与过期提醒的测试。"""

import pathlib
import sys
import unittest
from unittest.mock import MagicMock, patch

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.exceptions import AuthenticationError, NetworkError, ValidationError  # noqa: E402
from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.services.checkin_service import CheckinService  # noqa: E402
from autocheckin.services.credential_manager import CredentialManager  # noqa: E402
from autocheckin.services.notification.manager import NotificationManager  # noqa: E402
from autocheckin.storage.credential_store import Credential  # noqa: E402
from autocheckin.tasks.checkin_job import CheckinJob  # noqa: E402
from autocheckin.utils.app_utils import now_ms  # noqa: E402

RESULT = {"Data": "签到成功", "Type": 0}


class TestCheckinJob(unittest.TestCase):
    def setUp(self) -> None:
        self.credentials = MagicMock(spec=CredentialManager)
        self.credentials.load.return_value = Credential("Bearer abc", now_ms() + 6 * 3_600_000)
        self.service = MagicMock(spec=CheckinService)
        self.service.fetch_info.return_value = {"Data": {"Name": "daily"}}
        self.service.submit.return_value = RESULT
        self.notifier = MagicMock(spec=NotificationManager)
        self.notifier.notify_credential_expired.return_value = True

        patcher = patch("builtins.print")
        patcher.start()
        self.addCleanup(patcher.stop)

    def _job(self, user_name="Alice") -> CheckinJob:
        return CheckinJob(
            MagicMock(spec=LoggerInterface),
            self.credentials,
            self.service,
            self.notifier,
            user_name=user_name,
            reauth_url="https://checkin.example.com",
            expired_recipient="ops@example.com",
        )

    # --- 定时签到 ---
    def test_scheduled_checkin_with_valid_token(self) -> None:
        job = self._job()

        self.assertEqual(job.run_scheduled(), RESULT)
        self.service.submit.assert_called_once_with("Bearer abc", "Alice")
        self.notifier.notify_credential_expired.assert_not_called()
        self.assertTrue(job.last_run()["success"])
        self.assertEqual(job.last_run()["trigger"], "scheduled")

    def test_scheduled_checkin_with_expired_token_sends_notice(self) -> None:
        self.credentials.load.return_value = Credential("Bearer abc", now_ms() - 1_000)
        job = self._job()

        self.assertIsNone(job.run_scheduled())

        self.notifier.notify_credential_expired.assert_called_once_with(
            "https://checkin.example.com", recipient="ops@example.com",
        )
        self.service.submit.assert_not_called()
        self.credentials.ensure_valid.assert_not_called()
        self.assertFalse(job.last_run()["success"])

    def test_scheduled_checkin_never_raises(self) -> None:
        self.service.submit.side_effect = NetworkError("HTTP 500")
        job = self._job()

        self.assertIsNone(job.run_scheduled())
        self.notifier.notify_credential_expired.assert_not_called()

        self.service.submit.side_effect = RuntimeError("boom")
        self.assertIsNone(job.run_scheduled())
        self.assertEqual(len(job.history), 2)

    def test_scheduled_checkin_without_user_name(self) -> None:
        job = self._job(user_name=None)

        self.assertIsNone(job.run_scheduled())
        self.service.submit.assert_not_called()

    # --- 使用缓存凭证签到 ---
    def test_stored_credential_must_be_valid(self) -> None:
        job = self._job()

        with self.assertRaises(AuthenticationError) as ctx:
            job.checkin_with_stored_credential(Credential("Bearer abc", now_ms() - 1))
        self.assertEqual(ctx.exception.code, "TOKEN_INVALID")
        self.service.fetch_info.assert_not_called()

    def test_stored_credential_checkin(self) -> None:
        job = self._job()

        self.assertEqual(job.checkin_with_stored_credential(trigger="api"), RESULT)
        self.service.fetch_info.assert_called_once_with("Bearer abc")
        self.assertEqual(job.last_run()["trigger"], "api")

    # --- 交互式签到 ---
    def test_interactive_requires_user_name(self) -> None:
        job = self._job(user_name="   ")

        with self.assertRaises(ValidationError) as ctx:
            job.run_interactive()
        self.assertEqual(ctx.exception.field, "USER_NAME")
        self.credentials.ensure_valid.assert_not_called()

    def test_interactive_checkin_mails_result(self) -> None:
        self.credentials.ensure_valid.return_value = Credential("Bearer fresh", now_ms() + 3_600_000)
        job = self._job()

        self.assertEqual(job.run_interactive(), RESULT)

        self.service.submit.assert_called_once_with("Bearer fresh", "Alice")
        self.notifier.notify_checkin_result.assert_called_once_with(RESULT)

    def test_interactive_propagates_errors(self) -> None:
        self.credentials.ensure_valid.return_value = Credential("Bearer fresh", now_ms() + 3_600_000)
        self.service.fetch_info.side_effect = NetworkError("HTTP 502")

        with self.assertRaises(NetworkError):
            self._job().run_interactive()
        self.notifier.notify_checkin_result.assert_not_called()

    # --- 即将过期提醒 ---
    def test_expiring_soon_notice_sent_once(self) -> None:
        self.credentials.load.return_value = Credential("Bearer abc", now_ms() + 30 * 60_000)
        job = self._job()

        self.assertTrue(job.check_credential_expiry())
        self.assertFalse(job.check_credential_expiry())

        self.notifier.notify_credential_expired.assert_called_once_with(
            "https://checkin.example.com", expiring_soon=True, recipient="ops@example.com",
        )

    def test_expiring_soon_notice_retried_after_failed_send(self) -> None:
        self.credentials.load.return_value = Credential("Bearer abc", now_ms() + 30 * 60_000)
        self.notifier.notify_credential_expired.return_value = False
        job = self._job()

        self.assertFalse(job.check_credential_expiry())
        self.notifier.notify_credential_expired.return_value = True
        self.assertTrue(job.check_credential_expiry())
        self.assertFalse(job.check_credential_expiry())

        self.assertEqual(self.notifier.notify_credential_expired.call_count, 2)

    def test_no_expiry_notice_for_fresh_or_expired_token(self) -> None:
        job = self._job()
        self.assertFalse(job.check_credential_expiry())

        self.credentials.load.return_value = Credential("Bearer abc", now_ms() - 1_000)
        self.assertFalse(job.check_credential_expiry())
        self.notifier.notify_credential_expired.assert_not_called()


if __name__ == "__main__":
    unittest.main()
