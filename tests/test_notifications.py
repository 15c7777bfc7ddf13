"""邮件通知器与通知管理器的测试。"""

import pathlib
import smtplib
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.config.models import SmtpConfig  # noqa: E402
from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.services.notification import EmailNotifier, NotificationManager, NotifierInterface  # noqa: E402
from autocheckin.services.notification.templates import (  # noqa: E402
    checkin_result_email, credential_expired_email, qr_ready_email,
)

SMTP_PATH = "autocheckin.services.notification.email_notifier.smtplib"


def _settings(**overrides):
    values = {"expired_email_recipient": None, "email_enabled": False, "has_email_config": False}
    values.update(overrides)
    return SimpleNamespace(**values)


class TestTemplates(unittest.TestCase):
    def test_checkin_result_subject(self) -> None:
        subject, body = checkin_result_email({"Data": "签到成功", "Description": "已完成"})
        self.assertEqual(subject, "签到结果 - 签到成功")
        self.assertEqual(body, "已完成")

    def test_checkin_result_without_data(self) -> None:
        subject, body = checkin_result_email({"Type": 1})
        self.assertEqual(subject, "签到结果 - 未知")
        self.assertIn('"Type": 1', body)

    def test_qr_ready_without_image_includes_link(self) -> None:
        _, with_image = qr_ready_email("abc", True)
        _, without_image = qr_ready_email("abc", False)
        self.assertNotIn("https://open.weixin.qq.com/connect/qrcode/abc", with_image)
        self.assertIn("https://open.weixin.qq.com/connect/qrcode/abc", without_image)

    def test_credential_expired_variants(self) -> None:
        subject, text, html = credential_expired_email("https://example.com/reauth", False)
        self.assertEqual(subject, "⚠️ Token已过期，需要重新授权")
        self.assertIn("https://example.com/reauth", text)
        self.assertIn('href="https://example.com/reauth"', html)

        subject, _, _ = credential_expired_email(None, True)
        self.assertEqual(subject, "⚠️ Token即将过期提醒")


class TestNotificationManager(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = MagicMock(spec=LoggerInterface)
        self.notifier = MagicMock(spec=NotifierInterface)
        self.notifier.send.return_value = True

    def test_notifier_errors_never_propagate(self) -> None:
        self.notifier.send.side_effect = RuntimeError("smtp exploded")
        manager = NotificationManager(_settings(), self.logger, notifiers=[self.notifier])

        self.assertFalse(manager.notify_checkin_result({"Data": "ok"}))
        self.assertFalse(manager.notify_credential_expired("https://example.com"))
        with patch("builtins.print"):
            self.assertFalse(manager.notify_qr_ready("abc", b"png"))

    def test_qr_ready_attaches_image(self) -> None:
        manager = NotificationManager(_settings(), self.logger, notifiers=[self.notifier])

        self.assertTrue(manager.notify_qr_ready("abc", b"png"))

        kwargs = self.notifier.send.call_args.kwargs
        self.assertEqual(kwargs["attachments"], [("wechat_login_abc.png", b"png")])
        self.assertEqual(kwargs["sender_name"], "WeChat Login")
        self.assertEqual(kwargs["event_type"], "qr_ready")

    def test_expired_notice_uses_configured_recipient(self) -> None:
        manager = NotificationManager(
            _settings(expired_email_recipient="ops@example.com"), self.logger, notifiers=[self.notifier],
        )

        manager.notify_credential_expired("https://example.com")
        self.assertEqual(self.notifier.send.call_args.kwargs["to"], "ops@example.com")
        self.assertIn("html", self.notifier.send.call_args.kwargs)

        manager.notify_credential_expired("https://example.com", recipient="me@example.com")
        self.assertEqual(self.notifier.send.call_args.kwargs["to"], "me@example.com")

    def test_without_email_config_nothing_is_sent(self) -> None:
        manager = NotificationManager(_settings(), self.logger)

        self.assertFalse(manager.has_active_notifiers())
        self.assertEqual(manager.dispatch("t", "c"), 0)
        self.assertFalse(manager.notify_checkin_result({"Data": "ok"}))


class TestEmailNotifier(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = MagicMock(spec=LoggerInterface)

    def _config(self, **overrides) -> SmtpConfig:
        values = dict(host="smtp.example.com", port=465, user="bot@example.com", password="secret",
                      secure=True, recipient="me@example.com")
        values.update(overrides)
        return SmtpConfig(**values)

    def test_incomplete_config_rejected(self) -> None:
        with self.assertRaises(ValueError):
            EmailNotifier(self._config(password=""), self.logger)

    @patch(f"{SMTP_PATH}.SMTP_SSL")
    def test_send_over_ssl(self, mock_ssl) -> None:
        server = mock_ssl.return_value.__enter__.return_value
        notifier = EmailNotifier(self._config(), self.logger)

        self.assertTrue(notifier.send("标题", "正文", attachments=[("qr.png", b"\x89PNG")]))

        mock_ssl.assert_called_once_with("smtp.example.com", 465, timeout=20)
        server.login.assert_called_once_with("bot@example.com", "secret")
        msg = server.send_message.call_args[0][0]
        self.assertEqual(msg["To"], "me@example.com")
        self.assertEqual(msg["Subject"], "标题")
        self.assertEqual(server.send_message.call_args.kwargs["to_addrs"], ["me@example.com"])
        filenames = [part.get_filename() for part in msg.get_payload()]
        self.assertIn("qr.png", filenames)

    @patch(f"{SMTP_PATH}.SMTP")
    def test_send_with_starttls(self, mock_smtp) -> None:
        server = mock_smtp.return_value.__enter__.return_value
        notifier = EmailNotifier(self._config(port=587, secure=False), self.logger)

        self.assertTrue(notifier.send("标题", "正文", to="other@example.com"))

        mock_smtp.return_value.starttls.assert_called_once_with()
        self.assertEqual(server.send_message.call_args.kwargs["to_addrs"], ["other@example.com"])

    @patch(f"{SMTP_PATH}.SMTP_SSL")
    def test_smtp_failure_returns_false(self, mock_ssl) -> None:
        server = mock_ssl.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        notifier = EmailNotifier(self._config(), self.logger)

        self.assertFalse(notifier.send("标题", "正文"))
        server.send_message.assert_not_called()

    @patch(f"{SMTP_PATH}.SMTP_SSL")
    def test_html_body_is_alternative(self, mock_ssl) -> None:
        server = mock_ssl.return_value.__enter__.return_value
        notifier = EmailNotifier(self._config(), self.logger)

        notifier.send("标题", "纯文本", html="<p>html</p>")

        msg = server.send_message.call_args[0][0]
        body = msg.get_payload()[0]
        self.assertEqual(body.get_content_type(), "multipart/alternative")
        self.assertEqual([p.get_content_type() for p in body.get_payload()], ["text/plain", "text/html"])


if __name__ == "__main__":
    unittest.main()
