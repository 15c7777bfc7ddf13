# autocheckin/services/notification/manager.py
from typing import Any, List, Optional

from colorama import Fore, Style

from autocheckin.config.settings import AppSettings
from autocheckin.constants import AppConstants
from autocheckin.logger_setup import LoggerInterface, LogLevel
from .email_notifier import EmailNotifier
from .interface import NotifierInterface
from .templates import checkin_result_email, credential_expired_email, qr_ready_email


class NotificationManager:
    """
    把业务事件分发给所有已启用的通知器。

    所有 notify_* 方法都不会向调用方抛出异常，失败只记录日志。
    """

    def __init__(
        self,
        settings: AppSettings,
        logger: LoggerInterface,
        notifiers: Optional[List[NotifierInterface]] = None,
    ):
        self.logger = logger
        self.expired_recipient = settings.expired_email_recipient
        self.notifiers: List[NotifierInterface] = []

        if notifiers is not None:
            self.notifiers = list(notifiers)
        elif settings.email_enabled:
            try:
                self.notifiers.append(EmailNotifier(settings.smtp_config(), logger))
                self.logger.log("NotificationManager: 邮件通知器已启用并初始化。", LogLevel.INFO)
            except ValueError as e:
                self.logger.log(f"NotificationManager: 初始化 EmailNotifier 失败: {e}", LogLevel.ERROR)
        elif not settings.has_email_config:
            self.logger.log("NotificationManager: 邮件配置不完整，邮件通知已禁用。", LogLevel.WARNING)
        else:
            self.logger.log("NotificationManager: 未配置邮件收件人，邮件通知已禁用。", LogLevel.WARNING)

        if not self.notifiers:
            self.logger.log("NotificationManager: 没有启用任何通知器。", LogLevel.INFO)
        else:
            self.logger.log(f"NotificationManager: 共初始化了 {len(self.notifiers)} 个通知器。", LogLevel.INFO)

    def dispatch(self, title: str, content: str, event_type: str = "general", **kwargs: Any) -> int:
        """返回成功发送的通知器数量"""
        if not self.notifiers:
            self.logger.log(f"NotificationManager: 无可用通知器，跳过 '{event_type}' 通知。", LogLevel.DEBUG)
            return 0

        self.logger.log(f"NotificationManager: 准备分发 '{event_type}' 类型通知 (标题: {title[:30]})", LogLevel.DEBUG)
        dispatch_successful_count = 0
        for notifier in self.notifiers:
            try:
                if notifier.send(title, content, event_type=event_type, **kwargs):
                    dispatch_successful_count += 1
            except Exception as e_dispatch:
                notifier_name = notifier.__class__.__name__
                self.logger.log(f"NotificationManager: 调用 {notifier_name}.send() 时发生错误: {e_dispatch}", LogLevel.ERROR, exc_info=True)

        if dispatch_successful_count > 0:
            self.logger.log(f"NotificationManager: 通知已成功分发给 {dispatch_successful_count}/{len(self.notifiers)} 个通知器。", LogLevel.INFO)
        else:
            self.logger.log("NotificationManager: 通知未能成功分发给任何启用的通知器。", LogLevel.WARNING)
        return dispatch_successful_count

    def notify_qr_ready(self, uuid: str, image: Optional[bytes]) -> bool:
        try:
            subject, text = qr_ready_email(uuid, bool(image))
            attachments = [(f"wechat_login_{uuid}.png", image)] if image else []
            delivered = self.dispatch(
                subject, text, event_type="qr_ready", attachments=attachments, sender_name="WeChat Login"
            ) > 0
        except Exception as e:
            self.logger.log(f"NotificationManager: 发送二维码通知失败: {e}", LogLevel.ERROR, exc_info=True)
            delivered = False

        if not delivered:
            url = AppConstants.WECHAT_QRCODE_IMAGE_URL.format(uuid=uuid)
            self.logger.log(f"二维码邮件未发送，请前往网址扫描二维码：{url}", LogLevel.WARNING)
            print(f"{Fore.YELLOW}⚠️ 发送邮件失败：请前往网址扫描二维码：{url}{Style.RESET_ALL}")
        return delivered

    def notify_checkin_result(self, result: Any) -> bool:
        try:
            subject, text = checkin_result_email(result)
            return self.dispatch(subject, text, event_type="checkin_result", sender_name="WeChat Login") > 0
        except Exception as e:
            self.logger.log(f"NotificationManager: 发送签到结果通知失败: {e}", LogLevel.ERROR, exc_info=True)
            return False

    def notify_credential_expired(
        self,
        reauth_url: Optional[str] = None,
        expiring_soon: bool = False,
        recipient: Optional[str] = None,
    ) -> bool:
        try:
            subject, text, html = credential_expired_email(reauth_url, expiring_soon)
            kwargs: dict = {"html": html, "sender_name": "自动签到系统"}
            target = recipient or self.expired_recipient
            if target:
                kwargs["to"] = target
            return self.dispatch(subject, text, event_type="credential_expired", **kwargs) > 0
        except Exception as e:
            self.logger.log(f"NotificationManager: 发送 Token 过期提醒失败: {e}", LogLevel.ERROR, exc_info=True)
            return False

    def has_active_notifiers(self) -> bool:
        return bool(self.notifiers)
