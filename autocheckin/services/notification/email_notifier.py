# autocheckin/services/notification/email_notifier.py
import smtplib
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, List, Optional, Tuple

from autocheckin.config.models import SmtpConfig
from autocheckin.logger_setup import LoggerInterface, LogLevel
from .interface import NotifierInterface

Attachment = Tuple[str, bytes]


class EmailNotifier(NotifierInterface):
    """
    通过 SMTP 发送邮件。

    465 端口直接走 SSL，其余端口先明文连接再 STARTTLS。
    支持的 kwargs:
        html (str): HTML 正文，与纯文本一起作为 multipart/alternative 发送
        attachments (List[Tuple[str, bytes]]): 图片附件 (文件名, 内容)
        sender_name (str): 发件人显示名称
        to (str): 覆盖默认收件人
    """

    def __init__(self, smtp_config: SmtpConfig, logger: LoggerInterface, sender_name: str = "自动签到系统"):
        if not smtp_config.host or not smtp_config.user or not smtp_config.password:
            raise ValueError("EmailNotifier: SMTP 配置不完整。")
        self.config = smtp_config
        self.logger = logger
        self.sender_name = sender_name
        self.logger.log(
            f"EmailNotifier 初始化成功 ({smtp_config.host}:{smtp_config.port}, "
            f"{'SSL' if smtp_config.secure else 'STARTTLS'})",
            LogLevel.DEBUG,
        )

    def _build_message(
        self,
        title: str,
        content: str,
        recipient: str,
        html: Optional[str],
        attachments: List[Attachment],
        sender_name: str,
    ) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["From"] = formataddr((sender_name, self.config.user))
        msg["To"] = recipient
        msg["Subject"] = title

        if html:
            body = MIMEMultipart("alternative")
            body.attach(MIMEText(content, "plain", "utf-8"))
            body.attach(MIMEText(html, "html", "utf-8"))
            msg.attach(body)
        else:
            msg.attach(MIMEText(content, "plain", "utf-8"))

        for filename, data in attachments:
            part = MIMEImage(data, _subtype="png")
            part.add_header("Content-Disposition", "attachment", filename=filename)
            msg.attach(part)
        return msg

    def _open_connection(self) -> smtplib.SMTP:
        if self.config.secure:
            return smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=self.config.timeout)
        server = smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout)
        try:
            server.starttls()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def send(self, title: str, content: str, **kwargs: Any) -> bool:
        recipient = kwargs.get("to") or self.config.recipient or self.config.user
        msg = self._build_message(
            title,
            content,
            recipient,
            kwargs.get("html"),
            kwargs.get("attachments") or [],
            kwargs.get("sender_name") or self.sender_name,
        )
        try:
            with self._open_connection() as server:
                server.login(self.config.user, self.config.password)
                server.send_message(msg, from_addr=self.config.user, to_addrs=[recipient])
        except (smtplib.SMTPException, OSError) as e:
            self.logger.log(f"EmailNotifier: 发送邮件 '{title}' 失败: {e}", LogLevel.ERROR, exc_info=True)
            return False

        self.logger.log(f"EmailNotifier: 邮件 '{title}' 已发送至 {recipient}。", LogLevel.INFO)
        return True
