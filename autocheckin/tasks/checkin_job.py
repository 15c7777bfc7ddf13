# autocheckin/tasks/checkin_job.py
import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from colorama import Fore, Style

from autocheckin.constants import AppConstants
from autocheckin.exceptions import AppError, AuthenticationError, ValidationError
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.checkin_service import CheckinService
from autocheckin.services.credential_manager import CredentialManager
from autocheckin.services.notification.manager import NotificationManager
from autocheckin.storage.credential_store import Credential

HISTORY_LIMIT = 20


class CheckinJob:
    """
    一次完整的签到：取凭证、获取签到信息、提交签到。

    run_interactive() 用于有人值守的单次运行，凭证无效时走扫码登录；
    run_scheduled() 用于定时任务，凭证无效时不登录，只发送重新授权提醒，且从不抛出异常。
    """

    def __init__(
        self,
        logger: LoggerInterface,
        credential_manager: CredentialManager,
        checkin_service: CheckinService,
        notifier: Optional[NotificationManager],
        user_name: Optional[str],
        reauth_url: Optional[str] = None,
        expired_recipient: Optional[str] = None,
    ):
        self.logger = logger
        self.credential_manager = credential_manager
        self.checkin_service = checkin_service
        self.notifier = notifier
        self.user_name = user_name
        self.reauth_url = reauth_url
        self.expired_recipient = expired_recipient
        self.history: List[Dict[str, Any]] = []
        self._expiry_warned_for: Optional[int] = None

    def _require_user_name(self) -> str:
        if not self.user_name or not self.user_name.strip():
            raise AppError("USER_NAME 未配置", "MISSING_USER_NAME", 400)
        return self.user_name.strip()

    def _record(self, trigger: str, success: bool, message: str) -> None:
        self.history.append({
            "time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "trigger": trigger,
            "success": success,
            "message": message,
        })
        del self.history[:-HISTORY_LIMIT]

    def last_run(self) -> Optional[Dict[str, Any]]:
        return self.history[-1] if self.history else None

    def checkin_with_stored_credential(self, credential: Optional[Credential] = None, trigger: str = "manual") -> Any:
        """用缓存中的凭证签到，凭证无效时抛出 AuthenticationError，不会触发扫码登录"""
        user_name = self._require_user_name()
        if credential is None:
            credential = self.credential_manager.load()
        if not credential.is_valid():
            raise AuthenticationError("Token 无效或已过期", "TOKEN_INVALID")

        token = credential.require_token()
        self.checkin_service.fetch_info(token)
        result = self.checkin_service.submit(token, user_name)
        self.logger.log(f"签到完成 (用户: {user_name}, 触发方式: {trigger})", LogLevel.INFO)
        self._record(trigger, True, "签到完成")
        return result

    def _send_expired_notice(self) -> None:
        if self.notifier is None:
            return
        if self.notifier.notify_credential_expired(self.reauth_url, recipient=self.expired_recipient):
            print(f"{Fore.CYAN}📧 已发送Token过期提醒邮件{Style.RESET_ALL}")

    def run_scheduled(self) -> Optional[Any]:
        self.logger.log("开始执行每日定时签到任务...", LogLevel.INFO)
        try:
            self._require_user_name()
            credential = self.credential_manager.load()
            if not credential.is_valid():
                self.logger.log("Token 无效，无法执行定时签到，发送重新授权提醒", LogLevel.WARNING)
                self._record("scheduled", False, "Token 无效")
                self._send_expired_notice()
                return None

            result = self.checkin_with_stored_credential(credential, trigger="scheduled")
            self.logger.log(f"每日定时签到完成: {json.dumps(result, ensure_ascii=False, default=str)[:300]}", LogLevel.INFO)
            return result
        except AuthenticationError as e:
            self.logger.log(f"每日定时签到认证失败: {e}", LogLevel.ERROR)
            self._record("scheduled", False, str(e))
            self._send_expired_notice()
        except AppError as e:
            self.logger.log(f"每日定时签到失败 [{e.code}]: {e}", LogLevel.ERROR)
            self._record("scheduled", False, str(e))
        except Exception as e:
            self.logger.log(f"每日定时签到发生未预期的错误: {e}", LogLevel.CRITICAL, exc_info=True)
            self._record("scheduled", False, str(e))
        return None

    def run_interactive(self) -> Any:
        """单次运行：必要时扫码登录，签到后发送结果邮件。错误向上抛出"""
        started = time.monotonic()
        try:
            user_name = self._require_user_name()
        except AppError:
            raise ValidationError("USER_NAME 环境变量必须配置且不能为空", field="USER_NAME") from None

        self.logger.log(f"开始签到流程 (用户: {user_name})", LogLevel.INFO)
        print(f"\n{Fore.CYAN}🔐 正在验证登录状态...{Style.RESET_ALL}")
        credential = self.credential_manager.ensure_valid()
        token = credential.require_token()

        print(f"\n{Fore.CYAN}📋 获取签到信息...{Style.RESET_ALL}")
        info = self.checkin_service.fetch_info(token)
        print("签到信息:", json.dumps(info, ensure_ascii=False, indent=2, default=str))

        print(f"\n{Fore.CYAN}📝 正在为 {user_name} 提交签到...{Style.RESET_ALL}")
        result = self.checkin_service.submit(token, user_name)
        print(f"{Fore.GREEN}✅ 签到完成:{Style.RESET_ALL}", json.dumps(result, ensure_ascii=False, indent=2, default=str))
        self._record("interactive", True, "签到完成")

        if self.notifier is not None:
            self.notifier.notify_checkin_result(result)

        duration_ms = int((time.monotonic() - started) * 1000)
        self.logger.log(f"签到流程完成 (用户: {user_name}, 耗时 {duration_ms}ms)", LogLevel.INFO)
        print(f"\n{Fore.GREEN}🎉 签到流程完成！耗时: {duration_ms}ms{Style.RESET_ALL}")
        return result

    def check_credential_expiry(self) -> bool:
        """token 将在一小时内过期时提醒一次（每个过期时间只提醒一次），返回是否发送了提醒"""
        credential = self.credential_manager.load()
        if not credential.is_valid():
            return False
        if not credential.will_expire_within(AppConstants.EXPIRING_SOON_WINDOW_MS):
            return False
        if self._expiry_warned_for == credential.expire_at:
            return False

        self.logger.log(f"Token 将在 {credential.expire_at_iso()} 过期，发送即将过期提醒", LogLevel.WARNING)
        if self.notifier is None:
            return False
        sent = self.notifier.notify_credential_expired(
            self.reauth_url, expiring_soon=True, recipient=self.expired_recipient
        )
        # 发送失败时不记录，下一轮检查会重试
        if sent:
            self._expiry_warned_for = credential.expire_at
        return sent
