# autocheckin/services/credential_manager.py
import threading
import time
from typing import Any, Callable, Dict, Optional

from colorama import Fore, Style

from autocheckin.config.models import RetryPolicy
from autocheckin.constants import AppConstants
from autocheckin.exceptions import (
    AppError, AuthFlowExhausted, ConfigurationError, QRCodeError, ValidationError,
)
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.notification.manager import NotificationManager
from autocheckin.services.qr_login_service import QRLoginSystem
from autocheckin.storage.credential_store import Credential, CredentialStoreInterface
from autocheckin.utils.app_utils import format_duration_ms, now_ms


class CredentialManager:
    """
    保证拿到一个有效凭证。

    缓存中的凭证有效时直接返回，不发任何网络请求；否则循环走扫码登录：
    获取 uuid、展示并推送二维码、等待扫码、换取 token、写回缓存。
    任一步失败都退避后从获取 uuid 重新开始，直到成功或重试策略用尽。
    同一进程内的 ensure_valid() 调用互斥执行。
    """

    def __init__(
        self,
        logger: LoggerInterface,
        store: CredentialStoreInterface,
        qr_login: QRLoginSystem,
        notifier: Optional[NotificationManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        ttl_seconds: int = AppConstants.DEFAULT_TOKEN_TTL_SECONDS,
        display_qr: bool = True,
        sleep_func: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.logger = logger
        self.store = store
        self.qr_login = qr_login
        self.notifier = notifier
        self.retry_policy = retry_policy or RetryPolicy()
        self.ttl_seconds = ttl_seconds
        self.display_qr = display_qr
        self._sleep = sleep_func
        self._clock = clock
        self.cancel_event = cancel_event
        self._lock = threading.Lock()

    def load(self) -> Credential:
        return self.store.load()

    def save(self, credential: Credential) -> None:
        self.store.save(credential, self.ttl_seconds)

    def status(self, now: Optional[int] = None) -> Dict[str, Any]:
        credential = self.store.load()
        current = now_ms() if now is None else now
        return {
            "hasToken": bool(credential.token),
            "isValid": credential.is_valid(current),
            "expire": credential.expire_at,
            "timeUntilExpiry": credential.time_until_expiry(current),
            "willExpireWithin1Hour": credential.will_expire_within(AppConstants.EXPIRING_SOON_WINDOW_MS, current),
        }

    def ensure_valid(self) -> Credential:
        with self._lock:
            # 等锁期间可能已有其他调用完成了登录，重新读取一次
            credential = self.store.load()
            if credential.is_valid():
                remaining = credential.time_until_expiry() or 0
                self.logger.log(f"缓存中的 token 有效，剩余 {format_duration_ms(remaining)}", LogLevel.INFO)
                return credential

            self.logger.log("Token 不存在或已过期，开始扫码登录流程", LogLevel.WARNING)
            return self._run_login_flow()

    def _run_login_flow(self) -> Credential:
        policy = self.retry_policy
        attempts = 0
        started = self._clock()

        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise AuthFlowExhausted("扫码登录已取消", attempts)
            elapsed = self._clock() - started
            if not policy.allows(attempts, elapsed):
                self.logger.log(f"扫码登录在 {attempts} 次尝试 ({elapsed:.0f}s) 后仍未成功，放弃", LogLevel.ERROR)
                raise AuthFlowExhausted(f"扫码登录失败：已尝试 {attempts} 次", attempts)

            attempts += 1
            if self.display_qr:
                print(f"{Fore.YELLOW}⚠️ Token 不存在或已过期，生成新的二维码并等待扫码... (第 {attempts} 次){Style.RESET_ALL}")
            try:
                credential = self._attempt_login()
            except (ConfigurationError, ValidationError):
                raise
            except AppError as e:
                self.logger.log(f"第 {attempts} 次扫码登录失败 [{e.code}]: {e}", LogLevel.WARNING)
                self._sleep(policy.backoff_seconds)
                continue

            if credential is not None:
                return credential
            self.logger.log("二维码过期或等待超时，准备重新生成二维码", LogLevel.INFO)
            self._sleep(policy.backoff_seconds)

    def _attempt_login(self) -> Optional[Credential]:
        uuid = self.qr_login.request_session()

        image: Optional[bytes] = None
        try:
            image = self.qr_login.fetch_qr_image(uuid)
        except QRCodeError as e:
            # 图片拿不到时仍可通过链接扫码
            self.logger.log(f"获取二维码图片失败，继续使用链接: {e}", LogLevel.WARNING)

        if self.display_qr:
            self.qr_login.display_qr_code(uuid, image)
        if self.notifier is not None:
            self.notifier.notify_qr_ready(uuid, image)

        wx_code = self.qr_login.poll_for_scan(uuid, cancel_event=self.cancel_event)
        if not wx_code:
            return None

        credential = self.qr_login.exchange_code(wx_code)
        self.save(credential)
        self.logger.log(f"新 token 已保存 (过期时间 {credential.expire_at_iso()})", LogLevel.INFO)
        if self.display_qr:
            print(f"{Fore.GREEN}🎉 新 Token 已保存到 Redis{Style.RESET_ALL}")
        return credential
