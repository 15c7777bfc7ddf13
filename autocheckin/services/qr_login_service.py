# autocheckin/services/qr_login_service.py
import re
import sys
import time
import threading
from enum import Enum
from typing import Callable, NamedTuple, Optional

from bs4 import BeautifulSoup # type: ignore
from colorama import Fore, Style

from autocheckin.constants import AppConstants
from autocheckin.exceptions import (
    AppError, ConfigurationError, InvalidTokenResponse, NetworkError, QRCodeError, ValidationError,
)
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.http_client import HttpClient
from autocheckin.storage.credential_store import Credential
from autocheckin.utils.display_utils import render_qr_to_terminal


class ScanStatus(Enum):
    WAITING = "waiting"
    SCANNED = "scanned"
    EXPIRED = "expired"


class PollResult(NamedTuple):
    status: ScanStatus
    code: Optional[str] = None
    errcode: Optional[int] = None


def validate_uuid(uuid: str) -> str:
    if not uuid or not isinstance(uuid, str) or not uuid.strip():
        raise ValidationError("UUID 不能为空", field="uuid")
    if not re.match(AppConstants.UUID_VALID_PATTERN, uuid.strip()):
        raise ValidationError("UUID 包含非法字符", field="uuid")
    return uuid.strip()


def qr_image_url(uuid: str) -> str:
    return AppConstants.WECHAT_QRCODE_IMAGE_URL.format(uuid=validate_uuid(uuid))


def parse_poll_response(text: str) -> PollResult:
    """解析长轮询返回的 JS 片段：window.wx_errcode=405;window.wx_code='...';"""
    err_match = re.search(AppConstants.WX_ERRCODE_PATTERN, text or "")
    code_match = re.search(AppConstants.WX_CODE_PATTERN, text or "")
    errcode = int(err_match.group(1)) if err_match else None

    if errcode == AppConstants.WX_STATUS_SCANNED and code_match:
        return PollResult(ScanStatus.SCANNED, code_match.group(1), errcode)
    if errcode == AppConstants.WX_STATUS_EXPIRED:
        return PollResult(ScanStatus.EXPIRED, None, errcode)
    # 404 为等待扫码，其余状态码（如 408 长轮询超时）同样按等待处理
    return PollResult(ScanStatus.WAITING, None, errcode)


class QRLoginSystem:
    """微信开放平台扫码登录：获取 uuid、展示二维码、轮询扫码结果、用 wx_code 换取凭证"""

    def __init__(
        self,
        logger: LoggerInterface,
        http_client: HttpClient,
        appid: str = AppConstants.DEFAULT_APPID,
        sleep_func: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.http = http_client
        self.appid = appid
        self._sleep = sleep_func

    # --- 会话 ---
    def request_session(self) -> str:
        """向微信请求一个新的登录 uuid"""
        if not self.appid:
            raise ConfigurationError("缺少 APPID，无法获取二维码")
        url = AppConstants.WECHAT_QRCONNECT_URL.format(
            appid=self.appid, redirect_uri=AppConstants.WECHAT_REDIRECT_URI
        )
        self.logger.log(f"正在向微信请求登录 UUID (appid={self.appid})...", LogLevel.DEBUG)
        body = self.http.get(url)
        html = body if isinstance(body, str) else str(body)

        uuid = self._extract_uuid(html)
        if not uuid:
            self.logger.log(f"未在微信响应中找到 UUID。响应体(部分): {html[:500]}", LogLevel.DEBUG)
            raise AppError("无法从微信响应中提取 UUID", "UUID_EXTRACTION_ERROR", 502)
        self.logger.log(f"成功获取登录 UUID: {uuid}", LogLevel.INFO)
        return uuid

    def _extract_uuid(self, html: str) -> Optional[str]:
        match = re.search(AppConstants.UUID_PATTERN, html)
        if match:
            return match.group(1)
        # 页面改版时二维码图片仍以 /connect/qrcode/<uuid> 的形式出现
        soup = BeautifulSoup(html, "html.parser")
        for img in soup.find_all("img", src=True):
            src_match = re.search(r"/connect/qrcode/([a-zA-Z0-9_-]+)", img["src"])
            if src_match:
                return src_match.group(1)
        return None

    # --- 二维码图片 ---
    def fetch_qr_image(self, uuid: str) -> bytes:
        url = qr_image_url(uuid)
        try:
            content = self.http.get_bytes(url)
        except NetworkError as e:
            raise QRCodeError(f"获取二维码图片失败: {e}") from e
        if not content:
            raise QRCodeError("获取到的二维码图片为空")
        self.logger.log(f"二维码图片获取成功 ({len(content)} 字节)", LogLevel.DEBUG)
        return content

    def display_qr_code(self, uuid: str, image: Optional[bytes]) -> bool:
        """在终端显示二维码；无法渲染时打印链接供手动打开"""
        url = qr_image_url(uuid)
        print(f"{Fore.CYAN}🔗 二维码链接：{url}{Style.RESET_ALL}")
        if image and sys.stdout.isatty():
            try:
                print("\n请使用微信扫描下方二维码：\n")
                print(render_qr_to_terminal(image))
                print("\n（提示：此二维码为登录二维码）")
                self.logger.log(f"二维码已在终端显示 (uuid={uuid})", LogLevel.INFO)
                return True
            except (OSError, ValueError) as e:
                self.logger.log(f"在终端显示二维码失败: {e}", LogLevel.WARNING)
        self.logger.log(f"无法在终端显示二维码，请手动打开链接扫码: {url}", LogLevel.WARNING)
        return False

    # --- 轮询 ---
    def poll_once(self, uuid: str) -> PollResult:
        url = AppConstants.WECHAT_POLL_URL.format(uuid=uuid)
        body = self.http.get(url)
        return parse_poll_response(body if isinstance(body, str) else str(body))

    def poll_for_scan(
        self,
        uuid: str,
        max_attempts: int = AppConstants.QR_POLL_MAX_ATTEMPTS,
        interval: float = AppConstants.QR_POLL_INTERVAL_SECONDS,
        error_backoff: float = AppConstants.QR_POLL_ERROR_BACKOFF_SECONDS,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """
        轮询直到扫码、过期或达到次数上限。

        返回 wx_code；二维码过期、超时或被取消时返回 None。
        轮询期间的网络错误只记录并退避重试，不会中断正在进行的扫码。
        """
        uuid = validate_uuid(uuid)
        self.logger.log(f"开始轮询扫码状态 (uuid={uuid}, 最多 {max_attempts} 次)", LogLevel.INFO)
        attempts = 0
        while attempts < max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.log(f"扫码轮询已取消 (uuid={uuid})", LogLevel.INFO)
                return None
            attempts += 1
            try:
                result = self.poll_once(uuid)
            except AppError as e:
                self.logger.log(f"第 {attempts} 次轮询失败: {e}", LogLevel.WARNING)
                self._sleep(error_backoff)
                continue

            self.logger.log(f"轮询结果 #{attempts}: errcode={result.errcode}, 状态={result.status.value}", LogLevel.DEBUG)
            if result.status is ScanStatus.SCANNED:
                self.logger.log(f"扫码成功 (uuid={uuid}, 第 {attempts} 次轮询)", LogLevel.INFO)
                if sys.stdout.isatty(): print(f"\r{Fore.GREEN}✓ 扫码成功!{Style.RESET_ALL}\033[K")
                return result.code
            if result.status is ScanStatus.EXPIRED:
                self.logger.log(f"二维码已过期 (uuid={uuid})", LogLevel.WARNING)
                return None
            if result.errcode is not None and result.errcode != AppConstants.WX_STATUS_WAITING:
                self.logger.log(f"未预期的轮询状态码 {result.errcode}，继续等待", LogLevel.WARNING)
            if sys.stdout.isatty():
                sys.stdout.write(f"\r{Fore.YELLOW}⌛ 等待扫码... ({attempts}/{max_attempts}){Style.RESET_ALL}\033[K"); sys.stdout.flush()
            self._sleep(interval)

        self.logger.log(f"扫码等待超时 (uuid={uuid}, {max_attempts} 次)", LogLevel.WARNING)
        return None

    # --- 换取凭证 ---
    def exchange_code(self, wx_code: str) -> Credential:
        """用一次性 wx_code 换取接龙 token，只调用一次，不在此处重试"""
        if not wx_code:
            raise ValidationError("wx_code 不能为空", field="wx_code")
        url = AppConstants.JIELONG_API_BASE + AppConstants.AUTH_PATH.format(code=wx_code)
        self.logger.log("正在用 wx_code 换取 token...", LogLevel.DEBUG)
        response = self.http.post(
            url, headers={"content-type": "application/x-www-form-urlencoded"}, body=""
        )
        data = response.get("Data") if isinstance(response, dict) else None
        token = data.get("Token") if isinstance(data, dict) else None
        expire = data.get("Expire") if isinstance(data, dict) else None
        if not token or not expire:
            self.logger.log(f"换取 token 的响应无效: {str(response)[:300]}", LogLevel.ERROR)
            raise InvalidTokenResponse()
        try:
            expire_at = int(expire)
        except (TypeError, ValueError):
            raise InvalidTokenResponse(f"Expire 字段无效: {expire!r}") from None
        credential = Credential(f"{AppConstants.TOKEN_BEARER_PREFIX}{token}", expire_at)
        self.logger.log(f"登录成功，token 获取完毕 (过期时间 {credential.expire_at_iso()})", LogLevel.INFO)
        return credential
