# autocheckin/services/http_client.py
import json
import time
from typing import Any, Dict, Optional, Union

import requests

from autocheckin.constants import AppConstants
from autocheckin.exceptions import NetworkError
from autocheckin.logger_setup import LoggerInterface, LogLevel

ResponseBody = Union[Dict[str, Any], list, str]


class HttpClient:
    """
    基于 requests.Session 的请求封装。

    默认带上接龙小程序页面的请求头；响应能解析成 JSON 就返回 JSON，否则返回文本。
    传输失败与非 2xx 响应统一转换为 NetworkError。
    """

    def __init__(
        self,
        logger: LoggerInterface,
        timeout: float = AppConstants.DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.logger = logger
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"user-agent": AppConstants.USER_AGENT})

    def _build_headers(self, token: Optional[str], extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = dict(AppConstants.DEFAULT_HEADERS)
        if token:
            headers["authorization"] = token
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        url: str,
        token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> ResponseBody:
        req_headers = self._build_headers(token, headers)
        data: Optional[Union[str, bytes]] = None
        if isinstance(body, (str, bytes)):
            data = body
        elif body is not None:
            # 与小程序一致的紧凑 JSON
            data = json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

        started = time.monotonic()
        try:
            response = self.session.request(
                method.upper(), url, headers=req_headers, data=data, timeout=timeout or self.timeout
            )
        except requests.RequestException as e:
            self.logger.log(f"请求失败 {method.upper()} {url}: {e}", LogLevel.WARNING)
            raise NetworkError(f"请求失败: {method.upper()} {url}", e) from e

        duration_ms = int((time.monotonic() - started) * 1000)
        self.logger.log(f"{method.upper()} {url} -> {response.status_code} ({duration_ms}ms)", LogLevel.DEBUG)

        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"HTTP {response.status_code} {response.reason or ''}".strip() + f": {url}",
                http_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    def get(self, url: str, **kwargs: Any) -> ResponseBody:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> ResponseBody:
        return self.request("POST", url, **kwargs)

    def get_bytes(self, url: str, timeout: Optional[float] = None) -> bytes:
        """下载二进制内容（二维码图片）"""
        try:
            response = self.session.get(url, timeout=timeout or self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"下载失败: {url}", e) from e
        return response.content

    def close(self) -> None:
        self.session.close()
