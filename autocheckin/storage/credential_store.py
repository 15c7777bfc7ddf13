# autocheckin/storage/credential_store.py
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

import redis

from autocheckin.constants import AppConstants
from autocheckin.exceptions import AuthenticationError, CacheError, ValidationError
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.utils.app_utils import mask_token, mask_url_credentials, now_ms


class Credential:
    """
    接龙 API 的 bearer 凭证。

    token 已带 "Bearer " 前缀，expire_at 为毫秒时间戳。
    凭证只整体替换，从不原地修改。
    """

    __slots__ = ("token", "expire_at")

    def __init__(self, token: Optional[str] = None, expire_at: Optional[int] = None):
        self.token = token
        self.expire_at = expire_at

    def is_valid(self, now: Optional[int] = None) -> bool:
        if not self.token or not self.expire_at:
            return False
        current = now_ms() if now is None else now
        return current < self.expire_at

    def time_until_expiry(self, now: Optional[int] = None) -> Optional[int]:
        """距离过期的毫秒数，没有过期时间时返回 None"""
        if not self.expire_at:
            return None
        current = now_ms() if now is None else now
        return self.expire_at - current

    def will_expire_within(self, window_ms: int, now: Optional[int] = None) -> Optional[bool]:
        remaining = self.time_until_expiry(now)
        if remaining is None:
            return None
        return remaining <= window_ms

    def require_token(self) -> str:
        if not self.token:
            raise AuthenticationError("没有可用的 token")
        return self.token

    def expire_at_iso(self) -> Optional[str]:
        if not self.expire_at:
            return None
        return datetime.fromtimestamp(self.expire_at / 1000).isoformat(timespec="seconds")

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "expire": self.expire_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        expire = data.get("expire")
        if expire is not None and not isinstance(expire, (int, float)):
            raise ValueError("expire 必须为数字")
        token = data.get("token")
        if token is not None and not isinstance(token, str):
            raise ValueError("token 必须为字符串")
        return cls(token, int(expire) if expire is not None else None)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Credential):
            return NotImplemented
        return self.token == other.token and self.expire_at == other.expire_at

    def __repr__(self) -> str:
        return f"Credential(token={mask_token(self.token or '')!r}, expire_at={self.expire_at!r})"


class CredentialStoreInterface(ABC):
    @abstractmethod
    def load(self) -> Credential:
        pass

    @abstractmethod
    def save(self, credential: Credential, ttl_seconds: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class RedisCredentialStore(CredentialStoreInterface):
    """把凭证以 JSON {token, expire} 存在 Redis 的单个键里，带 TTL"""

    def __init__(
        self,
        logger: LoggerInterface,
        redis_url: Optional[str] = None,
        client: Optional[Any] = None,
        key: str = AppConstants.TOKEN_CACHE_KEY,
        default_ttl: int = AppConstants.DEFAULT_TOKEN_TTL_SECONDS,
    ):
        if client is None and not redis_url:
            raise ValueError("RedisCredentialStore: 必须提供 redis_url 或 client。")
        self.logger = logger
        self.key = key
        self.default_ttl = default_ttl
        self._redis_url = redis_url
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self.logger.log(f"创建 Redis 客户端: {mask_url_credentials(self._redis_url)}", LogLevel.DEBUG)
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def load(self) -> Credential:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as e:
            self.logger.log(f"从 Redis 读取凭证失败: {e}", LogLevel.ERROR, exc_info=True)
            raise CacheError("从 Redis 读取凭证失败", e) from e

        if not raw:
            self.logger.log(f"Redis 中没有凭证 (key={self.key})", LogLevel.DEBUG)
            return Credential()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("凭证数据不是 JSON 对象")
            credential = Credential.from_dict(data)
        except ValueError as e: # json.JSONDecodeError 是 ValueError 的子类
            self.logger.log(f"Redis 中的凭证数据已损坏，将删除: {e}", LogLevel.WARNING)
            self._discard_corrupt_entry()
            return Credential()

        self.logger.log(
            f"已从 Redis 加载凭证: 有token={bool(credential.token)}, 过期时间={credential.expire_at_iso()}, "
            f"有效={credential.is_valid()}",
            LogLevel.DEBUG,
        )
        return credential

    def _discard_corrupt_entry(self) -> None:
        try:
            self.client.delete(self.key)
        except redis.RedisError as e:
            self.logger.log(f"删除损坏的凭证数据失败: {e}", LogLevel.WARNING)

    def save(self, credential: Credential, ttl_seconds: Optional[int] = None) -> None:
        if not credential.token or not credential.expire_at:
            raise ValidationError("不能保存无效的凭证", field="token")
        ttl = ttl_seconds or self.default_ttl
        payload = json.dumps(credential.to_dict())
        try:
            self.client.set(self.key, payload, ex=ttl)
        except redis.RedisError as e:
            self.logger.log(f"保存凭证到 Redis 失败: {e}", LogLevel.ERROR, exc_info=True)
            raise CacheError("保存凭证到 Redis 失败", e) from e
        self.logger.log(
            f"凭证已保存到 Redis (TTL {ttl}s, 过期时间 {credential.expire_at_iso()})", LogLevel.INFO
        )

    def clear(self) -> None:
        try:
            self.client.delete(self.key)
        except redis.RedisError as e:
            raise CacheError("清除 Redis 凭证失败", e) from e
        self.logger.log("已清除 Redis 中的凭证。", LogLevel.INFO)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            self.logger.log(f"Redis 连接检查失败: {e}", LogLevel.WARNING)
            return False
