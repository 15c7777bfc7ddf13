# autocheckin/config/settings.py
import re
from typing import Any, List, Optional

import pytz
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autocheckin.constants import AppConstants
from autocheckin.exceptions import ConfigurationError
from .models import RetryPolicy, SmtpConfig

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AppSettings(BaseSettings):
    """
    进程级配置，从环境变量与 .env 读取一次，之后只读。

    启动时由 load_settings() 构造并校验，然后显式传给各组件。
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        case_sensitive=False,
    )

    # Redis
    redis_token: str = Field(..., alias="REDIS_TOKEN")
    redis_addr: str = Field(..., alias="REDIS_ADDR")
    redis_url_override: Optional[str] = Field(default=None, alias="REDIS_URL")
    token_ttl_seconds: int = Field(default=AppConstants.DEFAULT_TOKEN_TTL_SECONDS, alias="TOKEN_TTL_SECONDS")

    # 签到
    user_name: Optional[str] = Field(default=None, alias="USER_NAME")
    appid: str = Field(default=AppConstants.DEFAULT_APPID, alias="APPID")
    checkin_time: str = Field(default=AppConstants.DEFAULT_CHECKIN_TIME, alias="CHECKIN_TIME")
    checkin_timezone: str = Field(default=AppConstants.DEFAULT_TIMEZONE, alias="CHECKIN_TIMEZONE")
    http_timeout: float = Field(default=AppConstants.DEFAULT_HTTP_TIMEOUT_SECONDS, alias="HTTP_TIMEOUT")

    # 凭证获取重试，0 表示不限制
    auth_max_attempts: int = Field(default=0, alias="AUTH_MAX_ATTEMPTS")
    auth_max_seconds: float = Field(default=0.0, alias="AUTH_MAX_SECONDS")

    # 邮件
    email_host: Optional[str] = Field(default=None, alias="EMAIL_HOST")
    email_port: int = Field(default=AppConstants.DEFAULT_SMTP_PORT, alias="EMAIL_PORT")
    email_user: Optional[str] = Field(default=None, alias="EMAIL_USER")
    email_pass: Optional[str] = Field(default=None, alias="EMAIL_PASS")
    email_to: Optional[str] = Field(default=None, alias="EMAIL_TO")
    expired_email_recipient: Optional[str] = Field(default=None, alias="EXPIRED_EMAIL_RECIPIENT")
    reauth_url_override: Optional[str] = Field(default=None, alias="REAUTH_URL")

    # 服务
    port: int = Field(default=AppConstants.DEFAULT_PORT, alias="PORT")
    log_dir: str = Field(default=AppConstants.LOG_DIR, alias="LOG_DIR")

    # --- Validators ---
    @field_validator(
        "redis_url_override", "user_name", "email_host", "email_user", "email_pass",
        "email_to", "reauth_url_override", "expired_email_recipient",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("redis_token", "redis_addr")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Redis 配置不能为空")
        return v.strip()

    @field_validator("email_to", "expired_email_recipient")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v.strip()):
            raise ValueError(f"邮箱地址 '{v}' 格式不正确")
        return v.strip() if v else v

    @field_validator("reauth_url_override", "redis_url_override")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not re.match(r"^(https?|rediss?)://\S+$", v.strip()):
            raise ValueError(f"URL '{v}' 格式不正确")
        return v.strip() if v else v

    @field_validator("checkin_time")
    @classmethod
    def validate_time_format(cls, v: str) -> str:
        if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", v or ""):
            raise ValueError("时间格式必须为 HH:MM")
        return v

    @field_validator("checkin_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"未知的时区 '{v}'") from None
        return v

    @field_validator("port", "email_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v <= 65535:
            raise ValueError("端口需在 1 到 65535 之间")
        return v

    @field_validator("http_timeout", "token_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: Any) -> Any:
        if v <= 0:
            raise ValueError("必须为正数")
        return v

    @field_validator("auth_max_attempts", "auth_max_seconds")
    @classmethod
    def validate_non_negative(cls, v: Any) -> Any:
        if v < 0:
            raise ValueError("不能为负数 (0 表示不限制)")
        return v

    # --- Derived values ---
    @property
    def redis_url(self) -> str:
        if self.redis_url_override:
            return self.redis_url_override
        return f"rediss://default:{self.redis_token}@{self.redis_addr}"

    @property
    def has_email_config(self) -> bool:
        return bool(self.email_host and self.email_user and self.email_pass)

    @property
    def has_email_recipient(self) -> bool:
        return bool(self.email_to)

    @property
    def email_enabled(self) -> bool:
        return self.has_email_config and self.has_email_recipient

    @property
    def smtp_secure(self) -> bool:
        return self.email_port == AppConstants.SMTP_SSL_PORT

    @property
    def reauth_url(self) -> str:
        return self.reauth_url_override or f"http://localhost:{self.port}"

    def smtp_config(self) -> Optional[SmtpConfig]:
        if not self.has_email_config:
            return None
        return SmtpConfig(
            host=self.email_host, port=self.email_port, user=self.email_user,
            password=self.email_pass, secure=self.smtp_secure, recipient=self.email_to,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.auth_max_attempts, max_seconds=self.auth_max_seconds)

    def validate_consistency(self) -> None:
        if self.email_to and not self.has_email_config:
            raise ConfigurationError("已设置邮件收件人 EMAIL_TO，但 EMAIL_HOST/EMAIL_USER/EMAIL_PASS 配置不完整")

    def summary(self) -> str:
        return (
            f"Redis={'已配置' if self.redis_token and self.redis_addr else '缺失'}, "
            f"邮件={'启用' if self.email_enabled else '未启用'}, "
            f"重新授权链接={'自定义' if self.reauth_url_override else '默认'}, "
            f"过期提醒收件人={'自定义' if self.expired_email_recipient else '默认'}, "
            f"签到时间={self.checkin_time} ({self.checkin_timezone})"
        )


def format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for err in error.errors():
        loc = err.get("loc") or ("?",)
        field_name = str(loc[0])
        field_info = AppSettings.model_fields.get(field_name)
        if field_info is not None and field_info.alias:
            field_name = field_info.alias
        messages.append(f"{field_name}: {err['msg']}")
    return messages


def load_settings(**overrides: Any) -> AppSettings:
    """读取并校验配置，任何问题都转换为 ConfigurationError"""
    try:
        settings = AppSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError("配置验证失败:\n" + "\n".join(format_validation_errors(e))) from e
    settings.validate_consistency()
    return settings
