# autocheckin/config/models.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from autocheckin.constants import AppConstants


class Location(BaseModel):
    """签到使用的地理坐标，边界值包含在内"""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    @field_validator("latitude", mode="before")
    @classmethod
    def validate_latitude(cls, v: Any) -> float:
        lat_float = _as_float(v, "纬度")
        low, high = AppConstants.LATITUDE_RANGE
        if not low <= lat_float <= high:
            raise ValueError("纬度需在 -90 到 90 之间")
        return lat_float

    @field_validator("longitude", mode="before")
    @classmethod
    def validate_longitude(cls, v: Any) -> float:
        lng_float = _as_float(v, "经度")
        low, high = AppConstants.LONGITUDE_RANGE
        if not low <= lng_float <= high:
            raise ValueError("经度需在 -180 到 180 之间")
        return lng_float

    def as_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


def _as_float(v: Any, label: str) -> float:
    if isinstance(v, bool) or v is None or v == "":
        raise ValueError(f"{label}必须是有效数字")
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{label}必须是有效数字") from None


class RetryPolicy(BaseModel):
    """
    扫码登录的重试策略。

    max_attempts / max_seconds 为 0 表示不限制；两者都为 0 时即无限重试，
    适用于有人值守的交互式运行。
    """
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=0, ge=0)
    max_seconds: float = Field(default=0.0, ge=0)
    backoff_seconds: float = Field(default=AppConstants.AUTH_RETRY_BACKOFF_SECONDS, ge=0)

    @property
    def unbounded(self) -> bool:
        return self.max_attempts == 0 and self.max_seconds == 0

    def allows(self, attempts_made: int, elapsed_seconds: float) -> bool:
        if self.max_attempts and attempts_made >= self.max_attempts:
            return False
        if self.max_seconds and elapsed_seconds >= self.max_seconds:
            return False
        return True


class SmtpConfig(BaseModel):
    host: str
    port: int = AppConstants.DEFAULT_SMTP_PORT
    user: str
    password: str
    secure: bool = False
    timeout: int = AppConstants.SMTP_TIMEOUT_SECONDS
    recipient: Optional[str] = None
