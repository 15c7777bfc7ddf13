# autocheckin/config/__init__.py

"""
配置模块：环境变量配置与领域数据模型。
"""

from .models import Location, RetryPolicy, SmtpConfig
from .settings import AppSettings, load_settings

__all__ = [
    "AppSettings",
    "load_settings",
    "Location",
    "RetryPolicy",
    "SmtpConfig",
]
