# autocheckin/services/__init__.py

"""
业务服务模块，提供扫码登录、凭证管理、签到与通知功能。
"""

from .http_client import HttpClient
from .qr_login_service import QRLoginSystem
from .credential_manager import CredentialManager
from .checkin_service import CheckinService, build_checkin_payload, validate_location

__all__ = [
    "HttpClient",
    "QRLoginSystem",
    "CredentialManager",
    "CheckinService",
    "build_checkin_payload",
    "validate_location",
]
