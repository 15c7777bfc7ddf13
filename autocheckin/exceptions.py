# autocheckin/exceptions.py
from typing import Optional


class AppError(Exception):
    """应用内所有可预期错误的基类"""
    def __init__(self, message: str, code: str = "APP_ERROR", status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ValidationError(AppError):
    """输入不合法，不应重试，需要修正调用方"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR", 400)
        self.field = field


class AuthenticationError(AppError):
    """没有可用的凭证"""
    def __init__(self, message: str = "认证失败", code: str = "AUTHENTICATION_ERROR"):
        super().__init__(message, code, 401)


class InvalidTokenResponse(AuthenticationError):
    """换取 token 的响应缺少 Token 或 Expire"""
    def __init__(self, message: str = "微信登录返回的 token 数据无效"):
        super().__init__(message, "INVALID_TOKEN_RESPONSE")


class AuthFlowExhausted(AuthenticationError):
    """扫码登录重试次数或时间已用尽"""
    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message, "AUTH_FLOW_EXHAUSTED")
        self.attempts = attempts


class NetworkError(AppError):
    """网络传输失败或非 2xx 响应"""
    def __init__(self, message: str, original: Optional[BaseException] = None, http_status: Optional[int] = None):
        super().__init__(message, "NETWORK_ERROR", 503)
        self.original = original
        self.http_status = http_status


class CacheError(AppError):
    """凭证缓存不可用"""
    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message, "CACHE_ERROR", 503)
        self.original = original


class ConfigurationError(AppError):
    """启动时配置缺失或不合法，不可在运行时恢复"""
    def __init__(self, message: str):
        super().__init__(message, "CONFIG_ERROR", 500)


class QRCodeError(AppError):
    """二维码获取或显示失败"""
    def __init__(self, message: str):
        super().__init__(message, "QRCODE_ERROR", 502)
