# autocheckin/constants.py
from typing import Dict, Tuple

# === Application Version ===
SCRIPT_VERSION = "1.2.0"

# === Constants Definition ===
class AppConstants:
    APP_NAME: str = "AutoCheckin_Jielong"
    APP_PROJECT_LINK: str = "https://i.jielong.com"
    LOG_DIR: str = "logs" # 日志目录，相对于项目根目录
    LOG_BUFFER_SIZE: int = 1000 # 内存中保留的最近日志条数

    # --- 微信开放平台 ---
    DEFAULT_APPID: str = "wx4a23ae4b8f291087"
    WECHAT_REDIRECT_URI: str = "https%3A%2F%2Fi.jielong.com%2Flogin-callback"
    WECHAT_QRCONNECT_URL: str = (
        "https://open.weixin.qq.com/connect/qrconnect?appid={appid}&scope=snsapi_login&redirect_uri={redirect_uri}"
    )
    WECHAT_POLL_URL: str = "https://lp.open.weixin.qq.com/connect/l/qrconnect?uuid={uuid}&last=404"
    WECHAT_QRCODE_IMAGE_URL: str = "https://open.weixin.qq.com/connect/qrcode/{uuid}"
    UUID_PATTERN: str = r"uuid=([a-zA-Z0-9_-]+)"
    UUID_VALID_PATTERN: str = r"^[a-zA-Z0-9_-]+$"
    WX_ERRCODE_PATTERN: str = r"wx_errcode=(\d+)"
    WX_CODE_PATTERN: str = r"wx_code='([^']+)'"

    # 轮询返回的 wx_errcode
    WX_STATUS_SCANNED: int = 405
    WX_STATUS_WAITING: int = 404
    WX_STATUS_EXPIRED: int = 403

    QR_POLL_MAX_ATTEMPTS: int = 300 # 约 5 分钟
    QR_POLL_INTERVAL_SECONDS: float = 1.0
    QR_POLL_ERROR_BACKOFF_SECONDS: float = 2.0
    QR_TERMINAL_SIZE: int = 41 # 终端渲染的二维码边长（字符）

    # --- 接龙 API ---
    JIELONG_API_BASE: str = "https://i-api.jielong.com/api"
    CHECKIN_INFO_PATH: str = "/Thread/CheckIn/NameScope?threadId={thread_id}"
    CHECKIN_SUBMIT_PATH: str = "/CheckIn/EditRecord"
    AUTH_PATH: str = "/User/OpenAuth?code={code}"
    THREAD_ID: int = 163231508
    DEFAULT_LOCATION: Dict[str, float] = {"latitude": 28.423147, "longitude": 117.976543}
    DEFAULT_PLACE_NAME: str = "上饶市信州区•上饶师范学院"
    LATITUDE_RANGE: Tuple[float, float] = (-90.0, 90.0)
    LONGITUDE_RANGE: Tuple[float, float] = (-180.0, 180.0)

    USER_AGENT: str = (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 18_5 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) "
        "Mobile/15E148 MicroMessenger/8.0.61(0x18003d2d) NetType/WIFI Language/zh_CN"
    )
    DEFAULT_HEADERS: Dict[str, str] = {
        "content-type": "application/json",
        "accept": "application/json, text/plain, */*",
        "origin": "https://i.jielong.com",
        "referer": "https://i.jielong.com/",
        "sec-fetch-site": "same-site",
        "sec-fetch-mode": "cors",
        "sec-fetch-dest": "empty",
        "accept-language": "zh-CN,zh-Hans;q=0.9",
    }
    DEFAULT_HTTP_TIMEOUT_SECONDS: float = 15.0

    # --- 凭证缓存 ---
    TOKEN_CACHE_KEY: str = "token_info"
    DEFAULT_TOKEN_TTL_SECONDS: int = 3600
    TOKEN_BEARER_PREFIX: str = "Bearer "
    EXPIRING_SOON_WINDOW_MS: int = 60 * 60 * 1000 # 1 小时
    TOKEN_EXPIRY_CHECK_INTERVAL_SECONDS: int = 10 * 60

    # --- 凭证获取重试 ---
    AUTH_RETRY_BACKOFF_SECONDS: float = 2.0

    # --- 定时签到 ---
    DEFAULT_CHECKIN_TIME: str = "19:05"
    DEFAULT_TIMEZONE: str = "Asia/Shanghai"
    SCHEDULER_TICK_SECONDS: float = 1.0

    # --- HTTP 服务与扫码会话 ---
    DEFAULT_PORT: int = 3000
    SESSION_TIMEOUT_SECONDS: int = 5 * 60
    SESSION_POLL_INTERVAL_SECONDS: float = 2.0
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 60
    SESSION_MAX_POLLS: int = 150
    SESSION_DETAILS_LIMIT: int = 10
    SSE_KEEPALIVE_SECONDS: float = 15.0

    # --- 邮件 ---
    DEFAULT_SMTP_PORT: int = 587
    SMTP_SSL_PORT: int = 465
    SMTP_TIMEOUT_SECONDS: int = 20
    QR_EMAIL_SUBJECT: str = "请扫码登录微信（自动签到机器人）"
    QR_EMAIL_TEXT: str = "请使用微信扫描附件二维码进行登录授权。"

    EXIT_PROMPT_TIMEOUT_SECONDS: int = 10
    GRACEFUL_ERROR_EXIT_DELAY_SECONDS: int = 3
