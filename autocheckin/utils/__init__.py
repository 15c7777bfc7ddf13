# autocheckin/utils/__init__.py

"""
通用工具函数模块。
"""

from .app_utils import get_app_dir, now_ms, mask_url_credentials, mask_token, format_duration_ms
from .display_utils import show_app_banner, render_qr_to_terminal

__all__ = [
    "get_app_dir",
    "now_ms",
    "mask_url_credentials",
    "mask_token",
    "format_duration_ms",
    "show_app_banner",
    "render_qr_to_terminal",
]
