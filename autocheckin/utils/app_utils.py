# autocheckin/utils/app_utils.py
import os
import re
import sys
import time


def get_app_dir() -> str:
    """获取应用程序的根目录路径"""
    if getattr(sys, 'frozen', False):
        application_path = os.path.dirname(sys.executable)
    elif __file__:
        application_path = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))) # autocheckin/utils -> autocheckin -> project_root
    else:
        application_path = os.getcwd()
    return application_path


def now_ms() -> int:
    """当前时间的毫秒时间戳，与接龙 API 返回的 Expire 单位一致"""
    return int(time.time() * 1000)


def mask_url_credentials(url: str) -> str:
    """隐藏 URL 中的密码部分，用于日志输出"""
    return re.sub(r"(://[^:/@]*:)[^@]+@", r"\1****@", url)


def mask_token(token: str, keep: int = 6) -> str:
    if not token:
        return ""
    if len(token) <= keep:
        return "*" * len(token)
    return f"...{token[-keep:]}"


def format_duration_ms(ms: int) -> str:
    if ms <= 0:
        return "已过期"
    seconds = ms // 1000
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}小时{minutes}分"
    if minutes:
        return f"{minutes}分{secs}秒"
    return f"{secs}秒"
