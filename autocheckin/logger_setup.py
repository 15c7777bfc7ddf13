# autocheckin/logger_setup.py
import os
import sys
import threading
import traceback
from collections import deque
from enum import Enum, auto
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional
import colorama
from colorama import Fore, Style

from autocheckin.constants import AppConstants

colorama.init(autoreset=True)

class LogLevel(Enum):
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()

class LoggerInterface(ABC):
    @abstractmethod
    def log(self, message: str, level: LogLevel = LogLevel.INFO, exc_info: bool = False) -> None:
        pass

class FileLogger(LoggerInterface):
    def __init__(
        self,
        log_file: str = "auto_checkin.log",
        console_level: LogLevel = LogLevel.INFO,
        log_dir: str = AppConstants.LOG_DIR,
        buffer_size: int = AppConstants.LOG_BUFFER_SIZE,
    ):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, log_file)
        self._setup_log_directory()
        self.console_level = console_level
        self._lock = threading.Lock()
        # 最近的日志条目，供 /api/logs 与关闭时导出使用
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=buffer_size)
        self.color_map = {
            LogLevel.DEBUG: Fore.CYAN,
            LogLevel.INFO: Fore.GREEN,
            LogLevel.WARNING: Fore.YELLOW,
            LogLevel.ERROR: Fore.RED,
            LogLevel.CRITICAL: Fore.MAGENTA + Style.BRIGHT,
        }
        self.icon_map = {
            LogLevel.DEBUG: "🔍",
            LogLevel.INFO: "ℹ️",
            LogLevel.WARNING: "⚠️",
            LogLevel.ERROR: "❌",
            LogLevel.CRITICAL: "🚨",
        }

    def _setup_log_directory(self) -> None:
        if not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"创建日志目录失败 ({self.log_dir}): {e}")

    def log(self, message: str, level: LogLevel = LogLevel.INFO, exc_info: bool = False) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry_message = message # 保存原始消息用于控制台

        if exc_info and sys.exc_info()[0] is not None:
            tb_info = traceback.format_exc()
            message += "\n" + tb_info

        log_entry_file = f"[{timestamp}] [{level.name}] {message}\n"

        with self._lock:
            self._recent.append({"timestamp": timestamp, "level": level.name, "message": log_entry_message})

            if level.value >= self.console_level.value:
                color = self.color_map.get(level, Fore.WHITE)
                icon = self.icon_map.get(level, "")
                if sys.stdout.isatty() and "--silent" not in sys.argv:
                    print(f"{color}{icon} [{timestamp}] {log_entry_message}{Style.RESET_ALL}")

            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(log_entry_file)
            except IOError as e:
                print(
                    f"{Fore.RED}[{timestamp}] [CRITICAL_ERROR] 无法写入日志文件 {self.log_file}: {e}{Style.RESET_ALL}"
                )

    def recent_entries(self, level: Optional[LogLevel] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """返回内存中最近的日志条目，可按最低级别过滤"""
        with self._lock:
            entries = list(self._recent)
        if level is not None:
            entries = [e for e in entries if LogLevel[e["level"]].value >= level.value]
        if limit is not None and limit >= 0:
            entries = entries[-limit:] if limit else []
        return entries

    def export(self) -> str:
        return "\n".join(f"[{e['timestamp']}] [{e['level']}] {e['message']}" for e in self.recent_entries())
