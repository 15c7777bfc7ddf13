# autocheckin/__init__.py

"""
应用主包。
"""

from .app_orchestrator import AppOrchestrator
from .constants import AppConstants, SCRIPT_VERSION
from .logger_setup import FileLogger, LogLevel, LoggerInterface
from .exceptions import AppError, AuthenticationError, ConfigurationError, ValidationError

__version__ = SCRIPT_VERSION

__all__ = [
    "AppOrchestrator",
    "AppConstants",
    "SCRIPT_VERSION",
    "FileLogger",
    "LogLevel",
    "LoggerInterface",
    "AppError",
    "AuthenticationError",
    "ConfigurationError",
    "ValidationError",
]
