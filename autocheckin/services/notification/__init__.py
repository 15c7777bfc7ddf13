# autocheckin/services/notification/__init__.py
from .interface import NotifierInterface
from .email_notifier import EmailNotifier
from .manager import NotificationManager

__all__ = [
    "NotifierInterface",
    "EmailNotifier",
    "NotificationManager",
]
