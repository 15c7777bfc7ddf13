# autocheckin/cli/__init__.py
from .command_handler import CommandHandler

__all__ = ["CommandHandler"]
