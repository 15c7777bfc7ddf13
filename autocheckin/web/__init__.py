# autocheckin/web/__init__.py
from .qr_sessions import QRSessionRegistry, generate_session_id
from .server import WebContext, WebServer, create_app

__all__ = [
    "QRSessionRegistry",
    "generate_session_id",
    "WebContext",
    "WebServer",
    "create_app",
]
