# autocheckin/web/server.py
"""
运维用 HTTP 接口（Flask）。

所有接口都在 /api 下，返回 JSON；扫码过程中的事件通过
GET /api/qrcode/<session_id>/events 以 server-sent events 推送。
"""
import json
import queue
import threading
import time
from typing import Any, Dict, Iterator, Optional

from flask import Blueprint, Flask, Response, current_app, jsonify, request, stream_with_context
from werkzeug.exceptions import HTTPException
from werkzeug.serving import make_server

from autocheckin.config.settings import AppSettings
from autocheckin.constants import AppConstants
from autocheckin.exceptions import AppError
from autocheckin.logger_setup import FileLogger, LoggerInterface, LogLevel
from autocheckin.services.credential_manager import CredentialManager
from autocheckin.services.notification.manager import NotificationManager
from autocheckin.tasks.checkin_job import CheckinJob
from autocheckin.tasks.checkin_scheduler import CheckinScheduler
from autocheckin.web.qr_sessions import QRSessionRegistry

EXTENSION_KEY = "autocheckin"
TERMINAL_EVENTS = {"expired", "error", "checkin_complete", "checkin_error"}

api_bp = Blueprint("api", __name__, url_prefix="/api")


class WebContext:
    """Flask 应用依赖的组件集合，由 AppOrchestrator 构造后注入"""

    def __init__(
        self,
        logger: LoggerInterface,
        settings: AppSettings,
        credential_manager: CredentialManager,
        checkin_job: CheckinJob,
        scheduler: CheckinScheduler,
        sessions: QRSessionRegistry,
        notifier: Optional[NotificationManager] = None,
    ):
        self.logger = logger
        self.settings = settings
        self.credential_manager = credential_manager
        self.checkin_job = checkin_job
        self.scheduler = scheduler
        self.sessions = sessions
        self.notifier = notifier


def _ctx() -> WebContext:
    return current_app.extensions[EXTENSION_KEY]


def _failure(status: int, error: str, message: Optional[str] = None, **extra: Any):
    body: Dict[str, Any] = {"error": error}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


@api_bp.route("/token-status", methods=["GET"])
def token_status():
    ctx = _ctx()
    try:
        return jsonify(ctx.credential_manager.status())
    except AppError as e:
        ctx.logger.log(f"检查 token 状态失败: {e}", LogLevel.ERROR)
        return _failure(500, "Failed to check token status")


@api_bp.route("/qrcode", methods=["POST"])
def create_qrcode():
    ctx = _ctx()
    body = request.get_json(silent=True) or {}
    session_id = body.get("sessionId") if isinstance(body, dict) else None
    try:
        session = ctx.sessions.create_session(
            session_id=session_id or None,
            ip=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
    except AppError as e:
        ctx.logger.log(f"生成二维码失败: {e}", LogLevel.ERROR)
        return _failure(500, "Failed to generate QR code")

    return jsonify({
        "sessionId": session.session_id,
        "uuid": session.uuid,
        "qrUrl": AppConstants.WECHAT_QRCODE_IMAGE_URL.format(uuid=session.uuid),
        "expiresIn": AppConstants.SESSION_TIMEOUT_SECONDS,
    })


@api_bp.route("/qrcode/<session_id>/events", methods=["GET"])
def qrcode_events(session_id: str):
    ctx = _ctx()
    registry = ctx.sessions
    channel = registry.channel(session_id)
    terminal = set(TERMINAL_EVENTS)
    if registry.login_checkin is None:
        terminal.add("success")
    deadline = time.monotonic() + registry.timeout_ms / 1000 + AppConstants.SESSION_CLEANUP_INTERVAL_SECONDS

    def generate() -> Iterator[str]:
        events = channel.subscribe()
        try:
            while time.monotonic() < deadline:
                try:
                    event = events.get(timeout=AppConstants.SSE_KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"
                if event["type"] in terminal:
                    break
        finally:
            channel.unsubscribe(events)

    ctx.logger.log(f"客户端订阅会话事件: {session_id}", LogLevel.DEBUG)
    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@api_bp.route("/checkin", methods=["POST"])
def checkin():
    ctx = _ctx()
    job = ctx.checkin_job
    if not job.user_name or not job.user_name.strip():
        return _failure(400, "USER_NAME not configured")
    try:
        credential = ctx.credential_manager.load()
        if not credential.is_valid():
            return _failure(401, "Token expired or invalid", needReauth=True)
        result = job.checkin_with_stored_credential(credential, trigger="api")
    except AppError as e:
        ctx.logger.log(f"手动签到失败: {e}", LogLevel.ERROR)
        return _failure(500, "Check-in failed", str(e))
    return jsonify({"success": True, "message": "签到完成", "result": result})


@api_bp.route("/send-reauth-email", methods=["POST"])
def send_reauth_email():
    ctx = _ctx()
    if ctx.notifier is None or not ctx.notifier.notify_credential_expired(ctx.settings.reauth_url):
        return _failure(500, "Failed to send email", "邮件未发送，请检查邮件配置")
    return jsonify({"success": True, "message": "重新授权邮件已发送"})


@api_bp.route("/scheduler-status", methods=["GET"])
def scheduler_status():
    return jsonify(_ctx().scheduler.status())


@api_bp.route("/trigger-checkin", methods=["POST"])
def trigger_checkin():
    _ctx().scheduler.trigger_now()
    return jsonify({"success": True, "message": "手动签到任务已触发"})


@api_bp.route("/start-scheduler", methods=["POST"])
def start_scheduler():
    _ctx().scheduler.start()
    return jsonify({"success": True, "message": "调度器已启动"})


@api_bp.route("/stop-scheduler", methods=["POST"])
def stop_scheduler():
    _ctx().scheduler.stop()
    return jsonify({"success": True, "message": "调度器已停止"})


@api_bp.route("/session-stats", methods=["GET"])
def session_stats():
    return jsonify(_ctx().sessions.stats())


@api_bp.route("/logs", methods=["GET"])
def get_logs():
    ctx = _ctx()
    if not isinstance(ctx.logger, FileLogger):
        return jsonify({"success": True, "logs": []})
    level_name = (request.args.get("level") or "").upper()
    level = LogLevel[level_name] if level_name in LogLevel.__members__ else None
    limit = request.args.get("limit", 100, type=int)
    return jsonify({"success": True, "logs": ctx.logger.recent_entries(level=level, limit=limit)})


def _register_error_handlers(app: Flask, logger: LoggerInterface) -> None:
    def handle_app_error(error: AppError):
        logger.log(f"请求 {request.path} 失败 [{error.code}]: {error}", LogLevel.WARNING)
        body: Dict[str, Any] = {"error": error.message, "code": error.code}
        field = getattr(error, "field", None)
        if field:
            body["field"] = field
        return jsonify(body), error.status_code

    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.name, "message": error.description}), error.code

    def handle_exception(error: Exception):
        logger.log(f"请求 {request.path} 发生未处理的异常: {error}", LogLevel.ERROR, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    app.register_error_handler(AppError, handle_app_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_exception)


def create_app(context: WebContext) -> Flask:
    app = Flask(__name__)
    app.json.ensure_ascii = False
    app.extensions[EXTENSION_KEY] = context
    app.register_blueprint(api_bp)
    _register_error_handlers(app, context.logger)
    context.logger.log("Flask 应用创建成功，所有路由已注册", LogLevel.DEBUG)
    return app


class WebServer:
    """在后台线程中运行 werkzeug 服务，便于主线程处理信号与控制台命令"""

    def __init__(self, app: Flask, logger: LoggerInterface, host: str = "0.0.0.0", port: int = AppConstants.DEFAULT_PORT):
        self.logger = logger
        self.port = port
        self._server = make_server(host, port, app, threaded=True)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True, name="WebServer")
        self._thread.start()
        self.logger.log(f"HTTP 服务已启动: http://localhost:{self.port}", LogLevel.INFO)

    def shutdown(self) -> None:
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self.logger.log("HTTP 服务已关闭", LogLevel.INFO)
