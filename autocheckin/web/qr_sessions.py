# autocheckin/web/qr_sessions.py
import hashlib
import queue
import secrets
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from autocheckin.constants import AppConstants
from autocheckin.exceptions import AppError
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.credential_manager import CredentialManager
from autocheckin.services.qr_login_service import QRLoginSystem, ScanStatus
from autocheckin.storage.credential_store import Credential
from autocheckin.utils.app_utils import now_ms

# 登录成功后执行一次签到，返回签到结果，失败时抛出 AppError
LoginCheckin = Callable[[Credential], Any]


def generate_session_id() -> str:
    digest = hashlib.sha256(secrets.token_bytes(32)).hexdigest()
    return f"sess_{now_ms()}_{digest[:16]}"


class QRSession:
    __slots__ = ("session_id", "uuid", "start_time", "ip", "user_agent", "last_activity", "poll_count", "cancel_event")

    def __init__(self, session_id: str, uuid: str, ip: Optional[str] = None, user_agent: Optional[str] = None):
        self.session_id = session_id
        self.uuid = uuid
        self.start_time = now_ms()
        self.ip = ip
        self.user_agent = user_agent
        self.last_activity = self.start_time
        self.poll_count = 0
        self.cancel_event = threading.Event()

    def age_ms(self, now: Optional[int] = None) -> int:
        return (now_ms() if now is None else now) - self.start_time


class EventChannel:
    """
    单个会话的事件通道。

    每个订阅方拥有独立的队列，订阅时先补发已经产生的事件；会话结束后通道
    仍保留一段时间，供迟到的订阅方读取。
    """

    def __init__(self) -> None:
        self.created_at = now_ms()
        self.history: List[Dict[str, Any]] = []
        self._subscribers: List["queue.Queue[Dict[str, Any]]"] = []
        self._lock = threading.Lock()

    def publish(self, event: Dict[str, Any]) -> None:
        with self._lock:
            self.history.append(event)
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put(event)

    def subscribe(self) -> "queue.Queue[Dict[str, Any]]":
        q: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        with self._lock:
            for event in self.history:
                q.put(event)
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: "queue.Queue[Dict[str, Any]]") -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class QRSessionRegistry:
    """
    网页端发起的扫码登录会话。

    每个会话在自己的守护线程中按固定间隔轮询一次扫码状态，结果以事件形式
    (scanned / success / expired / error / checkin_complete / checkin_error)
    推送到该会话的事件队列。允许多个会话并存，凭证以最后写入为准。
    """

    def __init__(
        self,
        logger: LoggerInterface,
        qr_login: QRLoginSystem,
        credential_manager: CredentialManager,
        login_checkin: Optional[LoginCheckin] = None,
        poll_interval: float = AppConstants.SESSION_POLL_INTERVAL_SECONDS,
        timeout_seconds: int = AppConstants.SESSION_TIMEOUT_SECONDS,
        max_polls: int = AppConstants.SESSION_MAX_POLLS,
    ):
        self.logger = logger
        self.qr_login = qr_login
        self.credential_manager = credential_manager
        self.login_checkin = login_checkin
        self.poll_interval = poll_interval
        self.timeout_ms = timeout_seconds * 1000
        self.max_polls = max_polls
        self.sessions: Dict[str, QRSession] = {}
        self._channels: Dict[str, EventChannel] = {}
        self._lock = threading.Lock()
        self.total_sessions = 0
        self.active_sessions = 0
        self._started_monotonic = time.monotonic()

    # --- 事件 ---
    def channel(self, session_id: str) -> EventChannel:
        with self._lock:
            ch = self._channels.get(session_id)
            if ch is None:
                ch = self._channels[session_id] = EventChannel()
            return ch

    def emit(self, session_id: str, event_type: str, message: str, **extra: Any) -> None:
        event = {"type": event_type, "message": message, **extra}
        self.channel(session_id).publish(event)
        self.logger.log(f"会话 {session_id} 推送事件: {event_type} ({message})", LogLevel.DEBUG)

    # --- 会话生命周期 ---
    def create_session(
        self,
        session_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        start_polling: bool = True,
    ) -> QRSession:
        session_id = session_id or generate_session_id()
        uuid = self.qr_login.request_session()
        session = QRSession(session_id, uuid, ip, user_agent)

        with self._lock:
            previous = self.sessions.pop(session_id, None)
            if previous is not None:
                previous.cancel_event.set()
                self.active_sessions -= 1
            self.sessions[session_id] = session
            if previous is not None or session_id not in self._channels:
                # 被替换的会话不再向新订阅方补发旧事件
                self._channels[session_id] = EventChannel()
            self.total_sessions += 1
            self.active_sessions += 1

        self.logger.log(f"已创建扫码会话 {session_id} (uuid={uuid}, ip={ip})", LogLevel.INFO)
        if start_polling:
            threading.Thread(
                target=self._poll_loop, args=(session,), daemon=True, name=f"qr-{session_id[-8:]}"
            ).start()
        return session

    def _finish(self, session: QRSession) -> bool:
        """从注册表中移除会话，返回是否由本次调用移除"""
        with self._lock:
            if self.sessions.get(session.session_id) is not session:
                return False
            del self.sessions[session.session_id]
            self.active_sessions -= 1
        session.cancel_event.set()
        return True

    def _poll_loop(self, session: QRSession) -> None:
        self.logger.log(f"开始轮询会话 {session.session_id} 的扫码状态", LogLevel.DEBUG)
        while not session.cancel_event.wait(self.poll_interval):
            try:
                if self.poll_session(session):
                    break
            except Exception as e:
                self.logger.log(f"会话 {session.session_id} 轮询出错: {e}", LogLevel.ERROR, exc_info=True)

    def poll_session(self, session: QRSession) -> bool:
        """执行一次轮询，返回会话是否已结束"""
        with self._lock:
            if self.sessions.get(session.session_id) is not session:
                return True
            now = now_ms()
            session.last_activity = now
            session.poll_count += 1
            poll_count = session.poll_count

        sid = session.session_id
        if session.age_ms(now) > self.timeout_ms:
            if self._finish(session):
                self.logger.log(f"会话 {sid} 在轮询中超时 (轮询 {poll_count} 次)", LogLevel.INFO)
                self.emit(sid, "expired", "二维码已过期")
            return True
        if poll_count > self.max_polls:
            if self._finish(session):
                self.logger.log(f"会话 {sid} 超过最大轮询次数 ({poll_count})", LogLevel.WARNING)
                self.emit(sid, "expired", "轮询次数过多，请重新生成二维码")
            return True

        try:
            result = self.qr_login.poll_once(session.uuid)
        except AppError as e:
            self.logger.log(f"会话 {sid} 第 {poll_count} 次轮询失败: {e}", LogLevel.WARNING)
            return False

        if result.status is ScanStatus.EXPIRED:
            if self._finish(session):
                self.emit(sid, "expired", "二维码已过期")
            return True
        if result.status is ScanStatus.SCANNED and result.code:
            if not self._finish(session):
                return True
            self.logger.log(f"会话 {sid} 已扫码 (第 {poll_count} 次轮询)", LogLevel.INFO)
            self.emit(sid, "scanned", "已扫码，正在获取token...")
            self._complete_login(sid, result.code)
            return True
        return False

    def _complete_login(self, session_id: str, wx_code: str) -> None:
        try:
            credential = self.qr_login.exchange_code(wx_code)
            self.credential_manager.save(credential)
        except AppError as e:
            self.logger.log(f"会话 {session_id} 获取 token 失败: {e}", LogLevel.ERROR)
            self.emit(session_id, "error", "获取token失败，请重试")
            return

        self.logger.log(f"会话 {session_id} 登录成功，token 已保存", LogLevel.INFO)
        self.emit(
            session_id,
            "success",
            "登录成功！",
            tokenInfo={
                "hasToken": bool(credential.token),
                "expire": credential.expire_at,
                "timeUntilExpiry": credential.time_until_expiry(),
            },
        )
        self._run_login_checkin(session_id, credential)

    def _run_login_checkin(self, session_id: str, credential: Credential) -> None:
        if self.login_checkin is None:
            return
        try:
            result = self.login_checkin(credential)
        except AppError as e:
            self.logger.log(f"会话 {session_id} 登录后自动签到失败: {e}", LogLevel.ERROR)
            self.emit(session_id, "checkin_error", "自动签到失败", error=str(e))
            return
        self.emit(session_id, "checkin_complete", "自动签到完成！", result=result)

    # --- 维护 ---
    def cleanup_expired(self) -> int:
        now = now_ms()
        with self._lock:
            expired = [s for s in self.sessions.values() if s.age_ms(now) > self.timeout_ms]
            stale_channels = [
                sid for sid, ch in self._channels.items()
                if sid not in self.sessions and now - ch.created_at > self.timeout_ms * 2
            ]
            for sid in stale_channels:
                del self._channels[sid]

        cleaned = 0
        for session in expired:
            if self._finish(session):
                cleaned += 1
                self.emit(session.session_id, "expired", "二维码已过期")
                self.logger.log(
                    f"已清理过期会话 {session.session_id} (存在 {session.age_ms(now)}ms, 轮询 {session.poll_count} 次)",
                    LogLevel.DEBUG,
                )
        if cleaned:
            self.logger.log(f"会话清理完成: 清理 {cleaned} 个，剩余 {len(self.sessions)} 个", LogLevel.INFO)
        return cleaned

    def clear(self) -> None:
        with self._lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
            self._channels.clear()
            self.active_sessions = 0
        for session in sessions:
            session.cancel_event.set()
        self.logger.log(f"已清理全部 {len(sessions)} 个扫码会话", LogLevel.INFO)

    def stats(self) -> Dict[str, Any]:
        now = now_ms()
        with self._lock:
            details: List[Dict[str, Any]] = [
                {
                    "age": s.age_ms(now),
                    "pollCount": s.poll_count,
                    "hasClientInfo": bool(s.ip and s.user_agent),
                    "lastActivity": now - s.last_activity,
                }
                for s in self.sessions.values()
            ]
            return {
                "totalSessions": self.total_sessions,
                "activeSessions": self.active_sessions,
                "currentActiveSessions": len(self.sessions),
                "sessionDetails": details[:AppConstants.SESSION_DETAILS_LIMIT],
                "serverUptime": round(time.monotonic() - self._started_monotonic, 3),
            }
