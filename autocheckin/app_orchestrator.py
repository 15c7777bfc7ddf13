# autocheckin/app_orchestrator.py
import os
import signal
import sys
import threading
import time
from typing import List, Optional

from colorama import Fore, Style

from autocheckin.config.settings import AppSettings, load_settings
from autocheckin.constants import AppConstants, SCRIPT_VERSION
from autocheckin.exceptions import AppError, ConfigurationError, ValidationError
from autocheckin.logger_setup import FileLogger, LoggerInterface, LogLevel
from autocheckin.utils.app_utils import format_duration_ms, get_app_dir
from autocheckin.utils.display_utils import show_app_banner

from autocheckin.services.http_client import HttpClient
from autocheckin.services.qr_login_service import QRLoginSystem
from autocheckin.services.checkin_service import CheckinService
from autocheckin.services.credential_manager import CredentialManager
from autocheckin.services.notification import NotificationManager
from autocheckin.storage.credential_store import RedisCredentialStore

from autocheckin.cli.command_handler import CommandHandler
from autocheckin.tasks.background_job_manager import BackgroundJobManager
from autocheckin.tasks.checkin_job import CheckinJob
from autocheckin.tasks.checkin_scheduler import CheckinScheduler
from autocheckin.web.qr_sessions import QRSessionRegistry
from autocheckin.web.server import WebContext, WebServer, create_app

MODES = ("once", "serve", "status")


def parse_mode(argv: List[str]) -> str:
    """第一个非 -- 开头的参数为运行模式，默认 once"""
    for arg in argv:
        if arg.startswith("--"):
            continue
        if arg not in MODES:
            raise ConfigurationError(f"未知运行模式 '{arg}'，可选: {', '.join(MODES)}")
        return arg
    return "once"


class AppOrchestrator:
    def __init__(self, argv: Optional[List[str]] = None):
        self.argv = list(sys.argv[1:] if argv is None else argv)
        self.mode = "once"

        self.application_run_event = threading.Event()
        self.application_run_event.set()
        # 取消正在进行的扫码等待
        self.cancel_event = threading.Event()

        self._exit_code: int = 0
        self._exit_reason: str = "应用启动流程未完成"
        self._interrupted: bool = False

        self.logger: Optional[LoggerInterface] = None
        self.settings: Optional[AppSettings] = None
        self.http_client: Optional[HttpClient] = None
        self.notification_manager: Optional[NotificationManager] = None
        self.credential_manager: Optional[CredentialManager] = None
        self.checkin_service: Optional[CheckinService] = None
        self.checkin_job: Optional[CheckinJob] = None
        self.scheduler: Optional[CheckinScheduler] = None
        self.sessions: Optional[QRSessionRegistry] = None
        self.web_server: Optional[WebServer] = None
        self.command_handler: Optional[CommandHandler] = None
        self.bg_job_manager: Optional[BackgroundJobManager] = None

    def _initialize_logger(self) -> None:
        if "--debug-console" in self.argv:
            console_log_level = LogLevel.DEBUG
        elif "--silent" in self.argv:
            console_log_level = LogLevel.WARNING
        else:
            console_log_level = LogLevel.INFO

        log_file_name = f"{AppConstants.APP_NAME}.log"
        log_dir = self.settings.log_dir if self.settings is not None else AppConstants.LOG_DIR
        if not os.path.isabs(log_dir):
            log_dir = os.path.join(get_app_dir(), log_dir)
        self.logger = FileLogger(log_file=log_file_name, console_level=console_log_level, log_dir=log_dir)
        self.logger.log(f"--- {AppConstants.APP_NAME} v{SCRIPT_VERSION} 应用编排器开始初始化 ---", LogLevel.INFO)
        self.logger.log(f"控制台日志级别已设置为: {console_log_level.name} (文件日志始终为DEBUG及以上)", LogLevel.INFO)

    def _install_signal_handlers(self) -> None:
        def handle_sigterm(signum, frame):
            # 与 Ctrl+C 走同一条退出路径
            raise KeyboardInterrupt(f"收到信号 {signum}")

        try:
            signal.signal(signal.SIGTERM, handle_sigterm)
        except ValueError: # pragma: no cover
            # 非主线程中无法注册信号处理器
            self.logger.log("AppOrchestrator: 当前线程无法注册 SIGTERM 处理器，跳过。", LogLevel.DEBUG)

    def _initialize_core_components(self) -> None:
        settings = self.settings
        self.logger.log(f"配置加载成功: {settings.summary()}", LogLevel.INFO)

        self.http_client = HttpClient(self.logger, timeout=settings.http_timeout)
        store = RedisCredentialStore(
            self.logger, redis_url=settings.redis_url, default_ttl=settings.token_ttl_seconds,
        )
        if not store.ping():
            self.logger.log("Redis 连接检查失败，读取或保存凭证时可能出错", LogLevel.WARNING)
        qr_login = QRLoginSystem(self.logger, self.http_client, appid=settings.appid)
        self.notification_manager = NotificationManager(settings, self.logger)
        self.credential_manager = CredentialManager(
            self.logger,
            store,
            qr_login,
            notifier=self.notification_manager,
            retry_policy=settings.retry_policy(),
            ttl_seconds=settings.token_ttl_seconds,
            display_qr=(self.mode == "once"),
            cancel_event=self.cancel_event,
        )
        self.checkin_service = CheckinService(self.logger, self.http_client)
        self.checkin_job = CheckinJob(
            self.logger,
            self.credential_manager,
            self.checkin_service,
            self.notification_manager,
            user_name=settings.user_name,
            reauth_url=settings.reauth_url,
            expired_recipient=settings.expired_email_recipient,
        )
        self.logger.log("核心组件初始化完毕。", LogLevel.INFO)

    # --- 运行模式 ---
    def _run_once(self) -> None:
        self.checkin_job.run_interactive()
        self._exit_reason = "单次签到完成"
        self._exit_code = 0

    def _run_status(self) -> None:
        status = self.credential_manager.status()
        print(f"\n{Fore.CYAN}{Style.BRIGHT}=== Token 状态 ==={Style.RESET_ALL}")
        print("-" * 40)
        print(f"存在 Token: {'是' if status['hasToken'] else '否'}")
        print(f"是否有效: {Fore.GREEN + '有效' if status['isValid'] else Fore.RED + '无效'}{Style.RESET_ALL}")
        if status["expire"]:
            print(f"过期时间戳: {status['expire']}")
        if status["isValid"]:
            print(f"剩余时间: {format_duration_ms(status['timeUntilExpiry'] or 0)}")
            if status["willExpireWithin1Hour"]:
                print(f"{Fore.YELLOW}⚠️ Token 将在一小时内过期{Style.RESET_ALL}")
        print("-" * 40)
        self._exit_reason = "状态查询完成"
        self._exit_code = 0

    def _run_serve(self) -> None:
        settings = self.settings
        job = self.checkin_job

        self.scheduler = CheckinScheduler(
            self.logger, job.run_scheduled, settings.checkin_time, settings.checkin_timezone,
        )
        self.sessions = QRSessionRegistry(
            self.logger,
            self.credential_manager.qr_login,
            self.credential_manager,
            login_checkin=lambda credential: job.checkin_with_stored_credential(credential, trigger="login"),
        )

        self.bg_job_manager = BackgroundJobManager(self.logger, self.application_run_event)
        self.bg_job_manager.add_job(
            self.sessions.cleanup_expired, AppConstants.SESSION_CLEANUP_INTERVAL_SECONDS, "QRSessionCleanup",
        )
        if self.notification_manager.has_active_notifiers():
            self.bg_job_manager.add_job(
                job.check_credential_expiry, AppConstants.TOKEN_EXPIRY_CHECK_INTERVAL_SECONDS, "TokenExpiryWatch",
            )

        context = WebContext(
            self.logger, settings, self.credential_manager, job, self.scheduler, self.sessions,
            notifier=self.notification_manager,
        )
        try:
            self.web_server = WebServer(create_app(context), self.logger, port=settings.port)
        except OSError as e:
            raise AppError(f"端口 {settings.port} 无法监听: {e}", "PORT_IN_USE", 500) from e

        if not self.scheduler.start():
            self.logger.log("定时签到任务未能启动", LogLevel.WARNING)
        self.bg_job_manager.start_jobs()
        self.web_server.start()

        if sys.stdin.isatty():
            self.command_handler = CommandHandler(
                logger=self.logger,
                application_run_event=self.application_run_event,
                app_orchestrator_ref=self,
                scheduler=self.scheduler,
                checkin_job=job,
                credential_manager=self.credential_manager,
            )
            self.command_handler.start_command_monitoring()

        print(f"{Fore.GREEN}🌐 服务器运行在: http://localhost:{settings.port}{Style.RESET_ALL}")
        self._exit_reason = "服务正常结束主循环"
        self._exit_code = 0
        while self.application_run_event.is_set():
            time.sleep(0.5)

    def run(self) -> int:
        try:
            self.mode = parse_mode(self.argv)
            try:
                self.settings = load_settings()
            finally:
                # 配置无效时同样需要日志器记录退出原因
                self._initialize_logger()
            show_app_banner(self.logger, self.mode)
            self._install_signal_handlers()
            self._initialize_core_components()

            self.logger.log(f"所有组件初始化完成，以 {self.mode} 模式运行...", LogLevel.INFO)
            if self.mode == "serve":
                self._run_serve()
            elif self.mode == "status":
                self._run_status()
            else:
                self._run_once()

        except (ConfigurationError, ValidationError) as ce:
            print(f"{Fore.RED}❌ 配置错误: {ce}{Style.RESET_ALL}")
            print(f"{Fore.YELLOW}💡 提示: 请检查环境变量配置是否正确{Style.RESET_ALL}")
            self._handle_specific_exit_exception(ce, f"配置错误: {ce}")
        except AppError as ae:
            if self._interrupted or self.cancel_event.is_set():
                self._handle_interrupt()
            else:
                print(f"{Fore.RED}❌ 执行失败: {ae} (错误代码: {ae.code}){Style.RESET_ALL}")
                self._handle_specific_exit_exception(ae, f"执行失败 [{ae.code}]: {ae}")
        except KeyboardInterrupt:
            self._handle_interrupt()
        except Exception as e:
            if self.logger:
                self.logger.log(f"AppOrchestrator: 发生未捕获的致命错误: {e}", LogLevel.CRITICAL, exc_info=True)
            else:
                print(f"CRITICAL ERROR (Logger not available): {e}")
            self._exit_reason = f"发生未处理的致命错误: {type(e).__name__}"
            self._exit_code = 1
        finally:
            self._perform_shutdown()

        return self._exit_code

    def _handle_interrupt(self) -> None:
        if self.logger:
            self.logger.log("AppOrchestrator: 检测到用户中断 (Ctrl+C) 或终止信号。", LogLevel.INFO)
        self._interrupted = True
        self.cancel_event.set()
        self._exit_reason = "用户中断操作"
        self._exit_code = 0

    def _handle_specific_exit_exception(self, exc: Exception, reason: str) -> None:
        if self.logger:
            self.logger.log(f"AppOrchestrator: {reason}，应用终止。", LogLevel.CRITICAL)
        else:
            print(f"CRITICAL ERROR (Logger N/A): {reason}")
        self._exit_reason = reason
        self._exit_code = 1
        if self.application_run_event.is_set():
            self.application_run_event.clear()

    def _perform_shutdown(self) -> None:
        if not self.logger:
            print(f"退出原因: {self._exit_reason}, 退出码: {self._exit_code}")
            print(Style.RESET_ALL)
            return

        self.logger.log("AppOrchestrator: 开始执行关闭流程...", LogLevel.INFO)
        if self.application_run_event.is_set():
            self.logger.log("AppOrchestrator: 清理 application_run_event。", LogLevel.DEBUG)
            self.application_run_event.clear()
        self.cancel_event.set()

        if self.command_handler:
            self.command_handler.stop_command_monitoring()
        if self.scheduler:
            self.scheduler.stop()
        if self.bg_job_manager:
            self.bg_job_manager.stop_jobs()
        if self.sessions:
            self.sessions.clear()
        if self.web_server:
            self.web_server.shutdown()
        if self.http_client:
            self.http_client.close()

        if self.checkin_service:
            self.logger.log(
                f"AppOrchestrator: 本次运行共成功签到 {self.checkin_service.get_total_successful_checkins()} 次",
                LogLevel.INFO,
            )

        if self._interrupted and self.mode == "once" and isinstance(self.logger, FileLogger):
            print(f"\n{Fore.CYAN}📋 应用日志:{Style.RESET_ALL}")
            print(self.logger.export())

        is_error_exit = self._exit_code != 0
        final_log_level = LogLevel.ERROR if is_error_exit else LogLevel.INFO
        self.logger.log(
            f"--- {AppConstants.APP_NAME} v{SCRIPT_VERSION} {self._exit_reason} (最终退出码: {self._exit_code}) ---",
            final_log_level,
        )

        if is_error_exit:
            print(f"{Fore.RED}程序因错误退出。详情请查看日志文件。{Style.RESET_ALL}")
            delay_seconds = AppConstants.GRACEFUL_ERROR_EXIT_DELAY_SECONDS
            self.logger.log(f"由于发生错误，程序将在 {delay_seconds} 秒后完全关闭...", LogLevel.DEBUG)
            time.sleep(delay_seconds)

        print(Style.RESET_ALL)

    def request_shutdown(self, reason: str, exit_code: int = 0) -> None:
        if not self.logger:
            print(f"SHUTDOWN REQUEST (Logger N/A): {reason}, code: {exit_code}")
        else:
            self.logger.log(f"AppOrchestrator: 收到关闭请求，原因: {reason}, 建议退出码: {exit_code}", LogLevel.INFO)
        self._exit_reason = reason
        self._exit_code = exit_code
        self.cancel_event.set()
        if self.application_run_event.is_set():
            self.application_run_event.clear()

    def signal_shutdown_due_to_interrupt(self) -> None:
        if self.application_run_event.is_set():
            if self.logger:
                self.logger.log("AppOrchestrator: 收到来自CommandHandler的KeyboardInterrupt信号。", LogLevel.INFO)
            self._interrupted = True
            self.request_shutdown("用户通过命令界面中断操作 (来自命令处理器)")


def main() -> None:
    sys.exit(AppOrchestrator().run())
