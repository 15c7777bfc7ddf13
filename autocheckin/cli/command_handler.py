# autocheckin/cli/command_handler.py
import sys
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from colorama import Fore, Style # type: ignore

from autocheckin.constants import AppConstants
from autocheckin.exceptions import AppError
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.credential_manager import CredentialManager
from autocheckin.tasks.checkin_job import CheckinJob
from autocheckin.tasks.checkin_scheduler import CheckinScheduler
from autocheckin.utils.app_utils import format_duration_ms

# 类型占位符
AppOrchestrator = Any


class CommandHandler:
    """serve 模式下的控制台命令：s 立即签到、c 查看状态、h 帮助、q 退出"""

    def __init__(self,
                 logger: LoggerInterface,
                 application_run_event: threading.Event,
                 app_orchestrator_ref: AppOrchestrator,
                 scheduler: CheckinScheduler,
                 checkin_job: CheckinJob,
                 credential_manager: CredentialManager,
                 ):
        self.logger = logger
        self.application_run_event = application_run_event
        self.app_orchestrator = app_orchestrator_ref
        self.scheduler = scheduler
        self.checkin_job = checkin_job
        self.credential_manager = credential_manager

        self._user_requested_stop_monitor = False
        self._control_thread: Optional[threading.Thread] = None
        self.command_history_list: List[Tuple[datetime, str]] = []

        self.command_handlers: Dict[str, Callable[[], bool]] = {}
        self.command_descriptions: Dict[str, str] = {}
        self._setup_command_system()

    def _setup_command_system(self) -> None:
        self.command_handlers = {
            'q': self._handle_quit_command,
            's': self._handle_checkin_now_command,
            'c': self._handle_status_command,
            'h': self._handle_help_command,
            'history': self._handle_history_command,
        }
        self.command_descriptions = {
            'q': "退出程序",
            's': "立即执行一次签到 (使用缓存中的 token)",
            'c': "查看 token、调度器与签到状态",
            'h': "显示帮助信息",
            'history': "显示命令历史记录 (最近10条)",
        }
        self.logger.log("CommandHandler: 命令系统已设置。", LogLevel.DEBUG)

    def start_command_monitoring(self) -> None:
        if not self._control_thread or not self._control_thread.is_alive():
            self._user_requested_stop_monitor = False
            self._control_thread = threading.Thread(target=self._monitor_commands_loop, daemon=True, name="CommandHandler")
            self._control_thread.start()
            self.logger.log("CommandHandler: 命令监控线程已启动。", LogLevel.INFO)

    def stop_command_monitoring(self) -> None:
        self._user_requested_stop_monitor = True
        # input() 无法被打断，线程为 daemon，会随主程序结束
        if self._control_thread and self._control_thread.is_alive() and self._control_thread is not threading.current_thread():
            self._control_thread.join(timeout=0.5)
        self._control_thread = None
        self.logger.log("CommandHandler: 命令监控已停止。", LogLevel.DEBUG)

    def execute(self, cmd_input: str) -> Optional[bool]:
        """执行一条命令，未知命令返回 None"""
        handler = self.command_handlers.get(cmd_input)
        if handler is None:
            suggestions = [c for c in self.command_handlers if c.startswith(cmd_input[:1])]
            msg = f"{Fore.YELLOW}未知命令 '{cmd_input}'"
            if suggestions:
                msg += f", 您是否想输入: {', '.join(suggestions)}?"
            print(msg + Style.RESET_ALL)
            return None

        self.command_history_list.append((datetime.now(), cmd_input))
        del self.command_history_list[:-50]
        try:
            success = handler()
        except AppError as e:
            self.logger.log(f"CommandHandler: 命令 '{cmd_input}' 执行失败: {e}", LogLevel.ERROR)
            print(f"{Fore.RED}命令 '{cmd_input}' 执行失败: {e}{Style.RESET_ALL}")
            return False
        if success and cmd_input != 'q':
            print(f"{Fore.GREEN}✓ 命令 '{self.command_descriptions.get(cmd_input, cmd_input)}' 执行完毕。{Style.RESET_ALL}")
        return success

    def _monitor_commands_loop(self) -> None:
        self.logger.log("CommandHandler: 命令监控已启动。输入 'h' 获取帮助。", LogLevel.INFO)
        if sys.stdin.isatty():
            print(f"{Fore.CYAN}命令处理器已就绪。输入 'h' 获取可用命令列表。{Style.RESET_ALL}")

        while self.application_run_event.is_set() and not self._user_requested_stop_monitor:
            try:
                if sys.stdout.isatty():
                    sys.stdout.write("\r\033[K")
                    sys.stdout.flush()
                cmd_input = input(f"{Fore.BLUE}(输入命令):{Style.RESET_ALL} ").strip().lower()

                if not self.application_run_event.is_set() or self._user_requested_stop_monitor:
                    break
                if cmd_input:
                    self.execute(cmd_input)
            except KeyboardInterrupt: # pragma: no cover
                self.logger.log("CommandHandler: 命令监控线程检测到中断信号 (Ctrl+C)。", LogLevel.INFO)
                self._user_requested_stop_monitor = True
                self.app_orchestrator.signal_shutdown_due_to_interrupt()
                break
            except EOFError: # pragma: no cover
                self.logger.log("CommandHandler: 检测到输入流结束 (EOF)，停止命令监控。", LogLevel.INFO)
                self._user_requested_stop_monitor = True
                break
            except Exception as e: # pragma: no cover
                self.logger.log(f"CommandHandler: 命令监控线程发生未知错误: {e}", LogLevel.ERROR, exc_info=True)
                time.sleep(1)

        self.logger.log("CommandHandler: 命令监控循环结束。", LogLevel.DEBUG)

    def _timed_input_for_exit(self, prompt_message: str, default_choice: str, timeout_seconds: int) -> str:
        """带超时的输入确认，超时或非交互环境下返回默认值"""
        if not sys.stdin.isatty():
            self.logger.log(f"CommandHandler: 非交互模式，为 '{prompt_message}' 自动选择 '{default_choice}'", LogLevel.DEBUG)
            return default_choice

        sys.stdout.write("\r\033[K")
        sys.stdout.flush()
        print(f"{Fore.YELLOW}{prompt_message}{Style.RESET_ALL} (输入 'c' 取消, {timeout_seconds}秒后自动选择 '{default_choice}'): ", end="", flush=True)

        container = [default_choice]
        event = threading.Event()

        def get_input_thread_func() -> None:
            try:
                val = sys.stdin.readline().strip().lower()
                if val in ('c', 'y', 'n'):
                    container[0] = val
            except (OSError, ValueError) as e_input_thread: # pragma: no cover
                self.logger.log(f"CommandHandler: 确认输入线程出错: {e_input_thread}", LogLevel.WARNING)
            finally:
                event.set()

        threading.Thread(target=get_input_thread_func, daemon=True).start()
        event.wait(timeout=float(timeout_seconds))

        sys.stdout.write("\r\033[K")
        sys.stdout.flush()
        if not event.is_set():
            print(f"{Fore.YELLOW}输入超时，自动选择 '{default_choice}'。{Style.RESET_ALL}")
        elif container[0] == 'c':
            print(f"{Fore.GREEN}操作已取消。{Style.RESET_ALL}")
        else:
            print(f"{Fore.CYAN}操作确认 (选择: '{container[0]}')。{Style.RESET_ALL}")
        return container[0]

    def _handle_quit_command(self) -> bool:
        self.logger.log("CommandHandler: 用户请求退出 ('q'命令)...", LogLevel.INFO)
        user_choice = self._timed_input_for_exit(
            prompt_message="您确定要退出程序吗?",
            default_choice="y",
            timeout_seconds=AppConstants.EXIT_PROMPT_TIMEOUT_SECONDS,
        )
        if user_choice != 'y':
            self.logger.log("CommandHandler: 用户取消了退出操作。", LogLevel.INFO)
            return False
        self.logger.log("CommandHandler: 用户确认退出。", LogLevel.INFO)
        self.app_orchestrator.request_shutdown("用户通过 'q' 命令请求退出")
        return True

    def _handle_checkin_now_command(self) -> bool:
        self.logger.log("CommandHandler: 用户请求立即执行签到...", LogLevel.INFO)
        self.scheduler.trigger_now()
        last = self.checkin_job.last_run()
        return bool(last and last["success"])

    def _show_status(self) -> None:
        print(f"\n{Fore.CYAN}{Style.BRIGHT}=== 当前运行状态 ==={Style.RESET_ALL}")
        print("-" * 40)
        print(f"程序运行状态: {'运行中' if self.application_run_event.is_set() else '正在停止'}")

        try:
            token = self.credential_manager.status()
        except AppError as e:
            print(f"Token 状态: {Fore.RED}读取失败 ({e}){Style.RESET_ALL}")
        else:
            if token["isValid"]:
                remaining = format_duration_ms(token["timeUntilExpiry"] or 0)
                color = Fore.YELLOW if token["willExpireWithin1Hour"] else Fore.GREEN
                print(f"Token 状态: {color}有效 (剩余 {remaining}){Style.RESET_ALL}")
            elif token["hasToken"]:
                print(f"Token 状态: {Fore.RED}已过期，请重新授权{Style.RESET_ALL}")
            else:
                print(f"Token 状态: {Fore.RED}不存在，请扫码授权{Style.RESET_ALL}")

        sched = self.scheduler.status()
        print(f"定时签到: {'运行中' if sched['isRunning'] else '已停止'}"
              f" (每日 {self.scheduler.checkin_time} {self.scheduler.timezone})")
        if sched["nextCheckinDate"]:
            print(f"  下次签到: {sched['nextCheckinDate']}")

        print(f"签到用户: {self.checkin_job.user_name or f'{Fore.RED}未配置{Style.RESET_ALL}'}")
        print(f"本次运行成功提交: {self.checkin_job.checkin_service.get_total_successful_checkins()} 次")
        last = self.checkin_job.last_run()
        if last:
            color = Fore.GREEN if last["success"] else Fore.RED
            print(f"最近一次签到: {color}[{last['time']}] {last['trigger']} - {last['message']}{Style.RESET_ALL}")
        else:
            print(f"最近一次签到: {Fore.YELLOW}本次运行尚未执行{Style.RESET_ALL}")
        print("-" * 40)

    def _handle_status_command(self) -> bool:
        self._show_status()
        return True

    def _handle_help_command(self) -> bool:
        print(f"\n{Fore.CYAN}=== 可用命令 ==={Style.RESET_ALL}")
        print("-" * 40)
        for cmd, desc in sorted(self.command_descriptions.items()):
            print(f"{Fore.GREEN}{cmd.ljust(10)}{Style.RESET_ALL}: {desc}")
        print("-" * 40)
        return True

    def _handle_history_command(self) -> bool:
        if not self.command_history_list:
            print(f"{Fore.YELLOW}暂无命令历史记录{Style.RESET_ALL}")
            return True
        print(f"\n{Fore.CYAN}=== 命令历史记录 (最近10条) ==={Style.RESET_ALL}")
        print("-" * 40)
        for idx, (timestamp, cmd) in enumerate(self.command_history_list[-10:], 1):
            print(f"{idx}. [{timestamp.strftime('%H:%M:%S')}] {cmd}: {self.command_descriptions.get(cmd, '未知命令')}")
        print("-" * 40)
        return True
