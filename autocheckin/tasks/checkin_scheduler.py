# autocheckin/tasks/checkin_scheduler.py
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import schedule

from autocheckin.constants import AppConstants
from autocheckin.logger_setup import LoggerInterface, LogLevel


class CheckinScheduler:
    """
    每天在固定时间触发一次签到。

    使用私有的 schedule.Scheduler，由一个守护线程按 tick 间隔驱动。
    状态只有两种：已停止、运行中。重复 start() 不会创建第二个任务。
    """

    STOP_JOIN_TIMEOUT: float = 5.0

    def __init__(
        self,
        logger: LoggerInterface,
        job_func: Callable[[], Any],
        checkin_time: str = AppConstants.DEFAULT_CHECKIN_TIME,
        timezone: str = AppConstants.DEFAULT_TIMEZONE,
        tick_seconds: float = AppConstants.SCHEDULER_TICK_SECONDS,
    ):
        self.logger = logger
        self.job_func = job_func
        self.checkin_time = checkin_time
        self.timezone = timezone
        self.tick_seconds = tick_seconds
        self.scheduler = schedule.Scheduler()
        self._job: Optional[schedule.Job] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._job is not None

    def start(self) -> bool:
        with self._lock:
            if self._job is not None:
                self.logger.log("定时任务调度器已经在运行中", LogLevel.WARNING)
                return False

            self._job = self.scheduler.every().day.at(self.checkin_time, self.timezone).do(self._run_job)
            # 每个调度线程持有自己的停止事件，旧线程未退出时也不会被重新唤醒
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop, args=(self._stop_event,), daemon=True, name="CheckinScheduler"
            )
            self._thread.start()

        self.logger.log(
            f"定时任务调度器已启动，每日签到时间: {self.checkin_time} ({self.timezone})，"
            f"下次执行: {self._format_next_run()}",
            LogLevel.INFO,
        )
        return True

    def stop(self) -> None:
        with self._lock:
            if self._job is not None:
                self.scheduler.cancel_job(self._job)
                self._job = None
                self.logger.log("每日签到任务已取消", LogLevel.DEBUG)
            if self._stop_event is not None:
                self._stop_event.set()
                self._stop_event = None
            thread, self._thread = self._thread, None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.STOP_JOIN_TIMEOUT)
        self.logger.log("定时任务调度器已停止", LogLevel.INFO)

    def next_run(self) -> Optional[datetime]:
        job = self._job
        return job.next_run if job is not None else None

    def _format_next_run(self) -> Optional[str]:
        next_run = self.next_run()
        return next_run.strftime("%Y-%m-%d %H:%M:%S") if next_run else None

    def status(self) -> Dict[str, Any]:
        running = self.is_running
        return {
            "isRunning": running,
            "checkinJobStatus": running,
            "nextCheckinDate": self._format_next_run(),
        }

    def trigger_now(self, background: bool = False) -> None:
        """立即执行一次签到任务，不影响下一次定时触发"""
        self.logger.log("手动触发签到任务...", LogLevel.INFO)
        if background:
            threading.Thread(target=self._run_job, daemon=True, name="ManualCheckin").start()
        else:
            self._run_job()

    def _run_job(self) -> None:
        try:
            self.job_func()
        except Exception as e:
            self.logger.log(f"定时签到任务执行出错: {e}", LogLevel.ERROR, exc_info=True)

    def _run_loop(self, stop_event: threading.Event) -> None:
        self.logger.log("调度线程已启动。", LogLevel.DEBUG)
        while not stop_event.wait(self.tick_seconds):
            try:
                self.scheduler.run_pending()
            except Exception as e:
                self.logger.log(f"调度器运行错误: {e}", LogLevel.ERROR, exc_info=True)
        self.logger.log("调度线程已退出。", LogLevel.DEBUG)
