# autocheckin/tasks/background_job_manager.py
import threading
from typing import Callable, List, NamedTuple

from autocheckin.logger_setup import LoggerInterface, LogLevel


class BackgroundJob(NamedTuple):
    task: Callable[[], None]
    interval_seconds: float
    name: str


class BackgroundJobManager:
    """
    按固定间隔在守护线程中执行的后台任务（例如清理过期的扫码会话）。

    application_run_event 被清除时所有任务在当前等待结束后退出。
    """

    def __init__(self, logger: LoggerInterface, application_run_event: threading.Event):
        self.logger = logger
        self.application_run_event = application_run_event
        self._wakeup = threading.Event()
        self.jobs: List[BackgroundJob] = []
        self.threads: List[threading.Thread] = []

    def add_job(self, task: Callable[[], None], interval_seconds: float, job_name: str) -> bool:
        if interval_seconds <= 0:
            self.logger.log(f"后台任务 '{job_name}' 的间隔时间必须为正数，无法添加。", LogLevel.WARNING)
            return False
        self.jobs.append(BackgroundJob(task, interval_seconds, job_name))
        self.logger.log(f"后台任务 '{job_name}' 已添加到队列 (间隔: {interval_seconds}s)。", LogLevel.DEBUG)
        return True

    def _run_job(self, job: BackgroundJob) -> None:
        self.logger.log(f"后台任务 '{job.name}' (间隔: {job.interval_seconds}s) 线程已启动。", LogLevel.DEBUG)
        # 先等待一个周期再执行，启动时没有需要清理的内容
        while not self._wakeup.wait(job.interval_seconds):
            if not self.application_run_event.is_set():
                break
            try:
                job.task()
            except Exception as e:
                self.logger.log(f"后台任务 '{job.name}' 在执行时发生错误: {e}", LogLevel.ERROR, exc_info=True)
        self.logger.log(f"后台任务 '{job.name}' 线程已停止。", LogLevel.INFO)

    def start_jobs(self) -> None:
        if not self.jobs:
            self.logger.log("没有已配置的后台任务需要启动。", LogLevel.INFO)
            return
        if not self.application_run_event.is_set():
            self.logger.log("应用程序未处于运行状态，无法启动后台任务。", LogLevel.WARNING)
            return

        self._wakeup.clear()
        self.threads = []
        for job in self.jobs:
            thread = threading.Thread(target=self._run_job, args=(job,), daemon=True, name=f"bg-{job.name}")
            self.threads.append(thread)
            thread.start()
        self.logger.log(f"{len(self.threads)} 个后台任务线程已成功启动。", LogLevel.INFO)

    def stop_jobs(self, timeout: float = 2.0) -> None:
        self.logger.log("请求停止所有后台任务...", LogLevel.INFO)
        self._wakeup.set()
        for thread in self.threads:
            if thread.is_alive() and thread is not threading.current_thread():
                thread.join(timeout=timeout)
                if thread.is_alive():
                    self.logger.log(f"后台线程 {thread.name} 在超时后仍未结束。", LogLevel.WARNING)
        self.jobs = []
        self.threads = []
        self.logger.log("所有后台任务已停止。", LogLevel.INFO)
