# autocheckin/tasks/__init__.py
from .background_job_manager import BackgroundJobManager
from .checkin_job import CheckinJob
from .checkin_scheduler import CheckinScheduler

__all__ = [
    "BackgroundJobManager",
    "CheckinJob",
    "CheckinScheduler",
]
