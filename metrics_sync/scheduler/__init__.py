"""
Daily sync scheduler (APScheduler, cron trigger in a fixed time zone).
"""

from .config import DomainSchedule, SchedulerConfig
from .engine import SyncScheduler

__all__ = [
    'DomainSchedule',
    'SchedulerConfig',
    'SyncScheduler',
]
