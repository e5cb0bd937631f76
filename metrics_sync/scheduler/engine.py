"""
APScheduler engine for the daily multi-domain sync.

The engine owns its BackgroundScheduler and a start/stop lifecycle; the
work itself is injected as a "run all domains" callable (and optionally a
"run one domain" callable for manual triggers).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED,
    EVENT_SCHEDULER_SHUTDOWN, EVENT_SCHEDULER_STARTED,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import SchedulerConfig


logger = logging.getLogger(__name__)

DAILY_JOB_ID = 'daily_sync'

_LISTENED = (
    EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
    | EVENT_SCHEDULER_STARTED | EVENT_SCHEDULER_SHUTDOWN
)


class SyncScheduler:
    """
    Fires the injected ``run_all`` once per day at the configured wall-clock
    time in the configured time zone.

    Example:
        scheduler = SyncScheduler(SchedulerConfig.from_yaml(), service.run_all)
        scheduler.start()
    """

    def __init__(
        self,
        config: SchedulerConfig,
        run_all: Callable[[], Any],
        run_domain: Optional[Callable[[str], Any]] = None
    ):
        """
        Args:
            config: Schedule, time zone and domain list
            run_all: Runs every enabled domain sequentially
            run_domain: Runs one domain (manual trigger)
        """
        self.config = config
        self._run_all = run_all
        self._run_domain = run_domain
        self._scheduler: Optional[BackgroundScheduler] = None
        self._running = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self):
        """Build the BackgroundScheduler; the daily job is added by start()."""
        logger.info(f"Initializing sync scheduler ({self.config.timezone})")

        self._scheduler = BackgroundScheduler(
            # Rebuilt from config on every start, nothing to persist
            jobstores={'default': MemoryJobStore()},
            executors={'default': ThreadPoolExecutor(max_workers=self.config.executor_max_workers)},
            job_defaults={
                'coalesce': self.config.coalesce,
                'max_instances': self.config.max_instances,
                'misfire_grace_time': self.config.misfire_grace_time,
            },
            timezone=self.config.timezone,
        )
        self._scheduler.add_listener(self._log_event, _LISTENED)

    def start(self):
        """Register the daily job and start the scheduler thread."""
        if self._running:
            logger.warning("Sync scheduler already running, start ignored")
            return

        if self._scheduler is None:
            self.initialize()

        self._scheduler.add_job(
            self._daily_job,
            trigger=self._create_trigger(),
            id=DAILY_JOB_ID,
            name='Daily metrics sync',
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            f"Daily sync scheduled '{self.config.cron}' ({self.config.timezone}) for "
            f"{', '.join(self.config.enabled_domains)}; next run {self.next_run_time()}"
        )

    def stop(self, wait: Optional[bool] = None):
        """
        Shut the scheduler down.

        Args:
            wait: Block until a running sync finishes (defaults to config.wait_for_jobs)
        """
        if not self._running:
            logger.warning("Sync scheduler not running, stop ignored")
            return

        wait = self.config.wait_for_jobs if wait is None else wait
        logger.info(f"Stopping sync scheduler (wait={wait})")
        self._scheduler.shutdown(wait=wait)
        self._running = False

    def pause(self):
        """Keep the job scheduled but stop firing it."""
        if self._running:
            self._scheduler.pause()
            logger.info("Sync scheduler paused")

    def resume(self):
        if self._running:
            self._scheduler.resume()
            logger.info("Sync scheduler resumed")

    @property
    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def next_run_time(self) -> Optional[datetime]:
        """Next fire time of the registered daily job, None before start()."""
        job = self._scheduler.get_job(DAILY_JOB_ID) if self._scheduler else None
        return getattr(job, 'next_run_time', None) if job else None

    def upcoming_run(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Next fire time computed from the cron expression, without starting
        the scheduler.

        Args:
            now: Reference time (naive values are read in the configured time zone)
        """
        trigger = self._create_trigger()
        tz = trigger.timezone
        if now is None:
            now = datetime.now(tz)
        elif now.tzinfo is None:
            now = tz.localize(now) if hasattr(tz, 'localize') else now.replace(tzinfo=tz)
        return trigger.get_next_fire_time(None, now)

    def get_jobs(self) -> List[Dict[str, Any]]:
        jobs = self._scheduler.get_jobs() if self._scheduler else []
        result = []
        for job in jobs:
            next_run = getattr(job, 'next_run_time', None)
            result.append({
                'id': job.id,
                'name': job.name,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger),
            })
        return result

    # -------------------------------------------------------------------------
    # Manual runs
    # -------------------------------------------------------------------------

    def run_now(self) -> Any:
        """Run every enabled domain immediately, in the calling thread."""
        logger.info("Manual run of all domains")
        return self._run_all()

    def trigger_domain(self, domain: str) -> Any:
        """
        Run one domain immediately, in the calling thread.

        Raises:
            ValueError: If no per-domain runner was given or the domain is not configured
        """
        if self._run_domain is None:
            raise ValueError("No per-domain runner configured")
        if domain not in {d.name for d in self.config.domains}:
            raise ValueError(f"Domain not configured for scheduling: {domain}")

        logger.info(f"Manual trigger: {domain}")
        return self._run_domain(domain)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _create_trigger(self) -> CronTrigger:
        """
        Raises:
            ValueError: If the cron expression is not a valid five-field crontab
        """
        return CronTrigger.from_crontab(self.config.cron, timezone=self.config.timezone)

    def _daily_job(self):
        started = datetime.now()
        logger.info("Daily sync started")
        self._run_all()
        logger.info(f"Daily sync finished in {(datetime.now() - started).total_seconds():.1f}s")

    def _log_event(self, event):
        code = event.code
        if code == EVENT_JOB_ERROR:
            logger.error(f"Job {event.job_id} raised: {event.exception}")
        elif code == EVENT_JOB_MISSED:
            logger.warning(f"Job {event.job_id} missed its run time")
        elif code == EVENT_JOB_EXECUTED:
            logger.debug(f"Job {event.job_id} executed")
        elif code == EVENT_SCHEDULER_STARTED:
            logger.info("APScheduler started")
        elif code == EVENT_SCHEDULER_SHUTDOWN:
            logger.info("APScheduler shut down")
