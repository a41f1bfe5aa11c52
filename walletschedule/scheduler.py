"""
APScheduler-based CronService for the periodic batch run.

The recurrence job runs on a crontab cadence (every minute by default, in
UTC). ``max_instances=1`` and ``coalesce=True`` keep the scheduled job from
overlapping itself; a manual ``trigger()`` may overlap it and relies on the
per-rule locks and the store's (rule, day) uniqueness instead.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from . import constants
from .schema import BatchRunResult
from .service import RecurrenceService

logger = logging.getLogger(__name__)


class CronService:
    """Background scheduler for the recurrence batch job."""

    def __init__(
        self,
        service: RecurrenceService,
        cron_expression: Optional[str] = None,
        blocking: bool = False,
    ) -> None:
        self.service = service
        self.cron_expression = cron_expression or service.config.cron_expression
        self.blocking = blocking
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self._scheduler is not None:
            logger.info("CronService already started; ignoring duplicate start.")
            return

        scheduler_cls = BlockingScheduler if self.blocking else BackgroundScheduler
        scheduler = scheduler_cls(timezone=constants.DEFAULT_TIMEZONE)
        scheduler.add_job(
            self._run_scheduled,
            id=constants.RECURRENCE_JOB_ID,
            trigger=CronTrigger.from_crontab(
                self.cron_expression, timezone=constants.DEFAULT_TIMEZONE
            ),
            replace_existing=True,
            coalesce=True,
            max_instances=constants.JOB_MAX_INSTANCES,
            misfire_grace_time=constants.JOB_MISFIRE_GRACE_SECONDS,
        )

        self._scheduler = scheduler
        logger.info("CronService started: recurrence job scheduled (%s UTC).", self.cron_expression)
        # BlockingScheduler.start() only returns after shutdown
        scheduler.start()

    def stop(self) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.shutdown(wait=False)
            logger.info("CronService stopped.")
        finally:
            self._scheduler = None

    def status(self) -> list[dict]:
        """Scheduled jobs with their running flag and next run time."""
        if self._scheduler is None:
            return []
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "name": job.id,
                    "running": self.running and next_run is not None,
                    "next_execution": next_run.isoformat() if next_run else None,
                }
            )
        return jobs

    def trigger(self) -> BatchRunResult:
        """Run the batch immediately (manual/on-demand trigger)."""
        logger.info("Manual recurrence processing triggered")
        return self.service.process_recurrences()

    def _run_scheduled(self) -> None:
        try:
            result = self.service.process_recurrences()
        except Exception:
            logger.exception("Critical error in recurrence job")
            return
        if not result.success:
            logger.error("Recurrence processing failed: %s", result.error)
