import logging
from datetime import datetime
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.base import JobLookupError


logger = logging.getLogger(__name__)

POLL_JOB = "player_poll"
PROGRESS_JOB = "progress_ticker"
EPG_JOB = "epg_load"


class IntegrationScheduler:
    """Interval timers of one integration session (poll, progress, EPG load)"""

    def __init__(self, timezone: str = "UTC"):
        self._timezone = timezone
        self.scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self) -> None:
        """Start the underlying scheduler; jobs are added per session"""
        if self.running:
            return
        self.scheduler = AsyncIOScheduler(timezone=self._timezone)
        self.scheduler.start()
        logger.info("Scheduler started")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[None]],
        seconds: float,
        *,
        run_immediately: bool = False,
    ) -> None:
        """Add or replace an interval job"""
        if not self.running:
            self.start()

        kwargs = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(self.scheduler.timezone)

        self.scheduler.add_job(
            self._wrap(job_id, func),
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            misfire_grace_time=max(1, int(seconds)),
            **kwargs,
        )
        logger.debug(f"Job '{job_id}' scheduled every {seconds}s")

    @staticmethod
    def _wrap(job_id: str, func: Callable[[], Awaitable[None]]) -> Callable[[], Awaitable[None]]:
        async def _job() -> None:
            try:
                await func()
            except Exception as e:
                logger.error(f"Exception in scheduled job '{job_id}': {e}", exc_info=True)
        return _job

    def remove_job(self, job_id: str) -> bool:
        if not self.scheduler:
            return False
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug(f"Job '{job_id}' removed")
        return True

    def remove_all_jobs(self) -> None:
        if self.scheduler:
            self.scheduler.remove_all_jobs()

    def has_job(self, job_id: str) -> bool:
        return bool(self.scheduler and self.scheduler.get_job(job_id))

    def job_ids(self) -> list[str]:
        if not self.scheduler:
            return []
        return sorted(job.id for job in self.scheduler.get_jobs())

    def get_next_run_time(self, job_id: str) -> datetime | None:
        """Get next run time of a job"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None
