"""In-process scheduler running maintenance jobs on UTC wall-clock triggers."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from history_lingo.clock import Clock, utcnow
from history_lingo.config import Settings
from history_lingo.jobs.maintenance import JobName, MaintenanceJobs

logger = structlog.get_logger()

# Given "now", return the next instant the job should run.
NextRun = Callable[[datetime], datetime]


def daily_at(hour: int, minute: int = 0) -> NextRun:
    def next_run(now: datetime) -> datetime:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    return next_run


def weekly_at(weekday: int, hour: int = 0, minute: int = 0) -> NextRun:
    def next_run(now: datetime) -> datetime:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        candidate += timedelta(days=(weekday - now.weekday()) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    return next_run


def every_hours(hours: float) -> NextRun:
    """Runs aligned to multiples of ``hours`` since midnight UTC."""
    period = timedelta(hours=hours)

    def next_run(now: datetime) -> datetime:
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        elapsed = now - midnight
        return midnight + period * (elapsed // period + 1)

    return next_run


class MaintenanceScheduler:
    """Runs each job in its own asyncio loop.

    A failing run is logged and the loop waits for the next trigger.

    Args:
        jobs: Job implementations.
        settings: Trigger times.
        clock: Time source.
    """

    def __init__(self, jobs: MaintenanceJobs, settings: Settings, clock: Clock = utcnow):
        self.jobs = jobs
        self._clock = clock
        reset_hour = settings.daily_reset_hour_utc
        self.schedule: dict[JobName, NextRun] = {
            JobName.STREAK_SWEEP: daily_at(reset_hour, settings.streak_sweep_minute_utc),
            JobName.DAILY_XP_RESET: daily_at(reset_hour),
            JobName.DAILY_CHALLENGE: daily_at(reset_hour),
            JobName.WEEKLY_XP_RESET: weekly_at(settings.weekly_reset_weekday, reset_hour),
            JobName.LEADERBOARD: every_hours(settings.leaderboard_interval_hours),
        }
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._job_loop(job, next_run), name=f"job:{job}")
            for job, next_run in self.schedule.items()
        ]
        logger.info("scheduler_started", jobs=[str(job) for job in self.schedule])

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("scheduler_stopped")

    async def run_once(self, job: JobName) -> None:
        """Run ``job`` now, logging instead of raising on failure."""
        try:
            report = await self.jobs.run(job)
            logger.info("job_completed", job=str(job), **report.model_dump(exclude={"job"}))
        except Exception:
            logger.exception("job_failed", job=str(job))

    async def _job_loop(self, job: JobName, next_run: NextRun) -> None:
        try:
            while True:
                now = self._clock()
                due = next_run(now)
                logger.debug("job_scheduled", job=str(job), due=due.isoformat())
                await asyncio.sleep((due - now).total_seconds())
                await self.run_once(job)
        except asyncio.CancelledError:
            pass
