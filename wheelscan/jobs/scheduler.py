"""Job scheduler using APScheduler with async support."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from wheelscan.core.config import settings
from wheelscan.core.logging import get_logger

from .registry import get_all_jobs, get_job


logger = get_logger("jobs.scheduler")

# Global scheduler instance
_scheduler: Optional["JobScheduler"] = None


# APScheduler numbers weekdays from Monday=0; crontab numbers them from Sunday=0
_CRONTAB_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]
_WEEKDAY_NUMBER = re.compile(r"(?<![/\d])([0-7])(?!\d)")


def cron_trigger(expr: str, timezone_name: Any = None) -> CronTrigger:
    """
    Build a CronTrigger from a standard five-field crontab expression.

    Raises:
        ValueError: If the expression is malformed
    """
    fields = expr.split()
    if len(fields) == 5:
        fields[4] = _WEEKDAY_NUMBER.sub(lambda m: _CRONTAB_WEEKDAYS[int(m.group(1))], fields[4])
    return CronTrigger.from_crontab(" ".join(fields), timezone=timezone_name)


def default_schedules() -> dict[str, tuple[str, str]]:
    """Cron expression and description per registered job."""
    return {
        "scan_after_close": (settings.scan_schedule_cron, "Scan all watchlists after the close"),
    }


class JobScheduler:
    """Background job scheduler; one instance of each job at a time."""

    def __init__(self, timezone_name: str | None = None):
        self._scheduler = AsyncIOScheduler(
            timezone=timezone_name or settings.scheduler_timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": 60 * 5,
            },
        )
        self._running = False
        self._locks: dict[str, asyncio.Lock] = {}
        self._stats: dict[str, dict[str, Any]] = {}

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Schedule registered jobs and start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        if not settings.scheduler_enabled:
            logger.info("Scheduler disabled via SCHEDULER_ENABLED=false")
            return

        self._load_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("Job scheduler started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Job scheduler stopped")

    def _load_jobs(self) -> None:
        # Import registers the built-in jobs
        from . import definitions  # noqa: F401

        schedules = default_schedules()
        for name, func in get_all_jobs().items():
            cron_expr, description = schedules.get(name, ("0 * * * *", f"Job: {name}"))
            try:
                trigger = cron_trigger(cron_expr, self._scheduler.timezone)
            except ValueError as e:
                logger.error(f"Invalid cron expression for job {name}: {cron_expr} ({e})")
                continue
            self._scheduler.add_job(
                self._wrap_job(name, func),
                trigger=trigger,
                id=name,
                name=description,
                replace_existing=True,
            )
            logger.info(f"Scheduled job: {name} ({cron_expr})")

    def _wrap_job(self, name: str, func: Callable) -> Callable:
        async def wrapper():
            await self._execute_job(name, func)

        return wrapper

    async def _execute_job(self, name: str, func: Callable) -> str | None:
        """Execute a job with an in-process lock and record its outcome."""
        lock = self._locks.setdefault(name, asyncio.Lock())
        if lock.locked():
            logger.info(f"Job {name} skipped - already running")
            return None

        async with lock:
            logger.info(f"Job {name} started")
            start_time = datetime.now(timezone.utc)
            try:
                if asyncio.iscoroutinefunction(func):
                    result = await func()
                else:
                    result = func()
            except Exception as e:
                duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
                self._stats[name] = {
                    "last_run": start_time,
                    "last_status": "error",
                    "last_duration_ms": duration_ms,
                    "last_error": str(e),
                }
                logger.exception(f"Job {name} failed after {duration_ms}ms")
                return None

            duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
            self._stats[name] = {
                "last_run": start_time,
                "last_status": "ok",
                "last_duration_ms": duration_ms,
                "last_error": None,
            }
            logger.info(f"Job {name} completed in {duration_ms}ms")
            return str(result) if result else "Completed successfully"

    async def run_job_now(self, name: str) -> str | None:
        """Manually trigger a job execution."""
        from . import definitions  # noqa: F401

        job_func = get_job(name)
        if job_func is None:
            raise ValueError(f"Unknown job: {name}")
        return await self._execute_job(name, job_func)

    def get_next_run_time(self, name: str) -> Optional[datetime]:
        job = self._scheduler.get_job(name)
        if job:
            return job.next_run_time
        return None

    def get_jobs_status(self) -> list[dict[str, Any]]:
        """Get status of all scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat()
                    if job.next_run_time
                    else None,
                    **self._stats.get(job.id, {}),
                }
            )
        return jobs


def get_scheduler() -> Optional[JobScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler() -> JobScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    await _scheduler.start()
    return _scheduler


async def stop_scheduler() -> None:
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
