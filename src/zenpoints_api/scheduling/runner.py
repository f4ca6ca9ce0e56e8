"""APScheduler runtime for recurring background jobs."""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from zenpoints_api.observability.scheduler import get_job_scheduler_store

from .config import JobDefinition, ScheduleConfig, load_job_definitions

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]
JobCallable = Callable[..., Awaitable[Any]]


def resolve_task(task: str) -> JobCallable:
    """Import ``package.module.function`` and check it is a coroutine function."""

    module_name, _, attr = task.rpartition(".")
    if not module_name:
        raise ValueError(f"Invalid task path: {task}")
    func = getattr(import_module(module_name), attr, None)
    if func is None:
        raise AttributeError(f"Task {task} not found")
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Task {task} must be an async function")
    return func


class JobScheduler:
    """Register cron jobs from a schedule file and run them with retries.

    Jobs receive ``session_factory`` plus the ``kwargs`` from their schedule
    entry. A failed attempt is retried with exponential backoff until
    ``max_attempts`` is reached; the run is then recorded as failed.
    """

    def __init__(self, *, session_factory: SessionFactory, config_path: Path) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._observability = get_job_scheduler_store()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)

        for job in config.jobs:
            func = resolve_task(job.task)
            scheduler.add_job(
                self._bind(func, job),
                trigger=CronTrigger.from_crontab(job.cron, timezone=timezone),
                id=job.id,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            logger.info("Registered scheduled job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        logger.info("Job scheduler started", jobs=len(config.jobs))

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        logger.info("Job scheduler stopped")

    def _bind(self, func: JobCallable, job: JobDefinition) -> Callable[[], Awaitable[Any]]:
        async def _runner() -> Any:
            return await self.run_job(func, job)

        return _runner

    async def run_job(self, func: JobCallable, job: JobDefinition) -> Any:
        """Execute one scheduled run of ``job`` including its retries."""

        max_attempts = max(job.max_attempts, 1)
        self._observability.record_dispatch(job.id, job.task)
        started_at = time.perf_counter()

        for attempt in range(1, max_attempts + 1):
            try:
                result = await func(session_factory=self._session_factory, **job.kwargs)
            except Exception as exc:
                error = str(exc) or exc.__class__.__name__
                self._observability.record_attempt_failure(job.id, job.task, attempts=attempt, error=error)
                if attempt >= max_attempts:
                    self._observability.record_run_failure(
                        job.id,
                        job.task,
                        runtime_seconds=time.perf_counter() - started_at,
                        attempts=attempt,
                        error=error,
                    )
                    logger.exception("Scheduled job failed after retries", job_id=job.id, attempts=attempt)
                    return None

                jitter = random.uniform(0, job.jitter_seconds) if job.jitter_seconds else 0.0
                delay = job.backoff_delay(attempt, jitter)
                self._observability.record_retry(job.id, job.task, delay_seconds=delay, attempts=attempt + 1)
                logger.warning("Scheduled job retrying", job_id=job.id, attempt=attempt + 1, delay_seconds=delay)
                if delay:
                    await asyncio.sleep(delay)
                continue

            runtime_seconds = time.perf_counter() - started_at
            self._observability.record_success(
                job.id,
                job.task,
                runtime_seconds=runtime_seconds,
                attempts=attempt,
                summary=result if isinstance(result, dict) else None,
            )
            logger.info(
                "Scheduled job completed",
                job_id=job.id,
                attempts=attempt,
                runtime_seconds=round(runtime_seconds, 3),
            )
            return result
        return None

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        jobs = []
        for job in self._config.jobs if self._config else []:
            jobs.append(
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "max_attempts": job.max_attempts,
                    "metrics": snapshot.jobs.get(job.id),
                }
            )
        return {
            "running": self.is_running,
            "configured_jobs": len(jobs),
            "totals": snapshot.totals,
            "jobs": jobs,
        }


__all__ = ["JobScheduler", "resolve_task"]
