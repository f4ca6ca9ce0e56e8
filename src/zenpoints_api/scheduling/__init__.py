"""Cron scheduling for background jobs."""

from .config import JobDefinition, ScheduleConfig, load_job_definitions
from .runner import JobScheduler

__all__ = ["JobDefinition", "JobScheduler", "ScheduleConfig", "load_job_definitions"]
