"""Cron scheduling of dispatch runs."""

from .jobs import CronJob
from .scheduler import (
    JobSchedulerService,
    build_cron_trigger,
    is_valid_cron_expression,
    job_key,
    trigger_key,
)

__all__ = [
    "CronJob",
    "JobSchedulerService",
    "build_cron_trigger",
    "is_valid_cron_expression",
    "job_key",
    "trigger_key",
]
