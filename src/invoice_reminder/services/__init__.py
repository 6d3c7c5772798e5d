"""Application services."""

from .job_schedules import JobScheduleService
from .result import Result

__all__ = ["JobScheduleService", "Result"]
