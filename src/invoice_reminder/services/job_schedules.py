"""Job schedule management that keeps the store and live triggers in step."""

import logging
from typing import Optional
from uuid import UUID

from ..interfaces import ScheduleStore
from ..models import JobSchedule
from ..scheduling import JobSchedulerService, is_valid_cron_expression
from .result import Result

logger = logging.getLogger(__name__)


class JobScheduleService:
    """CRUD for job schedules; every change is mirrored on the scheduler."""

    def __init__(self, store: ScheduleStore, scheduler: JobSchedulerService):
        self.store = store
        self.scheduler = scheduler

    async def add_new_job(self, schedule: Optional[JobSchedule]) -> Result[JobSchedule]:
        """Persist a schedule and register its trigger.

        Args:
            schedule: Schedule to create

        Returns:
            Result[JobSchedule]: Stored schedule, or the reason it was rejected
        """
        if schedule is None:
            return Result.failure("Parameter schedule was None.")

        if not is_valid_cron_expression(schedule.cron_expression):
            return Result.failure(f"Invalid cron expression: {schedule.cron_expression!r}")

        stored = await self.store.add_job_schedule(schedule)
        await self.scheduler.schedule_job(stored)

        return Result.success(stored)

    async def get_by_user_id(self, user_id: UUID) -> Result[list[JobSchedule]]:
        schedules = await self.store.get_job_schedules_by_user_id(user_id)
        if not schedules:
            return Result.failure("Empty Result")
        return Result.success(schedules)

    async def update_job(self, schedule: Optional[JobSchedule]) -> Result[JobSchedule]:
        """Change a schedule's cron expression and reschedule its trigger."""
        if schedule is None:
            return Result.failure("Parameter schedule was None.")

        if await self.store.get_job_schedule_by_id(schedule.id) is None:
            return Result.failure(f"Job schedule {schedule.id} not found")

        if not is_valid_cron_expression(schedule.cron_expression):
            return Result.failure(f"Invalid cron expression: {schedule.cron_expression!r}")

        stored = await self.store.update_job_schedule(schedule)
        await self.scheduler.update_job_schedule(stored)

        return Result.success(stored)

    async def pause_job(self, schedule_id: UUID) -> Result[JobSchedule]:
        schedule = await self.store.get_job_schedule_by_id(schedule_id)
        if schedule is None:
            return Result.failure(f"Job schedule {schedule_id} not found")

        await self.scheduler.pause_job(schedule)
        return Result.success(schedule)

    async def resume_job(self, schedule_id: UUID) -> Result[JobSchedule]:
        schedule = await self.store.get_job_schedule_by_id(schedule_id)
        if schedule is None:
            return Result.failure(f"Job schedule {schedule_id} not found")

        await self.scheduler.resume_job(schedule)
        return Result.success(schedule)

    async def delete_job(self, schedule_id: UUID) -> Result[JobSchedule]:
        """Delete a schedule record together with its live trigger."""
        schedule = await self.store.get_job_schedule_by_id(schedule_id)
        if schedule is None:
            return Result.failure(f"Job schedule {schedule_id} not found")

        await self.scheduler.delete_job(schedule)
        await self.store.delete_job_schedule(schedule_id)
        logger.info(f"Job schedule {schedule_id} deleted")

        return Result.success(schedule)
