"""Live cron triggers for persisted job schedules, backed by APScheduler.

Each ``JobSchedule`` maps to at most one APScheduler job. The job id is
``"{schedule.id}.job"`` and its name ``"{schedule.id}.trigger"``, so the live
job is always recoverable from the schedule itself.
"""

import logging
from typing import Iterable, Optional
from uuid import UUID

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..errors import InvalidCronExpressionError
from ..models import JobSchedule
from .jobs import CronJob

logger = logging.getLogger(__name__)


def job_key(schedule_id: UUID) -> str:
    return f"{schedule_id}.job"


def trigger_key(schedule_id: UUID) -> str:
    return f"{schedule_id}.trigger"


# Numeric weekday conventions: (lowest, highest, converter to APScheduler's 0=Monday)
CRONTAB_WEEKDAYS = (0, 7, lambda day: (day - 1) % 7)  # 0 and 7 are Sunday
QUARTZ_WEEKDAYS = (1, 7, lambda day: (day + 5) % 7)  # 1 is Sunday


def _translate_weekday_element(element: str, convention) -> str:
    lowest, highest, convert = convention
    base, _, step = element.partition("/")

    # Names (mon, tue-fri) mean the same thing everywhere
    if base != "*" and not any(ch.isdigit() for ch in base):
        return element

    if base == "*":
        if not step:
            return element
        first, last = lowest, highest
    elif "-" in base:
        first, last = (int(part) for part in base.split("-", 1))
    else:
        first = last = int(base)
        if step:
            last = highest

    if first < lowest or last > highest:
        raise ValueError(f"day of week {element!r} out of range {lowest}-{highest}")

    days = sorted({convert(day) for day in range(first, last + 1, int(step or 1))})
    if not days:
        raise ValueError(f"day of week {element!r} matches no day")

    return ",".join(str(day) for day in days)


def translate_day_of_week(field: Optional[str], convention=CRONTAB_WEEKDAYS) -> Optional[str]:
    """Rewrite a numeric day-of-week field into APScheduler's Monday-based numbering.

    Ranges and steps are expanded element by element, so ``0-6`` (Sunday to
    Saturday) and ``*/2`` keep their meaning. Weekday names pass through.
    """
    if field is None or field == "*":
        return field
    return ",".join(_translate_weekday_element(element, convention) for element in field.split(","))


def build_cron_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a cron expression into a trigger.

    Accepts a standard 5-field crontab line (weekdays 0-7, Sunday is 0 or 7),
    or a 6/7-field Quartz expression with a leading seconds field and optional
    trailing year (weekdays 1-7, Sunday is 1). ``?`` means any value.

    Args:
        expression: Cron expression
        timezone: Timezone the expression is evaluated in

    Returns:
        CronTrigger: Parsed trigger

    Raises:
        InvalidCronExpressionError: If the expression cannot be parsed
    """
    fields = expression.split() if expression else []

    try:
        if len(fields) == 5:
            minute, hour, day, month, day_of_week = fields
            return CronTrigger(
                month=month,
                day=day,
                day_of_week=translate_day_of_week(day_of_week, CRONTAB_WEEKDAYS),
                hour=hour,
                minute=minute,
                timezone=timezone,
            )

        if len(fields) in (6, 7):
            values = [None if value == "?" else value for value in fields]
            second, minute, hour, day, month, day_of_week = values[:6]
            return CronTrigger(
                year=values[6] if len(values) == 7 else None,
                month=month,
                day=day,
                day_of_week=translate_day_of_week(day_of_week, QUARTZ_WEEKDAYS),
                hour=hour,
                minute=minute,
                second=second,
                timezone=timezone,
            )
    except ValueError as e:
        raise InvalidCronExpressionError(f"Invalid cron expression {expression!r}: {e}") from e

    raise InvalidCronExpressionError(
        f"Invalid cron expression {expression!r}: expected 5, 6 or 7 fields, got {len(fields)}"
    )


def is_valid_cron_expression(expression: str) -> bool:
    try:
        build_cron_trigger(expression)
    except InvalidCronExpressionError:
        return False
    return True


class JobSchedulerService:
    """Owns the process-wide scheduler and the jobs registered on it."""

    def __init__(
        self,
        cron_job: CronJob,
        timezone: str = "UTC",
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """Initialize the scheduler service.

        Args:
            cron_job: Job executed every time a trigger fires
            timezone: Timezone for cron evaluation
            scheduler: Existing scheduler to use; created on first use if None
        """
        self.cron_job = cron_job
        self.timezone = timezone
        self._scheduler = scheduler

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._ensure_scheduler()

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.timezone)
            logger.info("Scheduler created")
        return self._scheduler

    def _start_if_needed(self) -> None:
        scheduler = self._ensure_scheduler()
        if not scheduler.running:
            scheduler.start()
            logger.info("Scheduler started")

    def _add_job(self, schedule: JobSchedule, trigger: CronTrigger) -> Job:
        description = f"CronJob [{schedule.user_id}]"
        return self._ensure_scheduler().add_job(
            self.cron_job.execute,
            trigger=trigger,
            id=job_key(schedule.id),
            name=trigger_key(schedule.id),
            kwargs={"user_id": schedule.user_id, "description": description},
            max_instances=1,
            coalesce=True,
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self, schedules: Iterable[JobSchedule]) -> None:
        """Register every persisted schedule and start the scheduler.

        A schedule with an invalid cron expression is logged and skipped; it
        never stops the remaining schedules from being registered.

        Args:
            schedules: Schedules known at startup
        """
        scheduler = self._ensure_scheduler()
        registered = 0

        for schedule in schedules:
            try:
                trigger = build_cron_trigger(schedule.cron_expression, self.timezone)
            except InvalidCronExpressionError as e:
                logger.error(f"Invalid CronJob: {schedule.id} - {e}")
                continue

            if scheduler.get_job(job_key(schedule.id)) is not None:
                logger.warning(f"Schedule {schedule.id} is already registered, skipping")
                continue

            self._add_job(schedule, trigger)
            registered += 1

        logger.info(f"Registered {registered} schedule(s)")
        self._start_if_needed()

    async def stop(self) -> None:
        """Shut down the scheduler if it was started."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    # ========================================================================
    # Per-schedule operations
    # ========================================================================

    async def schedule_job(self, schedule: JobSchedule) -> None:
        """Register a live trigger for a schedule.

        Raises:
            ValueError: If schedule is None
            InvalidCronExpressionError: If the cron expression is invalid
            apscheduler.jobstores.base.ConflictingIdError: If the schedule is
                already registered and the scheduler is running
        """
        if schedule is None:
            raise ValueError("schedule must not be None")

        trigger = build_cron_trigger(schedule.cron_expression, self.timezone)
        self._add_job(schedule, trigger)
        logger.info(f"Scheduled {job_key(schedule.id)} with cron {schedule.cron_expression!r}")

        self._start_if_needed()

    async def update_job_schedule(self, schedule: JobSchedule) -> None:
        """Replace the live trigger of a schedule, creating it if absent."""
        if schedule is None:
            raise ValueError("schedule must not be None")

        # Validate before touching the existing job
        build_cron_trigger(schedule.cron_expression, self.timezone)

        await self.delete_job(schedule)
        await self.schedule_job(schedule)

    reschedule_job = update_job_schedule

    async def delete_job(self, schedule: JobSchedule) -> None:
        """Remove the live trigger of a schedule; absent jobs are a no-op."""
        if schedule is None:
            raise ValueError("schedule must not be None")

        scheduler = self._ensure_scheduler()
        key = job_key(schedule.id)

        if scheduler.get_job(key) is not None:
            scheduler.remove_job(key)
            logger.info(f"Removed {key}")

    remove_job = delete_job

    async def pause_job(self, schedule: JobSchedule) -> None:
        """Stop a schedule from firing until it is resumed."""
        if schedule is None:
            raise ValueError("schedule must not be None")

        scheduler = self._ensure_scheduler()
        key = job_key(schedule.id)

        if scheduler.get_job(key) is None:
            logger.warning(f"Cannot pause {key}: not scheduled")
            return

        scheduler.pause_job(key)
        logger.info(f"Paused {key}")

    async def resume_job(self, schedule: JobSchedule) -> None:
        """Resume a paused schedule."""
        if schedule is None:
            raise ValueError("schedule must not be None")

        scheduler = self._ensure_scheduler()
        key = job_key(schedule.id)

        if scheduler.get_job(key) is None:
            logger.warning(f"Cannot resume {key}: not scheduled")
            return

        scheduler.resume_job(key)
        logger.info(f"Resumed {key}")

    # ========================================================================
    # Inspection
    # ========================================================================

    def get_job(self, schedule_id: UUID) -> Optional[Job]:
        return self._ensure_scheduler().get_job(job_key(schedule_id))

    def is_scheduled(self, schedule_id: UUID) -> bool:
        return self.get_job(schedule_id) is not None

    def is_paused(self, schedule_id: UUID) -> bool:
        job = self.get_job(schedule_id)
        return job is not None and job.next_run_time is None
