"""APScheduler configuration and job management."""

from datetime import datetime, timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cinerec.config import Config
from cinerec.logging import get_logger

logger = get_logger(__name__)

_scheduler: AsyncIOScheduler | None = None

RECOMMENDATION_JOB_ID = "recommendation_job"
STARTUP_RUN_JOB_ID = "recommendation_job_startup"

# Crontab numbering: 0 and 7 are Sunday.
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _weekday_number(token: str) -> int:
    token = token.strip().lower()
    if token.isdigit():
        number = int(token)
        if number > 7:
            raise ValueError(f"Invalid day of week: {token}")
        return number
    if token[:3] in _WEEKDAY_NAMES:
        return _WEEKDAY_NAMES.index(token[:3])
    raise ValueError(f"Invalid day of week: {token}")


def _translate_day_of_week(field: str) -> str:
    """Convert a crontab day-of-week field into APScheduler weekday names.

    APScheduler numbers weekdays from Monday, so numeric crontab values cannot be
    passed through unchanged.
    """
    if field in ("*", "?"):
        return "*"

    names: list[str] = []
    for part in field.split(","):
        base, _, step_str = part.partition("/")
        step = int(step_str) if step_str else 1
        if step < 1:
            raise ValueError(f"Invalid day-of-week step: {part}")

        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start, end = _weekday_number(first), _weekday_number(last)
        else:
            start = _weekday_number(base)
            end = 6 if step_str else start

        if end < start:
            raise ValueError(f"Invalid day-of-week range: {part}")

        for number in range(start, end + 1, step):
            name = _WEEKDAY_NAMES[number % 7]
            if name not in names:
                names.append(name)

    return ",".join(names)


def crontab_trigger(expression: str, tz=None) -> CronTrigger:
    """Build a ``CronTrigger`` from a standard five-field crontab expression.

    Raises:
        ValueError: If the expression is malformed
    """
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(
            f"Wrong number of fields in crontab expression; got {len(fields)}, expected 5"
        )

    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_translate_day_of_week(day_of_week),
        timezone=tz,
    )


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global _scheduler

    if _scheduler is None:
        logger.info("Creating scheduler")
        _scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )

    return _scheduler


def start_scheduler() -> None:
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        logger.info("Starting scheduler")
        scheduler.start()


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        logger.info("Shutting down scheduler")
        _scheduler.shutdown(wait=True)
    _scheduler = None


async def run_scheduled_recommendation_job(
    config: Config,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Scheduler entry point; a failed run is logged and retried on the next tick."""
    from cinerec.jobs.recommendation_job import run_recommendation_job

    try:
        await run_recommendation_job(config, session_factory)
    except Exception as e:
        logger.exception(f"Scheduled recommendation job failed: {e}")


def setup_recommendation_jobs(
    config: Config,
    session_factory: async_sessionmaker[AsyncSession],
    run_on_startup: bool = True,
) -> list[str]:
    """Register the cron job and, optionally, one immediate run.

    Raises:
        ValueError: If ``config.schedule`` is not a valid crontab expression
    """
    scheduler = get_scheduler()
    trigger = crontab_trigger(config.schedule)
    kwargs = {"config": config, "session_factory": session_factory}
    job_ids: list[str] = []

    if run_on_startup:
        job = scheduler.add_job(
            run_scheduled_recommendation_job,
            "date",
            run_date=datetime.now(timezone.utc),
            id=STARTUP_RUN_JOB_ID,
            name="Recommendations (startup run)",
            replace_existing=True,
            kwargs=kwargs,
        )
        job_ids.append(job.id)
        logger.info(f"Scheduled startup recommendation run, job_id={job.id}")

    job = scheduler.add_job(
        run_scheduled_recommendation_job,
        trigger,
        id=RECOMMENDATION_JOB_ID,
        name="Recommendations",
        replace_existing=True,
        kwargs=kwargs,
    )
    job_ids.append(job.id)
    logger.info(
        f"Scheduled recommendation job: cron='{config.schedule}', job_id={job.id}"
    )
    return job_ids
