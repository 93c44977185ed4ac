from datetime import UTC, date, datetime
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from qcreport.config import Settings
from qcreport.pipeline import ReportRunner, previous_month, yesterday
from qcreport.schemas import ReportResult


logger = logging.getLogger(__name__)


def scheduled_run_key(month: int, year: int) -> str:
    return f"scheduled-{year:04d}-{month:02d}"


def scheduled_daily_run_key(day: date) -> str:
    return f"scheduled-daily-{day.isoformat()}"


def _log_result(result: ReportResult) -> None:
    if result.status == "failed":
        logger.error(
            "scheduled report run failed",
            extra={
                "run_key": result.run_key,
                "status": result.status,
                "reused_existing_run": result.reused_existing_run,
            },
        )
        return
    logger.info(
        "scheduled report run completed",
        extra={
            "run_key": result.run_key,
            "kind": result.kind,
            "status": result.status,
            "grand_total": result.grand_total,
            "needs_review": result.needs_review,
            "failed_types": result.failed_types,
            "reused_existing_run": result.reused_existing_run,
        },
    )


def _run_monthly_report(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    month, year = previous_month(datetime.now(UTC))

    runner = ReportRunner(settings, session_factory)
    _log_result(runner.run(month=month, year=year, run_key=scheduled_run_key(month, year), trigger_source="scheduled"))


def _run_daily_summary(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    day = yesterday()

    runner = ReportRunner(settings, session_factory)
    _log_result(runner.run_daily(day=day, run_key=scheduled_daily_run_key(day), trigger_source="scheduled"))


def start_scheduler(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_monthly_report,
        "cron",
        args=[settings, session_factory],
        day=settings.schedule_day,
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="monthly_compliance_report",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_daily_summary,
        "cron",
        args=[settings, session_factory],
        hour=settings.daily_hour_utc,
        minute=settings.daily_minute_utc,
        id="daily_quality_summary",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "schedule_day": settings.schedule_day,
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
            "daily_hour_utc": settings.daily_hour_utc,
            "daily_minute_utc": settings.daily_minute_utc,
        },
    )

    if run_now:
        _run_monthly_report(settings, session_factory)
        _run_daily_summary(settings, session_factory)

    scheduler.start()
