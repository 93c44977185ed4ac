from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from qcreport.db_models import ReportRun, TableStatRow, utc_now
from qcreport.schemas import AggregateReport, DateWindow


def get_run_by_key(db: Session, run_key: str) -> ReportRun | None:
    stmt = select(ReportRun).where(ReportRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_or_get_run(
    db: Session,
    *,
    run_key: str,
    kind: str,
    window: DateWindow,
    trigger_source: str,
) -> tuple[ReportRun, bool]:
    run = ReportRun(
        run_key=run_key,
        month=window.start.month,
        year=window.start.year,
        kind=kind,
        window_start=window.start,
        window_end=window.end,
        trigger_source=trigger_source,
        status="queued",
    )
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Unique run_key keeps one ledger row per report request.
        db.rollback()
        existing = get_run_by_key(db, run_key)
        if existing:
            return existing, False
        raise

    db.refresh(run)
    return run, True


def reset_run_state(db: Session, run: ReportRun) -> None:
    db.execute(delete(TableStatRow).where(TableStatRow.run_id == run.id))

    run.status = "queued"
    run.error = None
    run.completed_at = None
    run.grand_total = 0
    run.not_comply = 0
    run.needs_review = 0
    run.failed_types = 0
    db.commit()


def mark_run_running(db: Session, run: ReportRun) -> None:
    run.status = "running"
    run.started_at = utc_now()
    run.error = None
    db.commit()


def mark_run_succeeded(db: Session, run: ReportRun, report: AggregateReport) -> None:
    run.status = "succeeded"
    run.grand_total = report.grand_total
    run.not_comply = report.not_comply
    run.needs_review = report.needs_review
    run.failed_types = len(report.failed_types)
    run.completed_at = utc_now()
    run.error = None
    db.commit()


def mark_run_failed(db: Session, run: ReportRun, *, error: str) -> None:
    run.status = "failed"
    run.error = error
    run.completed_at = utc_now()
    db.commit()


def store_table_stats(db: Session, *, run_id: int, report: AggregateReport) -> None:
    for stats in report.per_type:
        db.add(
            TableStatRow(
                run_id=run_id,
                type_id=stats.type_id,
                stage=stats.stage.value,
                total=stats.total,
                comply=stats.comply,
                not_comply=stats.not_comply,
                pending=stats.pending,
                needs_review=stats.needs_review,
                source_ok=stats.source_ok,
            )
        )
    db.commit()
