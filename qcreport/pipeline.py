from calendar import monthrange
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, date, datetime, timedelta
import json
import logging
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from qcreport.aggregate import aggregate_table, failed_table, grand_total, rollup_stages
from qcreport.config import Settings
from qcreport.dates import to_eastern
from qcreport.db_models import ReportRun, utc_now
from qcreport.registry import CHECKLIST_TYPES, QUALITY_CHECKLIST_TYPES, UnknownChecklistTypeError
from qcreport.retry import RetryingSource
from qcreport.run_store import (
    create_or_get_run,
    mark_run_failed,
    mark_run_running,
    mark_run_succeeded,
    reset_run_state,
    store_table_stats,
)
from qcreport.schemas import AggregateReport, DateWindow, ReportResult, TableStats
from qcreport.sources import JsonlRecordSource, RecordSource


logger = logging.getLogger(__name__)


def month_window(month: int, year: int) -> DateWindow:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    return DateWindow(start=date(year, month, 1), end=date(year, month, monthrange(year, month)[1]))


def previous_month(now: datetime | date) -> tuple[int, int]:
    if now.month == 1:
        return 12, now.year - 1
    return now.month - 1, now.year


def day_window(day: date) -> DateWindow:
    return DateWindow(start=day, end=day)


def yesterday(now: datetime | None = None) -> date:
    """The plant's previous calendar day, in US Eastern time."""
    return to_eastern(now or datetime.now(UTC)).date() - timedelta(days=1)


class ReportAssembler:
    """Builds one compliance report across every registered checklist table.

    Tables are fetched and aggregated independently. A table whose fetch or
    aggregation fails is reported with zero counts and ``source_ok=False``
    while the remaining tables are unaffected. With ``skip_empty`` a table with
    no records in the window is left out of ``per_type``; unavailable tables are
    always kept so they still show up in ``failed_types``.
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        type_ids: tuple[str, ...] = CHECKLIST_TYPES,
        max_workers: int = 4,
        skip_empty: bool = False,
    ) -> None:
        self.source = source
        self.type_ids = type_ids
        self.max_workers = max_workers
        self.skip_empty = skip_empty

    def assemble(self, window: DateWindow) -> AggregateReport:
        results: dict[str, TableStats] = {}

        with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as executor:
            futures = {executor.submit(self._table_stats, type_id, window): type_id for type_id in self.type_ids}
            for future in as_completed(futures):
                type_id = futures[future]
                results[type_id] = future.result()

        per_type = tuple(results[type_id] for type_id in self.type_ids)
        if self.skip_empty:
            per_type = tuple(stats for stats in per_type if stats.total or not stats.source_ok)
        return AggregateReport(
            window=window,
            per_type=per_type,
            per_stage=tuple(rollup_stages(per_type)),
            grand_total=grand_total(per_type),
            failed_types=tuple(stats.type_id for stats in per_type if not stats.source_ok),
        )

    def _table_stats(self, type_id: str, window: DateWindow) -> TableStats:
        try:
            records = self.source.fetch(type_id)
            stats = aggregate_table(type_id, records, window)
        except UnknownChecklistTypeError:
            raise
        except Exception as exc:
            logger.warning(
                "checklist table unavailable, reporting zero stats",
                extra={"table": type_id, "error": str(exc)},
            )
            return failed_table(type_id)

        logger.info(
            "checklist table aggregated",
            extra={"table": type_id, "total": stats.total, "not_comply": stats.not_comply, "needs_review": stats.needs_review},
        )
        return stats


class ReportRunner:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session], source: RecordSource | None = None) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.source = source or JsonlRecordSource(settings.input_dir)

    def run(self, *, month: int, year: int, run_key: str, trigger_source: str = "manual") -> ReportResult:
        return self._execute(
            kind="monthly",
            window=month_window(month, year),
            run_key=run_key,
            trigger_source=trigger_source,
        )

    def run_daily(self, *, day: date, run_key: str, trigger_source: str = "manual") -> ReportResult:
        """Daily quality summary: one day, quality tables only, empty tables left out."""
        return self._execute(
            kind="daily",
            window=day_window(day),
            run_key=run_key,
            trigger_source=trigger_source,
            type_ids=QUALITY_CHECKLIST_TYPES,
            skip_empty=True,
        )

    def _execute(
        self,
        *,
        kind: str,
        window: DateWindow,
        run_key: str,
        trigger_source: str,
        type_ids: tuple[str, ...] = CHECKLIST_TYPES,
        skip_empty: bool = False,
    ) -> ReportResult:
        with self.session_factory() as db:
            run, created = create_or_get_run(db, run_key=run_key, kind=kind, window=window, trigger_source=trigger_source)
            if not created:
                if run.status == "failed" or self._is_stale(run):
                    logger.info("retrying unfinished report", extra={"run_key": run_key, "status": run.status})
                    reset_run_state(db, run)
                else:
                    logger.info("idempotent report reused", extra={"run_key": run_key, "status": run.status})
                    return self._result_from_run(run, reused_existing_run=True)

            mark_run_running(db, run)

            try:
                assembler = ReportAssembler(
                    RetryingSource(
                        self.source,
                        max_retries=self.settings.max_fetch_retries,
                        backoff_seconds=self.settings.retry_backoff_seconds,
                    ),
                    type_ids=type_ids,
                    max_workers=self.settings.max_workers,
                    skip_empty=skip_empty,
                )
                report = assembler.assemble(window)
                self._publish_report(run, report)
                store_table_stats(db, run_id=run.id, report=report)
                mark_run_succeeded(db, run, report)
            except Exception as exc:
                mark_run_failed(db, run, error=str(exc))
                logger.exception("report run failed", extra={"run_key": run_key})
                return self._result_from_run(run, reused_existing_run=False)

            if report.failed_types:
                logger.warning(
                    "report published with unavailable tables",
                    extra={"run_key": run_key, "failed_types": list(report.failed_types)},
                )
            return self._result_from_run(run, reused_existing_run=False)

    def _is_stale(self, run: ReportRun) -> bool:
        # A run still marked running after this long was left behind by a crashed process.
        if run.status != "running" or run.started_at is None:
            return False
        return utc_now() - run.started_at > timedelta(minutes=self.settings.stale_run_minutes)

    def _publish_report(self, run: ReportRun, report: AggregateReport) -> None:
        payload = {"run_key": run.run_key, "kind": run.kind, "month": run.month, "year": run.year, **report.to_dict()}
        write_json(Path(self._report_path(run.run_key)), payload)

    def _report_path(self, run_key: str) -> str:
        return str(Path(self.settings.output_dir) / "reports" / f"{run_key}.json")

    def _result_from_run(self, run: ReportRun, reused_existing_run: bool) -> ReportResult:
        return ReportResult(
            run_id=run.id,
            run_key=run.run_key,
            month=run.month,
            year=run.year,
            trigger_source=run.trigger_source,
            status=run.status,
            grand_total=run.grand_total,
            not_comply=run.not_comply,
            failed_types=run.failed_types,
            report_path=self._report_path(run.run_key),
            reused_existing_run=reused_existing_run,
            kind=run.kind,
            needs_review=run.needs_review,
        )


def write_json(path: Path, payload: dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2, sort_keys=True)
        outfile.write("\n")
