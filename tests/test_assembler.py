from datetime import UTC, date, datetime
import json

import pytest

from qcreport.pipeline import ReportAssembler, day_window, month_window, previous_month, yesterday
from qcreport.registry import CHECKLIST_TYPES, QUALITY_CHECKLIST_TYPES, UnknownChecklistTypeError
from qcreport.retry import RetryExhaustedError, RetryingSource, run_with_retries
from qcreport.schemas import DateWindow, Stage
from qcreport.sources import InMemoryRecordSource, JsonlRecordSource


JUNE = DateWindow(start=date(2025, 6, 1), end=date(2025, 6, 30))


class FailingSource(InMemoryRecordSource):
    def __init__(self, tables, failing: set[str]) -> None:
        super().__init__(tables)
        self.failing = failing

    def fetch(self, type_id: str) -> list[dict[str, object]]:
        if type_id in self.failing:
            raise ConnectionError(f"{type_id} unreachable")
        return super().fetch(type_id)


class FlakySource:
    def __init__(self, failures_before_success: int) -> None:
        self.failures_before_success = failures_before_success
        self.calls = 0

    def fetch(self, type_id: str) -> list[dict[str, object]]:
        self.calls += 1
        if self.calls <= self.failures_before_success:
            raise TimeoutError("slow store")
        return [{"date_string": "JUN-02-2025", "inspection_result": "Approve"}]


def _metal_detector_rows(total: int, not_comply: int) -> list[dict[str, object]]:
    rows = []
    for index in range(total):
        sensitivity = "No comply" if index < not_comply else "Comply"
        rows.append({"date_string": f"JUN-{index % 28 + 1:02d}-2025", "readings": [{"sensitivity": sensitivity}]})
    return rows


def test_month_window_covers_whole_month() -> None:
    assert month_window(2, 2024) == DateWindow(start=date(2024, 2, 1), end=date(2024, 2, 29))
    assert month_window(12, 2025) == DateWindow(start=date(2025, 12, 1), end=date(2025, 12, 31))
    with pytest.raises(ValueError):
        month_window(13, 2025)


def test_previous_month_wraps_year() -> None:
    assert previous_month(datetime(2026, 1, 10)) == (12, 2025)
    assert previous_month(date(2026, 10, 17)) == (9, 2026)


def test_day_window_is_a_single_day() -> None:
    assert day_window(date(2025, 6, 3)) == DateWindow(start=date(2025, 6, 3), end=date(2025, 6, 3))


def test_yesterday_uses_eastern_calendar_day() -> None:
    # 02:30 UTC on June 15 is still June 14 in New York.
    assert yesterday(datetime(2025, 6, 15, 2, 30, tzinfo=UTC)) == date(2025, 6, 13)
    assert yesterday(datetime(2025, 6, 15, 12, 0, tzinfo=UTC)) == date(2025, 6, 14)
    assert yesterday(datetime(2025, 1, 1, 4, 59, tzinfo=UTC)) == date(2024, 12, 30)


def test_report_lists_every_registered_type_in_order() -> None:
    report = ReportAssembler(InMemoryRecordSource({})).assemble(JUNE)

    assert [stats.type_id for stats in report.per_type] == list(CHECKLIST_TYPES)
    assert [stats.stage for stats in report.per_stage] == [
        Stage.PREOPERATIONAL,
        Stage.OPERATIONAL,
        Stage.INBOUND_OUTBOUND,
    ]
    assert report.grand_total == 0
    assert report.failed_types == ()


def test_stage_rollup_end_to_end() -> None:
    source = InMemoryRecordSource(
        {
            "checklist_metal_detector": _metal_detector_rows(10, 2),
            "checklist_envtemp": _metal_detector_rows(5, 1),
            "checklist_weighing_sealing": [],
        }
    )
    type_ids = ("checklist_metal_detector", "checklist_envtemp", "checklist_weighing_sealing")

    report = ReportAssembler(source, type_ids=type_ids).assemble(JUNE)

    operational = next(stats for stats in report.per_stage if stats.stage == Stage.OPERATIONAL)
    assert (operational.total, operational.not_comply) == (15, 3)
    assert report.grand_total == 15
    assert report.not_comply == 3


def test_fetch_failure_is_isolated_to_its_table() -> None:
    source = FailingSource(
        {
            "checklist_metal_detector": _metal_detector_rows(4, 1),
            "checklist_footbath_control": [
                {"date_string": "JUN-03-2025", "measurements": [{"measurePpmValue": 150}]},
            ],
        },
        failing={"checklist_foreign_material"},
    )

    report = ReportAssembler(source, max_workers=8).assemble(JUNE)
    by_type = {stats.type_id: stats for stats in report.per_type}

    failed = by_type["checklist_foreign_material"]
    assert (failed.total, failed.not_comply, failed.source_ok) == (0, 0, False)
    assert report.failed_types == ("checklist_foreign_material",)

    assert (by_type["checklist_metal_detector"].total, by_type["checklist_metal_detector"].not_comply) == (4, 1)
    assert by_type["checklist_footbath_control"].not_comply == 1
    assert report.grand_total == 5


def test_unknown_type_is_not_swallowed() -> None:
    assembler = ReportAssembler(InMemoryRecordSource({}), type_ids=("checklist_unknown",))

    with pytest.raises(UnknownChecklistTypeError):
        assembler.assemble(JUNE)


def test_report_serializes_for_renderers() -> None:
    source = InMemoryRecordSource({"checklist_metal_detector": _metal_detector_rows(3, 1)})
    payload = ReportAssembler(source).assemble(JUNE).to_dict()

    assert payload["window"] == {"start": "2025-06-01", "end": "2025-06-30"}
    assert payload["grand_total"] == 3
    assert payload["not_comply"] == 1
    assert [row["stage"] for row in payload["per_stage"]] == ["preoperational", "operational", "inbound-outbound"]
    json.dumps(payload)


def test_jsonl_source_reads_one_file_per_table(tmp_path) -> None:
    (tmp_path / "checklist_metal_detector.jsonl").write_text(
        json.dumps({"date_string": "JUN-01-2025"}) + "\n\n" + json.dumps({"date_string": "JUN-02-2025"}) + "\n",
        encoding="utf-8",
    )
    source = JsonlRecordSource(tmp_path)

    assert len(source.fetch("checklist_metal_detector")) == 2
    with pytest.raises(FileNotFoundError):
        source.fetch("checklist_envtemp")


def test_retrying_source_recovers_from_transient_errors() -> None:
    flaky = FlakySource(failures_before_success=1)
    source = RetryingSource(flaky, max_retries=2, backoff_seconds=0)

    assert len(source.fetch("checklist_frozen_product_dispatch")) == 1
    assert flaky.calls == 2


def test_retrying_source_gives_up_after_max_retries() -> None:
    flaky = FlakySource(failures_before_success=5)
    source = RetryingSource(flaky, max_retries=1, backoff_seconds=0)

    with pytest.raises(RetryExhaustedError) as excinfo:
        source.fetch("checklist_frozen_product_dispatch")
    assert excinfo.value.attempts == 2
    assert flaky.calls == 2


def test_missing_export_is_not_retried(tmp_path) -> None:
    source = RetryingSource(JsonlRecordSource(tmp_path), max_retries=3, backoff_seconds=0)

    with pytest.raises(RetryExhaustedError) as excinfo:
        source.fetch("checklist_envtemp")
    assert excinfo.value.attempts == 1
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_run_with_retries_reports_each_failed_attempt() -> None:
    attempts: list[int] = []

    def always_fails() -> None:
        raise ConnectionError("down")

    with pytest.raises(RetryExhaustedError):
        run_with_retries(
            always_fails,
            max_retries=2,
            backoff_seconds=0,
            on_attempt_failure=lambda attempt, exc: attempts.append(attempt),
        )
    assert attempts == [1, 2, 3]


def test_skip_empty_drops_tables_without_records_but_keeps_failures() -> None:
    source = FailingSource(
        {
            "checklist_metal_detector": _metal_detector_rows(4, 1),
            "checklist_envtemp": [{"date_string": "JUN-02-2025", "readings": [{"averageTemp": 60}]}],
        },
        failing={"checklist_foreign_material"},
    )

    report = ReportAssembler(source, type_ids=QUALITY_CHECKLIST_TYPES, skip_empty=True).assemble(
        day_window(date(2025, 6, 2))
    )

    assert [stats.type_id for stats in report.per_type] == [
        "checklist_metal_detector",
        "checklist_foreign_material",
        "checklist_envtemp",
    ]
    assert report.failed_types == ("checklist_foreign_material",)
    assert report.grand_total == 2
    assert report.not_comply == 0
    assert report.needs_review == 1
    assert len(report.per_stage) == 3
