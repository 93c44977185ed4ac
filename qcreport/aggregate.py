from collections.abc import Iterable
from datetime import date
import logging

from qcreport.compliance import classify, needs_review
from qcreport.dates import normalize
from qcreport.registry import lookup
from qcreport.schemas import STAGE_ORDER, ComplianceOutcome, DateWindow, StageStats, TableStats


logger = logging.getLogger(__name__)


def include(day: date | None, window: DateWindow) -> bool:
    if day is None:
        return False
    if window.start is not None and day < window.start:
        return False
    if window.end is not None and day > window.end:
        return False
    return True


def aggregate_table(type_id: str, records: Iterable[dict[str, object]], window: DateWindow) -> TableStats:
    entry = lookup(type_id)
    counts = {outcome: 0 for outcome in ComplianceOutcome}
    skipped = 0
    flagged = 0

    for record in records:
        raw_date = record.get(entry.date_field) if isinstance(record, dict) else None
        if not include(normalize(raw_date, entry.date_format), window):
            skipped += 1
            continue
        counts[classify(record, entry.rule_variant)] += 1
        if needs_review(record, entry.rule_variant, type_id):
            flagged += 1

    if skipped:
        logger.debug("records outside report window", extra={"table": type_id, "skipped": skipped})

    return TableStats(
        type_id=type_id,
        display_name=entry.display_name,
        stage=entry.stage,
        total=sum(counts.values()),
        comply=counts[ComplianceOutcome.COMPLY],
        not_comply=counts[ComplianceOutcome.NOT_COMPLY],
        pending=counts[ComplianceOutcome.PENDING],
        needs_review=flagged,
    )


def failed_table(type_id: str) -> TableStats:
    entry = lookup(type_id)
    return TableStats(type_id=type_id, display_name=entry.display_name, stage=entry.stage, source_ok=False)


def rollup_stages(tables: Iterable[TableStats]) -> list[StageStats]:
    totals = {stage: [0, 0, 0, 0, 0] for stage in STAGE_ORDER}
    for stats in tables:
        bucket = totals[stats.stage]
        bucket[0] += stats.total
        bucket[1] += stats.comply
        bucket[2] += stats.not_comply
        bucket[3] += stats.pending
        bucket[4] += stats.needs_review

    return [
        StageStats(
            stage=stage,
            total=total,
            comply=comply,
            not_comply=not_comply,
            pending=pending,
            needs_review=flagged,
        )
        for stage, (total, comply, not_comply, pending, flagged) in totals.items()
    ]


def grand_total(tables: Iterable[TableStats]) -> int:
    return sum(stats.total for stats in tables)
