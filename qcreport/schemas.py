from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class Stage(str, Enum):
    PREOPERATIONAL = "preoperational"
    OPERATIONAL = "operational"
    INBOUND_OUTBOUND = "inbound-outbound"


STAGE_ORDER: tuple[Stage, ...] = (Stage.PREOPERATIONAL, Stage.OPERATIONAL, Stage.INBOUND_OUTBOUND)


class ComplianceOutcome(str, Enum):
    COMPLY = "comply"
    NOT_COMPLY = "not_comply"
    PENDING = "pending"


class RuleVariant(str, Enum):
    ITEM_LIST = "item_list"
    SEAL_ENTRIES = "seal_entries"
    MEASUREMENTS = "measurements"
    READINGS = "readings"
    PERSONNEL_MATERIALS = "personnel_materials"
    FINDINGS = "findings"
    INSPECTION_RESULT = "inspection_result"
    BOX_SAMPLES = "box_samples"
    DEFAULT = "default"


@dataclass(frozen=True)
class DateWindow:
    start: date | None = None
    end: date | None = None


@dataclass(frozen=True)
class TableStats:
    type_id: str
    display_name: str
    stage: Stage
    total: int = 0
    comply: int = 0
    not_comply: int = 0
    pending: int = 0
    needs_review: int = 0
    source_ok: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "type_id": self.type_id,
            "display_name": self.display_name,
            "stage": self.stage.value,
            "total": self.total,
            "comply": self.comply,
            "not_comply": self.not_comply,
            "pending": self.pending,
            "needs_review": self.needs_review,
            "source_ok": self.source_ok,
        }


@dataclass(frozen=True)
class StageStats:
    stage: Stage
    total: int = 0
    comply: int = 0
    not_comply: int = 0
    pending: int = 0
    needs_review: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "stage": self.stage.value,
            "total": self.total,
            "comply": self.comply,
            "not_comply": self.not_comply,
            "pending": self.pending,
            "needs_review": self.needs_review,
        }


@dataclass(frozen=True)
class AggregateReport:
    window: DateWindow
    per_type: tuple[TableStats, ...]
    per_stage: tuple[StageStats, ...]
    grand_total: int
    failed_types: tuple[str, ...] = field(default=())

    @property
    def not_comply(self) -> int:
        return sum(stats.not_comply for stats in self.per_type)

    @property
    def needs_review(self) -> int:
        return sum(stats.needs_review for stats in self.per_type)

    def to_dict(self) -> dict[str, object]:
        return {
            "window": {
                "start": self.window.start.isoformat() if self.window.start else None,
                "end": self.window.end.isoformat() if self.window.end else None,
            },
            "per_type": [stats.to_dict() for stats in self.per_type],
            "per_stage": [stats.to_dict() for stats in self.per_stage],
            "grand_total": self.grand_total,
            "not_comply": self.not_comply,
            "needs_review": self.needs_review,
            "failed_types": list(self.failed_types),
        }


@dataclass(frozen=True)
class ReportResult:
    run_id: int
    run_key: str
    month: int
    year: int
    trigger_source: str
    status: str
    grand_total: int
    not_comply: int
    failed_types: int
    report_path: str | None
    reused_existing_run: bool
    kind: str = "monthly"
    needs_review: int = 0
