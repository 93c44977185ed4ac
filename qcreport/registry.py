from dataclasses import dataclass

from qcreport.dates import FORMAT_MMM_DD_YYYY, FORMAT_TIMESTAMP, FORMAT_YYYY_MM_DD
from qcreport.schemas import RuleVariant, Stage


class UnknownChecklistTypeError(KeyError):
    pass


@dataclass(frozen=True)
class VariantEntry:
    type_id: str
    display_name: str
    stage: Stage
    rule_variant: RuleVariant
    date_field: str = "date_string"
    date_format: str = FORMAT_MMM_DD_YYYY
    daily_summary: bool = True


_ENTRIES: tuple[VariantEntry, ...] = (
    VariantEntry("checklist_pre_operational_review", "Pre-Operational Review", Stage.PREOPERATIONAL, RuleVariant.ITEM_LIST),
    VariantEntry(
        "checklist_cleanliness_control_packing",
        "Cleanliness Control Packing",
        Stage.PREOPERATIONAL,
        RuleVariant.DEFAULT,
    ),
    VariantEntry("checklist_footbath_control", "Footbath Control", Stage.PREOPERATIONAL, RuleVariant.MEASUREMENTS),
    VariantEntry("checklist_staff_practices", "Staff Practices", Stage.PREOPERATIONAL, RuleVariant.PERSONNEL_MATERIALS),
    VariantEntry(
        "checklist_staff_glasses_auditory",
        "Staff Glasses Auditory",
        Stage.PREOPERATIONAL,
        RuleVariant.PERSONNEL_MATERIALS,
    ),
    VariantEntry(
        "checklist_staff_glasses_auditory_setup",
        "Staff Glasses Auditory Setup",
        Stage.PREOPERATIONAL,
        RuleVariant.PERSONNEL_MATERIALS,
    ),
    VariantEntry("checklist_materials_control", "Materials Control", Stage.PREOPERATIONAL, RuleVariant.PERSONNEL_MATERIALS),
    VariantEntry("checklist_metal_detector", "Metal Detector", Stage.OPERATIONAL, RuleVariant.READINGS),
    VariantEntry("checklist_producto_mix", "Producto Mix", Stage.OPERATIONAL, RuleVariant.DEFAULT),
    VariantEntry("checklist_weighing_sealing", "Weighing and Sealing", Stage.OPERATIONAL, RuleVariant.SEAL_ENTRIES),
    VariantEntry("checklist_foreign_material", "Foreign Material", Stage.OPERATIONAL, RuleVariant.FINDINGS),
    VariantEntry("checklist_envtemp", "Environmental Temperature", Stage.OPERATIONAL, RuleVariant.READINGS),
    VariantEntry(
        "checklist_calidad_monoproducto",
        "Monoproducto",
        Stage.OPERATIONAL,
        RuleVariant.DEFAULT,
        date_field="fecha",
        date_format=FORMAT_YYYY_MM_DD,
    ),
    VariantEntry("checklist_raw_material_quality", "Raw Material Quality", Stage.INBOUND_OUTBOUND, RuleVariant.BOX_SAMPLES),
    VariantEntry(
        "checklist_frozen_product_dispatch",
        "Frozen Product Dispatch",
        Stage.INBOUND_OUTBOUND,
        RuleVariant.INSPECTION_RESULT,
        date_field="date",
        date_format=FORMAT_TIMESTAMP,
        daily_summary=False,
    ),
)

REGISTRY: dict[str, VariantEntry] = {entry.type_id: entry for entry in _ENTRIES}
CHECKLIST_TYPES: tuple[str, ...] = tuple(entry.type_id for entry in _ENTRIES)
# Dispatch is a logistics checklist and stays out of the daily quality summary.
QUALITY_CHECKLIST_TYPES: tuple[str, ...] = tuple(entry.type_id for entry in _ENTRIES if entry.daily_summary)


def lookup(type_id: str) -> VariantEntry:
    try:
        return REGISTRY[type_id]
    except KeyError:
        raise UnknownChecklistTypeError(type_id) from None
