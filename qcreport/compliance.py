"""
Compliance and review rules per checklist shape.

Each rule variant reads only the fields its checklist type stores. A record
whose expected list is missing or malformed is reported as pending rather
than raising, so one bad row never breaks a report.
"""
from collections.abc import Callable
import re

from qcreport.schemas import ComplianceOutcome, RuleVariant


Record = dict[str, object]

COMPLY = ComplianceOutcome.COMPLY
NOT_COMPLY = ComplianceOutcome.NOT_COMPLY
PENDING = ComplianceOutcome.PENDING

MIN_FOOTBATH_PPM = 200
NO_COMPLY = "No comply"
BAD_MATERIAL_STATUS = "Bad/Malo"
SEAL_FAILURE_MARKERS = ("not comply", "no comply")


def _entries(record: Record, field_name: str) -> list[dict[str, object]] | None:
    value = record.get(field_name)
    if not isinstance(value, list):
        return None
    return [entry if isinstance(entry, dict) else {} for entry in value]


def _has_text(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _loose_number(value: object) -> float | None:
    """Read a stored numeric field the way the checklist pages compare it.

    Pages save an unparseable input as null and some exports keep numbers as
    strings, so null and blank strings count as 0 and numeric strings as
    their value. Anything else has no numeric reading.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return None
    return None


def _corrective_accepted(value: object) -> bool:
    return value is True or value is None


def classify_item_list(record: Record) -> ComplianceOutcome:
    items = _entries(record, "items")
    if items is None:
        return PENDING

    if any(item.get("comply") is False or item.get("correctiveActionComply") is False for item in items):
        return NOT_COMPLY

    all_comply = all(
        item.get("comply") is True and _corrective_accepted(item.get("correctiveActionComply"))
        for item in items
    )
    return COMPLY if all_comply else PENDING


def classify_seal_entries(record: Record) -> ComplianceOutcome:
    entries = _entries(record, "bag_entries")
    if entries is None:
        return PENDING

    for entry in entries:
        sealed = entry.get("sealed")
        if not isinstance(sealed, list):
            continue
        for seal in sealed:
            if not isinstance(seal, str):
                continue
            lowered = seal.lower()
            if any(marker in lowered for marker in SEAL_FAILURE_MARKERS):
                return NOT_COMPLY
    return COMPLY


def classify_measurements(record: Record) -> ComplianceOutcome:
    measurements = _entries(record, "measurements")
    if measurements is None:
        return PENDING

    for measurement in measurements:
        if _has_text(measurement.get("correctiveAction")):
            return NOT_COMPLY
        if "measurePpmValue" not in measurement:
            continue
        ppm = _loose_number(measurement["measurePpmValue"])
        if ppm is not None and ppm < MIN_FOOTBATH_PPM:
            return NOT_COMPLY
    return COMPLY


def classify_readings(record: Record) -> ComplianceOutcome:
    readings = _entries(record, "readings")
    if readings is None:
        return PENDING

    for reading in readings:
        if NO_COMPLY in (reading.get("sensitivity"), reading.get("noiseAlarm"), reading.get("rejectingArm")):
            return NOT_COMPLY
        if _has_text(reading.get("observation")) or _has_text(reading.get("correctiveActions")):
            return NOT_COMPLY
    return COMPLY


def classify_personnel_materials(record: Record) -> ComplianceOutcome:
    materials = _entries(record, "personnel_materials")
    if materials is None:
        return PENDING

    for material in materials:
        if BAD_MATERIAL_STATUS in (material.get("materialStatus"), material.get("materialStatusReceived")):
            return NOT_COMPLY
    return COMPLY


def classify_findings(record: Record) -> ComplianceOutcome:
    findings = record.get("findings")
    if not isinstance(findings, list):
        return PENDING
    if record.get("no_findings") is True:
        return COMPLY
    if findings:
        return NOT_COMPLY
    return PENDING


def classify_inspection_result(record: Record) -> ComplianceOutcome:
    result = record.get("inspection_result")
    if result == "Reject":
        return NOT_COMPLY
    if result == "Approve":
        return COMPLY
    return PENDING


def classify_manual_review(record: Record) -> ComplianceOutcome:
    # No automated rule exists for these shapes yet.
    return PENDING


RULES: dict[RuleVariant, Callable[[Record], ComplianceOutcome]] = {
    RuleVariant.ITEM_LIST: classify_item_list,
    RuleVariant.SEAL_ENTRIES: classify_seal_entries,
    RuleVariant.MEASUREMENTS: classify_measurements,
    RuleVariant.READINGS: classify_readings,
    RuleVariant.PERSONNEL_MATERIALS: classify_personnel_materials,
    RuleVariant.FINDINGS: classify_findings,
    RuleVariant.INSPECTION_RESULT: classify_inspection_result,
    RuleVariant.BOX_SAMPLES: classify_manual_review,
    RuleVariant.DEFAULT: classify_manual_review,
}


def classify(record: Record, rule_variant: RuleVariant) -> ComplianceOutcome:
    if not isinstance(record, dict):
        return PENDING
    return RULES[rule_variant](record)


# Daily summary review rules. A record needs review when it does not comply
# or when one of these out-of-range checks for its table fires.

STAFF_PRACTICE_FIELDS = (
    "staffAppearance",
    "completeUniform",
    "accessoriesAbsence",
    "workToolsUsage",
    "cutCleanNotPolishedNails",
    "noMakeupOn",
    "staffBehavior",
    "staffHealth",
)
GLASSES_NOT_COMPLY = "not_comply"
METAL_DETECTOR_FIELDS = ("sensitivity", "noiseAlarm", "rejectingArm", "beaconLight")
NOT_DETECTED = "ND"
RLU_CAUTION = 20
ENVTEMP_MAX_F = 50
ENVTEMP_MIN_F = 42
ENVTEMP_OUT_OF_LIMIT = ("Over Limit", "Under Limit")
FRUIT_SHARE_TOLERANCE = 5
BAG_WEIGHT_TOLERANCE_PERCENT = 5
GRAMS_PER_UNIT = {"oz": 28.3495, "lb": 453.592}
ACCEPTED_ORGANOLEPTIC = ("excellent", "good")
DEFECT_SHARE_LIMIT = 10
COLD_STORAGE_MAX_C = 0
COLD_STORAGE_MIN_C = -20

_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_NON_NUMERIC = re.compile(r"[^\d.]")
_BAG_WEIGHT_PATTERNS = (
    re.compile(r"\*(\d+\.?\d*)\s*(OZ|LB)", re.IGNORECASE),
    re.compile(r"(\d+\.?\d*)\s*(OZ|LB)", re.IGNORECASE),
)


def _filled(value: object) -> bool:
    # Forms leave unset fields as null, false, 0 or "".
    return value not in (None, False, 0, "")


def _leading_float(value: object) -> float | None:
    """Parse the numeric prefix of a form value ("12.5 g" reads as 12.5)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_FLOAT.match(str(value))
    return float(match.group(1)) if match else None


def _digits_value(value: object) -> float | None:
    return _leading_float(_NON_NUMERIC.sub("", str(value)))


def bag_weight_grams(material: object) -> float | None:
    """Expected bag weight in grams from a product label such as ``"MIX *16 OZ"``."""
    if not _has_text(material):
        return None
    for pattern in _BAG_WEIGHT_PATTERNS:
        match = pattern.search(material)
        if match:
            return float(match.group(1)) * GRAMS_PER_UNIT[match.group(2).lower()]
    return None


def _bag_weight_off(actual_grams: float | None, expected_grams: float) -> bool:
    if actual_grams is None or actual_grams <= 0:
        return False
    return abs(actual_grams - expected_grams) > expected_grams * BAG_WEIGHT_TOLERANCE_PERCENT / 100


def _values(container: dict[str, object]) -> dict[str, object]:
    values = container.get("values")
    return values if isinstance(values, dict) else {}


def review_item_list(record: Record) -> bool:
    items = _entries(record, "items") or []
    return any(
        item.get("comply") is False
        or item.get("correctiveActionComply") is False
        or _has_text(item.get("observation"))
        or _has_text(item.get("correctiveActionObservation"))
        for item in items
    )


def review_cleanliness(record: Record) -> bool:
    for area in _entries(record, "areas") or []:
        for part in _entries(area, "parts") or []:
            if part.get("comply") is False or part.get("correctiveActionComply") is False:
                return True
            if _filled(part.get("bioluminescenceResult")):
                rlu = _digits_value(part["bioluminescenceResult"])
                if rlu is not None and rlu >= RLU_CAUTION:
                    return True
    return False


def review_staff_practices(record: Record) -> bool:
    people = _entries(record, "personnel_materials") or []
    return any(
        any(person.get(field_name) == NO_COMPLY for field_name in STAFF_PRACTICE_FIELDS)
        or _has_text(person.get("correctiveAction"))
        or _has_text(person.get("observation"))
        for person in people
    )


def review_glasses(record: Record) -> bool:
    people = _entries(record, "personnel_materials") or []
    return any(
        GLASSES_NOT_COMPLY in (person.get("conditionIn"), person.get("conditionOut"))
        or _has_text(person.get("observationIn"))
        or _has_text(person.get("observationOut"))
        for person in people
    )


def review_metal_detector(record: Record) -> bool:
    for reading in _entries(record, "readings") or []:
        if any(reading.get(field_name) == NO_COMPLY for field_name in METAL_DETECTOR_FIELDS):
            return True
        if _has_text(reading.get("observation")) or _has_text(reading.get("correctiveActions")):
            return True
        for test_field in ("bf", "bnf", "bss"):
            tests = reading.get(test_field)
            if isinstance(tests, list) and NOT_DETECTED in tests:
                return True
    return False


def review_envtemp(record: Record) -> bool:
    for reading in _entries(record, "readings") or []:
        if "averageTemp" in reading:
            temp = _loose_number(reading["averageTemp"])
            if temp is not None and (temp > ENVTEMP_MAX_F or temp < ENVTEMP_MIN_F):
                return True
        if reading.get("status") in ENVTEMP_OUT_OF_LIMIT or _has_text(reading.get("observation")):
            return True
    return False


def _mix_bag_weight(values: dict[str, object]) -> float | None:
    raw = values.get("Peso Bolsa") or values.get("Peso Bolsa (gr)") or "0"
    return _leading_float(raw)


def _fruit_share_off(pallet: dict[str, object], bag_grams: float | None) -> bool:
    compositions = pallet.get("expectedCompositions")
    if not (_filled(pallet.get("fieldsByFruit")) and isinstance(compositions, dict)):
        return False
    if bag_grams is None or bag_grams <= 0:
        return False

    values = _values(pallet)
    for fruit, expected_share in compositions.items():
        fruit_grams = _leading_float(values.get(f"Peso Fruta {fruit}") or "0")
        expected = _loose_number(expected_share)
        if fruit_grams is None or fruit_grams <= 0 or expected is None:
            continue
        if abs(fruit_grams / bag_grams * 100 - expected * 100) > FRUIT_SHARE_TOLERANCE:
            return True
    return False


def review_producto_mix(record: Record) -> bool:
    expected_grams = bag_weight_grams(record.get("producto"))
    for pallet in _entries(record, "pallets") or []:
        bag_grams = _mix_bag_weight(_values(pallet))
        if _fruit_share_off(pallet, bag_grams):
            return True
        if expected_grams is not None and _bag_weight_off(bag_grams, expected_grams):
            return True
    return False


def review_monoproducto(record: Record) -> bool:
    expected_grams = bag_weight_grams(record.get("producto"))
    if expected_grams is None:
        return False
    for pallet in _entries(record, "pallets") or []:
        values = _values(pallet)
        for key, value in values.items():
            lowered = key.lower()
            if "peso" in lowered and "bolsa" in lowered and _bag_weight_off(_leading_float(value or "0"), expected_grams):
                return True
    return False


def _defect_share_high(sample: dict[str, object], values: dict[str, object]) -> bool:
    if not _filled(sample.get("weightSample")):
        return False
    weight = _digits_value(sample["weightSample"])
    if weight is None or weight <= 0:
        return False
    for key, value in values.items():
        if "%" not in key or value is None:
            continue
        grams = _digits_value(value)
        if grams is not None and grams / weight * 100 > DEFECT_SHARE_LIMIT:
            return True
    return False


def review_raw_material(record: Record) -> bool:
    for sample in _entries(record, "box_samples") or []:
        values = _values(sample)
        organoleptic = values.get("Organoleptic")
        if _filled(organoleptic) and str(organoleptic).lower() not in ACCEPTED_ORGANOLEPTIC:
            return True
        if _defect_share_high(sample, values):
            return True

    temperature = record.get("cold_storage_receiving_temperature")
    if temperature is not None:
        temp = _leading_float(temperature)
        if temp is not None and (temp > COLD_STORAGE_MAX_C or temp < COLD_STORAGE_MIN_C):
            return True
    return False


REVIEW_RULES: dict[str, Callable[[Record], bool]] = {
    "checklist_pre_operational_review": review_item_list,
    "checklist_cleanliness_control_packing": review_cleanliness,
    "checklist_staff_practices": review_staff_practices,
    "checklist_staff_glasses_auditory": review_glasses,
    "checklist_staff_glasses_auditory_setup": review_glasses,
    "checklist_metal_detector": review_metal_detector,
    "checklist_envtemp": review_envtemp,
    "checklist_producto_mix": review_producto_mix,
    "checklist_calidad_monoproducto": review_monoproducto,
    "checklist_raw_material_quality": review_raw_material,
}


def needs_review(record: Record, rule_variant: RuleVariant, type_id: str) -> bool:
    if not isinstance(record, dict):
        return False
    if classify(record, rule_variant) == NOT_COMPLY:
        return True
    rule = REVIEW_RULES.get(type_id)
    return rule(record) if rule else False
