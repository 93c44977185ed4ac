"""
Calendar-date normalization for checklist records.

Records carry their date in one of three shapes: ``MMM-DD-YYYY`` strings
(``DEC-15-2025``), plain ``YYYY-MM-DD`` strings, or absolute timestamps.
Everything is reduced to a ``datetime.date`` in US Eastern civil time so that
records from different tables compare on the same calendar.
"""
from datetime import UTC, date, datetime, timedelta
import logging


logger = logging.getLogger(__name__)

FORMAT_MMM_DD_YYYY = "MMM-DD-YYYY"
FORMAT_YYYY_MM_DD = "YYYY-MM-DD"
FORMAT_TIMESTAMP = "timestamp"

MONTH_ABBREVIATIONS: dict[str, int] = {
    "JAN": 1,
    "FEB": 2,
    "MAR": 3,
    "APR": 4,
    "MAY": 5,
    "JUN": 6,
    "JUL": 7,
    "AUG": 8,
    "SEP": 9,
    "OCT": 10,
    "NOV": 11,
    "DEC": 12,
}

EST_OFFSET = timedelta(hours=-5)
EDT_OFFSET = timedelta(hours=-4)
SUNDAY = 6


def _nth_sunday(year: int, month: int, n: int) -> date:
    first = date(year, month, 1)
    days_to_sunday = (SUNDAY - first.weekday()) % 7
    return first + timedelta(days=days_to_sunday + 7 * (n - 1))


def dst_bounds(year: int) -> tuple[datetime, datetime]:
    """Return the UTC instants at which Eastern daylight time starts and ends in ``year``.

    DST begins on the second Sunday of March at 02:00 EST and ends on the
    first Sunday of November at 02:00 EDT.
    """
    start_day = _nth_sunday(year, 3, 2)
    end_day = _nth_sunday(year, 11, 1)
    start = datetime(start_day.year, start_day.month, start_day.day, 2, tzinfo=UTC) - EST_OFFSET
    end = datetime(end_day.year, end_day.month, end_day.day, 2, tzinfo=UTC) - EDT_OFFSET
    return start, end


def eastern_offset(instant: datetime) -> timedelta:
    instant = _as_utc(instant)
    start, end = dst_bounds(instant.year)
    if start <= instant < end:
        return EDT_OFFSET
    return EST_OFFSET


def to_eastern(instant: datetime) -> datetime:
    """Shift an aware (or UTC-naive) instant to naive US Eastern wall-clock time."""
    instant = _as_utc(instant)
    return (instant + eastern_offset(instant)).replace(tzinfo=None)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def _parse_int(token: str) -> int | None:
    token = token.strip()
    if not token.isdecimal():
        return None
    return int(token)


def _build_date(year: int | None, month: int | None, day: int | None) -> date | None:
    if year is None or month is None or day is None:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_mmm_dd_yyyy(value: str) -> date | None:
    parts = value.split("-")
    if len(parts) != 3:
        return None
    month = MONTH_ABBREVIATIONS.get(parts[0].strip().upper())
    year_token = parts[2].strip()
    if len(year_token) != 4:
        return None
    return _build_date(_parse_int(year_token), month, _parse_int(parts[1]))


def parse_yyyy_mm_dd(value: str) -> date | None:
    parts = value.split("-")
    if len(parts) != 3:
        return None
    year, month, day = (_parse_int(part) for part in parts)
    return _build_date(year, month, day)


def parse_timestamp(value: object) -> date | None:
    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, str) and value.strip():
        try:
            instant = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    try:
        return to_eastern(instant).date()
    except (OverflowError, ValueError):
        return None


def normalize(raw_value: object, fmt: str) -> date | None:
    """Reduce ``raw_value`` to a calendar date, or ``None`` when it cannot be read."""
    if raw_value is None:
        return None
    if fmt == FORMAT_TIMESTAMP:
        parsed = parse_timestamp(raw_value)
    elif not isinstance(raw_value, str):
        parsed = None
    elif fmt == FORMAT_MMM_DD_YYYY:
        parsed = parse_mmm_dd_yyyy(raw_value)
    elif fmt == FORMAT_YYYY_MM_DD:
        parsed = parse_yyyy_mm_dd(raw_value)
    else:
        parsed = None

    if parsed is None:
        logger.debug("unreadable record date", extra={"raw_value": repr(raw_value), "date_format": fmt})
    return parsed
