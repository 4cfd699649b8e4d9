"""Date parsing helpers for interview payloads."""

from __future__ import annotations

from datetime import date, datetime

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
]


def coerce_date(raw_value: object) -> date | None:
    """
    Coerce a submitted date value into a `date`.

    Accepts `date`/`datetime` objects, ISO 8601 strings (with or without a time
    part, "Z" suffix allowed) and day-first local formats. Empty values map to
    None.

    Raises:
        ValueError: If the value is not a date or cannot be parsed
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    if not isinstance(raw_value, str):
        raise ValueError(f"Expected a date string, got {type(raw_value).__name__}")

    value = raw_value.strip()
    if not value:
        return None

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"Unrecognized date format: {value}")
