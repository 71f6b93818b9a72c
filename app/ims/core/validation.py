from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (dates and datetimes pass through). Raises ValueError."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    value = str(value).strip()
    if not value:
        return None
    # Accept full ISO timestamps from JSON clients, keep the date part.
    if "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return date.fromisoformat(value)


def parse_date_fields(payload: Mapping[str, Any], fields: Iterable[str]) -> tuple[dict[str, date | None], list[str]]:
    """Parse the date fields present in ``payload``. Returns (values, errors)."""
    values: dict[str, date | None] = {}
    errors: list[str] = []
    for f in fields:
        if f not in payload:
            continue
        try:
            values[f] = parse_date(payload[f])
        except ValueError:
            errors.append(f"Invalid date for {f}: {payload[f]!r}.")
    return values, errors


def clean_str(value: Any) -> str:
    return ("" if value is None else str(value)).strip()
