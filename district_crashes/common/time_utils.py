"""Date helpers for analysis windows and run metadata."""

from __future__ import annotations

from datetime import date, datetime, timezone

from district_crashes.common.errors import ConfigError


def parse_iso_date(value: object, *, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigError(f"{field} must be an ISO date (YYYY-MM-DD), got {value!r}") from exc


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")
