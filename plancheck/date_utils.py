"""Shared date normalization helpers for age signals and run timestamps."""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SECONDS_PER_DAY = 86400.0


def format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def utc_now_iso() -> str:
    return format_datetime_utc(datetime.now(timezone.utc))


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in ("%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def normalize_iso_date(value: Any) -> str:
    """Convert mixed date inputs into comparable ISO strings."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_datetime_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and value > 0:
        return format_datetime_utc(datetime.fromtimestamp(float(value), timezone.utc))
    if isinstance(value, str):
        token = value.strip()
        if not token:
            return ""
        if _DATE_ONLY_RE.match(token):
            try:
                return date.fromisoformat(token).isoformat()
            except ValueError:
                return ""
        parsed_dt = _parse_datetime_token(token)
        if parsed_dt:
            return format_datetime_utc(parsed_dt)
        return ""
    return ""


def iso_to_epoch(value: Any) -> float:
    token = normalize_iso_date(value)
    if not token:
        return 0.0
    if _DATE_ONLY_RE.match(token):
        return datetime.fromisoformat(token).replace(tzinfo=timezone.utc).timestamp()
    parsed_dt = _parse_datetime_token(token)
    if not parsed_dt:
        return 0.0
    dt = parsed_dt if parsed_dt.tzinfo else parsed_dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).timestamp()


def age_in_days(touched: Any, as_of: Any) -> float | None:
    """Days between ``touched`` and the snapshot reference time, never negative.

    Returns ``None`` when either side cannot be parsed.
    """
    touched_epoch = iso_to_epoch(touched)
    as_of_epoch = iso_to_epoch(as_of)
    if touched_epoch <= 0 or as_of_epoch <= 0:
        return None
    return max(0.0, (as_of_epoch - touched_epoch) / _SECONDS_PER_DAY)


def file_modified_iso(path: Path) -> str:
    """Return the filesystem modified timestamp as an ISO string, or ``""``."""
    try:
        stats = path.stat()
    except OSError:
        return ""
    return format_datetime_utc(datetime.fromtimestamp(float(stats.st_mtime), timezone.utc))
