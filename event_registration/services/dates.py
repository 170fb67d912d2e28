"""Parsing of user-supplied dates for range queries."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, time

import dateparser

from event_registration.domain.errors import ValidationError

# A phrase mentioning any of these names a time of day, not just a day.
_TIME_OF_DAY_RE = re.compile(r"\d{1,2}:\d{2}|\b\d{1,2}\s*[ap]\.?m\b|\bnoon\b|\bmidnight\b", re.I)


def _parse(raw: str, now: datetime) -> tuple[datetime, bool] | None:
    """Parse *raw* to a UTC datetime plus whether it named a time of day."""
    try:
        day = date.fromisoformat(raw)
    except ValueError:
        pass
    else:
        return datetime.combine(day, time.min, tzinfo=UTC), False

    try:
        parsed = datetime.fromisoformat(raw)
        has_time = True
    except ValueError:
        settings = {
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": now.astimezone(UTC).replace(tzinfo=None),
            "RETURN_AS_TIMEZONE_AWARE": False,
        }
        parsed = dateparser.parse(raw, settings=settings)
        if parsed is None:
            return None
        has_time = bool(_TIME_OF_DAY_RE.search(raw))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC), has_time
    return parsed.astimezone(UTC), has_time


def parse_when(raw: str | None, now: datetime, end_of_day: bool = False) -> datetime | None:
    """Parse ISO-8601 or a natural phrase ("tomorrow", "next friday") to a UTC datetime.

    A bound without a time of day means the whole (UTC) day: its first
    instant, or its last one when *end_of_day* is set.
    """
    if not raw:
        return None
    result = _parse(raw, now)
    if result is None:
        return None
    parsed, has_time = result
    if has_time:
        return parsed
    return datetime.combine(parsed.date(), time.max if end_of_day else time.min, tzinfo=UTC)


def parse_range(start_raw: str, end_raw: str, now: datetime) -> tuple[datetime, datetime]:
    """Both bounds of a date range; raises ``ValidationError`` if either is unreadable."""
    start = parse_when(start_raw, now)
    if start is None:
        raise ValidationError.single("start", f"Could not understand date {start_raw!r}")
    end = parse_when(end_raw, now, end_of_day=True)
    if end is None:
        raise ValidationError.single("end", f"Could not understand date {end_raw!r}")
    if end < start:
        raise ValidationError.single("end", "End of range must not be before its start")
    return start, end
