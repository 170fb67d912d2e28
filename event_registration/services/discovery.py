"""Read-only queries for finding events: listings, date ranges, search."""

from __future__ import annotations

import re
from collections import Counter
from datetime import datetime
from typing import Any, Iterable

from pydantic import BaseModel

from event_registration.domain.errors import ValidationError
from event_registration.domain.models import Event, EventStatus, Visibility

LISTED_VISIBILITY = (Visibility.PUBLIC, Visibility.UNLISTED)

# Relevance weight per searchable field
_SEARCH_WEIGHTS = {
    "title": 3.0,
    "short_description": 2.0,
    "tags": 2.0,
    "description": 1.0,
}

_TOKEN_RE = re.compile(r"[\w']+")


def is_listed(event: Event) -> bool:
    """Published and visible in public listings."""
    return event.status == EventStatus.PUBLISHED and event.visibility in LISTED_VISIBILITY


def intersects(event: Event, start: datetime, end: datetime) -> bool:
    """True when the event's interval touches ``[start, end]``, boundaries included.

    Covers events starting inside the range, ending inside it, or spanning it.
    """
    return event.start_date <= end and event.end_date >= start


def _by_start(events: Iterable[Event], reverse: bool = False) -> list[Event]:
    return sorted(events, key=lambda e: e.start_date, reverse=reverse)


def get_upcoming_events(events: Iterable[Event], now: datetime, limit: int) -> list[Event]:
    upcoming = [e for e in events if is_listed(e) and e.start_date >= now]
    return _by_start(upcoming)[:limit]


def get_events_by_category(events: Iterable[Event], category: str) -> list[Event]:
    return _by_start(e for e in events if is_listed(e) and e.category == category)


def get_events_by_date(events: Iterable[Event], start: datetime, end: datetime) -> list[Event]:
    if end < start:
        raise ValidationError.single("end", "End of range must not be before its start")
    return _by_start(e for e in events if is_listed(e) and intersects(e, start, end))


def get_popular_events(events: Iterable[Event], now: datetime, limit: int) -> list[Event]:
    """Upcoming listed events, most viewed first, ties broken by attendee count."""
    upcoming = [e for e in events if is_listed(e) and e.start_date >= now]
    upcoming.sort(key=lambda e: (e.analytics.views, e.attendee_count), reverse=True)
    return upcoming[:limit]


def get_organizer_events(events: Iterable[Event], organizer_id: str) -> list[Event]:
    """Every event the organizer runs or co-runs, whatever its status, newest first."""
    return _by_start(
        (
            e
            for e in events
            if e.organizer.primary_contact == organizer_id
            or organizer_id in e.organizer.co_organizers
        ),
        reverse=True,
    )


# ---------------------------------------------------------------------------
# Free-text search
# ---------------------------------------------------------------------------


def _tokens(text: str | None) -> list[str]:
    return _TOKEN_RE.findall(text.lower()) if text else []


def _field_tokens(event: Event) -> dict[str, Counter]:
    return {
        "title": Counter(_tokens(event.title)),
        "short_description": Counter(_tokens(event.short_description)),
        "tags": Counter(t for tag in event.tags for t in _tokens(tag)),
        "description": Counter(_tokens(event.description)),
    }


def relevance(event: Event, terms: list[str], excluded: list[str]) -> float:
    """Weighted term-frequency score; 0 when an excluded term appears."""
    fields = _field_tokens(event)
    if any(fields[name][term] for name in fields for term in excluded):
        return 0.0
    return sum(
        weight * fields[name][term]
        for name, weight in _SEARCH_WEIGHTS.items()
        for term in terms
    )


def _resolve(event: Event, path: str) -> Any:
    """Follow a dotted path through model fields only."""
    value: Any = event
    for part in path.split("."):
        model = type(value)
        if (
            not isinstance(value, BaseModel)
            or part.startswith("_")
            or (part not in model.model_fields and part not in model.model_computed_fields)
        ):
            raise ValidationError.single(path, "Unknown filter field")
        value = getattr(value, part)
        if value is None:
            return None
    return value


def _matches(event: Event, path: str, expected: Any) -> bool:
    actual = _resolve(event, path)
    if isinstance(expected, (list, tuple, set)):
        if isinstance(actual, list):
            return any(item in expected for item in actual)
        return actual in expected
    if isinstance(actual, list):
        return expected in actual
    return actual == expected


def search_events(
    events: Iterable[Event], query: str, filters: dict[str, Any] | None = None
) -> list[Event]:
    """Rank events against *query*, best match first.

    Prefix a word with ``-`` to exclude events containing it. *filters* maps
    dotted field paths to a value, or to a list of accepted values; a
    ``status`` or ``visibility`` filter replaces the default of published,
    listed events.
    """
    words = query.split()
    terms = [t for w in words if not w.startswith("-") for t in _tokens(w)]
    excluded = [t for w in words if w.startswith("-") for t in _tokens(w[1:])]
    if not terms:
        raise ValidationError.single("query", "Search needs at least one term")

    criteria: dict[str, Any] = {
        "status": EventStatus.PUBLISHED,
        "visibility": list(LISTED_VISIBILITY),
    }
    criteria.update(filters or {})

    scored = []
    for event in events:
        if not all(_matches(event, path, value) for path, value in criteria.items()):
            continue
        score = relevance(event, terms, excluded)
        if score > 0:
            scored.append((score, event))

    scored.sort(key=lambda pair: (-pair[0], pair[1].start_date))
    return [event for _, event in scored]
