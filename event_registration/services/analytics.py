"""Attendance metrics for one event and aggregate statistics across events."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

from event_registration.core.config import settings
from event_registration.domain.models import (
    AttendanceSummary,
    CategoryCount,
    CheckInStatus,
    Event,
    EventStatistics,
    EventStatus,
    RsvpStatus,
)
from event_registration.repos.memory import EventRepository

logger = logging.getLogger(__name__)


def get_attendee_count(event: Event) -> int:
    return event.attendee_count


def get_waitlist_count(event: Event) -> int:
    return event.waitlist_count


def calculate_attendance_rate(event: Event) -> float:
    """Percentage of attending RSVPs that checked in; 0 when nobody is attending."""
    attending = event.attendee_count
    if attending == 0:
        return 0.0
    checked_in = sum(
        1 for r in event.rsvps if r.check_in_status == CheckInStatus.CHECKED_IN
    )
    return checked_in / attending * 100


def registration_conversion_rate(event: Event) -> float | None:
    """Attending RSVPs per unique view, as a percentage capped at 100."""
    if event.analytics.unique_views == 0:
        return None
    return min(event.attendee_count / event.analytics.unique_views * 100, 100)


def attendance_summary(event: Event) -> AttendanceSummary:
    statuses = Counter(r.status for r in event.rsvps)
    check_ins = Counter(r.check_in_status for r in event.rsvps)
    return AttendanceSummary(
        event_id=event.id,
        attending=statuses[RsvpStatus.ATTENDING],
        waitlist=statuses[RsvpStatus.WAITLIST],
        maybe=statuses[RsvpStatus.MAYBE],
        not_attending=statuses[RsvpStatus.NOT_ATTENDING],
        checked_in=check_ins[CheckInStatus.CHECKED_IN],
        no_show=check_ins[CheckInStatus.NO_SHOW],
        companions=sum(r.companions for r in event.rsvps),
        attendance_rate=calculate_attendance_rate(event),
    )


# ---------------------------------------------------------------------------
# Cross-event statistics
# ---------------------------------------------------------------------------


def _published(repo: EventRepository) -> list[Event]:
    return [e for e in repo.list_all() if e.status == EventStatus.PUBLISHED]


def _count_published(repo: EventRepository) -> int:
    return len(_published(repo))


def _count_upcoming(repo: EventRepository, now: datetime) -> int:
    return sum(1 for e in _published(repo) if e.start_date >= now)


def _category_counts(repo: EventRepository) -> list[CategoryCount]:
    counts = Counter(e.category for e in _published(repo))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0].value))
    return [CategoryCount(category=category, count=count) for category, count in ranked]


def _monthly_counts(repo: EventRepository) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for event in _published(repo):
        start = event.start_date.astimezone(UTC)
        counts[f"{start.year}-{start.month:02d}"] += 1
    return dict(sorted(counts.items()))


def _total_attendees(repo: EventRepository) -> int:
    return sum(e.attendee_count for e in _published(repo))


def get_event_statistics(
    repo: EventRepository, now: datetime, max_workers: int | None = None
) -> EventStatistics:
    """Dashboard statistics over all published events.

    Each figure is computed by its own query on a worker thread, so the
    figures are not guaranteed to describe the same moment when writes are
    in flight.
    """
    with ThreadPoolExecutor(max_workers=max_workers or settings.statistics_workers) as pool:
        total_f = pool.submit(_count_published, repo)
        upcoming_f = pool.submit(_count_upcoming, repo, now)
        categories_f = pool.submit(_category_counts, repo)
        monthly_f = pool.submit(_monthly_counts, repo)
        attendees_f = pool.submit(_total_attendees, repo)

        total_events = total_f.result()
        total_attendees = attendees_f.result()
        stats = EventStatistics(
            total_events=total_events,
            upcoming_events=upcoming_f.result(),
            total_attendees=total_attendees,
            average_attendance=total_attendees / total_events if total_events else 0,
            top_categories=categories_f.result(),
            monthly_event_count=monthly_f.result(),
        )

    logger.debug("Computed statistics over %d published events", total_events)
    return stats
