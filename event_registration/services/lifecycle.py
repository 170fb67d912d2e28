"""Event status lifecycle and the derivations every save re-runs."""

from __future__ import annotations

from datetime import datetime

import pydantic

from event_registration.domain.errors import PolicyViolation, ValidationError
from event_registration.domain.models import Event, EventStatus
from event_registration.services.analytics import (
    calculate_attendance_rate,
    registration_conversion_rate,
)

# Cancelled and completed are terminal; postponed is only reachable from published.
ALLOWED_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELLED}),
    EventStatus.PUBLISHED: frozenset(
        {EventStatus.POSTPONED, EventStatus.CANCELLED, EventStatus.COMPLETED}
    ),
    EventStatus.POSTPONED: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELLED}),
    EventStatus.CANCELLED: frozenset(),
    EventStatus.COMPLETED: frozenset(),
}


def apply_auto_publish(event: Event, now: datetime) -> bool:
    """Publish a draft whose publish date has passed. Returns True if it did."""
    if (
        event.status == EventStatus.DRAFT
        and event.publish_date is not None
        and event.publish_date <= now
    ):
        event.status = EventStatus.PUBLISHED
        return True
    return False


def transition_status(event: Event, new_status: EventStatus) -> EventStatus | None:
    """Move *event* to *new_status*, returning the previous status.

    Returns None when the event is already in *new_status*.
    """
    previous = event.status
    if previous == new_status:
        return None
    if new_status not in ALLOWED_TRANSITIONS[previous]:
        raise PolicyViolation(f"Cannot move event from {previous} to {new_status}")
    event.status = new_status
    return previous


def recompute_budget(event: Event) -> None:
    budget = event.budget
    if budget is not None and budget.actual_cost is not None and budget.revenue is not None:
        budget.profit_loss = budget.revenue - budget.actual_cost


def recompute_analytics(event: Event) -> None:
    event.analytics.attendance_rate = calculate_attendance_rate(event)
    event.analytics.registration_conversion_rate = registration_conversion_rate(event)


def validate_event(event: Event) -> None:
    """Re-run every model constraint against the mutated document."""
    try:
        Event.model_validate(event.model_dump())
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def prepare_for_save(event: Event, now: datetime) -> None:
    recompute_budget(event)
    recompute_analytics(event)
    event.updated_at = now
    validate_event(event)
