"""Capacity and waitlist policy.

Pure decisions over an event's registration settings and its current RSVPs.
Nothing here mutates the event.
"""

from __future__ import annotations

from datetime import datetime

from event_registration.domain.errors import PolicyViolation
from event_registration.domain.models import (
    Event,
    EventStatus,
    GuestIdentity,
    MemberIdentity,
    RsvpStatus,
)


def is_registration_open(event: Event, now: datetime) -> bool:
    """Published, taking registrations, and *now* inside the open/close window.

    A missing bound leaves that side of the window unbounded.
    """
    if event.status != EventStatus.PUBLISHED or not event.requires_registration:
        return False
    window = event.registration_settings
    if window.open_date is not None and now < window.open_date:
        return False
    if window.close_date is not None and now > window.close_date:
        return False
    return True


def can_accept_more_attendees(event: Event) -> bool:
    max_attendees = event.registration_settings.max_attendees
    if max_attendees is None:
        return True
    return event.attendee_count < max_attendees


def decide_registration_status(
    event: Event,
    identity: MemberIdentity | GuestIdentity,
    desired: RsvpStatus,
    now: datetime,
) -> RsvpStatus:
    """Return the status a registration request actually gets.

    Raises ``PolicyViolation`` when the request cannot be honoured at all.
    An identity that already holds an attending seat keeps it without
    consuming more capacity.
    """
    if not is_registration_open(event, now):
        raise PolicyViolation(f"Registration for event {event.id} is closed")

    allow_waitlist = event.registration_settings.allow_waitlist

    if desired == RsvpStatus.ATTENDING:
        existing = event.find_rsvp(identity)
        if existing is not None and existing.status == RsvpStatus.ATTENDING:
            return RsvpStatus.ATTENDING
        if can_accept_more_attendees(event):
            return RsvpStatus.ATTENDING
        if allow_waitlist:
            return RsvpStatus.WAITLIST
        raise PolicyViolation(f"Event {event.id} is full and has no waitlist")

    if desired == RsvpStatus.WAITLIST and not allow_waitlist:
        raise PolicyViolation(f"Event {event.id} does not allow a waitlist")

    return desired
