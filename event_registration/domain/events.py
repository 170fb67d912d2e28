"""Domain events emitted by the registration write path."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from event_registration.domain.models import EventStatus, Identity, RecipientType, RsvpStatus


class EventCreated(BaseModel):
    """Fired when a new Event document is first stored."""

    event_id: str
    status: EventStatus


class EventStatusChanged(BaseModel):
    """Fired when an event's status moves, by an organizer or by auto-publish."""

    event_id: str
    previous: EventStatus
    current: EventStatus
    automatic: bool = False


class RsvpRecorded(BaseModel):
    """Fired when an RSVP is created or its response changes."""

    event_id: str
    rsvp_id: str
    identity_key: str
    status: RsvpStatus
    previous_status: RsvpStatus | None = None
    requested_status: RsvpStatus | None = None


class AttendeeCheckedIn(BaseModel):
    event_id: str
    rsvp_id: str
    checked_in_at: datetime


class AttendeeMarkedNoShow(BaseModel):
    event_id: str
    rsvp_id: str


class WaitlistPromoted(BaseModel):
    """Fired when waitlisted RSVPs are moved into freed capacity."""

    event_id: str
    rsvp_ids: list[str]


class AnnouncementSent(BaseModel):
    """Fired when an announcement is appended to an event.

    ``recipients`` are resolved from the document the announcement was saved
    with, so later RSVP changes do not retarget it.
    """

    event_id: str
    announcement_id: str
    title: str
    message: str
    recipient_type: RecipientType
    recipients: list[Identity] = Field(default_factory=list)
