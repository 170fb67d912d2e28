"""Registration manager: RSVP mutations, check-in and announcements.

The module-level functions are pure mutations of an in-memory ``Event``.
``RegistrationManager`` runs each of them as one read-modify-write of the
whole event document: load, auto-publish, mutate, re-derive, validate and
compare-and-swap save, replaying the command when another writer got there
first.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable

from event_registration.core.config import settings
from event_registration.domain.bus import EventBus
from event_registration.domain.errors import (
    ConcurrencyConflict,
    NotFoundError,
    PolicyViolation,
)
from event_registration.domain.events import (
    AnnouncementSent,
    AttendeeCheckedIn,
    AttendeeMarkedNoShow,
    EventCreated,
    EventStatusChanged,
    RsvpRecorded,
    WaitlistPromoted,
)
from event_registration.domain.models import (
    Announcement,
    AnnouncementRequest,
    CheckInStatus,
    Event,
    EventStatus,
    GuestIdentity,
    MemberIdentity,
    RecipientType,
    Rsvp,
    RsvpPayload,
    RsvpStatus,
)
from event_registration.repos.memory import EventRepository
from event_registration.services.capacity import (
    can_accept_more_attendees,
    decide_registration_status,
)
from event_registration.services.lifecycle import (
    apply_auto_publish,
    prepare_for_save,
    transition_status,
)

logger = logging.getLogger(__name__)

AnyIdentity = MemberIdentity | GuestIdentity
Command = Callable[[Event, datetime], list[Any]]

_PROMOTABLE_STATUSES = (EventStatus.PUBLISHED, EventStatus.POSTPONED)

_RECIPIENT_STATUS = {
    RecipientType.ATTENDING: RsvpStatus.ATTENDING,
    RecipientType.NOT_ATTENDING: RsvpStatus.NOT_ATTENDING,
    RecipientType.WAITLIST: RsvpStatus.WAITLIST,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Pure mutations
# ---------------------------------------------------------------------------


def _require_rsvp(event: Event, identity: AnyIdentity) -> Rsvp:
    rsvp = event.find_rsvp(identity)
    if rsvp is None:
        raise NotFoundError(f"No RSVP for {identity.key()} on event {event.id}")
    return rsvp


def _set_status(rsvp: Rsvp, status: RsvpStatus, now: datetime) -> None:
    """Change an RSVP's response, keeping the check-in sub-state consistent.

    A checked-in attendee cannot stop attending. A no-show mark only means
    something while attending, so it is dropped when the response changes.
    Staying on the waitlist keeps the RSVP's place in the queue.
    """
    if status != RsvpStatus.ATTENDING:
        if rsvp.check_in_status == CheckInStatus.CHECKED_IN:
            raise PolicyViolation(f"RSVP {rsvp.id} is already checked in")
        rsvp.check_in_status = None
    if status != RsvpStatus.WAITLIST:
        rsvp.waitlisted_at = None
    elif rsvp.status != RsvpStatus.WAITLIST or rsvp.waitlisted_at is None:
        rsvp.waitlisted_at = now
    rsvp.status = status
    rsvp.response_date = now


def add_rsvp(event: Event, identity: AnyIdentity, payload: RsvpPayload, now: datetime) -> Rsvp:
    """Insert or overwrite the RSVP for *identity*; last write wins.

    Capacity is not consulted here. Use ``request_registration`` to have the
    waitlist policy decide the status.
    """
    rsvp = event.find_rsvp(identity)
    if rsvp is None:
        rsvp = Rsvp(
            identity=identity,
            status=payload.status,
            response_date=now,
            ticket_type=payload.ticket_type,
            payment_status=payload.payment_status,
            additional_info=dict(payload.additional_info),
            companions=payload.companions,
            waitlisted_at=now if payload.status == RsvpStatus.WAITLIST else None,
        )
        event.rsvps.append(rsvp)
        return rsvp

    _set_status(rsvp, payload.status, now)
    rsvp.identity = identity
    rsvp.ticket_type = payload.ticket_type
    rsvp.payment_status = payload.payment_status
    rsvp.additional_info = dict(payload.additional_info)
    rsvp.companions = payload.companions
    return rsvp


def update_rsvp(event: Event, identity: AnyIdentity, status: RsvpStatus, now: datetime) -> Rsvp:
    rsvp = _require_rsvp(event, identity)
    _set_status(rsvp, status, now)
    return rsvp


def check_in_attendee(event: Event, identity: AnyIdentity, now: datetime) -> Rsvp:
    """Mark an attending RSVP as checked in. Checking in twice keeps the first time."""
    rsvp = _require_rsvp(event, identity)
    if rsvp.status != RsvpStatus.ATTENDING:
        raise PolicyViolation(f"Cannot check in RSVP {rsvp.id} with status {rsvp.status}")
    if rsvp.check_in_status != CheckInStatus.CHECKED_IN:
        rsvp.check_in_status = CheckInStatus.CHECKED_IN
        rsvp.check_in_time = now
    return rsvp


def mark_no_show(event: Event, identity: AnyIdentity) -> Rsvp:
    rsvp = _require_rsvp(event, identity)
    if rsvp.status != RsvpStatus.ATTENDING:
        raise PolicyViolation(f"Cannot mark RSVP {rsvp.id} with status {rsvp.status} as no-show")
    if rsvp.check_in_status == CheckInStatus.CHECKED_IN:
        raise PolicyViolation(f"RSVP {rsvp.id} is already checked in")
    rsvp.check_in_status = CheckInStatus.NO_SHOW
    return rsvp


def resolve_recipients(event: Event, recipient_type: RecipientType) -> list[AnyIdentity]:
    """Identities an announcement targets, in RSVP order."""
    if recipient_type == RecipientType.ALL:
        return [r.identity for r in event.rsvps]
    wanted = _RECIPIENT_STATUS[recipient_type]
    return [r.identity for r in event.rsvps if r.status == wanted]


def send_announcement(event: Event, request: AnnouncementRequest, now: datetime) -> Announcement:
    """Append an announcement. Delivery is left to whoever reads the outbox."""
    announcement = Announcement(
        title=request.title,
        message=request.message,
        sent_by=request.sent_by,
        recipient_type=request.recipient_type,
        sent_at=now,
    )
    event.announcements.append(announcement)
    return announcement


def request_registration(
    event: Event, identity: AnyIdentity, payload: RsvpPayload, now: datetime
) -> Rsvp:
    """Register *identity*, letting the capacity policy pick the final status.

    ``payload.status`` is the status the caller would like; a full event with
    a waitlist turns an attending request into a waitlist entry.
    """
    status = decide_registration_status(event, identity, payload.status, now)
    return add_rsvp(event, identity, payload.model_copy(update={"status": status}), now)


def promote_waitlist(event: Event, now: datetime, limit: int | None = None) -> list[Rsvp]:
    """Move the longest-waiting RSVPs to attending while seats are free.

    Only a published or postponed event can take people off its waitlist.
    """
    if event.status not in _PROMOTABLE_STATUSES:
        raise PolicyViolation(f"Cannot promote the waitlist of a {event.status} event")
    waiting = sorted(
        (r for r in event.rsvps if r.status == RsvpStatus.WAITLIST),
        key=lambda r: r.waitlisted_at or r.response_date,
    )
    promoted: list[Rsvp] = []
    for rsvp in waiting:
        if limit is not None and len(promoted) >= limit:
            break
        if not can_accept_more_attendees(event):
            break
        _set_status(rsvp, RsvpStatus.ATTENDING, now)
        promoted.append(rsvp)
    return promoted


def record_view(event: Event, unique: bool) -> None:
    event.analytics.views += 1
    if unique:
        event.analytics.unique_views += 1


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


class RegistrationManager:
    """Runs registration commands against the event store.

    Each command works on a fresh copy of the event document. A version
    conflict on save replays the whole command, including any capacity
    decision, against the newer document.
    """

    def __init__(
        self,
        event_repo: EventRepository,
        bus: EventBus,
        clock: Callable[[], datetime] = _utcnow,
        max_retries: int | None = None,
    ) -> None:
        self.event_repo = event_repo
        self.bus = bus
        self.clock = clock
        self.max_retries = settings.max_write_retries if max_retries is None else max_retries

    def _execute(self, event_id: str, command: Command) -> Event:
        conflicts = 0
        while True:
            event = self.event_repo.get(event_id)
            if event is None:
                raise NotFoundError(f"Event {event_id} not found")
            now = self.clock()

            domain_events: list[Any] = []
            if apply_auto_publish(event, now):
                domain_events.append(
                    EventStatusChanged(
                        event_id=event.id,
                        previous=EventStatus.DRAFT,
                        current=EventStatus.PUBLISHED,
                        automatic=True,
                    )
                )
            domain_events.extend(command(event, now))
            prepare_for_save(event, now)

            try:
                saved = self.event_repo.save(event)
            except ConcurrencyConflict:
                conflicts += 1
                if conflicts > self.max_retries:
                    logger.error(
                        "Giving up on event %s after %d version conflicts", event_id, conflicts
                    )
                    raise
                logger.warning(
                    "Version conflict on event %s, retrying (%d/%d)",
                    event_id,
                    conflicts,
                    self.max_retries,
                )
                continue

            self.bus.publish_all(domain_events)
            return saved

    # -- event document ---------------------------------------------------

    def create_event(self, event: Event) -> Event:
        now = self.clock()
        auto_published = apply_auto_publish(event, now)
        prepare_for_save(event, now)
        saved = self.event_repo.add(event)
        logger.info("Created event %s (%s)", saved.id, saved.status)
        self.bus.publish(EventCreated(event_id=saved.id, status=saved.status))
        if auto_published:
            self.bus.publish(
                EventStatusChanged(
                    event_id=saved.id,
                    previous=EventStatus.DRAFT,
                    current=EventStatus.PUBLISHED,
                    automatic=True,
                )
            )
        return saved

    def change_status(self, event_id: str, status: EventStatus) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            previous = transition_status(event, status)
            if previous is None:
                return []
            logger.info("Event %s moved from %s to %s", event.id, previous, status)
            return [EventStatusChanged(event_id=event.id, previous=previous, current=status)]

        return self._execute(event_id, command)

    def record_view(self, event_id: str, unique: bool = False) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            record_view(event, unique)
            return []

        return self._execute(event_id, command)

    # -- RSVPs ------------------------------------------------------------

    def add_rsvp(self, event_id: str, identity: AnyIdentity, payload: RsvpPayload) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            existing = event.find_rsvp(identity)
            previous = existing.status if existing is not None else None
            rsvp = add_rsvp(event, identity, payload, now)
            return [
                RsvpRecorded(
                    event_id=event.id,
                    rsvp_id=rsvp.id,
                    identity_key=identity.key(),
                    status=rsvp.status,
                    previous_status=previous,
                )
            ]

        return self._execute(event_id, command)

    def request_registration(
        self, event_id: str, identity: AnyIdentity, payload: RsvpPayload
    ) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            existing = event.find_rsvp(identity)
            previous = existing.status if existing is not None else None
            try:
                rsvp = request_registration(event, identity, payload, now)
            except PolicyViolation as exc:
                logger.info("Registration rejected for %s: %s", identity.key(), exc)
                raise
            if rsvp.status != payload.status:
                logger.info(
                    "Event %s is full, %s placed on the waitlist", event.id, identity.key()
                )
            return [
                RsvpRecorded(
                    event_id=event.id,
                    rsvp_id=rsvp.id,
                    identity_key=identity.key(),
                    status=rsvp.status,
                    previous_status=previous,
                    requested_status=payload.status,
                )
            ]

        return self._execute(event_id, command)

    def update_rsvp(self, event_id: str, identity: AnyIdentity, status: RsvpStatus) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            previous = _require_rsvp(event, identity).status
            rsvp = update_rsvp(event, identity, status, now)
            return [
                RsvpRecorded(
                    event_id=event.id,
                    rsvp_id=rsvp.id,
                    identity_key=identity.key(),
                    status=rsvp.status,
                    previous_status=previous,
                )
            ]

        return self._execute(event_id, command)

    def check_in_attendee(self, event_id: str, identity: AnyIdentity) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            rsvp = check_in_attendee(event, identity, now)
            logger.info("Checked in %s at event %s", identity.key(), event.id)
            return [
                AttendeeCheckedIn(
                    event_id=event.id, rsvp_id=rsvp.id, checked_in_at=rsvp.check_in_time
                )
            ]

        return self._execute(event_id, command)

    def mark_no_show(self, event_id: str, identity: AnyIdentity) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            rsvp = mark_no_show(event, identity)
            return [AttendeeMarkedNoShow(event_id=event.id, rsvp_id=rsvp.id)]

        return self._execute(event_id, command)

    def promote_waitlist(self, event_id: str, limit: int | None = None) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            promoted = promote_waitlist(event, now, limit)
            if not promoted:
                return []
            logger.info("Promoted %d waitlisted RSVP(s) on event %s", len(promoted), event.id)
            return [WaitlistPromoted(event_id=event.id, rsvp_ids=[r.id for r in promoted])]

        return self._execute(event_id, command)

    # -- announcements ----------------------------------------------------

    def send_announcement(self, event_id: str, request: AnnouncementRequest) -> Event:
        def command(event: Event, now: datetime) -> list[Any]:
            announcement = send_announcement(event, request, now)
            return [
                AnnouncementSent(
                    event_id=event.id,
                    announcement_id=announcement.id,
                    title=announcement.title,
                    message=announcement.message,
                    recipient_type=announcement.recipient_type,
                    recipients=resolve_recipients(event, announcement.recipient_type),
                )
            ]

        return self._execute(event_id, command)
