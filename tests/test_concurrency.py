"""Tests for optimistic concurrency on the event document."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from event_registration.domain.bus import EventBus
from event_registration.domain.errors import ConcurrencyConflict, PolicyViolation
from event_registration.domain.events import RsvpRecorded
from event_registration.domain.models import (
    Category,
    Event,
    EventStatus,
    GuestIdentity,
    Location,
    LocationType,
    MemberIdentity,
    Organizer,
    RegistrationSettings,
    RsvpPayload,
    RsvpStatus,
)
from event_registration.repos.memory import EventRepository
from event_registration.services.registration import RegistrationManager

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

_ATTEND = RsvpPayload(status=RsvpStatus.ATTENDING)


def _make_event(**overrides) -> Event:
    defaults = dict(
        title="Concurrency test event",
        description="An event used to exercise concurrent registration.",
        start_date=_NOW + timedelta(days=7),
        end_date=_NOW + timedelta(days=7, hours=2),
        location=Location(type=LocationType.VIRTUAL),
        category=Category.VOLUNTEER,
        organizer=Organizer(primary_contact="org-1", contact_email="org@example.org"),
        status=EventStatus.PUBLISHED,
    )
    defaults.update(overrides)
    return Event(**defaults)


class _RacingRepository(EventRepository):
    """Runs ``interleave`` once, just before the next save lands."""

    def __init__(self) -> None:
        super().__init__()
        self.interleave = None

    def save(self, event: Event) -> Event:
        if self.interleave is not None:
            hook, self.interleave = self.interleave, None
            hook()
        return super().save(event)


class _AlwaysStaleRepository(EventRepository):
    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def save(self, event: Event) -> Event:
        self.attempts += 1
        raise ConcurrencyConflict(f"Event {event.id} changed")


def test_stale_save_is_rejected():
    repo = EventRepository()
    stored = repo.add(_make_event())
    first = repo.get(stored.id)
    second = repo.get(stored.id)

    first.notes = "first writer"
    repo.save(first)

    second.notes = "second writer"
    with pytest.raises(ConcurrencyConflict):
        repo.save(second)
    assert repo.get(stored.id).notes == "first writer"


def test_reads_are_isolated_copies():
    repo = EventRepository()
    stored = repo.add(_make_event())
    copy = repo.get(stored.id)
    copy.title = "Changed locally"
    assert repo.get(stored.id).title == "Concurrency test event"


def test_conflict_replays_capacity_decision():
    repo = _RacingRepository()
    bus = EventBus()
    recorded = []
    bus.subscribe(RsvpRecorded, recorded.append)
    manager = RegistrationManager(repo, bus, clock=lambda: _NOW)
    event = repo.add(_make_event(registration_settings=RegistrationSettings(max_attendees=1)))

    repo.interleave = lambda: manager.request_registration(
        event.id, MemberIdentity(user_id="fast"), _ATTEND
    )
    with pytest.raises(PolicyViolation):
        manager.request_registration(event.id, MemberIdentity(user_id="slow"), _ATTEND)

    stored = repo.get(event.id)
    assert stored.attendee_count == 1
    assert stored.rsvps[0].identity.key() == "member:fast"
    assert [e.identity_key for e in recorded] == ["member:fast"]


def test_conflict_retries_are_bounded():
    repo = _AlwaysStaleRepository()
    manager = RegistrationManager(repo, EventBus(), clock=lambda: _NOW, max_retries=2)
    event = repo.add(_make_event())

    with pytest.raises(ConcurrencyConflict):
        manager.record_view(event.id)
    assert repo.attempts == 3


def test_parallel_registrations_never_overshoot_capacity():
    repo = EventRepository()
    manager = RegistrationManager(repo, EventBus(), clock=lambda: _NOW, max_retries=1000)
    event = repo.add(
        _make_event(
            registration_settings=RegistrationSettings(max_attendees=10, allow_waitlist=True)
        )
    )

    def register(n: int) -> None:
        manager.request_registration(
            event.id, GuestIdentity(email=f"guest{n}@example.org"), _ATTEND
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(register, range(30)))

    stored = repo.get(event.id)
    assert stored.attendee_count == 10
    assert stored.waitlist_count == 20
    assert len(stored.rsvps) == 30
