"""In-memory repositories for event documents, timelines and the notification outbox."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

from event_registration.domain.errors import ConcurrencyConflict, NotFoundError, StorageError
from event_registration.domain.models import (
    Category,
    Event,
    EventStatus,
    Location,
    LocationType,
    Organizer,
    OutboxMessage,
    RegistrationSettings,
    TimelineEntry,
    Venue,
)


class EventRepository:
    """Dict-backed document store for Event aggregates, keyed by id.

    Every read hands out a deep copy, so callers mutate a private document and
    write it back whole. ``save`` is a compare-and-swap on ``Event.version``:
    it only succeeds if nobody else saved since the caller loaded.
    """

    def __init__(self) -> None:
        self._store: dict[str, Event] = {}
        self._lock = threading.Lock()

    def add(self, event: Event) -> Event:
        with self._lock:
            if event.id in self._store:
                raise StorageError(f"Event {event.id} already exists")
            stored = event.model_copy(deep=True)
            stored.version = 1
            self._store[event.id] = stored
            return stored.model_copy(deep=True)

    def get(self, event_id: str) -> Event | None:
        with self._lock:
            stored = self._store.get(event_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def list_all(self) -> list[Event]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._store.values()]

    def save(self, event: Event) -> Event:
        """Write *event* back if its version is still current; return the stored copy."""
        with self._lock:
            current = self._store.get(event.id)
            if current is None:
                raise NotFoundError(f"Event {event.id} not found")
            if current.version != event.version:
                raise ConcurrencyConflict(
                    f"Event {event.id} is at version {current.version}, "
                    f"write was based on {event.version}"
                )
            stored = event.model_copy(deep=True)
            stored.version = event.version + 1
            self._store[event.id] = stored
            return stored.model_copy(deep=True)

    def delete(self, event_id: str) -> None:
        with self._lock:
            self._store.pop(event_id, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_event(self, event_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.event_id == event_id],
            key=lambda e: e.timestamp,
        )

    def clear(self) -> None:
        self._entries.clear()


class OutboxRepository:
    """Announcements waiting for the external notifier to deliver them."""

    def __init__(self) -> None:
        self._messages: list[OutboxMessage] = []

    def add(self, message: OutboxMessage) -> None:
        self._messages.append(message)

    def list_pending(self) -> list[OutboxMessage]:
        return [m for m in self._messages if not m.delivered]

    def list_for_event(self, event_id: str) -> list[OutboxMessage]:
        return [m for m in self._messages if m.event_id == event_id]

    def mark_delivered(self, message_id: str) -> None:
        for message in self._messages:
            if message.id == message_id:
                message.delivered = True
                return
        raise NotFoundError(f"Outbox message {message_id} not found")

    def clear(self) -> None:
        self._messages.clear()


# ---------------------------------------------------------------------------
# Seed data – a few published events for exploring the API locally
# ---------------------------------------------------------------------------


def _seed_events(repo: EventRepository) -> None:
    now = datetime.now(UTC)
    organizer = Organizer(primary_contact="organizer-1", contact_email="events@example.org")

    repo.add(
        Event(
            title="Community fundraising gala",
            description="An evening of dinner and a charity auction for the shelter.",
            start_date=now + timedelta(days=14, hours=18),
            end_date=now + timedelta(days=14, hours=22),
            location=Location(type=LocationType.PHYSICAL, venue=Venue(name="Town Hall")),
            category=Category.FUNDRAISING,
            tags=["gala", "auction"],
            registration_settings=RegistrationSettings(max_attendees=120, allow_waitlist=True),
            organizer=organizer,
            status=EventStatus.PUBLISHED,
        )
    )
    repo.add(
        Event(
            title="Volunteer onboarding workshop",
            description="Hands-on introduction for new volunteers joining the programme.",
            start_date=now + timedelta(days=3, hours=10),
            end_date=now + timedelta(days=3, hours=12),
            location=Location(type=LocationType.VIRTUAL),
            category=Category.WORKSHOP,
            tags=["volunteers", "training"],
            registration_settings=RegistrationSettings(max_attendees=25),
            organizer=organizer,
            status=EventStatus.PUBLISHED,
        )
    )
    repo.add(
        Event(
            title="Annual members meeting",
            description="Yearly report, board elections and open questions from members.",
            start_date=now + timedelta(days=30, hours=17),
            end_date=now + timedelta(days=30, hours=19),
            location=Location(type=LocationType.HYBRID, venue=Venue(name="Head office")),
            category=Category.MEETING,
            organizer=organizer,
            publish_date=now + timedelta(days=7),
        )
    )


def create_event_repository(seed: bool = False) -> EventRepository:
    """Return an EventRepository, optionally pre-loaded with sample data."""
    repo = EventRepository()
    if seed:
        _seed_events(repo)
    return repo
