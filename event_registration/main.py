"""FastAPI application: entry point for the event registration service."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import pydantic
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from event_registration.core.config import settings
from event_registration.core.logging import setup_logging
from event_registration.domain.bus import EventBus
from event_registration.domain.errors import (
    ConcurrencyConflict,
    NotFoundError,
    PolicyViolation,
    StorageError,
    ValidationError,
)
from event_registration.domain.handlers import HandlerRegistry
from event_registration.domain.models import (
    AnnouncementRequest,
    AttendanceSummary,
    Category,
    Event,
    EventCreate,
    EventStatistics,
    IdentityRequest,
    OutboxMessage,
    PriceQuote,
    RegistrationRequest,
    RsvpRequest,
    RsvpStatusUpdate,
    StatusChangeRequest,
    TimelineEntry,
    ViewRequest,
)
from event_registration.repos.memory import (
    OutboxRepository,
    TimelineRepository,
    create_event_repository,
)
from event_registration.services import discovery
from event_registration.services.analytics import attendance_summary, get_event_statistics
from event_registration.services.dates import parse_range
from event_registration.services.pricing import quote_price
from event_registration.services.registration import RegistrationManager

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
event_repo = create_event_repository(seed=settings.seed_sample_data)
timeline_repo = TimelineRepository()
outbox_repo = OutboxRepository()

handler_registry = HandlerRegistry(
    bus=event_bus,
    timeline_repo=timeline_repo,
    outbox_repo=outbox_repo,
)
registration_manager = RegistrationManager(event_repo=event_repo, bus=event_bus)


def _now() -> datetime:
    return datetime.now(UTC)


def _get_event_or_404(event_id: str) -> Event:
    event = event_repo.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


# ── Error mapping ─────────────────────────────────────────────────────


@app.exception_handler(ValidationError)
async def _on_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "errors": [e.model_dump() for e in exc.errors]},
    )


@app.exception_handler(NotFoundError)
async def _on_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PolicyViolation)
async def _on_policy_violation(request: Request, exc: PolicyViolation) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConcurrencyConflict)
async def _on_conflict(request: Request, exc: ConcurrencyConflict) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def _on_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ── Events ────────────────────────────────────────────────────────────


@app.post("/events", response_model=Event, status_code=201)
def create_event(body: EventCreate) -> Event:
    """Create an event; it starts as a draft unless its publish date has passed."""
    data = body.model_dump(exclude={"timezone"} if body.timezone is None else None)
    try:
        event = Event(**data)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc
    return registration_manager.create_event(event)


@app.get("/events", response_model=list[Event])
def list_events() -> list[Event]:
    """Return all stored events."""
    return event_repo.list_all()


@app.get("/events/upcoming", response_model=list[Event])
def upcoming_events(limit: int = settings.default_upcoming_limit) -> list[Event]:
    return discovery.get_upcoming_events(event_repo.list_all(), _now(), limit)


@app.get("/events/popular", response_model=list[Event])
def popular_events(limit: int = settings.default_popular_limit) -> list[Event]:
    return discovery.get_popular_events(event_repo.list_all(), _now(), limit)


@app.get("/events/by-category/{category}", response_model=list[Event])
def events_by_category(category: Category) -> list[Event]:
    return discovery.get_events_by_category(event_repo.list_all(), category)


@app.get("/events/by-date", response_model=list[Event])
def events_by_date(start: str, end: str) -> list[Event]:
    """Events overlapping ``[start, end]``; accepts ISO dates or phrases like "tomorrow"."""
    range_start, range_end = parse_range(start, end, _now())
    return discovery.get_events_by_date(event_repo.list_all(), range_start, range_end)


@app.get("/events/search", response_model=list[Event])
def search_events(q: str, filters: str | None = None) -> list[Event]:
    """Free-text search. *filters* is a JSON object of field path to value."""
    parsed_filters = None
    if filters:
        try:
            parsed_filters = json.loads(filters)
        except json.JSONDecodeError as exc:
            raise ValidationError.single("filters", f"Invalid JSON: {exc.msg}") from exc
        if not isinstance(parsed_filters, dict):
            raise ValidationError.single("filters", "Filters must be a JSON object")
    return discovery.search_events(event_repo.list_all(), q, parsed_filters)


@app.get("/events/{event_id}", response_model=Event)
def get_event(event_id: str) -> Event:
    """Return a single event by id."""
    return _get_event_or_404(event_id)


@app.post("/events/{event_id}/status", response_model=Event)
def change_status(event_id: str, body: StatusChangeRequest) -> Event:
    return registration_manager.change_status(event_id, body.status)


@app.post("/events/{event_id}/views", response_model=Event)
def record_view(event_id: str, body: ViewRequest) -> Event:
    return registration_manager.record_view(event_id, unique=body.unique)


# ── RSVPs ─────────────────────────────────────────────────────────────


@app.post("/events/{event_id}/rsvps", response_model=Event)
def add_rsvp(event_id: str, body: RsvpRequest) -> Event:
    """Store an RSVP exactly as given, replacing any earlier one from the same identity."""
    return registration_manager.add_rsvp(event_id, body.identity, body)


@app.patch("/events/{event_id}/rsvps", response_model=Event)
def update_rsvp(event_id: str, body: RsvpStatusUpdate) -> Event:
    return registration_manager.update_rsvp(event_id, body.identity, body.status)


@app.post("/events/{event_id}/registrations", response_model=Event)
def register(event_id: str, body: RegistrationRequest) -> Event:
    """Register through the capacity policy; a full event may waitlist the request."""
    return registration_manager.request_registration(event_id, body.identity, body)


@app.post("/events/{event_id}/check-ins", response_model=Event)
def check_in(event_id: str, body: IdentityRequest) -> Event:
    return registration_manager.check_in_attendee(event_id, body.identity)


@app.post("/events/{event_id}/no-shows", response_model=Event)
def no_show(event_id: str, body: IdentityRequest) -> Event:
    return registration_manager.mark_no_show(event_id, body.identity)


@app.post("/events/{event_id}/waitlist/promote", response_model=Event)
def promote_waitlist(event_id: str, limit: int | None = None) -> Event:
    return registration_manager.promote_waitlist(event_id, limit)


# ── Announcements ─────────────────────────────────────────────────────


@app.post("/events/{event_id}/announcements", response_model=Event)
def send_announcement(event_id: str, body: AnnouncementRequest) -> Event:
    try:
        return registration_manager.send_announcement(event_id, body)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


@app.get("/events/{event_id}/outbox", response_model=list[OutboxMessage])
def event_outbox(event_id: str) -> list[OutboxMessage]:
    _get_event_or_404(event_id)
    return outbox_repo.list_for_event(event_id)


# ── Read models ───────────────────────────────────────────────────────


@app.get("/events/{event_id}/attendance", response_model=AttendanceSummary)
def event_attendance(event_id: str) -> AttendanceSummary:
    return attendance_summary(_get_event_or_404(event_id))


@app.get("/events/{event_id}/timeline", response_model=list[TimelineEntry])
def event_timeline(event_id: str) -> list[TimelineEntry]:
    _get_event_or_404(event_id)
    return timeline_repo.list_for_event(event_id)


@app.get("/events/{event_id}/price", response_model=PriceQuote)
def event_price(event_id: str, member: bool = False, quantity: int = 1) -> PriceQuote:
    return quote_price(_get_event_or_404(event_id), _now(), is_member=member, quantity=quantity)


@app.get("/organizers/{organizer_id}/events", response_model=list[Event])
def organizer_events(organizer_id: str) -> list[Event]:
    return discovery.get_organizer_events(event_repo.list_all(), organizer_id)


@app.get("/statistics", response_model=EventStatistics)
def statistics() -> EventStatistics:
    return get_event_statistics(event_repo, _now())
