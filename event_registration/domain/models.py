"""Domain models for event registration and attendance."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from dateutil import tz
from pydantic import (
    BaseModel,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from event_registration.core.config import settings

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EventStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    COMPLETED = "completed"


class Visibility(StrEnum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class LocationType(StrEnum):
    PHYSICAL = "physical"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"


class VirtualPlatform(StrEnum):
    ZOOM = "zoom"
    TEAMS = "teams"
    MEET = "meet"
    WEBEX = "webex"
    CUSTOM = "custom"


class Category(StrEnum):
    FUNDRAISING = "fundraising"
    AWARENESS = "awareness"
    VOLUNTEER = "volunteer"
    EDUCATIONAL = "educational"
    SOCIAL = "social"
    MEETING = "meeting"
    WORKSHOP = "workshop"
    CONFERENCE = "conference"


class EventType(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"
    MEMBERS_ONLY = "members-only"
    INVITE_ONLY = "invite-only"


class RsvpStatus(StrEnum):
    ATTENDING = "attending"
    NOT_ATTENDING = "not-attending"
    MAYBE = "maybe"
    WAITLIST = "waitlist"


class CheckInStatus(StrEnum):
    CHECKED_IN = "checked-in"
    NO_SHOW = "no-show"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class RecipientType(StrEnum):
    ALL = "all"
    ATTENDING = "attending"
    NOT_ATTENDING = "not-attending"
    WAITLIST = "waitlist"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    RSVP_RECORDED = "rsvp_recorded"
    CHECKED_IN = "checked_in"
    NO_SHOW = "no_show"
    WAITLIST_PROMOTED = "waitlist_promoted"
    ANNOUNCEMENT_SENT = "announcement_sent"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so every comparison is between aware values."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class MemberIdentity(BaseModel):
    """A registered member, referenced by an opaque user id."""

    kind: Literal["member"] = "member"
    user_id: str = Field(min_length=1)

    def key(self) -> str:
        return f"member:{self.user_id}"


class GuestIdentity(BaseModel):
    """A non-member guest, identified by email address."""

    kind: Literal["guest"] = "guest"
    email: str
    name: str | None = Field(default=None, max_length=100)
    phone: str | None = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Please provide a valid guest email")
        return value

    def key(self) -> str:
        return f"guest:{self.email}"


Identity = Annotated[Union[MemberIdentity, GuestIdentity], Field(discriminator="kind")]


def identity_equals(a: MemberIdentity | GuestIdentity, b: MemberIdentity | GuestIdentity) -> bool:
    """Members match on user id, guests on email. A member never matches a guest."""
    return a.key() == b.key()


# ---------------------------------------------------------------------------
# Embedded records
# ---------------------------------------------------------------------------


class Rsvp(BaseModel):
    id: str = Field(default_factory=_new_id)
    identity: Identity
    status: RsvpStatus
    response_date: datetime = Field(default_factory=_utcnow)
    additional_info: dict[str, Any] = Field(default_factory=dict)
    ticket_type: str | None = None
    payment_status: PaymentStatus | None = None
    check_in_status: CheckInStatus | None = None
    check_in_time: datetime | None = None
    # When the RSVP last entered the waitlist; promotion order.
    waitlisted_at: datetime | None = None
    # Extra people the identity brings along; never counted against capacity.
    companions: int = Field(default=0, ge=0, le=10)

    @model_validator(mode="after")
    def _check_in_requires_attending(self) -> Rsvp:
        if self.check_in_status is not None and self.status != RsvpStatus.ATTENDING:
            raise ValueError("check_in_status can only be set on an attending RSVP")
        checked_in = self.check_in_status == CheckInStatus.CHECKED_IN
        if checked_in != (self.check_in_time is not None):
            raise ValueError("check_in_time must be set exactly when checked in")
        return self


class Announcement(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=2000)
    sent_at: datetime = Field(default_factory=_utcnow)
    sent_by: str
    recipient_type: RecipientType


class Address(BaseModel):
    street: str | None = Field(default=None, max_length=200)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    zip_code: str | None = Field(default=None, max_length=20)
    country: str = Field(default="United States", max_length=100)


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Venue(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    address: Address = Field(default_factory=Address)
    coordinates: Coordinates | None = None


class VirtualDetails(BaseModel):
    platform: VirtualPlatform = VirtualPlatform.CUSTOM
    meeting_url: str | None = None
    meeting_id: str | None = Field(default=None, max_length=100)
    passcode: str | None = Field(default=None, max_length=50)
    dial_in_number: str | None = Field(default=None, max_length=50)


class Location(BaseModel):
    type: LocationType
    venue: Venue | None = None
    virtual: VirtualDetails | None = None
    capacity: int | None = Field(default=None, ge=1, le=100_000)
    accessibility_features: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _keep_matching_details(self) -> Location:
        # Only the sub-structure matching the location type carries meaning.
        if self.type == LocationType.PHYSICAL:
            self.virtual = None
        elif self.type == LocationType.VIRTUAL:
            self.venue = None
        return self


class RegistrationSettings(BaseModel):
    open_date: datetime | None = None
    close_date: datetime | None = None
    max_attendees: int | None = Field(default=None, ge=1)
    allow_waitlist: bool = False
    require_approval: bool = False

    @field_validator("open_date", "close_date")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _window_is_ordered(self) -> RegistrationSettings:
        if self.open_date and self.close_date and self.close_date < self.open_date:
            raise ValueError("Registration close date must be after open date")
        return self


class GroupDiscount(BaseModel):
    min_quantity: int = Field(ge=2)
    discount_percent: float = Field(ge=0, le=100)


class Pricing(BaseModel):
    is_free: bool = True
    base_price: float | None = Field(default=None, ge=0)
    currency: str = "USD"
    early_bird_price: float | None = Field(default=None, ge=0)
    early_bird_deadline: datetime | None = None
    member_discount: float | None = Field(default=None, ge=0, le=100)
    group_discounts: list[GroupDiscount] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @field_validator("early_bird_deadline")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _paid_needs_price(self) -> Pricing:
        if not self.is_free and self.base_price is None:
            raise ValueError("Paid events need a base price")
        return self


class Organizer(BaseModel):
    primary_contact: str
    co_organizers: list[str] = Field(default_factory=list)
    department: str | None = Field(default=None, max_length=100)
    contact_email: str
    contact_phone: str | None = None

    @field_validator("contact_email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Please provide a valid contact email")
        return value


class Budget(BaseModel):
    estimated_cost: float = Field(default=0, ge=0)
    actual_cost: float | None = Field(default=None, ge=0)
    revenue: float | None = Field(default=None, ge=0)
    profit_loss: float | None = None


class Analytics(BaseModel):
    views: int = Field(default=0, ge=0)
    unique_views: int = Field(default=0, ge=0)
    registration_conversion_rate: float | None = Field(default=None, ge=0, le=100)
    attendance_rate: float | None = Field(default=None, ge=0, le=100)
    satisfaction_score: float | None = Field(default=None, ge=0, le=10)


# ---------------------------------------------------------------------------
# Event document
# ---------------------------------------------------------------------------


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=20, max_length=5000)
    short_description: str | None = Field(default=None, max_length=300)

    start_date: datetime
    end_date: datetime
    timezone: str = Field(default_factory=lambda: settings.default_timezone)
    is_all_day: bool = False

    location: Location
    category: Category
    event_type: EventType = EventType.PUBLIC
    tags: list[str] = Field(default_factory=list)

    requires_registration: bool = True
    registration_settings: RegistrationSettings = Field(
        default_factory=RegistrationSettings
    )
    pricing: Pricing = Field(default_factory=Pricing)

    organizer: Organizer
    status: EventStatus = EventStatus.DRAFT
    visibility: Visibility = Visibility.PUBLIC
    publish_date: datetime | None = None

    rsvps: list[Rsvp] = Field(default_factory=list)
    announcements: list[Announcement] = Field(default_factory=list)

    budget: Budget | None = None
    analytics: Analytics = Field(default_factory=Analytics)
    notes: str | None = Field(default=None, max_length=2000)

    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("start_date", "end_date", "publish_date")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if not value or tz.gettz(value) is None:
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @field_validator("tags")
    @classmethod
    def _lowercase_tags(cls, value: list[str]) -> list[str]:
        return [tag.strip().lower() for tag in value if tag.strip()]

    @model_validator(mode="after")
    def _end_not_before_start(self) -> Event:
        if self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self

    @model_validator(mode="after")
    def _one_rsvp_per_identity(self) -> Event:
        seen: set[str] = set()
        for rsvp in self.rsvps:
            key = rsvp.identity.key()
            if key in seen:
                raise ValueError(f"Duplicate RSVP for {key}")
            seen.add(key)
        return self

    @computed_field
    @property
    def attendee_count(self) -> int:
        return sum(1 for r in self.rsvps if r.status == RsvpStatus.ATTENDING)

    @computed_field
    @property
    def waitlist_count(self) -> int:
        return sum(1 for r in self.rsvps if r.status == RsvpStatus.WAITLIST)

    def find_rsvp(self, identity: MemberIdentity | GuestIdentity) -> Rsvp | None:
        for rsvp in self.rsvps:
            if identity_equals(rsvp.identity, identity):
                return rsvp
        return None


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    event_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


class OutboxMessage(BaseModel):
    """An announcement awaiting delivery by the external notifier."""

    id: str = Field(default_factory=_new_id)
    event_id: str
    announcement_id: str
    title: str
    message: str
    recipients: list[Identity] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    delivered: bool = False


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class EventCreate(BaseModel):
    title: str
    description: str
    short_description: str | None = None
    start_date: datetime
    end_date: datetime
    timezone: str | None = None
    is_all_day: bool = False
    location: Location
    category: Category
    event_type: EventType = EventType.PUBLIC
    tags: list[str] = Field(default_factory=list)
    requires_registration: bool = True
    registration_settings: RegistrationSettings = Field(
        default_factory=RegistrationSettings
    )
    pricing: Pricing = Field(default_factory=Pricing)
    organizer: Organizer
    visibility: Visibility = Visibility.PUBLIC
    publish_date: datetime | None = None
    budget: Budget | None = None
    notes: str | None = None


class RsvpPayload(BaseModel):
    status: RsvpStatus
    ticket_type: str | None = None
    payment_status: PaymentStatus | None = None
    additional_info: dict[str, Any] = Field(default_factory=dict)
    companions: int = Field(default=0, ge=0, le=10)


class RsvpRequest(RsvpPayload):
    identity: Identity


class RegistrationRequest(RsvpRequest):
    status: RsvpStatus = RsvpStatus.ATTENDING


class RsvpStatusUpdate(BaseModel):
    identity: Identity
    status: RsvpStatus


class IdentityRequest(BaseModel):
    identity: Identity


class AnnouncementRequest(BaseModel):
    title: str
    message: str
    sent_by: str
    recipient_type: RecipientType = RecipientType.ALL


class StatusChangeRequest(BaseModel):
    status: EventStatus


class ViewRequest(BaseModel):
    unique: bool = False


class AttendanceSummary(BaseModel):
    event_id: str
    attending: int
    waitlist: int
    maybe: int
    not_attending: int
    checked_in: int
    no_show: int
    companions: int
    attendance_rate: float


class CategoryCount(BaseModel):
    category: Category
    count: int


class EventStatistics(BaseModel):
    total_events: int
    upcoming_events: int
    total_attendees: int
    average_attendance: float
    top_categories: list[CategoryCount] = Field(default_factory=list)
    monthly_event_count: dict[str, int] = Field(default_factory=dict)


class PriceQuote(BaseModel):
    event_id: str
    quantity: int
    currency: str
    unit_price: float
    early_bird_applied: bool = False
    member_discount_percent: float = 0
    group_discount_percent: float = 0
    total: float
