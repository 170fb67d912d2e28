"""Tests for RSVP mutations, check-in and waitlist promotion."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from event_registration.domain.errors import NotFoundError, PolicyViolation
from event_registration.domain.models import (
    AnnouncementRequest,
    Category,
    CheckInStatus,
    Event,
    EventStatus,
    GuestIdentity,
    Location,
    LocationType,
    MemberIdentity,
    Organizer,
    RecipientType,
    RegistrationSettings,
    RsvpPayload,
    RsvpStatus,
    identity_equals,
)
from event_registration.services.registration import (
    add_rsvp,
    check_in_attendee,
    mark_no_show,
    promote_waitlist,
    record_view,
    request_registration,
    send_announcement,
    update_rsvp,
)

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_event(**overrides) -> Event:
    defaults = dict(
        title="Registration test event",
        description="An event used to exercise RSVP handling end to end.",
        start_date=_NOW + timedelta(days=7),
        end_date=_NOW + timedelta(days=7, hours=2),
        location=Location(type=LocationType.VIRTUAL),
        category=Category.SOCIAL,
        organizer=Organizer(primary_contact="org-1", contact_email="org@example.org"),
        status=EventStatus.PUBLISHED,
    )
    defaults.update(overrides)
    return Event(**defaults)


_ATTEND = RsvpPayload(status=RsvpStatus.ATTENDING)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def test_guest_email_is_case_insensitive():
    assert identity_equals(
        GuestIdentity(email="Ada@Example.org"), GuestIdentity(email="ada@example.org")
    )


def test_member_never_matches_guest():
    assert not identity_equals(
        MemberIdentity(user_id="ada@example.org"), GuestIdentity(email="ada@example.org")
    )


# ---------------------------------------------------------------------------
# add_rsvp / update_rsvp
# ---------------------------------------------------------------------------


def test_add_rsvp_is_idempotent():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")

    first = add_rsvp(event, member, _ATTEND, _NOW)
    second = add_rsvp(event, member, _ATTEND, _NOW)

    assert len(event.rsvps) == 1
    assert first.id == second.id
    assert event.rsvps[0].status == RsvpStatus.ATTENDING


def test_add_rsvp_last_write_wins():
    event = _make_event()
    guest = GuestIdentity(email="guest@example.org")

    add_rsvp(event, guest, _ATTEND, _NOW)
    add_rsvp(event, guest, RsvpPayload(status=RsvpStatus.MAYBE, companions=2), _NOW)

    assert len(event.rsvps) == 1
    assert event.rsvps[0].status == RsvpStatus.MAYBE
    assert event.rsvps[0].companions == 2


def test_add_rsvp_ignores_capacity():
    event = _make_event(registration_settings=RegistrationSettings(max_attendees=1))
    add_rsvp(event, MemberIdentity(user_id="u-1"), _ATTEND, _NOW)
    add_rsvp(event, MemberIdentity(user_id="u-2"), _ATTEND, _NOW)
    assert event.attendee_count == 2


def test_update_rsvp_missing_identity_raises():
    event = _make_event()
    with pytest.raises(NotFoundError):
        update_rsvp(event, MemberIdentity(user_id="nobody"), RsvpStatus.MAYBE, _NOW)


def test_update_rsvp_changes_status_and_response_date():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)

    later = _NOW + timedelta(hours=1)
    rsvp = update_rsvp(event, member, RsvpStatus.NOT_ATTENDING, later)

    assert rsvp.status == RsvpStatus.NOT_ATTENDING
    assert rsvp.response_date == later


# ---------------------------------------------------------------------------
# Check-in / no-show
# ---------------------------------------------------------------------------


def test_check_in_sets_status_and_time():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)

    rsvp = check_in_attendee(event, member, _NOW)

    assert rsvp.check_in_status == CheckInStatus.CHECKED_IN
    assert rsvp.check_in_time == _NOW


def test_check_in_twice_keeps_first_time():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)

    check_in_attendee(event, member, _NOW)
    rsvp = check_in_attendee(event, member, _NOW + timedelta(minutes=30))

    assert rsvp.check_in_time == _NOW


def test_check_in_waitlisted_rsvp_is_rejected():
    event = _make_event(
        registration_settings=RegistrationSettings(max_attendees=1, allow_waitlist=True)
    )
    request_registration(event, GuestIdentity(email="a@example.org"), _ATTEND, _NOW)
    waiting = GuestIdentity(email="b@example.org")
    request_registration(event, waiting, _ATTEND, _NOW)

    with pytest.raises(PolicyViolation):
        check_in_attendee(event, waiting, _NOW)
    assert event.find_rsvp(waiting).check_in_status is None


def test_check_in_unknown_identity_is_rejected():
    event = _make_event()
    with pytest.raises(NotFoundError):
        check_in_attendee(event, MemberIdentity(user_id="ghost"), _NOW)


def test_checked_in_attendee_cannot_stop_attending():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)
    check_in_attendee(event, member, _NOW)

    with pytest.raises(PolicyViolation):
        update_rsvp(event, member, RsvpStatus.NOT_ATTENDING, _NOW)


def test_mark_no_show_and_clear_on_status_change():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)

    assert mark_no_show(event, member).check_in_status == CheckInStatus.NO_SHOW

    rsvp = update_rsvp(event, member, RsvpStatus.MAYBE, _NOW)
    assert rsvp.check_in_status is None


def test_mark_no_show_after_check_in_is_rejected():
    event = _make_event()
    member = MemberIdentity(user_id="u-1")
    add_rsvp(event, member, _ATTEND, _NOW)
    check_in_attendee(event, member, _NOW)

    with pytest.raises(PolicyViolation):
        mark_no_show(event, member)


# ---------------------------------------------------------------------------
# Waitlist promotion
# ---------------------------------------------------------------------------


def test_promote_waitlist_takes_oldest_first_within_capacity():
    event = _make_event(
        registration_settings=RegistrationSettings(max_attendees=2, allow_waitlist=True)
    )
    guests = [GuestIdentity(email=f"g{n}@example.org") for n in range(5)]
    for n, guest in enumerate(guests):
        request_registration(event, guest, _ATTEND, _NOW + timedelta(minutes=n))

    update_rsvp(event, guests[0], RsvpStatus.NOT_ATTENDING, _NOW + timedelta(hours=1))
    promoted = promote_waitlist(event, _NOW + timedelta(hours=1))

    assert [r.identity.key() for r in promoted] == [guests[2].key()]
    assert event.attendee_count == 2
    assert event.waitlist_count == 2


def test_promote_waitlist_respects_limit():
    event = _make_event(registration_settings=RegistrationSettings(allow_waitlist=True))
    for n in range(3):
        add_rsvp(
            event,
            GuestIdentity(email=f"g{n}@example.org"),
            RsvpPayload(status=RsvpStatus.WAITLIST),
            _NOW + timedelta(minutes=n),
        )

    promoted = promote_waitlist(event, _NOW, limit=2)

    assert len(promoted) == 2
    assert event.waitlist_count == 1


def test_waitlisted_resubmission_keeps_queue_position():
    event = _make_event(
        registration_settings=RegistrationSettings(max_attendees=1, allow_waitlist=True)
    )
    guests = [GuestIdentity(email=f"g{n}@example.org") for n in range(3)]
    for n, guest in enumerate(guests):
        request_registration(event, guest, _ATTEND, _NOW + timedelta(minutes=n))

    again = request_registration(event, guests[1], _ATTEND, _NOW + timedelta(minutes=3))
    assert again.status == RsvpStatus.WAITLIST

    update_rsvp(event, guests[0], RsvpStatus.NOT_ATTENDING, _NOW + timedelta(minutes=4))
    promoted = promote_waitlist(event, _NOW + timedelta(minutes=4))

    assert [r.identity.key() for r in promoted] == ["guest:g1@example.org"]


def test_rejoining_waitlist_goes_to_the_back():
    event = _make_event(
        registration_settings=RegistrationSettings(max_attendees=1, allow_waitlist=True)
    )
    guests = [GuestIdentity(email=f"g{n}@example.org") for n in range(3)]
    for n, guest in enumerate(guests):
        request_registration(event, guest, _ATTEND, _NOW + timedelta(minutes=n))

    update_rsvp(event, guests[1], RsvpStatus.MAYBE, _NOW + timedelta(minutes=3))
    update_rsvp(event, guests[1], RsvpStatus.WAITLIST, _NOW + timedelta(minutes=4))
    assert event.find_rsvp(guests[1]).waitlisted_at == _NOW + timedelta(minutes=4)

    update_rsvp(event, guests[0], RsvpStatus.NOT_ATTENDING, _NOW + timedelta(minutes=5))
    promoted = promote_waitlist(event, _NOW + timedelta(minutes=5))

    assert [r.identity.key() for r in promoted] == ["guest:g2@example.org"]
    assert event.find_rsvp(guests[2]).waitlisted_at is None


@pytest.mark.parametrize(
    "status", [EventStatus.DRAFT, EventStatus.CANCELLED, EventStatus.COMPLETED]
)
def test_promote_waitlist_needs_a_running_event(status):
    event = _make_event(
        status=status, registration_settings=RegistrationSettings(allow_waitlist=True)
    )
    add_rsvp(
        event, GuestIdentity(email="w@example.org"), RsvpPayload(status=RsvpStatus.WAITLIST), _NOW
    )

    with pytest.raises(PolicyViolation):
        promote_waitlist(event, _NOW)
    assert event.waitlist_count == 1


def test_promote_waitlist_on_postponed_event():
    event = _make_event(
        status=EventStatus.POSTPONED,
        registration_settings=RegistrationSettings(allow_waitlist=True),
    )
    add_rsvp(
        event, GuestIdentity(email="w@example.org"), RsvpPayload(status=RsvpStatus.WAITLIST), _NOW
    )

    assert len(promote_waitlist(event, _NOW)) == 1


def test_promote_waitlist_on_full_event_does_nothing():
    event = _make_event(
        registration_settings=RegistrationSettings(max_attendees=1, allow_waitlist=True)
    )
    request_registration(event, GuestIdentity(email="a@example.org"), _ATTEND, _NOW)
    request_registration(event, GuestIdentity(email="b@example.org"), _ATTEND, _NOW)

    assert promote_waitlist(event, _NOW) == []


# ---------------------------------------------------------------------------
# Announcements / views
# ---------------------------------------------------------------------------


def test_send_announcement_appends():
    event = _make_event()
    request = AnnouncementRequest(
        title="Parking update",
        message="Use the north lot.",
        sent_by="org-1",
        recipient_type=RecipientType.ATTENDING,
    )

    announcement = send_announcement(event, request, _NOW)

    assert event.announcements == [announcement]
    assert announcement.sent_at == _NOW
    assert announcement.recipient_type == RecipientType.ATTENDING


def test_record_view_counts_unique_separately():
    event = _make_event()
    record_view(event, unique=True)
    record_view(event, unique=False)
    assert event.analytics.views == 2
    assert event.analytics.unique_views == 1
