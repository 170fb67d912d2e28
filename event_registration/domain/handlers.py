"""Domain event handlers: wired up at application startup."""

from __future__ import annotations

import logging

from event_registration.domain.bus import EventBus
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
    OutboxMessage,
    TimelineEntry,
    TimelineEntryType,
)
from event_registration.repos.memory import (
    OutboxRepository,
    TimelineRepository,
)

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        timeline_repo: TimelineRepository,
        outbox_repo: OutboxRepository,
    ) -> None:
        self.bus = bus
        self.timeline_repo = timeline_repo
        self.outbox_repo = outbox_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(EventCreated, self.on_event_created)
        self.bus.subscribe(EventStatusChanged, self.on_status_changed)
        self.bus.subscribe(RsvpRecorded, self.on_rsvp_recorded)
        self.bus.subscribe(AttendeeCheckedIn, self.on_checked_in)
        self.bus.subscribe(AttendeeMarkedNoShow, self.on_no_show)
        self.bus.subscribe(WaitlistPromoted, self.on_waitlist_promoted)
        self.bus.subscribe(AnnouncementSent, self.on_announcement_sent)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_event_created(self, event: EventCreated) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.CREATED,
                payload={"status": event.status},
            )
        )

    def on_status_changed(self, event: EventStatusChanged) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.STATUS_CHANGED,
                payload={
                    "from": event.previous,
                    "to": event.current,
                    "automatic": event.automatic,
                },
            )
        )

    def on_rsvp_recorded(self, event: RsvpRecorded) -> None:
        payload = {
            "rsvp_id": event.rsvp_id,
            "identity": event.identity_key,
            "status": event.status,
            "previous_status": event.previous_status,
        }
        if event.requested_status is not None:
            payload["requested_status"] = event.requested_status
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.RSVP_RECORDED,
                payload=payload,
            )
        )

    def on_checked_in(self, event: AttendeeCheckedIn) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.CHECKED_IN,
                payload={"rsvp_id": event.rsvp_id},
            )
        )

    def on_no_show(self, event: AttendeeMarkedNoShow) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.NO_SHOW,
                payload={"rsvp_id": event.rsvp_id},
            )
        )

    def on_waitlist_promoted(self, event: WaitlistPromoted) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.WAITLIST_PROMOTED,
                payload={"rsvp_ids": event.rsvp_ids},
            )
        )

    def on_announcement_sent(self, event: AnnouncementSent) -> None:
        # 1. Queue for the external notifier
        self.outbox_repo.add(
            OutboxMessage(
                event_id=event.event_id,
                announcement_id=event.announcement_id,
                title=event.title,
                message=event.message,
                recipients=event.recipients,
            )
        )
        logger.info(
            "Queued announcement %s for %d recipient(s)",
            event.announcement_id,
            len(event.recipients),
        )

        # 2. Timeline
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.ANNOUNCEMENT_SENT,
                payload={
                    "announcement_id": event.announcement_id,
                    "recipient_type": event.recipient_type,
                    "recipient_count": len(event.recipients),
                },
            )
        )
