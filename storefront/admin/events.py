"""Event administration: events, their registrations and publish state."""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

from storefront.admin.dates import isoformat, parse_datetime
from storefront.errors import NotFoundError, ValidationError
from storefront.store.base import RecordStore

logger = logging.getLogger(__name__)

TABLE = "events"
REGISTRATIONS = "event_registrations"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RegistrationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class EventInput(BaseModel):
    """Editable event fields."""

    title: str = ""
    description: str = ""
    event_type: str = "workshop"
    location_type: str = "virtual"
    location_details: str = ""
    start_date: str | None = None
    end_date: str | None = None
    cover_image_url: str | None = None
    max_capacity: int | None = None
    ticket_price: Decimal = Decimal("0")
    is_free: bool = True
    status: EventStatus = EventStatus.DRAFT


def event_row(data: EventInput) -> dict[str, Any]:
    if not data.title.strip():
        raise ValidationError("Please enter an event title")
    start = parse_datetime(data.start_date)
    if start is None:
        raise ValidationError("Please select a start date")
    end = parse_datetime(data.end_date)
    if data.end_date and end is None:
        raise ValidationError(f"Invalid end_date: {data.end_date}")
    return {
        "title": data.title.strip(),
        "description": data.description,
        "event_type": data.event_type,
        "location_type": data.location_type,
        "location_details": data.location_details,
        "start_date": isoformat(start),
        "end_date": isoformat(end),
        "cover_image_url": data.cover_image_url or None,
        "max_capacity": data.max_capacity,
        "ticket_price": Decimal("0") if data.is_free else data.ticket_price,
        "is_free": data.is_free,
        "status": data.status.value,
    }


class EventService:
    """CRUD over events and event registrations."""

    def __init__(self, store: RecordStore):
        self._store = store

    def _confirmed_count(self, event_id: str) -> int:
        return len(
            self._store.list_records(
                REGISTRATIONS,
                {"event_id": event_id, "status": RegistrationStatus.CONFIRMED.value},
            )
        )

    def list_events(self, status: str = "all") -> list[dict[str, Any]]:
        """Events newest first, each with its confirmed ``registration_count``."""
        filters = None
        if status != "all":
            try:
                filters = {"status": EventStatus(status).value}
            except ValueError:
                raise ValidationError(f"Unknown event status: {status}") from None
        events = self._store.list_records(TABLE, filters, order_by="start_date", descending=True)
        for event in events:
            event["registration_count"] = self._confirmed_count(event["id"])
        return events

    def get_event(self, event_id: str) -> dict[str, Any]:
        event = self._store.get_record(TABLE, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def create_event(self, data: EventInput) -> dict[str, Any]:
        event = self._store.insert_record(TABLE, event_row(data))
        logger.info("Event created: %s (%s)", event["title"], event["id"])
        return event

    def update_event(self, event_id: str, data: EventInput) -> dict[str, Any]:
        event = self._store.update_record(TABLE, event_id, event_row(data))
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def delete_event(self, event_id: str) -> int:
        """Delete an event and all of its registrations."""
        self.get_event(event_id)
        removed = self._store.delete_where(REGISTRATIONS, "event_id", event_id)
        self._store.delete_record(TABLE, event_id)
        logger.info("Event deleted: %s (%d registrations)", event_id, removed)
        return removed

    def toggle_published(self, event_id: str) -> dict[str, Any]:
        """Flip an event between published and draft."""
        event = self.get_event(event_id)
        new_status = (
            EventStatus.DRAFT
            if event.get("status") == EventStatus.PUBLISHED.value
            else EventStatus.PUBLISHED
        )
        updated = self._store.update_record(TABLE, event_id, {"status": new_status.value})
        if updated is None:
            raise NotFoundError("Event not found")
        return updated

    def list_registrations(self, event_id: str) -> list[dict[str, Any]]:
        self.get_event(event_id)
        return self._store.list_records(
            REGISTRATIONS, {"event_id": event_id}, order_by="registered_at"
        )

    def cancel_registration(self, registration_id: str) -> dict[str, Any]:
        registration = self._store.update_record(
            REGISTRATIONS, registration_id, {"status": RegistrationStatus.CANCELLED.value}
        )
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration
