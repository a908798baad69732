"""
Event Details Service - The single administrator-owned event record.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from structlog import get_logger

from app.db.store import Document, DocumentStore, format_timestamp, parse_timestamp
from app.models.domain import EventDetailsData

logger = get_logger(__name__)

EVENT_DETAILS = "eventDetails"

DEFAULT_EVENT_DETAILS: dict[str, Any] = {
    "eventName": "Freshers Welcome 2025",
    "eventDate": "2025-10-02",
    "startTime": "12:00",
    "endTime": "18:00",
    "eventTime": "12:00 - 18:00",
    "venue": "Mysterious Location",
    "price": "300",
    "currency": "INR",
    "dressCode": "Smart Casual",
    "description": (
        "Join us for an unforgettable Freshers' Party! Dance, music, games, and lots of "
        "fun await you. Don't miss this amazing opportunity to connect with your fellow "
        "classmates and create memories that will last a lifetime."
    ),
}


@dataclass(frozen=True)
class EventDetailsUpdate:
    """Administrator edit of the event record."""

    event_name: str
    event_date: str
    start_time: str
    end_time: str
    venue: str
    price: str
    currency: str
    dress_code: str
    description: str

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.event_name.strip():
            raise ValueError("event_name cannot be empty")
        if not self.venue.strip():
            raise ValueError("venue cannot be empty")


def format_time_range(start_time: str, end_time: str) -> str:
    """Display form of the event's time range."""
    if start_time and end_time:
        return f"{start_time} - {end_time}"
    return start_time or end_time


def split_time_range(event_time: str) -> tuple[str, str]:
    """Recover start/end from a stored "start - end" range."""
    start, sep, end = event_time.partition(" - ")
    if not sep:
        return event_time.strip(), ""
    return start.strip(), end.strip()


def event_details_from_document(document: Document) -> EventDetailsData:
    """Convert the stored event record, filling gaps from the defaults."""
    value = {**DEFAULT_EVENT_DETAILS, **document.value}

    start_time = value.get("startTime") or ""
    end_time = value.get("endTime") or ""
    event_time = value.get("eventTime") or ""
    # Records written with only a display range still carry start/end inside it
    if "startTime" not in document.value and "eventTime" in document.value:
        start_time, end_time = split_time_range(event_time)
    if not event_time:
        event_time = format_time_range(start_time, end_time)

    return EventDetailsData(
        event_name=value["eventName"],
        event_date=value["eventDate"],
        start_time=start_time,
        end_time=end_time,
        event_time=event_time,
        venue=value["venue"],
        price=str(value["price"]),
        currency=value["currency"],
        dress_code=value["dressCode"],
        description=value["description"],
        updated_at=parse_timestamp(value.get("updatedAt")),
        updated_by=value.get("updatedBy"),
    )


class EventDetailsService:
    """Reads and upserts the event record."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize with a document store."""
        self.store = store

    async def get_event_details(self) -> EventDetailsData:
        """
        Current event details.

        Seeds the default record on first read; a concurrent seed or admin
        write that lands first wins.
        """
        document = await self.store.get(EVENT_DETAILS)
        if document is not None:
            return event_details_from_document(document)

        seeded = {**DEFAULT_EVENT_DETAILS, "createdAt": format_timestamp(datetime.now(UTC))}
        if await self.store.create(EVENT_DETAILS, seeded):
            logger.info("event_details_seeded")
            return event_details_from_document(
                Document(path=EVENT_DETAILS, value=seeded, version=1)
            )

        document = await self.store.get(EVENT_DETAILS)
        if document is None:
            return event_details_from_document(
                Document(path=EVENT_DETAILS, value=seeded, version=1)
            )
        return event_details_from_document(document)

    async def update_event_details(
        self, update: EventDetailsUpdate, updated_by: str
    ) -> EventDetailsData:
        """Replace the event record. Issued tickets keep their own snapshot."""
        existing = await self.store.get(EVENT_DETAILS)
        value: dict[str, Any] = {
            "eventName": update.event_name,
            "eventDate": update.event_date,
            "startTime": update.start_time,
            "endTime": update.end_time,
            "eventTime": format_time_range(update.start_time, update.end_time),
            "venue": update.venue,
            "price": update.price,
            "currency": update.currency,
            "dressCode": update.dress_code,
            "description": update.description,
            "updatedAt": format_timestamp(datetime.now(UTC)),
            "updatedBy": updated_by,
        }
        if existing is not None and "createdAt" in existing.value:
            value["createdAt"] = existing.value["createdAt"]

        document = await self.store.put(EVENT_DETAILS, value)
        logger.info("event_details_updated", updated_by=updated_by, event_name=update.event_name)
        return event_details_from_document(document)
