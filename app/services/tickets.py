"""
Ticket Service - Issuing, looking up and scanning event tickets.

Layout in the document store:
    tickets/{userId}/{ticketKey}   the ticket itself
    ticketIndex/{ticketId}         {userId, ticketKey}, for lookup by public id
    ticketHolders/{userId}         claim that enforces one ticket per user

Scanning is a single conditional update on the ticket document, conditioned
on the version that was read with isScanned == false. Two door scanners
racing on the same ticket cannot both admit it.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from structlog import get_logger

from app.config import settings
from app.db.store import (
    Document,
    DocumentStore,
    format_timestamp,
    join_path,
    parse_timestamp,
)
from app.exceptions import (
    AlreadyScannedError,
    ConflictError,
    DuplicateTicketError,
    TicketingError,
    TicketNotFoundError,
)
from app.models.domain import EventSnapshot, TicketData
from app.observability import metrics, trace_operation

logger = get_logger(__name__)

TICKETS = "tickets"
TICKET_INDEX = "ticketIndex"
TICKET_HOLDERS = "ticketHolders"

VERIFY_PATH_MARKER = "/verify-ticket/"

_MAX_ATTEMPTS = 2


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def extract_ticket_id(scanned: str) -> str:
    """
    Ticket id from scanner input.

    QR codes carry the full verification URL; door staff may also type the
    bare id. Query strings and trailing slashes are ignored.
    """
    value = scanned.strip()
    if VERIFY_PATH_MARKER in value:
        value = value.split(VERIFY_PATH_MARKER, 1)[1]
        value = value.split("?", 1)[0].split("#", 1)[0].strip("/")
    return value


def ticket_from_document(document: Document) -> TicketData:
    """Convert a stored ticket (at tickets/{userId}/{ticketKey}) to the domain model."""
    value = document.value
    segments = document.segments
    user_id = value.get("userId") or (segments[1] if len(segments) == 3 else "")
    purchase_date = parse_timestamp(value.get("purchaseDate")) or datetime.fromtimestamp(0, UTC)
    return TicketData(
        ticket_id=value["id"],
        ticket_key=document.key,
        user_id=user_id,
        user_name=value.get("userName") or "",
        event_name=value.get("eventName") or "",
        event_date=value.get("eventDate") or "",
        event_time=value.get("eventTime") or "",
        venue=value.get("venue") or "",
        price=str(value.get("price") or ""),
        purchase_date=purchase_date,
        is_scanned=bool(value.get("isScanned", False)),
        scanned_at=parse_timestamp(value.get("scannedAt")),
        scanned_by=value.get("scannedBy"),
        scan_location=value.get("scanLocation"),
        access_key_code=value.get("accessKeyCode"),
    )


class TicketService:
    """Ticket ledger over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize ticket service with a document store."""
        self.store = store

    async def list_user_tickets(self, user_id: str) -> list[TicketData]:
        """Tickets held by one user, oldest first."""
        documents = await self.store.list_children(join_path(TICKETS, user_id))
        return [ticket_from_document(document) for document in documents]

    async def list_all_tickets(self) -> list[TicketData]:
        """Every ticket of every user."""
        documents = await self.store.list_descendants(TICKETS)
        return [ticket_from_document(document) for document in documents]

    async def issue_ticket(
        self,
        user_id: str,
        user_name: str,
        event: EventSnapshot,
        access_key_code: str | None = None,
    ) -> TicketData:
        """
        Create the user's ticket with a snapshot of the event.

        Raises:
            DuplicateTicketError: User already holds a ticket
        """
        existing = await self.list_user_tickets(user_id)
        if existing:
            raise DuplicateTicketError(user_id, existing[0].ticket_id)

        ticket_id = str(uuid4())
        now = _utc_now()

        holder_path = join_path(TICKET_HOLDERS, user_id)
        claimed = await self.store.create(
            holder_path, {"ticketId": ticket_id, "claimedAt": format_timestamp(now)}
        )
        if not claimed:
            holder = await self.store.get(holder_path)
            raise DuplicateTicketError(
                user_id, holder.value.get("ticketId") if holder is not None else None
            )

        value: dict[str, Any] = {
            "id": ticket_id,
            "userId": user_id,
            "userName": user_name,
            "eventName": event.event_name,
            "eventDate": event.event_date,
            "eventTime": event.event_time,
            "venue": event.venue,
            "price": event.price,
            "purchaseDate": format_timestamp(now),
            "isScanned": False,
            "accessKeyCode": access_key_code,
        }

        try:
            ticket_key = await self.store.append(join_path(TICKETS, user_id), value)
        except TicketingError:
            # Give the claim back so the user can try again
            await self.store.delete(holder_path)
            raise

        # The ticket exists from here on; a missing index entry only slows lookups
        try:
            await self.store.put(
                join_path(TICKET_INDEX, ticket_id), {"userId": user_id, "ticketKey": ticket_key}
            )
        except TicketingError as exc:
            metrics.record_error(type(exc).__name__, "ticket_index_write")
            logger.warning(
                "ticket_index_write_failed",
                ticket_id=ticket_id,
                user_id=user_id,
                error=str(exc),
            )

        logger.info("ticket_issued", ticket_id=ticket_id, user_id=user_id, ticket_key=ticket_key)
        return ticket_from_document(
            Document(path=join_path(TICKETS, user_id, ticket_key), value=value, version=1)
        )

    async def find_ticket(self, ticket_id: str) -> TicketData | None:
        """Read-only lookup by public ticket id."""
        document = await self._locate(extract_ticket_id(ticket_id))
        if document is None:
            return None
        return ticket_from_document(document)

    async def scan(
        self, ticket_id: str, scanned_by: str, location: str | None = None
    ) -> TicketData:
        """
        Admit a ticket at the door, exactly once.

        Raises:
            TicketNotFoundError: No ticket with this id
            AlreadyScannedError: Ticket was scanned before (possibly by a concurrent scanner)
            ConflictError: Lost the race on both attempts without the ticket becoming scanned
        """
        ticket_id = extract_ticket_id(ticket_id)
        scan_location = (location or "").strip() or settings.default_scan_location

        with trace_operation("ticket_scan", ticket_id=ticket_id, location=scan_location):
            try:
                ticket = await self._scan_once(ticket_id, scanned_by, scan_location)
            except TicketingError as exc:
                metrics.record_scan(type(exc).__name__)
                logger.info(
                    "ticket_scan_rejected",
                    ticket_id=ticket_id,
                    scanned_by=scanned_by,
                    reason=type(exc).__name__,
                )
                raise

        metrics.record_scan("success")
        logger.info(
            "ticket_scanned",
            ticket_id=ticket_id,
            user_id=ticket.user_id,
            scanned_by=scanned_by,
            location=scan_location,
        )
        return ticket

    async def recent_scans(self, limit: int | None = None) -> list[TicketData]:
        """Scanned tickets, most recent scan first."""
        size = limit or settings.recent_scans_limit
        scanned = [t for t in await self.list_all_tickets() if t.is_scanned]
        epoch = datetime.fromtimestamp(0, UTC)
        scanned.sort(key=lambda t: t.scanned_at or epoch, reverse=True)
        return scanned[:size]

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _scan_once(self, ticket_id: str, scanned_by: str, location: str) -> TicketData:
        path = ""
        for attempt in range(_MAX_ATTEMPTS):
            document = await self._locate(ticket_id)
            if document is None:
                raise TicketNotFoundError(ticket_id)

            ticket = ticket_from_document(document)
            if ticket.is_scanned:
                raise AlreadyScannedError(ticket_id, ticket.scanned_at, ticket.scanned_by)

            path = document.path
            new_value = {
                **document.value,
                "isScanned": True,
                "scannedAt": format_timestamp(_utc_now()),
                "scannedBy": scanned_by,
                "scanLocation": location,
            }
            if await self.store.conditional_update(path, document.version, new_value):
                return ticket_from_document(
                    Document(path=path, value=new_value, version=document.version + 1)
                )

            metrics.record_conflict("ticket_scan")
            logger.warning("ticket_scan_conflict", ticket_id=ticket_id, attempt=attempt + 1)

        raise ConflictError(path)

    async def _locate(self, ticket_id: str) -> Document | None:
        """Find the ticket document via the id index, falling back to a full walk."""
        if not ticket_id or "/" in ticket_id:
            return None

        index = await self.store.get(join_path(TICKET_INDEX, ticket_id))
        if index is not None:
            user_id = index.value.get("userId")
            ticket_key = index.value.get("ticketKey")
            if user_id and ticket_key:
                document = await self.store.get(join_path(TICKETS, user_id, ticket_key))
                if document is not None:
                    return document

        for document in await self.store.list_descendants(TICKETS):
            if document.value.get("id") == ticket_id:
                logger.info("ticket_located_without_index", ticket_id=ticket_id)
                return document
        return None
