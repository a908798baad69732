"""
Admin API routes for running the event.

Protected by bearer token authentication with the admin role claim.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from app.api.dependencies import require_admin
from app.db.session import get_read_store, get_write_store
from app.db.store import DocumentStore
from app.exceptions import (
    AccessKeyNotFoundError,
    AlreadyScannedError,
    DuplicateAccessKeyError,
    InvalidAccessKeyError,
    TicketNotFoundError,
)
from app.models.api import (
    AccessKeyCreateRequest,
    AccessKeyListResponse,
    AccessKeyResponse,
    AnalyticsResponse,
    EventDetailsResponse,
    EventDetailsUpdateRequest,
    ScanRequest,
    TicketListResponse,
    TicketResponse,
)
from app.models.domain import AuthenticatedUser
from app.services.access_keys import AccessKeyService
from app.services.analytics import AnalyticsService
from app.services.event_details import EventDetailsService, EventDetailsUpdate
from app.services.tickets import TicketService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Event Details
# ============================================================================


@router.put("/event", response_model=EventDetailsResponse)
async def update_event(
    request: EventDetailsUpdateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_write_store),
) -> EventDetailsResponse:
    """Update the event details. Already issued tickets keep their snapshot."""
    update = EventDetailsUpdate(
        event_name=request.event_name.strip(),
        event_date=request.event_date.isoformat(),
        start_time=request.start_time.strip(),
        end_time=request.end_time.strip(),
        venue=request.venue.strip(),
        price=request.price.strip(),
        currency=request.currency,
        dress_code=request.dress_code.strip(),
        description=request.description.strip(),
    )
    event = await EventDetailsService(store).update_event_details(update, admin.user_id)
    return EventDetailsResponse.from_domain(event)


# ============================================================================
# Access Keys
# ============================================================================


@router.post(
    "/access-keys",
    response_model=AccessKeyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_access_key(
    request: AccessKeyCreateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_write_store),
) -> AccessKeyResponse:
    """
    Issue a single-use access key.

    Omit `code` to have one generated.
    """
    event = await EventDetailsService(store).get_event_details()

    try:
        key = await AccessKeyService(store).create_key(
            created_by=admin.user_id,
            code=request.code,
            expires_at=request.expires_at,
            event=event,
        )
    except InvalidAccessKeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid access key code: {exc.reason}",
        ) from exc
    except DuplicateAccessKeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Access key code already exists",
        ) from exc

    logger.info("admin_access_key_issued", key_id=key.key_id, admin_id=admin.user_id)
    return AccessKeyResponse.from_domain(key)


@router.get("/access-keys", response_model=AccessKeyListResponse)
async def list_access_keys(
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_read_store),
) -> AccessKeyListResponse:
    """List all access keys, newest first."""
    keys = await AccessKeyService(store).list_keys()
    return AccessKeyListResponse(
        keys=[AccessKeyResponse.from_domain(k) for k in keys],
        total=len(keys),
    )


@router.get("/access-keys/{key_id}", response_model=AccessKeyResponse)
async def get_access_key(
    key_id: str,
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_read_store),
) -> AccessKeyResponse:
    """One access key with its usage (who redeemed it, when it was last used)."""
    try:
        key = await AccessKeyService(store).get_key(key_id)
    except AccessKeyNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Access key not found",
        ) from exc
    return AccessKeyResponse.from_domain(key)


@router.post("/access-keys/{key_id}/deactivate", response_model=AccessKeyResponse)
async def deactivate_access_key(
    key_id: str,
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_write_store),
) -> AccessKeyResponse:
    """Deactivate an access key. Keys are never deleted."""
    try:
        key = await AccessKeyService(store).deactivate_key(key_id, admin.user_id)
    except AccessKeyNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Access key not found",
        ) from exc
    return AccessKeyResponse.from_domain(key)


# ============================================================================
# Tickets
# ============================================================================


@router.post("/tickets/scan", response_model=TicketResponse)
async def scan_ticket(
    request: ScanRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_write_store),
) -> TicketResponse:
    """
    Admit a ticket at the door.

    `ticket` may be the ticket id or the verification URL decoded from the QR code.
    """
    try:
        ticket = await TicketService(store).scan(request.ticket, admin.user_id, request.location)
    except TicketNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket not found",
        ) from exc
    except AlreadyScannedError as exc:
        when = exc.scanned_at.isoformat() if exc.scanned_at else "unknown time"
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Ticket already scanned at {when} by {exc.scanned_by or 'unknown'}",
        ) from exc

    return TicketResponse.from_domain(ticket)


@router.get("/tickets", response_model=TicketListResponse)
async def list_tickets(
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_read_store),
) -> TicketListResponse:
    """List every issued ticket."""
    tickets = await TicketService(store).list_all_tickets()
    return TicketListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        total=len(tickets),
    )


@router.get("/tickets/recent-scans", response_model=TicketListResponse)
async def list_recent_scans(
    limit: int = Query(10, ge=1, le=100),
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_read_store),
) -> TicketListResponse:
    """Most recently scanned tickets."""
    tickets = await TicketService(store).recent_scans(limit)
    return TicketListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        total=len(tickets),
    )


# ============================================================================
# Analytics
# ============================================================================


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    admin: AuthenticatedUser = Depends(require_admin),
    store: DocumentStore = Depends(get_read_store),
) -> AnalyticsResponse:
    """Ticket totals, scan rate, recent tickets and daily stats."""
    analytics = await AnalyticsService(store).get_analytics()
    return AnalyticsResponse.from_domain(analytics)
