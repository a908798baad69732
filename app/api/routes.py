"""
API Routes - FastAPI endpoints for ticket holders and public verification.

NO DICTIONARIES - All requests/responses use Pydantic models.

ConflictError and TransportError are translated by the application-level
handlers in app.main; everything else is mapped here.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user
from app.db.session import get_read_db, get_read_store, get_write_store
from app.db.store import DocumentStore
from app.exceptions import (
    AlreadyUsedError,
    DuplicateTicketError,
    ExhaustedError,
    ExpiredError,
    NotFoundError,
)
from app.models.api import (
    EventDetailsResponse,
    HealthResponse,
    RedeemRequest,
    RedeemResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatus,
    TicketVerificationResponse,
    UserProfileResponse,
)
from app.models.domain import AuthenticatedUser
from app.services.event_details import EventDetailsService
from app.services.redemption import RedemptionService
from app.services.tickets import TicketService
from app.services.user_profiles import UserProfileService

router = APIRouter()


# =============================================================================
# User Endpoints (Bearer token)
# =============================================================================


@router.post("/v1/users/me/profile", response_model=UserProfileResponse)
async def sync_my_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_write_store),
) -> UserProfileResponse:
    """
    Record a login for the authenticated user.

    Creates the profile on first call, refreshes lastLoginAt afterwards.
    """
    profile = await UserProfileService(store).sync_profile(user)
    return UserProfileResponse.from_domain(profile)


@router.get("/v1/users/me/profile", response_model=UserProfileResponse)
async def get_my_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_read_store),
) -> UserProfileResponse:
    """Stored profile of the authenticated user. 404 until the first login sync."""
    profile = await UserProfileService(store).get_profile(user.user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )
    return UserProfileResponse.from_domain(profile)


@router.get("/v1/users/me/tickets", response_model=TicketListResponse)
async def list_my_tickets(
    user: AuthenticatedUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_read_store),
) -> TicketListResponse:
    """List the authenticated user's tickets."""
    tickets = await TicketService(store).list_user_tickets(user.user_id)
    return TicketListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        total=len(tickets),
    )


@router.post(
    "/v1/tickets/redeem",
    response_model=RedeemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeem_access_key(
    request: RedeemRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_write_store),
) -> RedeemResponse:
    """
    Redeem an access key for a ticket.

    Write operation - requires primary database.
    """
    service = RedemptionService(store)

    try:
        result = await service.redeem(request.code, user.user_id, user.display_name)
        return RedeemResponse(
            ticket=TicketResponse.from_domain(result.ticket),
            remaining_uses=result.remaining_uses,
        )

    except DuplicateTicketError as exc:
        headers = (
            {"X-Existing-Ticket-ID": exc.existing_ticket_id} if exc.existing_ticket_id else None
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have a ticket",
            headers=headers,
        ) from exc

    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid or inactive access key",
        ) from exc

    except ExpiredError as exc:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail=f"Access key expired at {exc.expired_at.isoformat()}",
        ) from exc

    except AlreadyUsedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already used this access key",
        ) from exc

    except ExhaustedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Access key has already been used",
        ) from exc


# =============================================================================
# Public Endpoints (no auth)
# =============================================================================


@router.get("/v1/tickets/{ticket_id}/verify", response_model=TicketVerificationResponse)
async def verify_ticket(
    ticket_id: str,
    store: DocumentStore = Depends(get_read_store),
) -> TicketVerificationResponse:
    """
    Public verification lookup. Never mutates the ticket.
    """
    ticket = await TicketService(store).find_ticket(ticket_id)
    if ticket is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket not found",
        )

    return TicketVerificationResponse(
        status=TicketStatus.SCANNED if ticket.is_scanned else TicketStatus.VALID,
        ticket=TicketResponse.from_domain(ticket),
    )


@router.get("/v1/event", response_model=EventDetailsResponse)
async def get_event(
    store: DocumentStore = Depends(get_write_store),
) -> EventDetailsResponse:
    """
    Current event details.

    Uses the primary because the first read seeds the default record.
    """
    event = await EventDetailsService(store).get_event_details()
    return EventDetailsResponse.from_domain(event)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
