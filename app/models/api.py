"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.models.domain import (
    AccessKeyData,
    EventDetailsData,
    TicketAnalytics,
    TicketData,
    UserProfileData,
)


class TicketStatus(str, Enum):
    """Verification status of a ticket."""

    VALID = "valid"
    SCANNED = "scanned"


# ============================================================================
# Ticket Models
# ============================================================================


class TicketResponse(BaseModel):
    """A ticket with its verification URL (also the QR payload)."""

    ticket_id: str
    user_id: str
    user_name: str
    event_name: str
    event_date: str
    event_time: str
    venue: str
    price: str
    purchase_date: datetime
    is_scanned: bool
    scanned_at: datetime | None = None
    scanned_by: str | None = None
    scan_location: str | None = None
    verification_url: str
    qr_payload: str

    @classmethod
    def from_domain(cls, ticket: TicketData) -> "TicketResponse":
        url = settings.verification_url(ticket.ticket_id)
        return cls(
            ticket_id=ticket.ticket_id,
            user_id=ticket.user_id,
            user_name=ticket.user_name,
            event_name=ticket.event_name,
            event_date=ticket.event_date,
            event_time=ticket.event_time,
            venue=ticket.venue,
            price=ticket.price,
            purchase_date=ticket.purchase_date,
            is_scanned=ticket.is_scanned,
            scanned_at=ticket.scanned_at,
            scanned_by=ticket.scanned_by,
            scan_location=ticket.scan_location,
            verification_url=url,
            qr_payload=url,
        )


class TicketListResponse(BaseModel):
    """List of tickets."""

    tickets: list[TicketResponse]
    total: int


class RedeemRequest(BaseModel):
    """POST /v1/tickets/redeem request body."""

    code: str = Field(..., min_length=1, max_length=255)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Codes are compared trimmed and uppercase."""
        v = v.strip().upper()
        if not v:
            raise ValueError("code cannot be blank")
        return v


class RedeemResponse(BaseModel):
    """POST /v1/tickets/redeem response."""

    ticket: TicketResponse
    remaining_uses: int


class TicketVerificationResponse(BaseModel):
    """GET /v1/tickets/{ticket_id}/verify response."""

    status: TicketStatus
    ticket: TicketResponse


class ScanRequest(BaseModel):
    """POST /admin/tickets/scan request body. `ticket` is an id or a verification URL."""

    ticket: str = Field(..., min_length=1, max_length=1024)
    location: str | None = Field(None, max_length=255)


# ============================================================================
# Event Models
# ============================================================================


class EventDetailsResponse(BaseModel):
    """Current event details."""

    event_name: str
    event_date: str
    start_time: str
    end_time: str
    event_time: str
    venue: str
    price: str
    currency: str
    dress_code: str
    description: str
    updated_at: datetime | None = None
    updated_by: str | None = None

    @classmethod
    def from_domain(cls, event: EventDetailsData) -> "EventDetailsResponse":
        return cls(
            event_name=event.event_name,
            event_date=event.event_date,
            start_time=event.start_time,
            end_time=event.end_time,
            event_time=event.event_time,
            venue=event.venue,
            price=event.price,
            currency=event.currency,
            dress_code=event.dress_code,
            description=event.description,
            updated_at=event.updated_at,
            updated_by=event.updated_by,
        )


class EventDetailsUpdateRequest(BaseModel):
    """PUT /admin/event request body."""

    event_name: str = Field(..., min_length=1, max_length=255)
    event_date: date
    start_time: str = Field(..., min_length=1, max_length=16)
    end_time: str = Field(..., min_length=1, max_length=16)
    venue: str = Field(..., min_length=1, max_length=255)
    price: str = Field(..., min_length=1, max_length=32)
    currency: str = Field("INR", min_length=3, max_length=3)
    dress_code: str = Field("", max_length=255)
    description: str = Field("", max_length=4000)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Ensure currency is uppercase ISO 4217 code."""
        return v.upper()


# ============================================================================
# Access Key Models
# ============================================================================


class AccessKeyCreateRequest(BaseModel):
    """POST /admin/access-keys request body. Omit `code` to generate one."""

    code: str | None = Field(None, min_length=1, max_length=255)
    expires_at: datetime | None = None


class AccessKeyResponse(BaseModel):
    """Single access key."""

    key_id: str
    code: str
    key_name: str | None = None
    description: str | None = None
    max_uses: int
    used_count: int
    remaining_uses: int
    used_by: list[str]
    is_active: bool
    expires_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    last_used_by: str | None = None

    @classmethod
    def from_domain(cls, key: AccessKeyData) -> "AccessKeyResponse":
        return cls(
            key_id=key.key_id,
            code=key.code,
            key_name=key.key_name,
            description=key.description,
            max_uses=key.max_uses,
            used_count=key.used_count,
            remaining_uses=key.remaining_uses,
            used_by=list(key.used_by),
            is_active=key.is_active,
            expires_at=key.expires_at,
            created_by=key.created_by,
            created_at=key.created_at,
            last_used_at=key.last_used_at,
            last_used_by=key.last_used_by,
        )


class AccessKeyListResponse(BaseModel):
    """List of access keys."""

    keys: list[AccessKeyResponse]
    total: int


# ============================================================================
# User Models
# ============================================================================


class UserProfileResponse(BaseModel):
    """User profile as recorded on login."""

    uid: str
    email: str | None
    display_name: str
    provider: str
    created_at: datetime
    last_login_at: datetime

    @classmethod
    def from_domain(cls, profile: UserProfileData) -> "UserProfileResponse":
        return cls(
            uid=profile.uid,
            email=profile.email,
            display_name=profile.display_name,
            provider=profile.provider,
            created_at=profile.created_at,
            last_login_at=profile.last_login_at,
        )


# ============================================================================
# Analytics Models
# ============================================================================


class DailyStatsResponse(BaseModel):
    """Issued and scanned counts for one day."""

    day: date
    total: int
    scanned: int


class AnalyticsResponse(BaseModel):
    """GET /admin/analytics response."""

    total_tickets: int
    scanned_tickets: int
    pending_tickets: int
    scan_rate: int
    recent_tickets: list[TicketResponse]
    daily_stats: list[DailyStatsResponse]

    @classmethod
    def from_domain(cls, analytics: TicketAnalytics) -> "AnalyticsResponse":
        return cls(
            total_tickets=analytics.total_tickets,
            scanned_tickets=analytics.scanned_tickets,
            pending_tickets=analytics.pending_tickets,
            scan_rate=analytics.scan_rate,
            recent_tickets=[TicketResponse.from_domain(t) for t in analytics.recent_tickets],
            daily_stats=[
                DailyStatsResponse(day=d.day, total=d.total, scanned=d.scanned)
                for d in analytics.daily_stats
            ],
        )


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str
