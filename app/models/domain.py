"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified bearer token."""

    user_id: str
    email: str | None = None
    name: str | None = None
    role: str | None = None
    provider: str = "password"

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")

    def has_role(self, role: str) -> bool:
        """Check the role claim."""
        return self.role == role

    @property
    def display_name(self) -> str:
        """Best available human-readable name."""
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@")[0]
        return "Guest"


@dataclass(frozen=True)
class AccessKeyData:
    """Immutable access key snapshot."""

    key_id: str
    code: str
    max_uses: int
    used_count: int
    used_by: tuple[str, ...]
    is_active: bool
    expires_at: datetime | None
    created_by: str | None
    created_at: datetime | None
    key_name: str | None = None
    description: str | None = None
    last_used_at: datetime | None = None
    last_used_by: str | None = None
    deactivated_at: datetime | None = None
    deactivated_by: str | None = None

    def __post_init__(self) -> None:
        """Validate usage invariants."""
        if self.max_uses < 1:
            raise ValueError(f"max_uses must be at least 1: {self.max_uses}")
        if self.used_count != len(self.used_by):
            raise ValueError(
                f"used_count {self.used_count} does not match used_by size {len(self.used_by)}"
            )
        if self.used_count > self.max_uses:
            raise ValueError(f"used_count {self.used_count} exceeds max_uses {self.max_uses}")
        if len(set(self.used_by)) != len(self.used_by):
            raise ValueError("used_by contains duplicate user ids")

    @property
    def remaining_uses(self) -> int:
        return self.max_uses - self.used_count

    def is_expired(self, now: datetime) -> bool:
        """Absent expiry never expires."""
        return self.expires_at is not None and self.expires_at < now


@dataclass(frozen=True)
class KeyConsumption:
    """Result of a successful key consumption: pre-update snapshot plus what is left."""

    key: AccessKeyData
    remaining_uses: int


@dataclass(frozen=True)
class EventSnapshot:
    """Event fields frozen into a ticket at issuance."""

    event_name: str
    event_date: str
    event_time: str
    venue: str
    price: str


@dataclass(frozen=True)
class EventDetailsData:
    """The single mutable event record."""

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

    def snapshot(self) -> EventSnapshot:
        """Copy the fields a ticket keeps."""
        return EventSnapshot(
            event_name=self.event_name,
            event_date=self.event_date,
            event_time=self.event_time,
            venue=self.venue,
            price=self.price,
        )


@dataclass(frozen=True)
class TicketData:
    """Immutable ticket snapshot."""

    ticket_id: str
    ticket_key: str
    user_id: str
    user_name: str
    event_name: str
    event_date: str
    event_time: str
    venue: str
    price: str
    purchase_date: datetime
    is_scanned: bool = False
    scanned_at: datetime | None = None
    scanned_by: str | None = None
    scan_location: str | None = None
    access_key_code: str | None = None


@dataclass(frozen=True)
class RedemptionResult:
    """Ticket issued for a redeemed key."""

    ticket: TicketData
    remaining_uses: int


@dataclass(frozen=True)
class UserProfileData:
    """Identity metadata kept per user."""

    uid: str
    email: str | None
    display_name: str
    provider: str
    created_at: datetime
    last_login_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class DailyTicketStats:
    """Tickets issued and scanned for one purchase day."""

    day: date
    total: int
    scanned: int


@dataclass(frozen=True)
class TicketAnalytics:
    """Dashboard numbers over every issued ticket."""

    total_tickets: int
    scanned_tickets: int
    pending_tickets: int
    scan_rate: int
    recent_tickets: list[TicketData] = field(default_factory=list)
    daily_stats: list[DailyTicketStats] = field(default_factory=list)
