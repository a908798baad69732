"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from datetime import datetime


class TicketingError(Exception):
    """Base exception for all ticketing errors."""

    pass


class NotFoundError(TicketingError):
    """Raised when a key or ticket doesn't exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class AccessKeyNotFoundError(NotFoundError):
    """Raised when no active access key matches the code."""

    def __init__(self, code: str) -> None:
        super().__init__("Access key", code)
        self.code = code


class TicketNotFoundError(NotFoundError):
    """Raised when no ticket has the given id."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__("Ticket", ticket_id)
        self.ticket_id = ticket_id


class ExpiredError(TicketingError):
    """Raised when an access key is past its expiry."""

    def __init__(self, code: str, expired_at: datetime) -> None:
        self.code = code
        self.expired_at = expired_at
        super().__init__(f"Access key {code} expired at {expired_at.isoformat()}")


class ExhaustedError(TicketingError):
    """Raised when an access key has reached its usage limit."""

    def __init__(self, code: str, max_uses: int) -> None:
        self.code = code
        self.max_uses = max_uses
        super().__init__(f"Access key {code} has reached maximum usage limit ({max_uses})")


class AlreadyUsedError(TicketingError):
    """Raised when a user tries to redeem the same key twice."""

    def __init__(self, code: str, user_id: str) -> None:
        self.code = code
        self.user_id = user_id
        super().__init__(f"User {user_id} has already used access key {code}")


class DuplicateTicketError(TicketingError):
    """Raised when a user already holds a ticket."""

    def __init__(self, user_id: str, existing_ticket_id: str | None = None) -> None:
        self.user_id = user_id
        self.existing_ticket_id = existing_ticket_id
        super().__init__(f"User {user_id} already holds a ticket")


class AlreadyScannedError(TicketingError):
    """Raised when a ticket has already been scanned at the door."""

    def __init__(
        self, ticket_id: str, scanned_at: datetime | None, scanned_by: str | None
    ) -> None:
        self.ticket_id = ticket_id
        self.scanned_at = scanned_at
        self.scanned_by = scanned_by
        when = scanned_at.isoformat() if scanned_at else "unknown time"
        super().__init__(f"Ticket {ticket_id} already scanned at {when}")


class ConflictError(TicketingError):
    """Raised when a conditional update lost a race twice. Transient."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Concurrent modification detected for {path}")


class TransportError(TicketingError):
    """Raised when the backing store cannot be reached or fails."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Store {operation} failed: {message}")


class InvalidAccessKeyError(TicketingError):
    """Raised when an access key code is malformed."""

    def __init__(self, code: str, reason: str) -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"Invalid access key code: {reason}")


class DuplicateAccessKeyError(TicketingError):
    """Raised when an access key code is already issued."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Access key code already exists: {code}")


class AuthenticationError(TicketingError):
    """Raised when authentication fails (missing or invalid token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(TicketingError):
    """Raised when a user lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Authorization failed: missing role {required_role}")
