"""
Redemption Service - Turning an access key into a ticket.

Key consumption and ticket issuance are two separate atomic steps on two
different documents. When issuance fails after the key was consumed the
consumption is released again, so the key is not lost to a user who got
nothing for it.
"""

from structlog import get_logger

from app.db.store import DocumentStore
from app.exceptions import DuplicateTicketError, TicketingError
from app.models.domain import KeyConsumption, RedemptionResult
from app.observability import metrics, trace_operation
from app.services.access_keys import AccessKeyService, normalize_code
from app.services.event_details import EventDetailsService
from app.services.tickets import TicketService

logger = get_logger(__name__)


class RedemptionService:
    """Orchestrates key validation and ticket issuance."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize redemption service with a document store."""
        self.store = store
        self.access_keys = AccessKeyService(store)
        self.tickets = TicketService(store)
        self.event_details = EventDetailsService(store)

    async def redeem(self, code: str, user_id: str, user_name: str) -> RedemptionResult:
        """
        Redeem an access key for the user's ticket.

        Raises:
            DuplicateTicketError: User already holds a ticket (no key is consumed)
            AccessKeyNotFoundError: No active key with this code
            ExpiredError: Key expired
            AlreadyUsedError: User already redeemed this key
            ExhaustedError: Key has no uses left
            ConflictError: Lost a race twice
            TransportError: Store unavailable
        """
        normalized = normalize_code(code)
        with trace_operation("access_key_redeem", user_id=user_id):
            try:
                result = await self._redeem(normalized, user_id, user_name)
            except TicketingError as exc:
                metrics.record_redemption(type(exc).__name__)
                logger.info(
                    "redemption_rejected",
                    user_id=user_id,
                    reason=type(exc).__name__,
                    error=str(exc),
                )
                raise

        metrics.record_redemption("success")
        logger.info(
            "redemption_completed",
            user_id=user_id,
            ticket_id=result.ticket.ticket_id,
            remaining_uses=result.remaining_uses,
        )
        return result

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _redeem(self, code: str, user_id: str, user_name: str) -> RedemptionResult:
        existing = await self.tickets.list_user_tickets(user_id)
        if existing:
            raise DuplicateTicketError(user_id, existing[0].ticket_id)

        consumption = await self.access_keys.validate_and_consume_key(code, user_id)

        try:
            event = await self.event_details.get_event_details()
            ticket = await self.tickets.issue_ticket(
                user_id=user_id,
                user_name=user_name,
                event=event.snapshot(),
                access_key_code=consumption.key.code,
            )
        except TicketingError:
            await self._release(consumption, user_id)
            raise

        return RedemptionResult(ticket=ticket, remaining_uses=consumption.remaining_uses)

    async def _release(self, consumption: KeyConsumption, user_id: str) -> None:
        """Give back a consumed use. A failed release is logged, never raised."""
        key_id = consumption.key.key_id
        try:
            released = await self.access_keys.release_key(key_id, user_id)
        except TicketingError as exc:
            metrics.record_error(type(exc).__name__, "access_key_release")
            logger.error(
                "access_key_release_failed",
                key_id=key_id,
                user_id=user_id,
                error=str(exc),
            )
            return

        if released:
            logger.warning("access_key_released_after_failed_issue", key_id=key_id, user_id=user_id)
