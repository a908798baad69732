"""
Access Key Service - Issuing and consuming one-time event access keys.

Keys live at `accessKeys/{keyId}`. Each code also owns a claim document at
`accessKeyCodes/{CODE}` pointing back to its key id, which makes codes unique
and lets redemption look a code up without walking every key.

Consumption is a single conditional update on the key document: the version
read during validation must still be current when `usedBy`/`usedCount` are
written, so a key with max_uses=1 can never be consumed twice.
"""

import secrets
import string
from datetime import UTC, datetime
from typing import Any

from structlog import get_logger

from app.config import settings
from app.db.store import (
    Document,
    DocumentStore,
    format_timestamp,
    join_path,
    new_child_key,
    parse_timestamp,
)
from app.exceptions import (
    AccessKeyNotFoundError,
    AlreadyUsedError,
    ConflictError,
    DuplicateAccessKeyError,
    ExhaustedError,
    ExpiredError,
    InvalidAccessKeyError,
    TicketingError,
)
from app.models.domain import AccessKeyData, EventDetailsData, KeyConsumption
from app.observability import metrics

logger = get_logger(__name__)

ACCESS_KEYS = "accessKeys"
ACCESS_KEY_CODES = "accessKeyCodes"

KEY_ALPHABET = string.ascii_uppercase + string.digits + "_-"

# One read-validate-write attempt plus one retry after a lost race
_MAX_ATTEMPTS = 2


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def normalize_code(code: str) -> str:
    """Codes are compared trimmed and uppercase."""
    return code.strip().upper()


def generate_key_code(length: int | None = None) -> str:
    """Generate a random key code from [A-Z0-9_-]."""
    size = length or settings.access_key_length
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(size))


def access_key_from_document(document: Document) -> AccessKeyData:
    """Convert a stored key document to the domain model."""
    value = document.value
    used_by = tuple(value.get("usedBy") or ())
    return AccessKeyData(
        key_id=document.key,
        code=value["keyCode"],
        max_uses=int(value.get("maxUses", 1)),
        used_count=int(value.get("usedCount") or 0),
        used_by=used_by,
        is_active=bool(value.get("isActive", False)),
        expires_at=parse_timestamp(value.get("expiresAt")),
        created_by=value.get("createdBy"),
        created_at=parse_timestamp(value.get("createdAt")),
        key_name=value.get("keyName"),
        description=value.get("description"),
        last_used_at=parse_timestamp(value.get("lastUsedAt")),
        last_used_by=value.get("lastUsedBy"),
        deactivated_at=parse_timestamp(value.get("deactivatedAt")),
        deactivated_by=value.get("deactivatedBy"),
    )


class AccessKeyService:
    """Access key ledger over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize access key service with a document store."""
        self.store = store

    async def create_key(
        self,
        created_by: str,
        code: str | None = None,
        expires_at: datetime | None = None,
        max_uses: int = 1,
        event: EventDetailsData | None = None,
    ) -> AccessKeyData:
        """
        Issue a new access key.

        A code is generated when none is supplied. Supplied codes are
        normalized and must be at least `access_key_min_length` long.

        Raises:
            InvalidAccessKeyError: Code too short or not usable as a path segment
            DuplicateAccessKeyError: Code already issued
        """
        normalized = normalize_code(code) if code else generate_key_code()
        self._validate_code(normalized)
        if max_uses < 1:
            raise ValueError(f"max_uses must be at least 1: {max_uses}")

        key_id = new_child_key()
        code_path = join_path(ACCESS_KEY_CODES, normalized)
        claimed = await self.store.create(code_path, {"keyId": key_id})
        if not claimed:
            logger.warning("access_key_code_taken", code=normalized)
            raise DuplicateAccessKeyError(normalized)

        value: dict[str, Any] = {
            "keyCode": normalized,
            "keyName": event.event_name if event else "Event Access Key",
            "description": event.description if event else "Single-use access key for event",
            "maxUses": max_uses,
            "usedCount": 0,
            "usedBy": [],
            "isActive": True,
            "expiresAt": format_timestamp(expires_at) if expires_at else None,
            "createdBy": created_by,
            "createdAt": format_timestamp(_utc_now()),
        }
        try:
            document = await self.store.put(join_path(ACCESS_KEYS, key_id), value)
        except TicketingError:
            # A claim without its key would block the code forever
            await self.store.delete(code_path)
            raise

        metrics.access_keys_issued_total.inc()
        logger.info(
            "access_key_created",
            key_id=key_id,
            created_by=created_by,
            max_uses=max_uses,
            expires_at=value["expiresAt"],
        )
        return access_key_from_document(document)

    async def list_keys(self) -> list[AccessKeyData]:
        """All keys, newest first."""
        documents = await self.store.list_children(ACCESS_KEYS)
        keys = [access_key_from_document(document) for document in documents]
        return sorted(keys, key=lambda k: k.key_id, reverse=True)

    async def get_key(self, key_id: str) -> AccessKeyData:
        """
        Get key by id.

        Raises:
            AccessKeyNotFoundError: Key doesn't exist
        """
        document = await self.store.get(join_path(ACCESS_KEYS, key_id))
        if document is None:
            raise AccessKeyNotFoundError(key_id)
        return access_key_from_document(document)

    async def deactivate_key(self, key_id: str, deactivated_by: str) -> AccessKeyData:
        """
        Deactivate a key. Keys are never deleted.

        Raises:
            AccessKeyNotFoundError: Key doesn't exist
            ConflictError: Lost the race twice
        """
        path = join_path(ACCESS_KEYS, key_id)
        for _ in range(_MAX_ATTEMPTS):
            document = await self.store.get(path)
            if document is None:
                raise AccessKeyNotFoundError(key_id)

            key = access_key_from_document(document)
            if not key.is_active:
                return key

            new_value = {
                **document.value,
                "isActive": False,
                "deactivatedAt": format_timestamp(_utc_now()),
                "deactivatedBy": deactivated_by,
            }
            if await self.store.conditional_update(path, document.version, new_value):
                logger.info("access_key_deactivated", key_id=key_id, deactivated_by=deactivated_by)
                return access_key_from_document(
                    Document(path=path, value=new_value, version=document.version + 1)
                )

            metrics.record_conflict("access_key_deactivate")

        raise ConflictError(path)

    async def validate_and_consume_key(self, code: str, user_id: str) -> KeyConsumption:
        """
        Validate a key for a user and record the use atomically.

        Checks run in this order: existence/active, expiry, repeat use by the
        same user, then exhaustion. A user already in `usedBy` therefore always
        gets AlreadyUsedError whatever the counts say.

        Returns the key as it was before this use, plus the uses left after it.

        Raises:
            AccessKeyNotFoundError: No active key with this code
            ExpiredError: Key is past expires_at
            AlreadyUsedError: User already redeemed this key
            ExhaustedError: usedCount reached maxUses
            ConflictError: Lost the race on both attempts
        """
        normalized = normalize_code(code)
        path = await self._resolve_key_path(normalized)

        for attempt in range(_MAX_ATTEMPTS):
            document = await self.store.get(path)
            if document is None:
                raise AccessKeyNotFoundError(normalized)

            key = access_key_from_document(document)
            self._check_redeemable(key, user_id)

            now = _utc_now()
            new_used_count = key.used_count + 1
            new_value = {
                **document.value,
                "usedCount": new_used_count,
                "usedBy": [*key.used_by, user_id],
                "lastUsedAt": format_timestamp(now),
                "lastUsedBy": user_id,
            }

            if await self.store.conditional_update(path, document.version, new_value):
                logger.info(
                    "access_key_consumed",
                    key_id=key.key_id,
                    user_id=user_id,
                    used_count=new_used_count,
                    max_uses=key.max_uses,
                    attempt=attempt + 1,
                )
                return KeyConsumption(key=key, remaining_uses=key.max_uses - new_used_count)

            metrics.record_conflict("access_key_consume")
            logger.warning(
                "access_key_consume_conflict",
                key_id=key.key_id,
                user_id=user_id,
                attempt=attempt + 1,
            )

        raise ConflictError(path)

    async def release_key(self, key_id: str, user_id: str) -> bool:
        """
        Undo one consumption of a key by a user.

        Used when a ticket could not be issued after the key was consumed.
        Returns False when the user holds no use of the key.

        Raises:
            ConflictError: Lost the race on both attempts
        """
        path = join_path(ACCESS_KEYS, key_id)
        for _ in range(_MAX_ATTEMPTS):
            document = await self.store.get(path)
            if document is None:
                return False

            key = access_key_from_document(document)
            if user_id not in key.used_by:
                return False

            new_value = {
                **document.value,
                "usedCount": key.used_count - 1,
                "usedBy": [uid for uid in key.used_by if uid != user_id],
            }
            if await self.store.conditional_update(path, document.version, new_value):
                logger.info("access_key_released", key_id=key_id, user_id=user_id)
                return True

            metrics.record_conflict("access_key_release")

        raise ConflictError(path)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _validate_code(self, code: str) -> None:
        if len(code) < settings.access_key_min_length:
            raise InvalidAccessKeyError(
                code, f"must be at least {settings.access_key_min_length} characters"
            )
        if "/" in code or any(ch.isspace() for ch in code):
            raise InvalidAccessKeyError(code, "must not contain '/' or whitespace")

    async def _resolve_key_path(self, code: str) -> str:
        """Find the key document for a code through its claim document."""
        if not code or "/" in code:
            raise AccessKeyNotFoundError(code)
        claim = await self.store.get(join_path(ACCESS_KEY_CODES, code))
        if claim is None or not claim.value.get("keyId"):
            raise AccessKeyNotFoundError(code)
        return join_path(ACCESS_KEYS, claim.value["keyId"])

    def _check_redeemable(self, key: AccessKeyData, user_id: str) -> None:
        if not key.is_active:
            raise AccessKeyNotFoundError(key.code)

        if key.expires_at is not None and key.is_expired(_utc_now()):
            raise ExpiredError(key.code, key.expires_at)

        if user_id in key.used_by:
            raise AlreadyUsedError(key.code, user_id)

        if key.used_count >= key.max_uses:
            raise ExhaustedError(key.code, key.max_uses)
