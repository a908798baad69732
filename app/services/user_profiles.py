"""
User Profile Service - Identity metadata recorded on login.
"""

from datetime import UTC, datetime
from typing import Any

from structlog import get_logger

from app.db.store import Document, DocumentStore, format_timestamp, join_path, parse_timestamp
from app.models.domain import AuthenticatedUser, UserProfileData

logger = get_logger(__name__)

USER_PROFILES = "userProfiles"


def profile_from_document(document: Document) -> UserProfileData:
    value = document.value
    epoch = datetime.fromtimestamp(0, UTC)
    created_at = parse_timestamp(value.get("createdAt")) or epoch
    return UserProfileData(
        uid=value.get("uid") or document.key,
        email=value.get("email"),
        display_name=value.get("displayName") or "",
        provider=value.get("provider") or "password",
        created_at=created_at,
        last_login_at=parse_timestamp(value.get("lastLoginAt")) or created_at,
        updated_at=parse_timestamp(value.get("updatedAt")) or created_at,
    )


class UserProfileService:
    """Creates the profile on first login and refreshes it afterwards."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize with a document store."""
        self.store = store

    async def sync_profile(self, user: AuthenticatedUser) -> UserProfileData:
        """
        Record a login.

        First login creates the profile; later logins refresh lastLoginAt and
        whatever identity fields the token carries.
        """
        path = join_path(USER_PROFILES, user.user_id)
        now = format_timestamp(datetime.now(UTC))

        value: dict[str, Any] = {
            "uid": user.user_id,
            "email": user.email,
            "displayName": user.display_name,
            "provider": user.provider,
            "createdAt": now,
            "lastLoginAt": now,
            "updatedAt": now,
        }
        if await self.store.create(path, value):
            logger.info("user_profile_created", user_id=user.user_id, provider=user.provider)
            return profile_from_document(Document(path=path, value=value, version=1))

        existing = await self.store.get(path)
        if existing is not None:
            value = {
                **existing.value,
                "email": user.email or existing.value.get("email"),
                "displayName": user.display_name,
                "provider": user.provider,
                "lastLoginAt": now,
                "updatedAt": now,
            }
        # Last login wins; no conditional update needed for metadata
        document = await self.store.put(path, value)
        logger.debug("user_profile_login_recorded", user_id=user.user_id)
        return profile_from_document(document)

    async def get_profile(self, user_id: str) -> UserProfileData | None:
        document = await self.store.get(join_path(USER_PROFILES, user_id))
        if document is None:
            return None
        return profile_from_document(document)
