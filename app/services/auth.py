"""
Token Service - Bearer token verification with PyJWT.

Tokens are minted by the identity provider with the shared secret; this
service only verifies them. `create_token` exists for tooling and tests.
"""

from datetime import UTC, datetime, timedelta

import jwt
from structlog import get_logger

from app.exceptions import AuthenticationError
from app.models.domain import AuthenticatedUser

logger = get_logger(__name__)


class TokenService:
    """HS256 bearer token codec."""

    def __init__(
        self,
        jwt_secret: str,
        algorithm: str = "HS256",
        audience: str | None = None,
        expire_hours: int = 24,
    ):
        self.jwt_secret = jwt_secret
        self.algorithm = algorithm
        self.audience = audience
        self.expire_hours = expire_hours

    def create_token(
        self,
        user_id: str,
        email: str | None = None,
        name: str | None = None,
        role: str | None = None,
        provider: str = "password",
        expires_in: timedelta | None = None,
    ) -> str:
        """Create a signed token for a user."""
        now = datetime.now(UTC)
        payload: dict[str, str | datetime] = {
            "sub": user_id,
            "provider": provider,
            "iat": now,
            "exp": now + (expires_in or timedelta(hours=self.expire_hours)),
        }
        if email:
            payload["email"] = email
        if name:
            payload["name"] = name
        if role:
            payload["role"] = role
        if self.audience:
            payload["aud"] = self.audience

        return jwt.encode(payload, self.jwt_secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> AuthenticatedUser:
        """
        Verify a token and return the identity it carries.

        Raises:
            AuthenticationError: Token expired, malformed, or badly signed
        """
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("jwt_token_expired")
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            raise AuthenticationError("Invalid token") from e

        user_id = str(payload.get("sub") or "")
        if not user_id:
            raise AuthenticationError("Token has no subject")

        return AuthenticatedUser(
            user_id=user_id,
            email=payload.get("email"),
            name=payload.get("name"),
            role=payload.get("role"),
            provider=payload.get("provider") or "password",
        )
