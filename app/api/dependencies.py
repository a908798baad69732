"""
FastAPI Dependencies - Authentication and authorization.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError
from app.models.domain import AuthenticatedUser
from app.services.auth import TokenService

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


def get_token_service() -> TokenService:
    """Get token service configured from settings."""
    return TokenService(
        jwt_secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        audience=settings.jwt_audience,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token_service: TokenService = Depends(get_token_service),
) -> AuthenticatedUser:
    """
    FastAPI dependency to validate the bearer token.

    Usage:
        @router.get("/v1/users/me/tickets")
        async def list_my_tickets(user: AuthenticatedUser = Depends(get_current_user)):
            ...

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user = token_service.verify_token(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    logger.debug("user_authenticated", user_id=user.user_id, role=user.role)
    return user


async def require_admin(
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """
    Require the admin role claim.

    Raises:
        HTTPException(403): If user is not an admin
    """
    if not user.has_role(settings.admin_role):
        logger.warning("admin_auth_insufficient_role", user_id=user.user_id, role=user.role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
