"""API dependencies for authentication and common utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.logging_config import bind_context
from tierplan.middleware.sentry import set_user_context
from tierplan.models.user import User
from tierplan.services.auth import AuthService
from tierplan.utils.db import get_db
from tierplan.utils.security import TokenError, verify_access_token

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": {},
            }
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current user from token (required auth).

    Raises:
        HTTPException: If not authenticated or token invalid
    """
    if not credentials:
        raise _unauthorized("AUTH_REQUIRED", "Authentication required")

    try:
        payload = verify_access_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(e.code, e.message)

    if not payload:
        raise _unauthorized("AUTH_INVALID_TOKEN", "Invalid or expired token")

    user = await AuthService(db).get_user_by_id(payload["sub"])
    if not user:
        raise _unauthorized("AUTH_USER_NOT_FOUND", "User not found")

    bind_context(user_id=user.id)
    set_user_context(user.id, user.role)
    return user


async def get_admin_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require the admin role.

    Raises:
        HTTPException: 403 if the user is not an admin
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "FORBIDDEN",
                    "message": "Admin access required",
                    "details": {},
                }
            },
        )
    return current_user


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
