"""Authentication service: registration and login."""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.config import get_settings
from tierplan.logging_config import get_logger
from tierplan.models.user import User, UserRole
from tierplan.services.referral import ReferralService
from tierplan.services.referral_code import ReferralCodeService
from tierplan.utils.db import transaction
from tierplan.utils.errors import (
    ConflictError,
    ErrorCode,
    ServiceError,
    UnauthorizedError,
    require_field,
)
from tierplan.utils.security import create_access_token, hash_password, verify_password

logger = get_logger(__name__)


def _email_exists(email: str) -> ConflictError:
    return ConflictError(
        code=ErrorCode.AUTH_EMAIL_EXISTS,
        message="Email already registered",
        details={"email": email},
    )


@dataclass
class Registration:
    user: User
    referrer_id: str | None
    referral_code: str | None
    access_token: str


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        referral_code: str | None = None,
        role: UserRole = UserRole.USER,
    ) -> Registration:
        """Register a new user.

        The account is committed first. Referral attribution and the user's
        own code generation then run as separate steps; a failure in either
        is logged and does not fail registration or the other step.

        Raises:
            ConflictError: If the email is already registered
        """
        name = require_field(name, "name")
        email = require_field(email, "email").lower()

        existing = await self.db.scalar(select(User.id).where(func.lower(User.email) == email))
        if existing is not None:
            raise _email_exists(email)

        try:
            async with transaction(self.db):
                user = User(
                    name=name,
                    email=email,
                    password_hash=hash_password(password),
                    role=role.value,
                )
                self.db.add(user)
                await self.db.flush()
        except IntegrityError as e:
            raise _email_exists(email) from e

        logger.info("user_registered", user_id=user.id, has_referral_code=bool(referral_code))

        referrer_id = None
        try:
            referrer_id = await ReferralService(self.db).attribute(user.id, referral_code)
        except (ServiceError, SQLAlchemyError) as e:
            logger.warning(
                "referral_attribution_failed",
                user_id=user.id,
                error=type(e).__name__,
            )

        own_code = None
        try:
            own_code = await ReferralCodeService(self.db).get_or_create_code(user.id)
        except (ServiceError, SQLAlchemyError) as e:
            logger.warning(
                "referral_code_generation_failed",
                user_id=user.id,
                error=type(e).__name__,
            )

        await self.db.refresh(user)

        return Registration(
            user=user,
            referrer_id=referrer_id,
            referral_code=own_code,
            access_token=create_access_token(user.id, user.role),
        )

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Authenticate a user and issue an access token.

        Raises:
            UnauthorizedError: If the credentials are invalid
        """
        email = (email or "").strip().lower()
        user = await self.db.scalar(select(User).where(func.lower(User.email) == email))
        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedError(
                code=ErrorCode.AUTH_INVALID_CREDENTIALS,
                message="Invalid email or password",
            )

        logger.info("user_logged_in", user_id=user.id)
        return {
            "access_token": create_access_token(user.id, user.role),
            "token_type": "bearer",
            "expires_in": get_settings().jwt_access_token_expire_minutes * 60,
            "user": user,
        }

    async def get_user_by_id(self, user_id: str) -> User | None:
        return await self.db.get(User, user_id)
