"""Referral code registry.

Every user owns one 8-character uppercase alphanumeric code, assigned lazily.
Uniqueness is checked and the code assigned inside one short transaction per
attempt, with the users.referral_code unique constraint as the final arbiter.
"""

import asyncio
import re
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.config import get_settings
from tierplan.logging_config import get_logger
from tierplan.models.user import User
from tierplan.utils.db import retry_transient, transaction
from tierplan.utils.errors import (
    CodeGenerationExhausted,
    TransactionError,
    UserNotFoundError,
)

logger = get_logger(__name__)

CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits

_CANONICAL_CODE = re.compile(rf"^[A-Z0-9]{{{CODE_LENGTH}}}$")


def generate_referral_code(length: int = CODE_LENGTH) -> str:
    """Random code over [0-9A-Z] from a CSPRNG."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def is_canonical_code(code: str | None) -> bool:
    return bool(code) and _CANONICAL_CODE.match(code) is not None


class _Attempt(Enum):
    ASSIGNED = "assigned"
    COLLISION = "collision"
    LOST_RACE = "lost_race"


@dataclass(frozen=True)
class CodeAssignment:
    """Outcome of a bounded code assignment.

    ``code`` is None when every attempt collided or the deadline passed.
    """

    user_id: str
    code: str | None
    attempts: int
    created: bool = False
    replaced_code: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.code is None


class ReferralCodeService:
    """Assigns and returns per-user referral codes."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        deadline_seconds: float | None = None,
        code_factory: Callable[[], str] = generate_referral_code,
    ):
        settings = get_settings()
        self.db = db
        self.max_attempts = max_attempts or settings.referral_code_max_attempts
        self.retry_delay = (
            settings.referral_code_retry_delay_seconds
            if retry_delay is None
            else retry_delay
        )
        self.deadline_seconds = deadline_seconds or settings.referral_code_deadline_seconds
        self.code_factory = code_factory

    async def get_or_create_code(self, user_id: str) -> str:
        """Return the user's canonical code, generating one if needed.

        Raises:
            UserNotFoundError: If the user does not exist
            CodeGenerationExhausted: If no unique code could be assigned
        """
        assignment = await self.assign_code(user_id)
        if assignment.exhausted:
            raise CodeGenerationExhausted(user_id, assignment.attempts)
        return assignment.code

    async def assign_code(self, user_id: str) -> CodeAssignment:
        """Bounded-attempt assignment returning a typed result."""
        current = await self._current_code(user_id)
        if is_canonical_code(current):
            return CodeAssignment(user_id=user_id, code=current, attempts=0)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.deadline_seconds
        attempts = 0

        while attempts < self.max_attempts:
            if attempts:
                if loop.time() + self.retry_delay > deadline:
                    logger.warning(
                        "referral_code_deadline_exceeded",
                        user_id=user_id,
                        attempts=attempts,
                    )
                    break
                await asyncio.sleep(self.retry_delay)

            attempts += 1
            candidate = self.code_factory()
            try:
                outcome = await retry_transient(
                    partial(self._try_assign, user_id, current, candidate)
                )
            except IntegrityError:
                outcome = _Attempt.COLLISION
            except TransactionError:
                logger.warning(
                    "referral_code_attempt_failed",
                    user_id=user_id,
                    attempt=attempts,
                )
                continue

            if outcome is _Attempt.ASSIGNED:
                if current:
                    logger.info(
                        "legacy_referral_code_replaced",
                        user_id=user_id,
                        old_code=current,
                        new_code=candidate,
                    )
                else:
                    logger.info(
                        "referral_code_created",
                        user_id=user_id,
                        code=candidate,
                        attempts=attempts,
                    )
                return CodeAssignment(
                    user_id=user_id,
                    code=candidate,
                    attempts=attempts,
                    created=True,
                    replaced_code=current,
                )

            if outcome is _Attempt.COLLISION:
                logger.info(
                    "referral_code_collision",
                    user_id=user_id,
                    attempt=attempts,
                )
                continue

            # Another request assigned a code first
            current = await self._current_code(user_id)
            if is_canonical_code(current):
                return CodeAssignment(user_id=user_id, code=current, attempts=attempts)

        logger.error(
            "referral_code_generation_exhausted",
            user_id=user_id,
            attempts=attempts,
        )
        return CodeAssignment(user_id=user_id, code=None, attempts=attempts)

    async def _current_code(self, user_id: str) -> str | None:
        async with transaction(self.db):
            result = await self.db.execute(
                select(User.id, User.referral_code).where(User.id == user_id)
            )
            row = result.one_or_none()
        if row is None:
            raise UserNotFoundError(user_id)
        return row.referral_code

    async def _try_assign(
        self,
        user_id: str,
        previous: str | None,
        candidate: str,
    ) -> _Attempt:
        async with transaction(self.db):
            taken = await self.db.scalar(
                select(User.id).where(User.referral_code == candidate)
            )
            if taken is not None:
                return _Attempt.COLLISION

            unchanged = (
                User.referral_code.is_(None)
                if previous is None
                else User.referral_code == previous
            )
            result = await self.db.execute(
                update(User)
                .where(User.id == user_id, unchanged)
                .values(referral_code=candidate)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return _Attempt.LOST_RACE

        return _Attempt.ASSIGNED
