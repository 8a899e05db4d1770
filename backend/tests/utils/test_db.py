"""Tests for transaction helpers."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from tierplan.models.user import User
from tierplan.utils.db import is_transient_error, retry_transient, transaction
from tierplan.utils.errors import ErrorCode, TransactionError, ValidationError


def _driver_error(message: str) -> OperationalError:
    return OperationalError("UPDATE users ...", {}, Exception(message))


class TestIsTransientError:
    """Classification of driver errors."""

    @pytest.mark.parametrize(
        "message",
        [
            "deadlock detected",
            "could not serialize access due to concurrent update",
            "canceling statement due to lock timeout",
            "database is locked",
        ],
    )
    def test_transient(self, message):
        assert is_transient_error(_driver_error(message))

    def test_not_transient(self):
        assert not is_transient_error(_driver_error("syntax error at or near"))
        assert not is_transient_error(ValueError("deadlock detected"))


class TestTransaction:
    """Commit/rollback behaviour."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, db, make_user):
        """Should persist changes made inside the block."""
        created = await make_user("Before")
        user = await db.get(User, created.id)

        async with transaction(db):
            user.name = "After"

        name = await db.scalar(select(User.name).where(User.id == user.id))
        await db.commit()
        assert name == "After"

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, db, make_user):
        """Should discard changes when the block raises."""
        user_id = (await make_user("Before")).id
        user = await db.get(User, user_id)

        with pytest.raises(ValidationError):
            async with transaction(db):
                user.name = "After"
                await db.flush()
                raise ValidationError(ErrorCode.INVALID_REQUEST, "stop")

        name = await db.scalar(select(User.name).where(User.id == user_id))
        await db.commit()
        assert name == "Before"


class TestRetryTransient:
    """Single retry on TransactionError."""

    @pytest.mark.asyncio
    async def test_retries_once(self):
        """Should succeed on the second attempt."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise TransactionError()
            return "ok"

        assert await retry_transient(operation) == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_second_failure(self):
        """Should re-raise after two failed attempts."""
        calls = []

        async def operation():
            calls.append(1)
            raise TransactionError()

        with pytest.raises(TransactionError):
            await retry_transient(operation)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_other_errors(self):
        """Should not retry business errors."""
        calls = []

        async def operation():
            calls.append(1)
            raise ValidationError(ErrorCode.INVALID_REQUEST, "bad")

        with pytest.raises(ValidationError):
            await retry_transient(operation)
        assert len(calls) == 1
