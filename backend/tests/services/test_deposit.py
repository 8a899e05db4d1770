"""Tests for DepositService."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from tierplan.models.deposit import Deposit, DepositStatus
from tierplan.models.plan import UserPlanProgress
from tierplan.models.user import User, UserRole
from tierplan.services.deposit import DepositService, validate_plan_amount
from tierplan.utils.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvalidPlanTierError,
    NotFoundError,
    ValidationError,
)


class TestValidatePlanAmount:
    """Tests for plan tier validation."""

    @pytest.mark.parametrize("amount", [50, "100", Decimal("250.00"), 2500])
    def test_accepts_tiers(self, amount):
        """Should accept every listed tier."""
        assert validate_plan_amount(amount) == Decimal(str(int(Decimal(str(amount)))))

    @pytest.mark.parametrize("amount", [999, 0, -50, "250.50", "abc"])
    def test_rejects_other_amounts(self, amount):
        """Should raise InvalidPlanTierError."""
        with pytest.raises(InvalidPlanTierError) as exc_info:
            validate_plan_amount(amount)
        assert exc_info.value.details["allowedPlans"][0] == 50


class TestDepositSubmit:
    """Tests for deposit submission."""

    @pytest.mark.asyncio
    async def test_submit_records_pending_deposit(self, db, make_user):
        """Should store a pending deposit with an uppercased currency."""
        user = await make_user()

        deposit = await DepositService(db).submit(user.id, 250, "usdt", "0xabc")

        assert deposit.status == DepositStatus.PENDING.value
        assert deposit.amount == Decimal("250")
        assert deposit.currency == "USDT"
        assert deposit.transaction_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_second_pending_deposit_is_refused(self, db, make_user):
        """Should allow only one pending deposit per user."""
        user = await make_user()
        service = DepositService(db)
        await service.submit(user.id, 100, "USDT", "0x1")

        with pytest.raises(ConflictError) as exc_info:
            await service.submit(user.id, 150, "USDT", "0x2")

        assert exc_info.value.code == ErrorCode.DEPOSIT_PENDING_EXISTS.value

    @pytest.mark.asyncio
    async def test_submit_after_plan_is_refused(self, db, make_user):
        """Should refuse a new deposit once a plan is active."""
        user = await make_user()
        service = DepositService(db)
        await service.submit(user.id, 100, "USDT", "0x1")
        await service.confirm(user.id, "0x1", 100, "USDT")

        with pytest.raises(ConflictError) as exc_info:
            await service.submit(user.id, 500, "USDT", "0x2")

        assert exc_info.value.code == ErrorCode.PLAN_ALREADY_ACTIVE.value

    @pytest.mark.asyncio
    async def test_submit_rejects_invalid_tier(self, db, make_user):
        """Should not record a deposit for an off-table amount."""
        user = await make_user()

        with pytest.raises(InvalidPlanTierError):
            await DepositService(db).submit(user.id, 999, "USDT", "0x1")

    @pytest.mark.asyncio
    async def test_submit_requires_hash(self, db, make_user):
        """Should report a missing transaction hash."""
        user = await make_user()

        with pytest.raises(ValidationError) as exc_info:
            await DepositService(db).submit(user.id, 100, "USDT", "  ")

        assert exc_info.value.code == ErrorCode.MISSING_FIELD.value


class TestDepositConfirm:
    """Tests for deposit confirmation."""

    @pytest.mark.asyncio
    async def test_confirm_activates_plan(self, db, make_user, reload):
        """Should settle the deposit, credit the user and create plan progress."""
        user = await make_user()
        service = DepositService(db)
        await service.submit(user.id, 1500, "USDT", "0xplan")

        confirmation = await service.confirm(user.id, "0xplan", "1500", "usdt")

        assert confirmation.deposit.status == DepositStatus.CONFIRMED.value
        assert confirmation.deposit.confirmed_at is not None
        assert confirmation.plan_created is True
        stored = await reload(User, user.id)
        assert stored.balance == Decimal("1500")
        assert stored.total_earned == Decimal("1500")

        progress = (
            await db.scalars(select(UserPlanProgress).where(UserPlanProgress.user_id == user.id))
        ).all()
        await db.commit()
        assert [(p.plan_amount, p.profit, p.round_count) for p in progress] == [
            (1500, Decimal("0"), 0)
        ]

    @pytest.mark.asyncio
    async def test_confirm_mismatch(self, db, make_user):
        """Should refuse a confirmation whose amount differs from the submission."""
        user = await make_user()
        service = DepositService(db)
        await service.submit(user.id, 250, "USDT", "0x1")

        with pytest.raises(ValidationError) as exc_info:
            await service.confirm(user.id, "0x1", 500, "USDT")

        assert exc_info.value.code == ErrorCode.DEPOSIT_MISMATCH.value

    @pytest.mark.asyncio
    async def test_confirm_unknown_hash(self, db, make_user):
        """Should raise NotFoundError when nothing is pending."""
        user = await make_user()

        with pytest.raises(NotFoundError) as exc_info:
            await DepositService(db).confirm(user.id, "0xnothing", 250, "USDT")

        assert exc_info.value.code == ErrorCode.DEPOSIT_NOT_FOUND.value

    @pytest.mark.asyncio
    async def test_confirm_twice(self, db, make_user, reload):
        """Should refuse a second confirmation and credit once."""
        user = await make_user()
        service = DepositService(db)
        await service.submit(user.id, 100, "USDT", "0x1")
        await service.confirm(user.id, "0x1", 100, "USDT")

        with pytest.raises(ConflictError) as exc_info:
            await service.confirm(user.id, "0x1", 100, "USDT")

        assert exc_info.value.code == ErrorCode.PLAN_ALREADY_ACTIVE.value
        assert (await reload(User, user.id)).balance == Decimal("100")


class TestDepositReject:
    """Tests for admin rejection."""

    @pytest.mark.asyncio
    async def test_reject_pending(self, db, make_user, admin, reload):
        """Should mark the deposit rejected and free the user to resubmit."""
        user = await make_user()
        service = DepositService(db)
        deposit = await service.submit(user.id, 100, "USDT", "0x1")

        rejected = await service.reject(deposit.id, admin.role)

        assert rejected.status == DepositStatus.REJECTED.value
        assert (await reload(User, user.id)).balance == Decimal("0")
        again = await service.submit(user.id, 100, "USDT", "0x2")
        assert again.status == DepositStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_reject_settled_deposit(self, db, make_user, admin):
        """Should refuse to reject a confirmed deposit."""
        user = await make_user()
        service = DepositService(db)
        deposit = await service.submit(user.id, 100, "USDT", "0x1")
        await service.confirm(user.id, "0x1", 100, "USDT")

        with pytest.raises(ConflictError):
            await service.reject(deposit.id, admin.role)

    @pytest.mark.asyncio
    async def test_reject_unknown(self, db, admin):
        """Should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await DepositService(db).reject(str(uuid4()), admin.role)

    @pytest.mark.asyncio
    async def test_reject_requires_admin(self, db, make_user):
        """Should refuse non-admin callers."""
        user = await make_user()
        deposit = await DepositService(db).submit(user.id, 100, "USDT", "0x1")

        with pytest.raises(ForbiddenError):
            await DepositService(db).reject(deposit.id, UserRole.USER.value)

        stored = await db.scalar(select(Deposit.status).where(Deposit.id == deposit.id))
        await db.commit()
        assert stored == DepositStatus.PENDING.value
