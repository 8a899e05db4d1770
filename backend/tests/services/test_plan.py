"""Tests for PlanService round accrual."""

from decimal import Decimal
from uuid import uuid4

import pytest

from tierplan.models.plan import UserPlanProgress
from tierplan.models.user import UserRole
from tierplan.services.account import AccountService
from tierplan.services.deposit import DepositService
from tierplan.services.plan import PlanService
from tierplan.utils.errors import ErrorCode, ForbiddenError, NotFoundError, ValidationError


@pytest.fixture
def admin_role():
    return UserRole.ADMIN.value


class TestWithdrawalEligibility:
    """Tests for UserPlanProgress.is_withdrawal_eligible."""

    @pytest.mark.parametrize(
        "profit,rounds,flag,expected",
        [
            ("0.01", 1, True, True),
            ("0", 4, True, False),
            ("3", 0, True, False),
            ("3", 2, False, False),
        ],
    )
    def test_needs_flag_profit_and_rounds(self, profit, rounds, flag, expected):
        progress = UserPlanProgress(
            user_id="u1",
            plan_amount=100,
            profit=Decimal(profit),
            round_count=rounds,
            can_withdraw=flag,
        )
        assert progress.is_withdrawal_eligible is expected


class TestRecordRound:
    """Tests for recording a profit round."""

    @pytest.mark.asyncio
    async def test_round_accumulates_profit(self, db, make_user, admin_role):
        """Should add profit, count the round and set eligibility."""
        user = await make_user()
        tx_hash = f"0x{uuid4().hex}"
        deposits = DepositService(db)
        await deposits.submit(user.id, 500, "USDT", tx_hash)
        await deposits.confirm(user.id, tx_hash, 500, "USDT")
        plans = PlanService(db)

        await plans.record_round(user.id, 500, Decimal("7.50"), False, admin_role)
        progress = await plans.record_round(user.id, 500, Decimal("2.50"), True, admin_role)

        assert isinstance(progress, UserPlanProgress)
        assert progress.profit == Decimal("10")
        assert progress.round_count == 2
        assert progress.can_withdraw is True
        assert progress.last_round_date is not None

        summary = await AccountService(db).compute_withdrawable_total(user.id)
        assert summary.plan_profit == Decimal("10.00")
        assert summary.total_profit == Decimal("510.00")
        assert summary.can_withdraw is True

    @pytest.mark.asyncio
    async def test_unknown_plan(self, db, make_user, admin_role):
        """Should raise NotFoundError when the user has no such plan."""
        user = await make_user()

        with pytest.raises(NotFoundError) as exc_info:
            await PlanService(db).record_round(user.id, 500, Decimal("1"), False, admin_role)

        assert exc_info.value.code == ErrorCode.PLAN_NOT_FOUND.value

    @pytest.mark.asyncio
    async def test_negative_profit(self, db, make_user, admin_role):
        """Should refuse a negative round profit."""
        user = await make_user()

        with pytest.raises(ValidationError):
            await PlanService(db).record_round(user.id, 500, Decimal("-1"), False, admin_role)

    @pytest.mark.asyncio
    async def test_requires_admin(self, db, make_user):
        """Should refuse non-admin callers."""
        user = await make_user()

        with pytest.raises(ForbiddenError):
            await PlanService(db).record_round(
                user.id, 500, Decimal("1"), True, UserRole.USER.value
            )
