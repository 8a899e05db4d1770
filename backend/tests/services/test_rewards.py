"""Tests for RewardService.

Reward computation on deposit confirmation, the pending -> paid | rejected
lifecycle, and the sweep that fills in rewards a confirmation missed.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from tierplan.config import get_settings
from tierplan.models.deposit import Deposit, DepositStatus
from tierplan.models.referral import (
    REFERRAL_REWARDS,
    ReferralReward,
    RewardRecipient,
    RewardStatus,
    reward_for_plan,
)
from tierplan.models.user import User, UserRole
from tierplan.services.account import AccountService
from tierplan.services.deposit import DepositService
from tierplan.services.rewards import RewardService
from tierplan.utils.errors import AlreadyProcessedError, ConflictError, ForbiddenError


async def _count_rewards(db) -> int:
    count = await db.scalar(select(func.count(ReferralReward.id)))
    await db.commit()
    return count


async def _settled_deposit(db, user: User, amount) -> Deposit:
    """Insert a confirmed deposit without going through DepositService."""
    deposit = Deposit(
        user_id=user.id,
        amount=Decimal(str(amount)),
        currency="USDT",
        transaction_hash=f"0x{uuid4().hex}",
        status=DepositStatus.CONFIRMED.value,
        confirmed_at=datetime.now(timezone.utc),
    )
    db.add(deposit)
    await db.commit()
    return deposit


@pytest_asyncio.fixture
async def buy_plan(db):
    """Submit and confirm a plan deposit through the real flow."""

    async def _buy_plan(user: User, amount: int = 250):
        tx_hash = f"0x{uuid4().hex}"
        service = DepositService(db)
        await service.submit(user.id, amount, "USDT", tx_hash)
        return await service.confirm(user.id, tx_hash, amount, "USDT")

    return _buy_plan


class TestRewardTable:
    """Tests for the plan -> reward table."""

    def test_table_is_four_percent(self):
        """Should pay 4% of every plan tier."""
        for plan_amount, reward in REFERRAL_REWARDS.items():
            assert reward == Decimal(plan_amount) * Decimal("0.04")

    def test_unknown_tier_earns_nothing(self):
        """Should return zero for amounts outside the table."""
        assert reward_for_plan(999) == Decimal("0")
        assert reward_for_plan(250) == Decimal("10")


class TestRewardCreation:
    """Tests for rewards created on deposit confirmation."""

    @pytest.mark.asyncio
    async def test_confirmation_creates_pending_reward(self, buy_plan, referred, referrer):
        """Should create one pending reward worth the tier amount."""
        confirmation = await buy_plan(referred, 250)

        assert len(confirmation.rewards) == 1
        reward = confirmation.rewards[0]
        assert reward.referrer_id == referrer.id
        assert reward.referred_user_id == referred.id
        assert reward.recipient_role == RewardRecipient.REFERRER.value
        assert reward.amount == Decimal("10")
        assert reward.plan_amount == 250
        assert reward.status == RewardStatus.PENDING.value
        assert reward.paid_at is None

    @pytest.mark.asyncio
    async def test_pending_reward_does_not_move_balance(self, buy_plan, referred, referrer, reload):
        """Should leave the referrer's balance alone until approval."""
        await buy_plan(referred, 250)

        stored = await reload(User, referrer.id)
        assert stored.balance == Decimal("0")
        assert stored.total_earned == Decimal("0")

    @pytest.mark.asyncio
    async def test_creation_is_idempotent(self, db, buy_plan, referred):
        """Should not duplicate the reward on repeated notification."""
        await buy_plan(referred, 500)
        service = RewardService(db)

        assert await service.on_deposit_confirmed(referred.id) is None
        assert await service.on_deposit_confirmed(referred.id) is None
        assert await _count_rewards(db) == 1

    @pytest.mark.asyncio
    async def test_unreferred_user_creates_nothing(self, db, make_user, buy_plan):
        """Should skip users who registered without a code."""
        loner = await make_user("Loner")

        confirmation = await buy_plan(loner, 100)

        assert confirmation.rewards == []
        assert await _count_rewards(db) == 0

    @pytest.mark.asyncio
    async def test_no_settled_deposit_creates_nothing(self, db, referred):
        """Should do nothing before the deposit is confirmed."""
        assert await RewardService(db).on_deposit_confirmed(referred.id) is None
        assert await _count_rewards(db) == 0

    @pytest.mark.asyncio
    async def test_unknown_tier_creates_nothing(self, db, referred):
        """Should create no zero-amount reward for an off-table amount."""
        await _settled_deposit(db, referred, 999)

        assert await RewardService(db).on_deposit_confirmed(referred.id) is None
        assert await _count_rewards(db) == 0

    @pytest.mark.asyncio
    async def test_referred_user_bonus(self, db, referred, referrer):
        """Should also reward the referred user when the bonus is enabled."""
        await _settled_deposit(db, referred, 1000)
        settings = get_settings().model_copy(update={"referred_user_bonus_enabled": True})

        reward = await RewardService(db, settings=settings).on_deposit_confirmed(referred.id)

        assert reward.recipient_role == RewardRecipient.REFERRER.value
        rows = (await db.scalars(select(ReferralReward))).all()
        await db.commit()
        roles = {r.recipient_role: r for r in rows}
        assert set(roles) == {RewardRecipient.REFERRER.value, RewardRecipient.REFERRED_USER.value}
        bonus = roles[RewardRecipient.REFERRED_USER.value]
        assert bonus.recipient_id == referred.id
        assert bonus.amount == Decimal("40")

    @pytest.mark.asyncio
    async def test_bonus_pair_holds_one_reward_per_role(
        self, db, referred, referrer, admin, reload
    ):
        """Should pay each role once and never add a third reward."""
        await _settled_deposit(db, referred, 100)
        settings = get_settings().model_copy(update={"referred_user_bonus_enabled": True})
        service = RewardService(db, settings=settings)
        await service.on_deposit_confirmed(referred.id)

        rows = (await db.scalars(select(ReferralReward))).all()
        reward_ids = [r.id for r in rows]
        await db.commit()
        for reward_id in reward_ids:
            await service.approve(reward_id, admin.role)

        assert await service.on_deposit_confirmed(referred.id) is None
        assert await _count_rewards(db) == 2
        assert (await reload(User, referrer.id)).balance == Decimal("4")
        assert (await reload(User, referred.id)).balance == Decimal("4")


class TestRewardLifecycle:
    """Tests for approve and reject."""

    @pytest.mark.asyncio
    async def test_approve_credits_referrer(self, db, buy_plan, referred, referrer, admin, reload):
        """Should mark paid and add the amount to balance and total_earned."""
        reward = (await buy_plan(referred, 250)).rewards[0]

        approved = await RewardService(db).approve(reward.id, admin.role)

        assert approved.status == RewardStatus.PAID.value
        assert approved.paid_at is not None
        assert approved.credited_at is not None
        stored = await reload(User, referrer.id)
        assert stored.balance == Decimal("10")
        assert stored.total_earned == Decimal("10")

    @pytest.mark.asyncio
    async def test_approve_twice_credits_once(self, db, buy_plan, referred, referrer, admin, reload):
        """Should reject the second approval without crediting again."""
        reward = (await buy_plan(referred, 250)).rewards[0]
        service = RewardService(db)
        await service.approve(reward.id, admin.role)

        with pytest.raises(AlreadyProcessedError) as exc_info:
            await service.approve(reward.id, admin.role)

        assert isinstance(exc_info.value, ConflictError)
        assert (await reload(User, referrer.id)).balance == Decimal("10")

    @pytest.mark.asyncio
    async def test_approve_requires_admin(self, db, buy_plan, referred, reload):
        """Should refuse non-admin callers and leave the reward pending."""
        reward = (await buy_plan(referred, 250)).rewards[0]

        with pytest.raises(ForbiddenError):
            await RewardService(db).approve(reward.id, UserRole.USER.value)

        assert (await reload(ReferralReward, reward.id)).status == RewardStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_approve_unknown_reward(self, db, admin):
        """Should report a missing reward as already processed."""
        with pytest.raises(AlreadyProcessedError):
            await RewardService(db).approve(str(uuid4()), admin.role)

    @pytest.mark.asyncio
    async def test_reject_is_terminal(self, db, buy_plan, referred, referrer, admin, reload):
        """Should reject without crediting and refuse later approval."""
        reward_id = (await buy_plan(referred, 250)).rewards[0].id
        service = RewardService(db)

        rejected = await service.reject(reward_id, admin.role)
        assert rejected.status == RewardStatus.REJECTED.value

        with pytest.raises(AlreadyProcessedError):
            await service.approve(reward_id, admin.role)
        with pytest.raises(AlreadyProcessedError):
            await service.reject(reward_id, admin.role)
        assert (await reload(User, referrer.id)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_rejected_reward_is_not_recreated(self, db, buy_plan, referred, admin):
        """Should not create a second reward for the same pair."""
        reward = (await buy_plan(referred, 250)).rewards[0]
        service = RewardService(db)
        await service.reject(reward.id, admin.role)

        assert await service.on_deposit_confirmed(referred.id) is None
        assert await _count_rewards(db) == 1

    @pytest.mark.asyncio
    async def test_reject_requires_admin(self, db, buy_plan, referred):
        """Should refuse non-admin callers."""
        reward = (await buy_plan(referred, 250)).rewards[0]

        with pytest.raises(ForbiddenError):
            await RewardService(db).reject(reward.id, UserRole.USER.value)


class TestDeferredCrediting:
    """Tests for approval with crediting left to reconciliation."""

    @pytest.mark.asyncio
    async def test_reconciliation_credits_deferred_reward_once(
        self, db, buy_plan, referred, referrer, admin, reload
    ):
        """Should credit a paid reward on the next summary, exactly once."""
        reward = (await buy_plan(referred, 250)).rewards[0]
        settings = get_settings().model_copy(update={"defer_reward_crediting": True})

        approved = await RewardService(db, settings=settings).approve(reward.id, admin.role)
        assert approved.status == RewardStatus.PAID.value
        assert approved.credited_at is None
        assert (await reload(User, referrer.id)).balance == Decimal("0")

        accounts = AccountService(db)
        first = await accounts.compute_withdrawable_total(referrer.id)
        second = await accounts.compute_withdrawable_total(referrer.id)

        assert first.credited == Decimal("10.00")
        assert first.balance == Decimal("10.00")
        assert second.credited == Decimal("0.00")
        assert second.balance == Decimal("10.00")
        assert (await reload(User, referrer.id)).total_earned == Decimal("10")


class TestRewardSweep:
    """Tests for the compensating sweep."""

    @pytest.mark.asyncio
    async def test_sweep_creates_missing_rewards(self, db, make_user, referrer, admin):
        """Should create rewards for confirmed deposits that have none."""
        first = await make_user("First", referred_by=referrer)
        second = await make_user("Second", referred_by=referrer)
        await _settled_deposit(db, first, 50)
        await _settled_deposit(db, second, 2500)

        created = await RewardService(db).sweep_missing_rewards(admin.role)

        assert {r.amount for r in created} == {Decimal("2"), Decimal("100")}
        assert await RewardService(db).sweep_missing_rewards(admin.role) == []
        assert await _count_rewards(db) == 2

    @pytest.mark.asyncio
    async def test_sweep_requires_admin(self, db):
        """Should refuse non-admin callers."""
        with pytest.raises(ForbiddenError):
            await RewardService(db).sweep_missing_rewards(UserRole.USER.value)


class TestRewardList:
    """Tests for the admin review listing."""

    @pytest.mark.asyncio
    async def test_lists_pending_with_names(self, db, buy_plan, make_user, referrer, referred, admin):
        """Should list pending rewards newest first with both user names."""
        other = await make_user("Other", referred_by=referrer)
        first = (await buy_plan(referred, 250)).rewards[0]
        second = (await buy_plan(other, 50)).rewards[0]
        service = RewardService(db)
        await service.approve(first.id, admin.role)

        pending = await service.list_rewards(admin.role, status=RewardStatus.PENDING)
        everything = await service.list_rewards(admin.role)

        assert [r["id"] for r in pending] == [second.id]
        assert pending[0]["referrer_name"] == "Referrer"
        assert pending[0]["referred_user_name"] == "Other"
        assert pending[0]["amount"] == Decimal("2.00")
        assert {r["id"] for r in everything} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_limit(self, db, buy_plan, make_user, referrer, admin):
        """Should return at most ``limit`` rows."""
        for i in range(3):
            friend = await make_user(f"Friend {i}", referred_by=referrer)
            await buy_plan(friend, 100)

        rows = await RewardService(db).list_rewards(admin.role, limit=2)

        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_requires_admin(self, db):
        """Should refuse non-admin callers."""
        with pytest.raises(ForbiddenError):
            await RewardService(db).list_rewards(UserRole.USER.value)
