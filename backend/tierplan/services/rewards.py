"""Referral reward computation and approval lifecycle.

A reward is created ``pending`` when a referred user's plan deposit is
confirmed, and becomes ``paid`` (crediting the recipient) or ``rejected``
only through an admin action. Both end states are terminal.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tierplan.config import Settings, get_settings
from tierplan.logging_config import get_logger
from tierplan.models.deposit import SETTLED_DEPOSIT_STATUSES, Deposit
from tierplan.models.referral import (
    ReferralReward,
    RewardRecipient,
    RewardStatus,
    plan_label,
    reward_for_plan,
)
from tierplan.models.user import User, UserRole
from tierplan.services.ledger import credit_balance, to_money
from tierplan.utils.db import insert_ignoring_conflicts, transaction
from tierplan.utils.errors import (
    AlreadyProcessedError,
    ForbiddenError,
    UserNotFoundError,
)

logger = get_logger(__name__)

RECENT_REWARDS_LIMIT = 50


def require_admin(caller_role: str) -> None:
    """Raise ForbiddenError unless the caller holds the admin role."""
    if caller_role != UserRole.ADMIN.value:
        raise ForbiddenError()


class RewardService:
    """Creates, approves and rejects referral rewards."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # Computation
    # =========================================================================

    async def on_deposit_confirmed(self, user_id: str) -> ReferralReward | None:
        """Create the referrer's reward for the user's settled plan deposit.

        Idempotent: a second call for the same user creates nothing.

        Returns:
            The newly created referrer reward, or None
        """
        async with transaction(self.db):
            created = await self.create_for_confirmed_deposit(user_id)

        return next(
            (r for r in created if r.recipient_role == RewardRecipient.REFERRER.value),
            None,
        )

    async def create_for_confirmed_deposit(self, user_id: str) -> list[ReferralReward]:
        """Insert pending rewards inside the caller's transaction.

        Does nothing when the user was not referred, has no settled deposit,
        or deposited an amount with no reward tier. Existing rewards for the
        same (referrer, referred user, recipient) are left untouched.
        """
        row = (
            await self.db.execute(
                select(User.id, User.referred_by_id).where(User.id == user_id)
            )
        ).one_or_none()
        if row is None:
            raise UserNotFoundError(user_id)
        if row.referred_by_id is None:
            return []

        deposit_amount = await self.db.scalar(
            select(Deposit.amount)
            .where(
                Deposit.user_id == user_id,
                Deposit.status.in_(SETTLED_DEPOSIT_STATUSES),
            )
            .order_by(Deposit.created_at.asc(), Deposit.id.asc())
            .limit(1)
        )
        if deposit_amount is None:
            return []

        plan_amount = int(deposit_amount)
        amount = reward_for_plan(plan_amount)
        if amount <= 0:
            logger.info(
                "reward_skipped_unknown_tier",
                user_id=user_id,
                plan_amount=plan_amount,
            )
            return []

        recipients = [RewardRecipient.REFERRER]
        if self.settings.referred_user_bonus_enabled:
            recipients.append(RewardRecipient.REFERRED_USER)

        created_ids = []
        for recipient in recipients:
            reward_id = str(uuid4())
            stmt = insert_ignoring_conflicts(
                self.db,
                ReferralReward,
                {
                    "id": reward_id,
                    "referrer_id": row.referred_by_id,
                    "referred_user_id": user_id,
                    "recipient_role": recipient.value,
                    "amount": amount,
                    "plan_amount": plan_amount,
                    "plan_type": plan_label(plan_amount, recipient),
                    "status": RewardStatus.PENDING.value,
                },
                index_elements=["referrer_id", "referred_user_id", "recipient_role"],
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                created_ids.append(reward_id)
                logger.info(
                    "reward_created",
                    reward_id=reward_id,
                    referrer_id=row.referred_by_id,
                    referred_user_id=user_id,
                    recipient_role=recipient.value,
                    amount=str(amount),
                )

        if not created_ids:
            return []
        result = await self.db.execute(
            select(ReferralReward).where(ReferralReward.id.in_(created_ids))
        )
        return list(result.scalars().all())

    async def sweep_missing_rewards(self, caller_role: str) -> list[ReferralReward]:
        """Create rewards that a confirmed deposit should have produced.

        Each user is handled in its own transaction so one failure does not
        hold back the rest.
        """
        require_admin(caller_role)

        has_settled_deposit = exists().where(
            Deposit.user_id == User.id,
            Deposit.status.in_(SETTLED_DEPOSIT_STATUSES),
        )
        has_reward = exists().where(
            and_(
                ReferralReward.referrer_id == User.referred_by_id,
                ReferralReward.referred_user_id == User.id,
                ReferralReward.recipient_role == RewardRecipient.REFERRER.value,
            )
        )
        async with transaction(self.db):
            user_ids = list(
                (
                    await self.db.scalars(
                        select(User.id).where(
                            User.referred_by_id.is_not(None),
                            has_settled_deposit,
                            ~has_reward,
                        )
                    )
                ).all()
            )

        created: list[ReferralReward] = []
        for user_id in user_ids:
            async with transaction(self.db):
                created.extend(await self.create_for_confirmed_deposit(user_id))

        logger.info("reward_sweep_completed", candidates=len(user_ids), created=len(created))
        return created

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_rewards(
        self,
        caller_role: str,
        status: RewardStatus | None = None,
        limit: int = RECENT_REWARDS_LIMIT,
    ) -> list[dict[str, Any]]:
        """Newest rewards first, with referrer and referred user names.

        Args:
            caller_role: Must be admin
            status: Only rewards in this state; all states when None
            limit: Maximum number of rows
        """
        require_admin(caller_role)

        referrer = aliased(User)
        referred = aliased(User)
        query = (
            select(ReferralReward, referrer.name, referred.name)
            .join(referrer, referrer.id == ReferralReward.referrer_id)
            .join(referred, referred.id == ReferralReward.referred_user_id)
            .order_by(ReferralReward.created_at.desc(), ReferralReward.id.desc())
            .limit(limit)
        )
        if status is not None:
            query = query.where(ReferralReward.status == RewardStatus(status).value)

        result = await self.db.execute(query)
        rewards = [
            {
                "id": reward.id,
                "referrer_id": reward.referrer_id,
                "referrer_name": referrer_name,
                "referred_user_id": reward.referred_user_id,
                "referred_user_name": referred_name,
                "recipient_role": reward.recipient_role,
                "amount": to_money(reward.amount),
                "plan_amount": reward.plan_amount,
                "plan_type": reward.plan_type,
                "status": reward.status,
                "created_at": reward.created_at,
                "paid_at": reward.paid_at,
                "credited_at": reward.credited_at,
            }
            for reward, referrer_name, referred_name in result.all()
        ]
        return rewards

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def approve(self, reward_id: str, caller_role: str) -> ReferralReward:
        """Mark a pending reward paid and credit its recipient.

        With deferred crediting the reward is only marked paid; the next
        reconciliation pass for the recipient adds it to their balance.

        Raises:
            ForbiddenError: If the caller is not an admin
            AlreadyProcessedError: If the reward is missing or not pending
        """
        require_admin(caller_role)

        now = datetime.now(timezone.utc)
        credit_now = not self.settings.defer_reward_crediting
        values = {"status": RewardStatus.PAID.value, "paid_at": now}
        if credit_now:
            values["credited_at"] = now

        async with transaction(self.db):
            result = await self.db.execute(
                update(ReferralReward)
                .where(
                    ReferralReward.id == reward_id,
                    ReferralReward.status == RewardStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyProcessedError(reward_id)

            reward = await self._load(reward_id)
            if credit_now:
                await credit_balance(self.db, reward.recipient_id, to_money(reward.amount))

        logger.info(
            "reward_approved",
            reward_id=reward_id,
            recipient_id=reward.recipient_id,
            recipient_role=reward.recipient_role,
            amount=str(reward.amount),
            credited=credit_now,
        )
        return reward

    async def reject(self, reward_id: str, caller_role: str) -> ReferralReward:
        """Mark a pending reward rejected. No balance changes."""
        require_admin(caller_role)

        async with transaction(self.db):
            result = await self.db.execute(
                update(ReferralReward)
                .where(
                    ReferralReward.id == reward_id,
                    ReferralReward.status == RewardStatus.PENDING.value,
                )
                .values(status=RewardStatus.REJECTED.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyProcessedError(reward_id)
            reward = await self._load(reward_id)

        logger.info("reward_rejected", reward_id=reward_id)
        return reward

    async def _load(self, reward_id: str) -> ReferralReward:
        result = await self.db.execute(
            select(ReferralReward)
            .where(ReferralReward.id == reward_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
