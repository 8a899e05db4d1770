"""Account summary and balance reconciliation.

``compute_withdrawable_total`` is the one place totals are derived. It first
folds paid-but-uncredited rewards into the balance, then aggregates plan
profit. Each reward is credited by a conditional update on ``credited_at``,
so concurrent or repeated calls credit it exactly once.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.logging_config import get_logger
from tierplan.models.plan import UserPlanProgress
from tierplan.models.referral import ReferralReward, RewardRecipient, RewardStatus
from tierplan.models.user import User
from tierplan.services.ledger import credit_balance, to_money
from tierplan.services.plan import PlanService
from tierplan.utils.db import retry_transient, transaction
from tierplan.utils.errors import UserNotFoundError

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountSummary:
    balance: Decimal
    plan_profit: Decimal
    total_profit: Decimal
    can_withdraw: bool
    credited: Decimal = Decimal("0.00")
    progresses: tuple[UserPlanProgress, ...] = ()


def rewards_received_by(user_id: str):
    """Filter for rewards whose recipient is ``user_id``."""
    return or_(
        and_(
            ReferralReward.recipient_role == RewardRecipient.REFERRER.value,
            ReferralReward.referrer_id == user_id,
        ),
        and_(
            ReferralReward.recipient_role == RewardRecipient.REFERRED_USER.value,
            ReferralReward.referred_user_id == user_id,
        ),
    )


class AccountService:
    """Withdrawable totals for a user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def compute_withdrawable_total(self, user_id: str) -> AccountSummary:
        """Reconcile rewards, then return balance, plan profit and eligibility.

        Safe to call concurrently; retried once on a transient failure.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        return await retry_transient(partial(self._compute, user_id))

    async def _compute(self, user_id: str) -> AccountSummary:
        async with transaction(self.db):
            await self._require_user(user_id)
            credited = await self._credit_uncredited_rewards(user_id)
            await PlanService(self.db).ensure_progress(user_id)

            balance = await self.db.scalar(select(User.balance).where(User.id == user_id))
            progresses = tuple(
                (
                    await self.db.scalars(
                        select(UserPlanProgress)
                        .where(UserPlanProgress.user_id == user_id)
                        .order_by(
                            UserPlanProgress.last_round_date.desc().nulls_last(),
                            UserPlanProgress.created_at.desc(),
                        )
                        .execution_options(populate_existing=True)
                    )
                ).all()
            )

        balance = to_money(balance)
        plan_profit = to_money(sum((to_money(p.profit) for p in progresses), Decimal("0")))
        can_withdraw = any(p.is_withdrawal_eligible for p in progresses)
        return AccountSummary(
            balance=balance,
            plan_profit=plan_profit,
            total_profit=balance + plan_profit,
            can_withdraw=can_withdraw,
            credited=credited,
            progresses=progresses,
        )

    async def _require_user(self, user_id: str) -> None:
        found = await self.db.scalar(select(User.id).where(User.id == user_id))
        if found is None:
            raise UserNotFoundError(user_id)

    async def _credit_uncredited_rewards(self, user_id: str) -> Decimal:
        now = datetime.now(timezone.utc)
        candidates = (
            await self.db.execute(
                select(ReferralReward.id, ReferralReward.amount).where(
                    rewards_received_by(user_id),
                    ReferralReward.status == RewardStatus.PAID.value,
                    ReferralReward.credited_at.is_(None),
                )
            )
        ).all()

        total = Decimal("0.00")
        credited_ids = []
        for reward_id, amount in candidates:
            result = await self.db.execute(
                update(ReferralReward)
                .where(
                    ReferralReward.id == reward_id,
                    ReferralReward.credited_at.is_(None),
                )
                .values(credited_at=now)
                .execution_options(synchronize_session=False)
            )
            # Zero rows means a concurrent pass already took it
            if result.rowcount == 1:
                total += to_money(amount)
                credited_ids.append(reward_id)

        if total > 0:
            await credit_balance(self.db, user_id, total)
            logger.info(
                "rewards_reconciled",
                user_id=user_id,
                reward_ids=credited_ids,
                amount=str(total),
            )
        return total
