"""Plan progress rows: creation, self-heal and round accrual."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.logging_config import get_logger
from tierplan.models.deposit import SETTLED_DEPOSIT_STATUSES, Deposit
from tierplan.models.plan import UserPlanProgress
from tierplan.services.ledger import to_money
from tierplan.services.rewards import require_admin
from tierplan.utils.db import insert_ignoring_conflicts, transaction
from tierplan.utils.errors import ErrorCode, NotFoundError, ValidationError

logger = get_logger(__name__)


class PlanService:
    """Reads and maintains UserPlanProgress."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_progress(self, user_id: str, plan_amount: int) -> bool:
        """Create the (user, plan) row if absent; existing rows are untouched.

        Runs inside the caller's transaction.

        Returns:
            True if a row was created
        """
        stmt = insert_ignoring_conflicts(
            self.db,
            UserPlanProgress,
            {
                "id": str(uuid4()),
                "user_id": user_id,
                "plan_amount": int(plan_amount),
                "profit": to_money(0),
                "round_count": 0,
                "can_withdraw": False,
            },
            index_elements=["user_id", "plan_amount"],
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def ensure_progress(self, user_id: str) -> bool:
        """Recreate a missing progress row for a user with a settled deposit."""
        has_row = await self.db.scalar(
            select(UserPlanProgress.id).where(UserPlanProgress.user_id == user_id).limit(1)
        )
        if has_row is not None:
            return False

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
            return False

        created = await self.upsert_progress(user_id, int(deposit_amount))
        if created:
            logger.warning(
                "plan_progress_restored",
                user_id=user_id,
                plan_amount=int(deposit_amount),
            )
        return created

    async def record_round(
        self,
        user_id: str,
        plan_amount: int,
        profit: Decimal,
        can_withdraw: bool,
        caller_role: str,
    ) -> UserPlanProgress:
        """Accrue one round of profit onto a plan.

        Raises:
            ForbiddenError: If the caller is not an admin
            ValidationError: If profit is negative
            NotFoundError: If the user has no progress row for the plan
        """
        require_admin(caller_role)

        amount = to_money(profit)
        if amount < 0:
            raise ValidationError(
                code=ErrorCode.INVALID_AMOUNT,
                message="Round profit cannot be negative",
                details={"profit": str(amount)},
            )

        now = datetime.now(timezone.utc)
        async with transaction(self.db):
            result = await self.db.execute(
                update(UserPlanProgress)
                .where(
                    UserPlanProgress.user_id == user_id,
                    UserPlanProgress.plan_amount == int(plan_amount),
                )
                .values(
                    profit=UserPlanProgress.profit + amount,
                    round_count=UserPlanProgress.round_count + 1,
                    last_round_date=now,
                    can_withdraw=can_withdraw,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError(
                    code=ErrorCode.PLAN_NOT_FOUND,
                    message="Plan progress not found",
                    details={"userId": user_id, "planAmount": int(plan_amount)},
                )

            progress = (
                await self.db.execute(
                    select(UserPlanProgress)
                    .where(
                        UserPlanProgress.user_id == user_id,
                        UserPlanProgress.plan_amount == int(plan_amount),
                    )
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()

        logger.info(
            "plan_round_recorded",
            user_id=user_id,
            plan_amount=int(plan_amount),
            profit=str(amount),
            round_count=progress.round_count,
        )
        return progress
