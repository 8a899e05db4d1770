"""Withdrawal submission.

A request may exceed the liquid balance as long as it fits in balance plus
plan profit. The shortfall is drained from plan profit (oldest plan first)
into the balance, then the full amount is debited, all in one transaction.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.logging_config import get_logger
from tierplan.models.plan import UserPlanProgress
from tierplan.models.user import User
from tierplan.models.withdrawal import Withdrawal, WithdrawalStatus
from tierplan.services.account import AccountService
from tierplan.services.ledger import debit_balance, to_money, top_up_balance
from tierplan.utils.db import transaction
from tierplan.utils.errors import (
    ConflictError,
    ErrorCode,
    InsufficientFundsError,
    ValidationError,
    require_field,
)

logger = get_logger(__name__)


def _balance_changed(user_id: str) -> ConflictError:
    return ConflictError(
        code=ErrorCode.BALANCE_CHANGED,
        message="Balance changed while processing the withdrawal, try again",
        details={"userId": user_id},
    )


class WithdrawalService:
    """Creates pending withdrawal requests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(
        self,
        user_id: str,
        amount: Decimal | int | str,
        currency: str,
        address: str,
    ) -> Withdrawal:
        """Debit the user and record a pending withdrawal.

        Raises:
            ValidationError: If the amount is not positive or a field is missing
            InsufficientFundsError: If the amount exceeds balance plus plan profit
            ConflictError: If funds moved between the check and the debit
        """
        value = to_money(amount)
        if value <= 0:
            raise ValidationError(
                code=ErrorCode.INVALID_AMOUNT,
                message="Amount must be greater than zero",
                details={"amount": str(amount)},
            )
        currency = require_field(currency, "currency").upper()
        address = require_field(address, "address")

        summary = await AccountService(self.db).compute_withdrawable_total(user_id)
        if value > summary.total_profit:
            raise InsufficientFundsError(value, summary.total_profit)

        async with transaction(self.db):
            balance = to_money(
                await self.db.scalar(select(User.balance).where(User.id == user_id))
            )
            top_up = max(Decimal("0.00"), value - balance)
            if top_up > 0:
                await self._drain_plan_profit(user_id, top_up)
                await top_up_balance(self.db, user_id, top_up)

            if not await debit_balance(self.db, user_id, value):
                raise _balance_changed(user_id)

            withdrawal = Withdrawal(
                user_id=user_id,
                amount=value,
                currency=currency,
                recipient_address=address,
                top_up_amount=top_up,
                status=WithdrawalStatus.PENDING.value,
            )
            self.db.add(withdrawal)
            await self.db.flush()

        logger.info(
            "withdrawal_submitted",
            withdrawal_id=withdrawal.id,
            user_id=user_id,
            amount=str(value),
            top_up=str(top_up),
            address=address,
        )
        return withdrawal

    async def _drain_plan_profit(self, user_id: str, needed: Decimal) -> None:
        rows = (
            await self.db.execute(
                select(UserPlanProgress.id, UserPlanProgress.profit)
                .where(
                    UserPlanProgress.user_id == user_id,
                    UserPlanProgress.profit > 0,
                )
                .order_by(UserPlanProgress.created_at.asc(), UserPlanProgress.id.asc())
            )
        ).all()

        remaining = needed
        for progress_id, profit in rows:
            if remaining <= 0:
                break
            take = min(to_money(profit), remaining)
            result = await self.db.execute(
                update(UserPlanProgress)
                .where(
                    UserPlanProgress.id == progress_id,
                    UserPlanProgress.profit >= take,
                )
                .values(profit=UserPlanProgress.profit - take)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                remaining -= take

        if remaining > 0:
            raise _balance_changed(user_id)
