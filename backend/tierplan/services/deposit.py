"""Plan deposits: submission, confirmation and rejection.

Confirmation is the single place a plan becomes active. In one transaction it
settles the deposit, credits the user, creates the plan progress row and
creates any referral reward owed for it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.logging_config import get_logger
from tierplan.models.deposit import (
    PLAN_TIERS,
    SETTLED_DEPOSIT_STATUSES,
    Deposit,
    DepositStatus,
)
from tierplan.models.plan import UserPlanProgress
from tierplan.models.referral import ReferralReward
from tierplan.models.user import User
from tierplan.services.ledger import credit_balance, to_money
from tierplan.services.plan import PlanService
from tierplan.services.rewards import RewardService, require_admin
from tierplan.utils.db import transaction
from tierplan.utils.errors import (
    ConflictError,
    ErrorCode,
    InvalidPlanTierError,
    NotFoundError,
    UserNotFoundError,
    ValidationError,
    require_field,
)

logger = get_logger(__name__)


def validate_plan_amount(amount: Decimal | int | str) -> Decimal:
    """Return the amount as money if it is exactly one of the plan tiers."""
    try:
        value = to_money(amount)
    except ValidationError as e:
        raise InvalidPlanTierError(amount, list(PLAN_TIERS)) from e
    if value != value.to_integral_value() or int(value) not in PLAN_TIERS:
        raise InvalidPlanTierError(amount, list(PLAN_TIERS))
    return value


@dataclass
class DepositConfirmation:
    deposit: Deposit
    plan_created: bool
    rewards: list[ReferralReward] = field(default_factory=list)


class DepositService:
    """Deposit lifecycle for plan purchases."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(
        self,
        user_id: str,
        amount: Decimal | int | str,
        currency: str,
        transaction_hash: str,
        payment_proof_url: str | None = None,
    ) -> Deposit:
        """Record a claimed deposit as pending.

        Raises:
            InvalidPlanTierError: If the amount is not a plan tier
            ConflictError: If a deposit is already pending or a plan is active
        """
        value = validate_plan_amount(amount)
        currency = require_field(currency, "currency").upper()
        transaction_hash = require_field(transaction_hash, "transactionHash")

        try:
            async with transaction(self.db):
                exists = await self.db.scalar(select(User.id).where(User.id == user_id))
                if exists is None:
                    raise UserNotFoundError(user_id)

                await self._ensure_no_active_plan(user_id)

                pending = await self.db.scalar(
                    select(Deposit.id).where(
                        Deposit.user_id == user_id,
                        Deposit.status == DepositStatus.PENDING.value,
                    )
                )
                if pending is not None:
                    raise self._pending_exists(user_id)

                deposit = Deposit(
                    user_id=user_id,
                    amount=value,
                    currency=currency,
                    transaction_hash=transaction_hash,
                    payment_proof_url=payment_proof_url,
                    status=DepositStatus.PENDING.value,
                )
                self.db.add(deposit)
                await self.db.flush()
        except IntegrityError as e:
            # Lost the race against a concurrent submit
            raise self._pending_exists(user_id) from e

        logger.info(
            "deposit_submitted",
            deposit_id=deposit.id,
            user_id=user_id,
            amount=str(value),
            currency=currency,
            transaction_hash=transaction_hash,
        )
        return deposit

    async def confirm(
        self,
        user_id: str,
        transaction_hash: str,
        amount: Decimal | int | str,
        currency: str,
    ) -> DepositConfirmation:
        """Settle the user's pending deposit and activate the plan.

        Raises:
            NotFoundError: If there is no pending deposit with this hash
            ValidationError: If amount or currency differ from the deposit
            ConflictError: If the user already has an active plan
        """
        transaction_hash = require_field(transaction_hash, "transactionHash")
        currency = require_field(currency, "currency").upper()
        value = validate_plan_amount(amount)
        now = datetime.now(timezone.utc)

        async with transaction(self.db):
            deposit = await self.db.scalar(
                select(Deposit)
                .where(
                    Deposit.user_id == user_id,
                    Deposit.transaction_hash == transaction_hash,
                    Deposit.status == DepositStatus.PENDING.value,
                )
                .order_by(Deposit.created_at.desc())
                .limit(1)
            )
            if deposit is None:
                await self._ensure_no_active_plan(user_id)
                raise NotFoundError(
                    code=ErrorCode.DEPOSIT_NOT_FOUND,
                    message="No pending deposit matches this transaction",
                    details={"transactionHash": transaction_hash},
                )

            if to_money(deposit.amount) != value or deposit.currency.upper() != currency:
                raise ValidationError(
                    code=ErrorCode.DEPOSIT_MISMATCH,
                    message="Amount or currency does not match the submitted deposit",
                    details={
                        "expectedAmount": str(to_money(deposit.amount)),
                        "expectedCurrency": deposit.currency,
                    },
                )

            await self._ensure_no_active_plan(user_id)

            result = await self.db.execute(
                update(Deposit)
                .where(
                    Deposit.id == deposit.id,
                    Deposit.status == DepositStatus.PENDING.value,
                )
                .values(status=DepositStatus.CONFIRMED.value, confirmed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    code=ErrorCode.DEPOSIT_NOT_FOUND,
                    message="Deposit is no longer pending",
                    details={"depositId": deposit.id},
                )

            await credit_balance(self.db, user_id, value)
            plan_created = await PlanService(self.db).upsert_progress(user_id, int(value))
            rewards = await RewardService(self.db).create_for_confirmed_deposit(user_id)

            deposit = await self._load(deposit.id)

        logger.info(
            "deposit_confirmed",
            deposit_id=deposit.id,
            user_id=user_id,
            amount=str(value),
            rewards_created=len(rewards),
        )
        return DepositConfirmation(deposit=deposit, plan_created=plan_created, rewards=rewards)

    async def reject(self, deposit_id: str, caller_role: str) -> Deposit:
        """Admin rejection of a pending deposit. No balance effect."""
        require_admin(caller_role)

        async with transaction(self.db):
            result = await self.db.execute(
                update(Deposit)
                .where(
                    Deposit.id == deposit_id,
                    Deposit.status == DepositStatus.PENDING.value,
                )
                .values(status=DepositStatus.REJECTED.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                found = await self.db.scalar(select(Deposit.id).where(Deposit.id == deposit_id))
                if found is None:
                    raise NotFoundError(
                        code=ErrorCode.DEPOSIT_NOT_FOUND,
                        message="Deposit not found",
                        details={"depositId": deposit_id},
                    )
                raise ConflictError(
                    code=ErrorCode.DEPOSIT_NOT_FOUND,
                    message="Deposit is no longer pending",
                    details={"depositId": deposit_id},
                )
            deposit = await self._load(deposit_id)

        logger.info("deposit_rejected", deposit_id=deposit_id, user_id=deposit.user_id)
        return deposit

    async def _ensure_no_active_plan(self, user_id: str) -> None:
        settled = await self.db.scalar(
            select(Deposit.id)
            .where(
                Deposit.user_id == user_id,
                Deposit.status.in_(SETTLED_DEPOSIT_STATUSES),
            )
            .limit(1)
        )
        plan = await self.db.scalar(
            select(UserPlanProgress.id).where(UserPlanProgress.user_id == user_id).limit(1)
        )
        if settled is not None or plan is not None:
            raise ConflictError(
                code=ErrorCode.PLAN_ALREADY_ACTIVE,
                message="You already have an active plan",
                details={"userId": user_id},
            )

    @staticmethod
    def _pending_exists(user_id: str) -> ConflictError:
        return ConflictError(
            code=ErrorCode.DEPOSIT_PENDING_EXISTS,
            message="You already have a pending deposit",
            details={"userId": user_id},
        )

    async def _load(self, deposit_id: str) -> Deposit:
        result = await self.db.execute(
            select(Deposit)
            .where(Deposit.id == deposit_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
