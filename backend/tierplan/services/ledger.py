"""Atomic balance mutations shared by every flow that touches money.

Balances are never read-modified-written in Python: each helper issues a
single ``UPDATE users SET balance = balance +/- :x`` inside the caller's
transaction.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.models.user import User
from tierplan.utils.errors import ErrorCode, UserNotFoundError, ValidationError

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce a number to a 2-place Decimal (via str to avoid float noise)."""
    if value is None:
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            code=ErrorCode.INVALID_AMOUNT,
            message="Amount must be a number",
            details={"amount": str(value)},
        ) from e


async def credit_balance(db: AsyncSession, user_id: str, amount: Decimal) -> None:
    """Add earnings to balance and total_earned in lockstep."""
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            balance=User.balance + amount,
            total_earned=User.total_earned + amount,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise UserNotFoundError(user_id)


async def top_up_balance(db: AsyncSession, user_id: str, amount: Decimal) -> None:
    """Move funds into balance without counting them as new earnings."""
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(balance=User.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise UserNotFoundError(user_id)


async def debit_balance(db: AsyncSession, user_id: str, amount: Decimal) -> bool:
    """Subtract from balance only if it stays non-negative.

    Returns:
        False when the balance was too low at the time of the update
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.balance >= amount)
        .values(balance=User.balance - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
