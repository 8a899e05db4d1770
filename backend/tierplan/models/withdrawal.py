"""Withdrawal request model."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tierplan.models.base import Base, TimestampMixin, UUIDMixin


class WithdrawalStatus(str, Enum):
    """Settled by an operator outside this service."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Withdrawal(Base, UUIDMixin, TimestampMixin):
    """A user's request to pay funds out to an external address."""

    __tablename__ = "withdrawals"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_address: Mapped[str] = mapped_column(String(255), nullable=False)
    top_up_amount: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
        comment="Plan profit moved into balance to cover this request",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=WithdrawalStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Withdrawal user={self.user_id[:8]}... amount={self.amount} status={self.status}>"
