"""Deposit model and plan tier table."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tierplan.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tierplan.models.user import User


# Plan amounts a deposit may take
PLAN_TIERS: tuple[int, ...] = (50, 100, 150, 250, 500, 1000, 1500, 2500)


class DepositStatus(str, Enum):
    """Deposit lifecycle."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses that count as "the user's plan deposit"
SETTLED_DEPOSIT_STATUSES = (DepositStatus.CONFIRMED.value, DepositStatus.APPROVED.value)


class Deposit(Base, UUIDMixin, TimestampMixin):
    """A claimed funding event. The transaction hash is not verified."""

    __tablename__ = "deposits"
    __table_args__ = (
        # At most one pending deposit per user
        Index(
            "uq_deposits_user_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    payment_proof_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=DepositStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="deposits")

    def __repr__(self) -> str:
        return f"<Deposit user={self.user_id[:8]}... amount={self.amount} status={self.status}>"
