"""Per-user plan progress."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tierplan.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tierplan.models.user import User


class UserPlanProgress(Base, UUIDMixin, TimestampMixin):
    """Profit accrual state for one (user, plan amount) pair.

    ``profit``, ``round_count`` and ``can_withdraw`` are written by the round
    accrual job; the core only reads them and drains ``profit`` on withdrawal.
    """

    __tablename__ = "user_plan_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "plan_amount", name="uq_plan_progress_user_plan"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    profit: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        server_default=text("0"),
        nullable=False,
    )
    round_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default=text("0"),
        nullable=False,
    )
    can_withdraw: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False,
    )
    last_round_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="plan_progresses")

    @property
    def is_withdrawal_eligible(self) -> bool:
        return bool(self.can_withdraw and self.profit > 0 and self.round_count > 0)

    def __repr__(self) -> str:
        return f"<UserPlanProgress user={self.user_id[:8]}... plan={self.plan_amount} profit={self.profit}>"
