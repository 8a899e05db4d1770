"""Referral reward model and reward tier table."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tierplan.models.base import Base, TimestampMixin, UUIDMixin


class RewardStatus(str, Enum):
    """Reward lifecycle: pending -> paid | rejected. Both ends are terminal."""

    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"


class RewardRecipient(str, Enum):
    """Which side of the referral pair receives the reward.

    A referral pair gets at most one reward per recipient role, so with the
    referred-user bonus enabled a pair can hold two paid rewards.
    """

    REFERRER = "referrer"
    REFERRED_USER = "referred_user"


class ReferralReward(Base, UUIDMixin, TimestampMixin):
    """Referral reward owed for one referred user's qualifying deposit."""

    __tablename__ = "referral_rewards"
    __table_args__ = (
        # One reward of each kind per referral pair
        UniqueConstraint(
            "referrer_id",
            "referred_user_id",
            "recipient_role",
            name="uq_referral_rewards_pair_role",
        ),
    )

    referrer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="User who owns the referral code",
    )
    referred_user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="User who registered with the code",
    )
    recipient_role: Mapped[str] = mapped_column(
        String(20),
        default=RewardRecipient.REFERRER.value,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    plan_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    plan_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Display label only",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=RewardStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    credited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set once the amount has been added to the recipient balance",
    )

    referrer = relationship("User", foreign_keys=[referrer_id])
    referred_user = relationship("User", foreign_keys=[referred_user_id])

    @property
    def recipient_id(self) -> str:
        if self.recipient_role == RewardRecipient.REFERRED_USER.value:
            return self.referred_user_id
        return self.referrer_id

    def __repr__(self) -> str:
        return (
            f"<ReferralReward referrer={self.referrer_id} referred={self.referred_user_id} "
            f"role={self.recipient_role} amount={self.amount} status={self.status}>"
        )


# Reward owed per plan tier (keyed by the truncated plan amount)
REFERRAL_REWARDS: dict[int, Decimal] = {
    50: Decimal("2"),
    100: Decimal("4"),
    150: Decimal("6"),
    250: Decimal("10"),
    500: Decimal("20"),
    1000: Decimal("40"),
    1500: Decimal("60"),
    2500: Decimal("100"),
}


def reward_for_plan(plan_amount: int) -> Decimal:
    """Reward for a plan tier; unknown tiers earn nothing."""
    return REFERRAL_REWARDS.get(int(plan_amount), Decimal("0"))


def plan_label(plan_amount: int, recipient: RewardRecipient) -> str:
    if recipient is RewardRecipient.REFERRED_USER:
        return f"Referred User Bonus (${plan_amount} Plan)"
    return f"Referral Bonus (${plan_amount} Plan)"
