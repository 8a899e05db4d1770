"""Database models."""

from tierplan.models.base import Base, TimestampMixin, UUIDMixin
from tierplan.models.deposit import (
    PLAN_TIERS,
    SETTLED_DEPOSIT_STATUSES,
    Deposit,
    DepositStatus,
)
from tierplan.models.plan import UserPlanProgress
from tierplan.models.referral import (
    REFERRAL_REWARDS,
    ReferralReward,
    RewardRecipient,
    RewardStatus,
    reward_for_plan,
)
from tierplan.models.user import User, UserRole
from tierplan.models.withdrawal import Withdrawal, WithdrawalStatus

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # User
    "User",
    "UserRole",
    # Deposit
    "Deposit",
    "DepositStatus",
    "PLAN_TIERS",
    "SETTLED_DEPOSIT_STATUSES",
    # Plan progress
    "UserPlanProgress",
    # Referral rewards
    "ReferralReward",
    "RewardRecipient",
    "RewardStatus",
    "REFERRAL_REWARDS",
    "reward_for_plan",
    # Withdrawal
    "Withdrawal",
    "WithdrawalStatus",
]
