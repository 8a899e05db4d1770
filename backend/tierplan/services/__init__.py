"""Business logic services."""

from tierplan.services.account import AccountService, AccountSummary
from tierplan.services.auth import AuthService, Registration
from tierplan.services.deposit import DepositConfirmation, DepositService
from tierplan.services.plan import PlanService
from tierplan.services.referral import ReferralService
from tierplan.services.referral_code import (
    CodeAssignment,
    ReferralCodeService,
    generate_referral_code,
)
from tierplan.services.rewards import RewardService
from tierplan.services.withdrawal import WithdrawalService

__all__ = [
    # Auth
    "AuthService",
    "Registration",
    # Referral
    "ReferralCodeService",
    "CodeAssignment",
    "generate_referral_code",
    "ReferralService",
    # Rewards
    "RewardService",
    # Deposits and plans
    "DepositService",
    "DepositConfirmation",
    "PlanService",
    # Account
    "AccountService",
    "AccountSummary",
    "WithdrawalService",
]
