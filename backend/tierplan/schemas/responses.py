"""API response schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from tierplan.schemas.common import BaseSchema


# =============================================================================
# Auth Responses
# =============================================================================


class UserResponse(BaseSchema):
    """Account as returned to its owner."""

    id: str
    name: str
    email: str
    role: str
    referral_code: str | None = Field(None, alias="referralCode")
    referred_by_id: str | None = Field(None, alias="referredById")
    referral_count: int = Field(0, alias="referralCount")
    balance: Decimal
    total_earned: Decimal = Field(..., alias="totalEarned")
    created_at: datetime = Field(..., alias="createdAt")


class RegisterResponse(BaseSchema):
    """Registration result with an access token."""

    user: UserResponse
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field(default="bearer", alias="tokenType")
    referral_code: str | None = Field(None, alias="referralCode")
    referrer_id: str | None = Field(None, alias="referrerId")


class LoginResponse(BaseSchema):
    """Login result."""

    user: UserResponse
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field(default="bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn", description="Access token expiry in seconds")


# =============================================================================
# Referral Responses
# =============================================================================


class ReferralCodeResponse(BaseSchema):
    referral_code: str = Field(..., alias="referralCode")
    referral_link: str = Field(..., alias="referralLink")
    reward_table: dict[str, Decimal] = Field(..., alias="rewardTable")


class ReferralRewardResponse(BaseSchema):
    """A referral reward and its lifecycle state."""

    id: str
    referrer_id: str = Field(..., alias="referrerId")
    referred_user_id: str = Field(..., alias="referredUserId")
    recipient_role: str = Field(..., alias="recipientRole")
    amount: Decimal
    plan_amount: int = Field(..., alias="planAmount")
    plan_type: str | None = Field(None, alias="planType")
    status: str
    created_at: datetime = Field(..., alias="createdAt")
    paid_at: datetime | None = Field(None, alias="paidAt")
    credited_at: datetime | None = Field(None, alias="creditedAt")


class AdminRewardItem(ReferralRewardResponse):
    """Reward row for the admin review queue."""

    referrer_name: str = Field(..., alias="referrerName")
    referred_user_name: str = Field(..., alias="referredUserName")


class RewardListResponse(BaseSchema):
    count: int
    rewards: list[AdminRewardItem]


class ReferralStatsReward(BaseSchema):
    id: str
    referred_user_id: str = Field(..., alias="referredUserId")
    referred_user_name: str = Field(..., alias="referredUserName")
    amount: Decimal
    plan_amount: int = Field(..., alias="planAmount")
    plan_type: str | None = Field(None, alias="planType")
    status: str
    created_at: datetime = Field(..., alias="createdAt")
    paid_at: datetime | None = Field(None, alias="paidAt")


class ReferredUserItem(BaseSchema):
    id: str
    name: str
    joined_at: datetime = Field(..., alias="joinedAt")


class ReferrerInfo(BaseSchema):
    id: str
    name: str
    code: str | None = None


class ReferralStatsResponse(BaseSchema):
    """Referral dashboard."""

    referral_code: str = Field(..., alias="referralCode")
    referral_link: str = Field(..., alias="referralLink")
    total_referrals: int = Field(..., alias="totalReferrals")
    total_earnings: Decimal = Field(..., alias="totalEarnings")
    pending_rewards: int = Field(..., alias="pendingRewards")
    reward_table: dict[str, Decimal] = Field(..., alias="rewardTable")
    rewards: list[ReferralStatsReward]
    referred_users: list[ReferredUserItem] = Field(..., alias="referredUsers")
    referred_by: ReferrerInfo | None = Field(None, alias="referredBy")


class ReferrerLookupResponse(BaseSchema):
    id: str
    name: str
    referral_code: str = Field(..., alias="referralCode")


# =============================================================================
# Deposit / Plan Responses
# =============================================================================


class DepositResponse(BaseSchema):
    id: str
    user_id: str = Field(..., alias="userId")
    amount: Decimal
    currency: str
    transaction_hash: str = Field(..., alias="transactionHash")
    payment_proof_url: str | None = Field(None, alias="paymentProofUrl")
    status: str
    confirmed_at: datetime | None = Field(None, alias="confirmedAt")
    created_at: datetime = Field(..., alias="createdAt")


class DepositConfirmResponse(BaseSchema):
    deposit: DepositResponse
    plan_created: bool = Field(..., alias="planCreated")
    rewards: list[ReferralRewardResponse]


class PlanProgressResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    plan_amount: int = Field(..., alias="planAmount")
    profit: Decimal
    round_count: int = Field(..., alias="roundCount")
    can_withdraw: bool = Field(..., alias="canWithdraw")
    last_round_date: datetime | None = Field(None, alias="lastRoundDate")


# =============================================================================
# Account / Withdrawal Responses
# =============================================================================


class AccountSummaryResponse(BaseSchema):
    """Withdrawable totals after reconciliation."""

    balance: Decimal
    plan_profit: Decimal = Field(..., alias="planProfit")
    total_profit: Decimal = Field(..., alias="totalProfit")
    can_withdraw: bool = Field(..., alias="canWithdraw")
    credited: Decimal = Field(..., description="Reward amount folded into balance by this call")
    progresses: list[PlanProgressResponse] = Field(
        default_factory=list, description="Plan rows, most recent round first"
    )


class WithdrawalResponse(BaseSchema):
    id: str
    user_id: str = Field(..., alias="userId")
    amount: Decimal
    currency: str
    recipient_address: str = Field(..., alias="recipientAddress")
    top_up_amount: Decimal = Field(..., alias="topUpAmount")
    status: str
    created_at: datetime = Field(..., alias="createdAt")


class SweepResponse(BaseSchema):
    created: int
    rewards: list[ReferralRewardResponse]
