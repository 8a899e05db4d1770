"""Pydantic schemas for API requests and responses."""

from tierplan.schemas.common import BaseSchema, ErrorDetail, ErrorResponse
from tierplan.schemas.requests import (
    DepositConfirmRequest,
    DepositSubmitRequest,
    LoginRequest,
    RecordRoundRequest,
    RegisterRequest,
    WithdrawalRequest,
)
from tierplan.schemas.responses import (
    AccountSummaryResponse,
    AdminRewardItem,
    DepositConfirmResponse,
    DepositResponse,
    LoginResponse,
    PlanProgressResponse,
    ReferralCodeResponse,
    ReferralRewardResponse,
    ReferralStatsResponse,
    ReferrerLookupResponse,
    RegisterResponse,
    RewardListResponse,
    SweepResponse,
    UserResponse,
    WithdrawalResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "RegisterRequest",
    "LoginRequest",
    "DepositSubmitRequest",
    "DepositConfirmRequest",
    "WithdrawalRequest",
    "RecordRoundRequest",
    # Responses
    "UserResponse",
    "RegisterResponse",
    "LoginResponse",
    "ReferralCodeResponse",
    "ReferralRewardResponse",
    "AdminRewardItem",
    "RewardListResponse",
    "ReferralStatsResponse",
    "ReferrerLookupResponse",
    "DepositResponse",
    "DepositConfirmResponse",
    "PlanProgressResponse",
    "AccountSummaryResponse",
    "WithdrawalResponse",
    "SweepResponse",
]
