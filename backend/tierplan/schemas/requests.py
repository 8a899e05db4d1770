"""API request schemas."""

import re
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RequestSchema(BaseModel):
    """Accepts both camelCase and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# =============================================================================
# Auth Requests
# =============================================================================


class RegisterRequest(RequestSchema):
    """User registration request."""

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(
        ...,
        min_length=8,
        max_length=100,
        description="Password (min 8 chars, must include number and letter)",
    )
    referral_code: str | None = Field(
        default=None,
        alias="referralCode",
        max_length=64,
        description="Code of the user who referred you",
    )

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password complexity."""
        if not re.search(r"[A-Za-z]", v):
            raise ValueError("Password must contain at least one letter")
        if not re.search(r"\d", v):
            raise ValueError("Password must contain at least one number")
        return v


class LoginRequest(RequestSchema):
    """User login request."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., description="User password")


# =============================================================================
# Deposit / Withdrawal Requests
# =============================================================================


class DepositSubmitRequest(RequestSchema):
    """Claim a plan deposit."""

    amount: Decimal = Field(..., description="Plan amount")
    currency: str = Field(..., min_length=1, max_length=20)
    transaction_hash: str = Field(..., alias="transactionHash", min_length=1, max_length=255)
    payment_proof_url: str | None = Field(default=None, alias="paymentProofUrl", max_length=500)


class DepositConfirmRequest(RequestSchema):
    """Confirm a previously submitted deposit."""

    transaction_hash: str = Field(..., alias="transactionHash", min_length=1, max_length=255)
    amount: Decimal
    currency: str = Field(..., min_length=1, max_length=20)


class WithdrawalRequest(RequestSchema):
    """Withdraw funds to an external address."""

    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., min_length=1, max_length=20)
    address: str = Field(..., min_length=1, max_length=255, description="Recipient address")


# =============================================================================
# Admin Requests
# =============================================================================


class RecordRoundRequest(RequestSchema):
    """Accrue one round of profit onto a user's plan."""

    user_id: str = Field(..., alias="userId")
    plan_amount: int = Field(..., alias="planAmount")
    profit: Decimal = Field(..., ge=0)
    can_withdraw: bool = Field(default=False, alias="canWithdraw")
