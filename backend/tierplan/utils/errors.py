"""Service exception hierarchy.

Every error raised by the core carries a stable code, a user-facing message
and optional details. The category (subclass) decides the HTTP status and
whether the caller may retry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Auth
    AUTH_EMAIL_EXISTS = "AUTH_EMAIL_EXISTS"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"

    # Users / referral codes
    USER_NOT_FOUND = "USER_NOT_FOUND"
    REFERRAL_CODE_NOT_FOUND = "REFERRAL_CODE_NOT_FOUND"
    REFERRAL_CODE_MALFORMED = "REFERRAL_CODE_MALFORMED"
    CODE_GENERATION_EXHAUSTED = "CODE_GENERATION_EXHAUSTED"

    # Deposits
    INVALID_PLAN_TIER = "INVALID_PLAN_TIER"
    DEPOSIT_NOT_FOUND = "DEPOSIT_NOT_FOUND"
    DEPOSIT_MISMATCH = "DEPOSIT_MISMATCH"
    DEPOSIT_PENDING_EXISTS = "DEPOSIT_PENDING_EXISTS"
    PLAN_ALREADY_ACTIVE = "PLAN_ALREADY_ACTIVE"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"

    # Rewards
    REWARD_NOT_FOUND = "REWARD_NOT_FOUND"
    REWARD_ALREADY_PROCESSED = "REWARD_ALREADY_PROCESSED"

    # Withdrawals
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    BALANCE_CHANGED = "BALANCE_CHANGED"

    # Persistence
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


class ServiceError(Exception):
    """Base exception for core service errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        retryable: Whether retrying the same call later may succeed
    """

    retryable = False

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """Bad input: unknown plan tier, malformed code, missing fields."""


class NotFoundError(ServiceError):
    """Unknown user, reward, deposit or code."""


class ConflictError(ServiceError):
    """State conflict; the caller must change state before retrying."""


class ForbiddenError(ServiceError):
    """Caller lacks the required capability."""

    def __init__(self, message: str = "Admin access required"):
        super().__init__(ErrorCode.FORBIDDEN, message)


class UnauthorizedError(ServiceError):
    """Caller is not authenticated."""


class ExhaustionError(ServiceError):
    """A bounded operation ran out of attempts."""

    retryable = True


class TransactionError(ServiceError):
    """Transient persistence failure (timeout, deadlock, serialization)."""

    retryable = True

    def __init__(self, message: str = "Transaction failed, try again"):
        super().__init__(ErrorCode.TRANSACTION_FAILED, message)


# =============================================================================
# Specialisations
# =============================================================================


class CodeGenerationExhausted(ExhaustionError):
    """Raised when no unique referral code could be assigned."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            code=ErrorCode.CODE_GENERATION_EXHAUSTED,
            message="Failed to generate a unique referral code, try again later",
            details={"userId": user_id, "attempts": attempts},
        )


class InvalidPlanTierError(ValidationError):
    """Raised when an amount is not one of the plan tiers."""

    def __init__(self, amount: Any, tiers: list[int]):
        super().__init__(
            code=ErrorCode.INVALID_PLAN_TIER,
            message="Deposit amount must match a valid plan",
            details={"amount": str(amount), "allowedPlans": tiers},
        )


class InsufficientFundsError(ValidationError):
    """Raised when a withdrawal exceeds the withdrawable total."""

    def __init__(self, requested: Any, available: Any):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_FUNDS,
            message="Insufficient balance",
            details={"requested": str(requested), "available": str(available)},
        )


class AlreadyProcessedError(ConflictError):
    """Raised when a reward is missing or no longer pending."""

    def __init__(self, reward_id: str):
        super().__init__(
            code=ErrorCode.REWARD_ALREADY_PROCESSED,
            message="Pending reward not found or already processed",
            details={"rewardId": reward_id},
        )


class UserNotFoundError(NotFoundError):
    """Raised when a user does not exist."""

    def __init__(self, user_id: str):
        super().__init__(
            code=ErrorCode.USER_NOT_FOUND,
            message=f"User not found: {user_id}",
            details={"userId": user_id},
        )


def require_field(value: str | None, field_name: str) -> str:
    """Return the stripped value, or raise MISSING_FIELD if it is blank."""
    value = (value or "").strip()
    if not value:
        raise ValidationError(
            code=ErrorCode.MISSING_FIELD,
            message=f"{field_name} is required",
            details={"field": field_name},
        )
    return value
