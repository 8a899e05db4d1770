"""Referral API: own code, dashboard stats and public code lookup."""

from fastapi import APIRouter

from tierplan.api.deps import CurrentUser, DbSession
from tierplan.config import get_settings
from tierplan.models.referral import REFERRAL_REWARDS
from tierplan.schemas import (
    ErrorResponse,
    ReferralCodeResponse,
    ReferralStatsResponse,
    ReferrerLookupResponse,
)
from tierplan.services.referral import ReferralService
from tierplan.services.referral_code import ReferralCodeService

router = APIRouter(prefix="/referral", tags=["Referral"])


@router.get(
    "/code",
    response_model=ReferralCodeResponse,
    responses={503: {"model": ErrorResponse, "description": "Code generation exhausted"}},
)
async def get_my_referral_code(user: CurrentUser, db: DbSession):
    """Return the caller's referral code, generating it on first use."""
    code = await ReferralCodeService(db).get_or_create_code(user.id)
    base_url = get_settings().app_base_url.rstrip("/")
    return ReferralCodeResponse(
        referral_code=code,
        referral_link=f"{base_url}/register?ref={code}",
        reward_table={str(tier): amount for tier, amount in REFERRAL_REWARDS.items()},
    )


@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(user: CurrentUser, db: DbSession):
    """Referral dashboard: referred users, rewards and earnings."""
    stats = await ReferralService(db).get_referral_stats(user.id)
    return ReferralStatsResponse.model_validate(stats)


@router.get(
    "/referrer/{code}",
    response_model=ReferrerLookupResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed code"},
        404: {"model": ErrorResponse, "description": "Unknown code"},
    },
)
async def lookup_referrer(code: str, db: DbSession):
    """Show who owns a referral code (used on the sign-up page)."""
    referrer = await ReferralService(db).get_referrer_by_code(code)
    return ReferrerLookupResponse(
        id=referrer.id,
        name=referrer.name,
        referral_code=referrer.referral_code,
    )
