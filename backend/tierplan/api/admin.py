"""Admin API: reward review and approval, deposit rejection and plan rounds."""

from fastapi import APIRouter, Query

from tierplan.api.deps import AdminUser, DbSession
from tierplan.logging_config import get_logger
from tierplan.models.referral import RewardStatus
from tierplan.schemas import (
    AdminRewardItem,
    DepositResponse,
    ErrorResponse,
    PlanProgressResponse,
    RecordRoundRequest,
    ReferralRewardResponse,
    RewardListResponse,
    SweepResponse,
)
from tierplan.services.deposit import DepositService
from tierplan.services.plan import PlanService
from tierplan.services.rewards import RewardService

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = get_logger(__name__)


@router.get("/rewards", response_model=RewardListResponse)
async def list_rewards(
    admin: AdminUser,
    db: DbSession,
    reward_status: RewardStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
):
    """Newest rewards, optionally filtered by status (e.g. ``?status=pending``)."""
    rewards = await RewardService(db).list_rewards(admin.role, status=reward_status, limit=limit)
    return RewardListResponse(
        count=len(rewards),
        rewards=[AdminRewardItem.model_validate(r) for r in rewards],
    )


@router.post(
    "/rewards/{reward_id}/approve",
    response_model=ReferralRewardResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Admin access required"},
        409: {"model": ErrorResponse, "description": "Reward missing or already processed"},
    },
)
async def approve_reward(reward_id: str, admin: AdminUser, db: DbSession):
    """Mark a pending reward paid and credit the recipient."""
    reward = await RewardService(db).approve(reward_id, admin.role)
    logger.info("admin_reward_approved", admin_id=admin.id, reward_id=reward_id)
    return ReferralRewardResponse.model_validate(reward)


@router.post(
    "/rewards/{reward_id}/reject",
    response_model=ReferralRewardResponse,
    responses={409: {"model": ErrorResponse, "description": "Reward missing or already processed"}},
)
async def reject_reward(reward_id: str, admin: AdminUser, db: DbSession):
    """Reject a pending reward. Nothing is credited."""
    reward = await RewardService(db).reject(reward_id, admin.role)
    logger.info("admin_reward_rejected", admin_id=admin.id, reward_id=reward_id)
    return ReferralRewardResponse.model_validate(reward)


@router.post("/rewards/sweep", response_model=SweepResponse)
async def sweep_missing_rewards(admin: AdminUser, db: DbSession):
    """Create rewards missing for referred users with a confirmed deposit."""
    rewards = await RewardService(db).sweep_missing_rewards(admin.role)
    return SweepResponse(
        created=len(rewards),
        rewards=[ReferralRewardResponse.model_validate(r) for r in rewards],
    )


@router.post(
    "/deposits/{deposit_id}/reject",
    response_model=DepositResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Deposit not found"},
        409: {"model": ErrorResponse, "description": "Deposit not pending"},
    },
)
async def reject_deposit(deposit_id: str, admin: AdminUser, db: DbSession):
    """Reject a pending deposit."""
    deposit = await DepositService(db).reject(deposit_id, admin.role)
    logger.info("admin_deposit_rejected", admin_id=admin.id, deposit_id=deposit_id)
    return DepositResponse.model_validate(deposit)


@router.post(
    "/plans/rounds",
    response_model=PlanProgressResponse,
    responses={404: {"model": ErrorResponse, "description": "Plan not found"}},
)
async def record_round(request_body: RecordRoundRequest, admin: AdminUser, db: DbSession):
    """Accrue one round of profit on a user's plan."""
    progress = await PlanService(db).record_round(
        user_id=request_body.user_id,
        plan_amount=request_body.plan_amount,
        profit=request_body.profit,
        can_withdraw=request_body.can_withdraw,
        caller_role=admin.role,
    )
    return PlanProgressResponse.model_validate(progress)
