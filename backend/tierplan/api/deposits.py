"""Deposit API: submit and confirm a plan deposit."""

from fastapi import APIRouter, status

from tierplan.api.deps import CurrentUser, DbSession
from tierplan.schemas import (
    DepositConfirmRequest,
    DepositConfirmResponse,
    DepositResponse,
    DepositSubmitRequest,
    ErrorResponse,
    ReferralRewardResponse,
)
from tierplan.services.deposit import DepositService

router = APIRouter(prefix="/deposits", tags=["Deposits"])


@router.post(
    "",
    response_model=DepositResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid plan amount"},
        409: {"model": ErrorResponse, "description": "Pending deposit or active plan exists"},
    },
)
async def submit_deposit(request_body: DepositSubmitRequest, user: CurrentUser, db: DbSession):
    """Submit a deposit for one of the plan tiers."""
    deposit = await DepositService(db).submit(
        user_id=user.id,
        amount=request_body.amount,
        currency=request_body.currency,
        transaction_hash=request_body.transaction_hash,
        payment_proof_url=request_body.payment_proof_url,
    )
    return DepositResponse.model_validate(deposit)


@router.post(
    "/confirm",
    response_model=DepositConfirmResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Amount or currency mismatch"},
        404: {"model": ErrorResponse, "description": "No pending deposit"},
        409: {"model": ErrorResponse, "description": "Plan already active"},
    },
)
async def confirm_deposit(request_body: DepositConfirmRequest, user: CurrentUser, db: DbSession):
    """Confirm a submitted deposit and activate the plan.

    Referral rewards owed for this deposit are created in the same step.
    """
    result = await DepositService(db).confirm(
        user_id=user.id,
        transaction_hash=request_body.transaction_hash,
        amount=request_body.amount,
        currency=request_body.currency,
    )
    return DepositConfirmResponse(
        deposit=DepositResponse.model_validate(result.deposit),
        plan_created=result.plan_created,
        rewards=[ReferralRewardResponse.model_validate(r) for r in result.rewards],
    )
