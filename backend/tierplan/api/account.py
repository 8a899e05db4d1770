"""Account API: dashboard totals and withdrawals."""

from fastapi import APIRouter, status

from tierplan.api.deps import CurrentUser, DbSession
from tierplan.schemas import (
    AccountSummaryResponse,
    ErrorResponse,
    PlanProgressResponse,
    WithdrawalRequest,
    WithdrawalResponse,
)
from tierplan.services.account import AccountService
from tierplan.services.withdrawal import WithdrawalService

router = APIRouter(tags=["Account"])


@router.get("/account/summary", response_model=AccountSummaryResponse)
async def get_account_summary(user: CurrentUser, db: DbSession):
    """Balance, plan profit, per-plan progress and withdrawal eligibility.

    Paid rewards not yet in the balance are credited by this call.
    """
    summary = await AccountService(db).compute_withdrawable_total(user.id)
    return AccountSummaryResponse(
        balance=summary.balance,
        plan_profit=summary.plan_profit,
        total_profit=summary.total_profit,
        can_withdraw=summary.can_withdraw,
        credited=summary.credited,
        progresses=[PlanProgressResponse.model_validate(p) for p in summary.progresses],
    )


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid amount or insufficient funds"},
        409: {"model": ErrorResponse, "description": "Balance changed, retry"},
    },
)
async def submit_withdrawal(request_body: WithdrawalRequest, user: CurrentUser, db: DbSession):
    """Request a withdrawal. Plan profit tops up the balance when needed."""
    withdrawal = await WithdrawalService(db).submit(
        user_id=user.id,
        amount=request_body.amount,
        currency=request_body.currency,
        address=request_body.address,
    )
    return WithdrawalResponse.model_validate(withdrawal)
