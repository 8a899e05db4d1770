"""API routers."""

from fastapi import APIRouter

from tierplan.api.account import router as account_router
from tierplan.api.admin import router as admin_router
from tierplan.api.auth import router as auth_router
from tierplan.api.deposits import router as deposits_router
from tierplan.api.referral import router as referral_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(referral_router)
api_router.include_router(deposits_router)
api_router.include_router(account_router)
api_router.include_router(admin_router)

__all__ = [
    "api_router",
    "account_router",
    "admin_router",
    "auth_router",
    "deposits_router",
    "referral_router",
]
