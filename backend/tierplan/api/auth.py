"""Authentication API endpoints."""

from fastapi import APIRouter, status

from tierplan.api.deps import DbSession
from tierplan.schemas import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from tierplan.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Validation error"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
)
async def register(request_body: RegisterRequest, db: DbSession):
    """Register a new user account.

    An unknown referral code never blocks registration; it is simply not
    attributed. The new user's own referral code is generated right away.
    """
    result = await AuthService(db).register(
        name=request_body.name,
        email=request_body.email,
        password=request_body.password,
        referral_code=request_body.referral_code,
    )
    return RegisterResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.access_token,
        referral_code=result.referral_code,
        referrer_id=result.referrer_id,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def login(request_body: LoginRequest, db: DbSession):
    """Authenticate with email and password."""
    result = await AuthService(db).login(request_body.email, request_body.password)
    return LoginResponse(
        user=UserResponse.model_validate(result["user"]),
        access_token=result["access_token"],
        token_type=result["token_type"],
        expires_in=result["expires_in"],
    )
