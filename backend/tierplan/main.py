"""FastAPI application entry point.

Tierplan API - referral codes, plan deposits, referral rewards and withdrawals.
"""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from tierplan import __version__
from tierplan.api import api_router
from tierplan.config import get_settings
from tierplan.logging_config import bind_context, clear_context, configure_logging, get_logger
from tierplan.middleware.sentry import init_sentry
from tierplan.utils.db import close_db, engine, init_db
from tierplan.utils.errors import (
    ConflictError,
    ErrorCode,
    ExhaustionError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    TransactionError,
    UnauthorizedError,
    ValidationError,
)
from tierplan.utils.json_utils import ORJSONResponse

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.is_production,
    app_env=settings.app_env,
)
logger = get_logger(__name__)

sentry_enabled = init_sentry(
    dsn=settings.sentry_dsn,
    environment=settings.app_env,
    release=__version__,
    traces_sample_rate=settings.sentry_traces_sample_rate if settings.is_production else 0.0,
)
if sentry_enabled:
    logger.info("sentry_initialized")
elif settings.is_production:
    logger.warning("sentry_disabled", reason="SENTRY_DSN not configured")


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("application_starting", environment=settings.app_env)
    await init_db()
    logger.info("database_connected")

    yield

    logger.info("application_stopping")
    await close_db()
    logger.info("database_closed")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Tierplan API",
    version=__version__,
    description="Referral codes, plan deposits, referral rewards and withdrawals",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add X-Request-ID to every request/response and log the request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        clear_context()
        bind_context(request_id=request_id)

        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================

# Most specific first
_STATUS_BY_CATEGORY: list[tuple[type[ServiceError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ExhaustionError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TransactionError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: ServiceError) -> int:
    for category, status_code in _STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> ORJSONResponse:
    """Map the error category to an HTTP status."""
    trace_id = get_request_id(request)
    status_code = status_for(exc)

    log = logger.warning if exc.retryable else logger.info
    log("service_error", code=exc.code, message=exc.message, status=status_code)

    headers = {"Retry-After": "1"} if exc.retryable else None
    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Report request body/parameter validation failures in the error envelope."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=create_error_response(
            code=ErrorCode.INVALID_REQUEST.value,
            message="Invalid request",
            details={"errors": errors},
            trace_id=get_request_id(request),
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(
    request: Request, exc: HTTPException
) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = dict(exc.detail)
        content["traceId"] = trace_id
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        exc_info=True,
    )

    # Don't expose internal error details in production
    message = "Internal server error"
    if settings.app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.INTERNAL_ERROR.value,
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check() -> dict[str, Any]:
    """Application and database health."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": settings.app_env,
        "services": {"database": "unknown"},
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except (SQLAlchemyError, OSError) as e:
        health_status["services"]["database"] = "unhealthy"
        health_status["status"] = "degraded"
        logger.error("database_health_check_failed", error=str(e))

    return health_status


# =============================================================================
# API Routers
# =============================================================================

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tierplan.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
