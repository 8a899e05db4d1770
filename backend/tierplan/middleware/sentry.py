"""Sentry error tracking.

Enabled only when a DSN is configured. Expected business errors are not
reported, and credentials and payout details are scrubbed from request
bodies before an event leaves the process.
"""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from tierplan.logging_config import mask_value
from tierplan.utils.errors import ServiceError

_REDACTED_FIELDS = frozenset({"password", "accessToken"})
_MASKED_FIELDS = frozenset({"address", "transactionHash"})


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.05,
) -> bool:
    """Initialize the Sentry SDK.

    Args:
        dsn: Sentry DSN. If None, uses SENTRY_DSN env var.
        environment: Environment name (development, staging, production)
        release: Release version string
        traces_sample_rate: Fraction of transactions to trace (0.0 to 1.0)

    Returns:
        True if Sentry was initialized, False otherwise
    """
    sentry_dsn = dsn or os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        release=release or os.getenv("APP_VERSION", "1.0.0"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=_before_send,
        before_send_transaction=_before_send_transaction,
    )
    return True


def _scrub_body(data: dict) -> dict:
    scrubbed = {}
    for key, value in data.items():
        if key in _REDACTED_FIELDS:
            scrubbed[key] = "[Filtered]"
        elif key in _MASKED_FIELDS and isinstance(value, str):
            scrubbed[key] = mask_value(value)
        else:
            scrubbed[key] = value
    return scrubbed


def _before_send(event: dict, hint: dict) -> dict | None:
    """Drop non-retryable service errors and scrub the request body."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, ServiceError) and not exc_value.retryable:
            return None

    request = event.get("request")
    if request and isinstance(request.get("data"), dict):
        request["data"] = _scrub_body(request["data"])

    return event


def _before_send_transaction(event: dict, hint: dict) -> dict | None:
    """Drop health check transactions."""
    if "/health" in event.get("transaction", ""):
        return None
    return event


def set_user_context(user_id: str, role: str | None = None) -> None:
    """Attach the authenticated user to subsequent events."""
    sentry_sdk.set_user({"id": user_id})
    if role:
        sentry_sdk.set_tag("user_role", role)
