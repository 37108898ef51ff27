"""Sentry error tracking integration.

Business rejections (duplicate claims, insufficient balance, ...) are expected
outcomes and are not reported; anything else that escapes a request is.
"""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.utils.errors import RewardError, StoreUnavailableError


def init_sentry(
    dsn: str | None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.0,
) -> bool:
    """Initialize Sentry SDK.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=before_send,
    )
    return True


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Drop expected business errors; keep store outages."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, RewardError) and not isinstance(exc_value, StoreUnavailableError):
            return None
    return event


def capture_ledger_error(
    error: Exception,
    user_id: str,
    operation: str,
    amount: int | None = None,
) -> str | None:
    """Report a failed ledger write with its financial context.

    Returns:
        Sentry event ID or None
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_level("fatal")
        scope.set_user({"id": user_id})
        scope.set_tag("ledger_operation", operation)
        if amount is not None:
            scope.set_extra("amount", amount)
        return sentry_sdk.capture_exception(error)
