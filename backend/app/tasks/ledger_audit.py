"""Ledger maintenance tasks.

Each run opens its own engine: Celery workers do not share the API's event
loop or connection pool.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.services.audit import LedgerAuditService
from app.tasks.celery_app import celery_app
from app.utils.db import build_engine

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    engine = build_engine(get_settings())
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()


async def run_audit(session: AsyncSession) -> dict[str, Any]:
    return await LedgerAuditService(session).audit()


async def run_expire_pending(session: AsyncSession, older_than_hours: int) -> int:
    return await LedgerAuditService(session).expire_stale_pending(
        timedelta(hours=older_than_hours)
    )


@celery_app.task(
    bind=True,
    name="app.tasks.ledger_audit.audit_ledger_task",
    max_retries=3,
    default_retry_delay=300,
    autoretry_for=(ConnectionError, OSError),
    retry_backoff=True,
)
def audit_ledger_task(self) -> dict[str, Any]:
    """Verify transfer pairs and record integrity hashes."""
    logger.info(f"Starting ledger audit (attempt {self.request.retries + 1})")
    report = asyncio.run(_run_with_session(run_audit))
    logger.info(
        f"Ledger audit complete: healthy={report['healthy']} "
        f"records={report['checked_records']}"
    )
    return report


@celery_app.task(
    bind=True,
    name="app.tasks.ledger_audit.expire_pending_records_task",
    max_retries=3,
    default_retry_delay=300,
    autoretry_for=(ConnectionError, OSError),
    retry_backoff=True,
)
def expire_pending_records_task(self, older_than_hours: int | None = None) -> dict[str, int]:
    """Cancel pending records older than the configured age."""
    hours = older_than_hours or get_settings().pending_expiry_hours
    cancelled = asyncio.run(
        _run_with_session(lambda session: run_expire_pending(session, hours))
    )
    logger.info(f"Pending sweep complete: cancelled={cancelled}")
    return {"cancelled": cancelled, "older_than_hours": hours}
