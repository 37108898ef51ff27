"""Ledger audit.

Balances are recomputed from records on every read, so the audit does not
reconcile a cached counter. It re-verifies what the records themselves
promise:

- every transfer has exactly two legs that net to zero and share a status
- every record's integrity hash still matches its write-once fields

It also cancels records stuck in ``pending``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reward import RewardRecord, RewardStatus
from app.services.ledger import RewardLedger
from app.utils.clock import utc_now
from app.utils.db import translate_store_errors

logger = logging.getLogger(__name__)


class LedgerAuditService:
    """Integrity checks over the whole ledger."""

    BATCH_SIZE = 1000
    MAX_REPORTED = 100

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.ledger = RewardLedger(session)

    async def find_unbalanced_transfers(self) -> list[dict[str, Any]]:
        """Transfers that do not consist of two opposite legs."""
        legs = func.count(RewardRecord.id)
        net = func.sum(RewardRecord.amount)
        statuses = func.count(func.distinct(RewardRecord.status))

        async with translate_store_errors():
            result = await self.session.execute(
                select(
                    RewardRecord.transfer_id,
                    legs.label("legs"),
                    net.label("net"),
                    statuses.label("statuses"),
                )
                .where(RewardRecord.transfer_id.is_not(None))
                .group_by(RewardRecord.transfer_id)
                .having((legs != 2) | (net != 0) | (statuses != 1))
                .limit(self.MAX_REPORTED)
            )
        return [
            {
                "transfer_id": row.transfer_id,
                "legs": int(row.legs),
                "net": int(row.net),
                "statuses": int(row.statuses),
            }
            for row in result
        ]

    async def find_tampered_records(self) -> tuple[int, list[str]]:
        """Scan all records in id order and verify their integrity hashes.

        Returns:
            (records checked, ids of records whose hash does not verify)
        """
        checked = 0
        tampered: list[str] = []
        last_id = ""

        while True:
            async with translate_store_errors():
                result = await self.session.execute(
                    select(RewardRecord)
                    .where(RewardRecord.id > last_id)
                    .order_by(RewardRecord.id)
                    .limit(self.BATCH_SIZE)
                    .execution_options(populate_existing=True)
                )
            batch = list(result.scalars().all())
            if not batch:
                break

            for record in batch:
                checked += 1
                if not record.verify_integrity() and len(tampered) < self.MAX_REPORTED:
                    tampered.append(record.id)
            last_id = batch[-1].id
            self.session.expunge_all()

        return checked, tampered

    async def audit(self) -> dict[str, Any]:
        """Run all checks and log the outcome."""
        unbalanced = await self.find_unbalanced_transfers()
        checked, tampered = await self.find_tampered_records()

        report = {
            "checked_records": checked,
            "unbalanced_transfers": unbalanced,
            "tampered_records": tampered,
            "healthy": not unbalanced and not tampered,
        }

        if report["healthy"]:
            logger.info(f"Ledger audit passed: {checked:,} records checked")
        else:
            logger.error(
                f"Ledger audit FAILED: {len(unbalanced)} unbalanced transfers, "
                f"{len(tampered)} tampered records (checked {checked:,})"
            )
        return report

    async def expire_stale_pending(
        self,
        older_than: timedelta,
        now: datetime | None = None,
    ) -> int:
        """Cancel pending records created before ``now - older_than``."""
        cutoff = (now or utc_now()) - older_than

        async with translate_store_errors():
            result = await self.session.execute(
                select(RewardRecord.id).where(
                    RewardRecord.status == RewardStatus.PENDING,
                    RewardRecord.created_at < cutoff,
                )
            )
        stale_ids = list(result.scalars().all())

        for record_id in stale_ids:
            await self.ledger.transition_status(record_id, RewardStatus.CANCELLED)

        if stale_ids:
            logger.info(f"Cancelled {len(stale_ids)} stale pending records (cutoff={cutoff.isoformat()})")
        return len(stale_ids)
