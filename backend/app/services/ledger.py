"""Reward record store.

Append-only access to ``reward_records``. No business rules live here: the
earning and transfer services decide *whether* to write, this module decides
*how* records are written and read. Every balance-affecting read filters on
``status == completed`` so history, summaries, leaderboards and sufficiency
checks all agree with ``sum_completed_by_user``.
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reward import (
    ALLOWED_STATUS_TRANSITIONS,
    ReferenceKind,
    RewardActionType,
    RewardRecord,
    RewardStatus,
)
from app.utils.clock import as_utc, utc_now
from app.utils.db import translate_store_errors
from app.utils.errors import InvalidStatusTransitionError, RecordNotFoundError

logger = logging.getLogger(__name__)


class RewardLedger:
    """Reads and writes reward records within the caller's session.

    The caller owns the transaction: ``append`` only flushes, so several
    appends commit or roll back together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(
        self,
        *,
        user_id: str,
        amount: int,
        action_type: RewardActionType,
        reason_text: str = "",
        reference_id: str | None = None,
        reference_kind: ReferenceKind | None = None,
        transfer_id: str | None = None,
        status: RewardStatus = RewardStatus.COMPLETED,
        created_at: datetime | None = None,
    ) -> RewardRecord:
        """Write one record and flush it.

        Raises:
            ValueError: If amount is zero
            sqlalchemy.exc.IntegrityError: If the (user, action, reference)
                unique index rejects the row
            StoreUnavailableError: If the database is unreachable
        """
        if amount == 0:
            raise ValueError("Reward amount cannot be zero")

        # Stored as UTC wall time: SQLite drops the offset
        created_at = as_utc(created_at or utc_now())
        record = RewardRecord(
            id=str(uuid4()),
            user_id=user_id,
            amount=amount,
            action_type=action_type,
            reason_text=reason_text,
            reference_id=reference_id,
            reference_kind=reference_kind,
            transfer_id=transfer_id,
            status=status,
            created_at=created_at,
            updated_at=created_at,
            integrity_hash=RewardRecord.compute_integrity_hash(
                user_id=user_id,
                action_type=action_type,
                amount=amount,
                reference_id=reference_id,
                created_at=created_at,
            ),
        )

        self.session.add(record)
        async with translate_store_errors():
            await self.session.flush()

        logger.info(
            f"Ledger append: user={user_id[:8]}... action={action_type.value} "
            f"amount={amount:+,} status={status.value} ref={reference_id}"
        )
        return record

    async def get(self, record_id: str) -> RewardRecord:
        async with translate_store_errors():
            record = await self.session.get(RewardRecord, record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    async def find_by_reference(
        self,
        user_id: str,
        action_type: RewardActionType,
        reference_id: str,
    ) -> RewardRecord | None:
        """Find the record that already rewarded this event, if any."""
        async with translate_store_errors():
            result = await self.session.execute(
                select(RewardRecord).where(
                    RewardRecord.user_id == user_id,
                    RewardRecord.action_type == action_type,
                    RewardRecord.reference_id == reference_id,
                )
            )
        return result.scalars().first()

    async def list_by_user(
        self,
        user_id: str,
        *,
        action_type: RewardActionType | None = None,
        status: RewardStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RewardRecord]:
        """List a user's records, newest first."""
        query = select(RewardRecord).where(RewardRecord.user_id == user_id)
        if action_type is not None:
            query = query.where(RewardRecord.action_type == action_type)
        if status is not None:
            query = query.where(RewardRecord.status == status)

        query = (
            query.order_by(RewardRecord.created_at.desc(), RewardRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with translate_store_errors():
            result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_user(
        self,
        user_id: str,
        *,
        action_type: RewardActionType | None = None,
        status: RewardStatus | None = None,
    ) -> int:
        query = select(func.count(RewardRecord.id)).where(RewardRecord.user_id == user_id)
        if action_type is not None:
            query = query.where(RewardRecord.action_type == action_type)
        if status is not None:
            query = query.where(RewardRecord.status == status)

        async with translate_store_errors():
            result = await self.session.execute(query)
        return int(result.scalar_one())

    async def sum_completed_by_user(self, user_id: str) -> int:
        """Sum of completed amounts: the user's balance."""
        async with translate_store_errors():
            result = await self.session.execute(
                select(func.coalesce(func.sum(RewardRecord.amount), 0)).where(
                    RewardRecord.user_id == user_id,
                    RewardRecord.status == RewardStatus.COMPLETED,
                )
            )
        return int(result.scalar_one())

    async def count_completed_between(
        self,
        user_id: str,
        action_type: RewardActionType,
        start: datetime,
        end: datetime,
    ) -> int:
        """Count completed records of one action created in [start, end)."""
        async with translate_store_errors():
            result = await self.session.execute(
                select(func.count(RewardRecord.id)).where(
                    RewardRecord.user_id == user_id,
                    RewardRecord.action_type == action_type,
                    RewardRecord.status == RewardStatus.COMPLETED,
                    RewardRecord.created_at >= start,
                    RewardRecord.created_at < end,
                )
            )
        return int(result.scalar_one())

    async def recent_completed(
        self,
        user_id: str,
        action_type: RewardActionType,
        *,
        limit: int | None = None,
    ) -> list[RewardRecord]:
        """Completed records of one action, newest first."""
        query = select(RewardRecord).where(
            RewardRecord.user_id == user_id,
            RewardRecord.action_type == action_type,
            RewardRecord.status == RewardStatus.COMPLETED,
        )
        query = query.order_by(RewardRecord.created_at.desc())
        if limit is not None:
            query = query.limit(limit)

        async with translate_store_errors():
            result = await self.session.execute(query)
        return list(result.scalars().all())

    async def completed_since(self, user_id: str, since: datetime) -> list[RewardRecord]:
        """All completed records of a user created at or after ``since``."""
        async with translate_store_errors():
            result = await self.session.execute(
                select(RewardRecord)
                .where(
                    RewardRecord.user_id == user_id,
                    RewardRecord.status == RewardStatus.COMPLETED,
                    RewardRecord.created_at >= since,
                )
                .order_by(RewardRecord.created_at)
            )
        return list(result.scalars().all())

    async def transition_status(
        self,
        record_id: str,
        new_status: RewardStatus,
    ) -> RewardRecord:
        """Move a pending record to a terminal status.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvalidStatusTransitionError: If the record already left pending
        """
        record = await self.get(record_id)
        if new_status not in ALLOWED_STATUS_TRANSITIONS[record.status]:
            raise InvalidStatusTransitionError(
                record_id, record.status.value, new_status.value
            )

        previous = record.status
        record.status = new_status
        async with translate_store_errors():
            await self.session.flush()

        logger.info(
            f"Ledger status: record={record_id} {previous.value} -> {new_status.value}"
        )
        return record
