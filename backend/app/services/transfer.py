"""Peer-to-peer token transfers.

A transfer is two ledger records written in one database transaction: a debit
on the sender and a credit on the recipient, linked by ``transfer_id``. The
sender is serialized by a Redis lock (across workers) and a row lock on the
sender's user row (within the database), so two concurrent transfers cannot
both pass the balance check.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.sentry import capture_ledger_error
from app.models.reward import ReferenceKind, RewardActionType
from app.services.ledger import RewardLedger
from app.services.user import UserService
from app.utils.clock import utc_now
from app.utils.errors import InsufficientBalanceError, InvalidTransferError
from app.utils.redis_client import UserLock

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 200


class TransferService:
    """Moves balance between users."""

    def __init__(self, session: AsyncSession, redis: Redis | None = None) -> None:
        self.session = session
        self.ledger = RewardLedger(session)
        self.users = UserService(session)
        self.lock = UserLock(redis)

    async def transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        note: str | None = None,
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Transfer ``amount`` tokens from one user to another.

        Args:
            from_user_id: Sender (debited)
            to_user_id: Recipient (credited)
            amount: Positive token amount
            note: Optional message stored on both records

        Returns:
            Dict with transfer_id, amount, recipient and the sender's new balance

        Raises:
            InvalidTransferError: Non-positive amount or self-transfer
            UserNotFoundError: Unknown sender or recipient
            InsufficientBalanceError: Sender balance below amount
            LockNotAcquiredError: Another transfer from the sender is running
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidTransferError(
                "Transfer amount must be a positive integer",
                details={"amount": amount},
            )
        if from_user_id == to_user_id:
            raise InvalidTransferError(
                "Cannot transfer tokens to yourself",
                details={"userId": from_user_id},
            )
        note = (note or "").strip()[:MAX_NOTE_LENGTH] or None

        async with self.lock.hold(from_user_id):
            return await self._transfer(from_user_id, to_user_id, amount, note, now or utc_now())

    async def _transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        note: str | None,
        now: datetime,
    ) -> dict[str, Any]:
        await self.users.require_user(from_user_id, for_update=True)
        recipient = await self.users.require_user(to_user_id)

        balance = await self.ledger.sum_completed_by_user(from_user_id)
        if balance < amount:
            raise InsufficientBalanceError(balance=balance, requested=amount)

        transfer_id = str(uuid4())
        try:
            await self.ledger.append(
                user_id=from_user_id,
                amount=-amount,
                action_type=RewardActionType.TRANSFER,
                reason_text=note or f"Transfer to {recipient.nickname}",
                reference_id=to_user_id,
                reference_kind=ReferenceKind.USER,
                transfer_id=transfer_id,
                created_at=now,
            )
            await self.ledger.append(
                user_id=to_user_id,
                amount=amount,
                action_type=RewardActionType.TRANSFER,
                reason_text=note or "Transfer received",
                reference_id=from_user_id,
                reference_kind=ReferenceKind.USER,
                transfer_id=transfer_id,
                created_at=now,
            )
        except Exception as e:
            # Neither leg may survive without the other
            await self.session.rollback()
            capture_ledger_error(e, from_user_id, "transfer", amount)
            logger.error(
                f"Transfer {transfer_id} rolled back: "
                f"{from_user_id[:8]}... -> {to_user_id[:8]}... amount={amount:,}"
            )
            raise

        new_balance = await self.ledger.sum_completed_by_user(from_user_id)
        logger.info(
            f"Transfer {transfer_id}: {from_user_id[:8]}... -> {to_user_id[:8]}... "
            f"amount={amount:,} sender_balance={balance:,} -> {new_balance:,}"
        )

        return {
            "transfer_id": transfer_id,
            "amount": amount,
            "to_user_id": to_user_id,
            "new_balance": new_balance,
        }
