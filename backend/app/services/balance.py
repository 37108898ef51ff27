"""Balance aggregation and ledger read models.

Balances are never stored: every call sums the user's completed records.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reward import RewardActionType, RewardRecord, RewardStatus
from app.models.user import User
from app.services.ledger import RewardLedger
from app.utils.clock import day_start, utc_day, utc_now
from app.utils.db import retry_on_store_unavailable, translate_store_errors

logger = logging.getLogger(__name__)


def serialize_record(record: RewardRecord) -> dict[str, Any]:
    """Shape a record for API responses."""
    return {
        "id": record.id,
        "amount": record.amount,
        "action_type": record.action_type.value,
        "reason": record.reason_text,
        "reference_id": record.reference_id,
        "reference_kind": record.reference_kind.value if record.reference_kind else None,
        "transfer_id": record.transfer_id,
        "status": record.status.value,
        "created_at": record.created_at,
    }


class BalanceService:
    """Read-only views over the ledger: balance, history, summary, leaderboard."""

    MAX_SUMMARY_DAYS = 90

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.ledger = RewardLedger(session)

    @retry_on_store_unavailable
    async def get_balance(self, user_id: str) -> int:
        """Current balance: sum of the user's completed records."""
        return await self.ledger.sum_completed_by_user(user_id)

    @retry_on_store_unavailable
    async def get_history(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        action_type: RewardActionType | None = None,
    ) -> dict[str, Any]:
        """Paginated records, newest first.

        Args:
            user_id: Owner of the records
            page: 1-based page number
            limit: Page size
            action_type: Optional filter

        Returns:
            Dict with items, total, page, limit and pages
        """
        offset = (page - 1) * limit
        records = await self.ledger.list_by_user(
            user_id, action_type=action_type, limit=limit, offset=offset
        )
        total = await self.ledger.count_by_user(user_id, action_type=action_type)

        return {
            "items": [serialize_record(r) for r in records],
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    @retry_on_store_unavailable
    async def get_summary(
        self,
        user_id: str,
        *,
        days: int = 30,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Earned/spent totals, per-action breakdown and a daily series.

        Only completed records are included. ``daily`` has one entry per UTC
        day in the window, oldest first, including empty days.
        """
        now = now or utc_now()
        days = max(1, min(days, self.MAX_SUMMARY_DAYS))

        earned_expr = func.coalesce(
            func.sum(case((RewardRecord.amount > 0, RewardRecord.amount), else_=0)), 0
        )
        spent_expr = func.coalesce(
            func.sum(case((RewardRecord.amount < 0, -RewardRecord.amount), else_=0)), 0
        )

        async with translate_store_errors():
            result = await self.session.execute(
                select(
                    RewardRecord.action_type,
                    earned_expr.label("earned"),
                    spent_expr.label("spent"),
                    func.count(RewardRecord.id).label("count"),
                )
                .where(
                    RewardRecord.user_id == user_id,
                    RewardRecord.status == RewardStatus.COMPLETED,
                )
                .group_by(RewardRecord.action_type)
            )
            by_action_rows = result.all()

        by_action = [
            {
                "action_type": row.action_type.value,
                "earned": int(row.earned),
                "spent": int(row.spent),
                "count": int(row.count),
            }
            for row in sorted(by_action_rows, key=lambda r: (-int(r.earned), r.action_type.value))
        ]
        total_earned = sum(item["earned"] for item in by_action)
        total_spent = sum(item["spent"] for item in by_action)

        first_day = utc_day(now) - timedelta(days=days - 1)
        recent = await self.ledger.completed_since(user_id, day_start(first_day))

        buckets: dict[Any, dict[str, int]] = defaultdict(
            lambda: {"earned": 0, "spent": 0, "transactions": 0}
        )
        for record in recent:
            bucket = buckets[utc_day(record.created_at)]
            if record.amount > 0:
                bucket["earned"] += record.amount
            else:
                bucket["spent"] += -record.amount
            bucket["transactions"] += 1

        daily = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            bucket = buckets.get(day, {"earned": 0, "spent": 0, "transactions": 0})
            daily.append(
                {
                    "date": day.isoformat(),
                    "earned": bucket["earned"],
                    "spent": bucket["spent"],
                    "net": bucket["earned"] - bucket["spent"],
                    "transactions": bucket["transactions"],
                }
            )

        return {
            "balance": total_earned - total_spent,
            "total_earned": total_earned,
            "total_spent": total_spent,
            "by_action": by_action,
            "daily": daily,
        }

    @retry_on_store_unavailable
    async def get_leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        """Top earners by completed credits, transfers excluded."""
        earned = func.sum(RewardRecord.amount).label("total_earned")

        async with translate_store_errors():
            result = await self.session.execute(
                select(RewardRecord.user_id, User.nickname, earned)
                .join(User, User.id == RewardRecord.user_id)
                .where(
                    RewardRecord.status == RewardStatus.COMPLETED,
                    RewardRecord.amount > 0,
                    RewardRecord.action_type != RewardActionType.TRANSFER,
                )
                .group_by(RewardRecord.user_id, User.nickname)
                .order_by(earned.desc(), User.nickname)
                .limit(limit)
            )
            rows = result.all()

        return [
            {
                "rank": rank,
                "user_id": row.user_id,
                "nickname": row.nickname,
                "total_earned": int(row.total_earned),
            }
            for rank, row in enumerate(rows, start=1)
        ]
