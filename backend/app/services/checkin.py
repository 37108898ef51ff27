"""Daily check-in service."""

import logging
from datetime import datetime
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reward import (
    EARNING_POLICIES,
    STREAK_BONUSES,
    RewardActionType,
)
from app.services.earning import EarningService
from app.services.ledger import RewardLedger
from app.services.streak import StreakCalculator, count_current_streak
from app.utils.clock import next_utc_midnight, utc_day, utc_now

logger = logging.getLogger(__name__)


class CheckinService:
    """Daily check-in: base reward plus streak milestone bonuses.

    - one claim per UTC day
    - every 7th consecutive day: week_streak bonus
    - every 30th consecutive day: month_streak bonus
    """

    def __init__(self, session: AsyncSession, redis: Redis | None = None):
        self.session = session
        self.ledger = RewardLedger(session)
        self.earning = EarningService(session, redis)
        self.streaks = StreakCalculator(session)

    async def checkin(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Claim today's check-in.

        Raises:
            AlreadyClaimedTodayError: If today's check-in exists
        """
        now = now or utc_now()
        result = await self.earning.earn(user_id, RewardActionType.DAILY_CHECKIN, now=now)

        # Milestone bonuses are granted by the engine; the reported streak is windowed
        streak = min(result.streak or 0, self.streaks.window)
        day_key = utc_day(now).isoformat()
        bonuses = result.bonuses

        logger.info(
            f"Check-in: user={user_id[:8]}... day={day_key} streak={streak} "
            f"reward={result.amount} bonuses={[b.action_type.value for b in bonuses]}"
        )

        return {
            "checkin_date": day_key,
            "streak_days": streak,
            "reward_amount": result.amount,
            "bonus_rewards": [
                {"type": b.action_type.value, "amount": b.amount} for b in bonuses
            ],
            "new_balance": result.balance,
            "next_claim_at": next_utc_midnight(now),
        }

    async def get_status(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Whether today can be claimed, streaks and the next milestone."""
        now = now or utc_now()
        today = utc_day(now)

        days = await self.streaks.get_checkin_days(user_id)
        claimed_today = bool(days) and days[0] == today
        run = count_current_streak(days, today)
        streak = min(run, self.streaks.window)
        longest = await self.streaks.get_longest_streak(user_id)

        return {
            "can_checkin": not claimed_today,
            "streak_days": streak,
            "longest_streak": longest,
            "next_claim_at": next_utc_midnight(now) if claimed_today else now,
            "daily_reward": EARNING_POLICIES[RewardActionType.DAILY_CHECKIN].min_amount,
            "next_bonus": self._next_bonus(run),
        }

    @staticmethod
    def _next_bonus(streak: int) -> dict[str, Any] | None:
        candidates = []
        for length, bonus_action in STREAK_BONUSES.items():
            target = (streak // length + 1) * length
            candidates.append(
                {
                    "type": bonus_action.value,
                    "days_remaining": target - streak,
                    "bonus": EARNING_POLICIES[bonus_action].min_amount,
                }
            )
        if not candidates:
            return None
        return min(candidates, key=lambda c: c["days_remaining"])

    async def get_history(self, user_id: str, limit: int = 30) -> list[dict[str, Any]]:
        """Recent check-ins, newest first."""
        records = await self.ledger.recent_completed(
            user_id, RewardActionType.DAILY_CHECKIN, limit=limit
        )
        return [
            {
                "date": r.reference_id or utc_day(r.created_at).isoformat(),
                "reward_amount": r.amount,
                "checked_at": r.created_at,
            }
            for r in records
        ]
