"""Check-in streak calculation.

A streak is the number of consecutive UTC days with a completed daily
check-in. The run is anchored at today when the user already checked in
today, otherwise at yesterday: a streak stays alive until a whole UTC day
passes without a check-in, then it is 0.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.reward import RewardActionType
from app.services.ledger import RewardLedger
from app.utils.clock import utc_day, utc_now

settings = get_settings()

ONE_DAY = timedelta(days=1)


def count_current_streak(checkin_days: Iterable[date], today: date) -> int:
    """Length of the run ending today or yesterday.

    Args:
        checkin_days: Days with a check-in, any order, duplicates allowed
        today: Current UTC day
    """
    days = sorted({d for d in checkin_days if d <= today}, reverse=True)
    if not days:
        return 0

    expected = today if days[0] == today else today - ONE_DAY
    streak = 0
    for day in days:
        if day == expected:
            streak += 1
            expected -= ONE_DAY
        elif day < expected:
            break
    return streak


def count_longest_streak(checkin_days: Iterable[date]) -> int:
    days = sorted(set(checkin_days))
    longest = current = 0
    previous: date | None = None
    for day in days:
        current = current + 1 if previous is not None and day - previous == ONE_DAY else 1
        longest = max(longest, current)
        previous = day
    return longest


class StreakCalculator:
    """Streaks derived from daily_checkin records."""

    def __init__(self, session: AsyncSession, window: int | None = None) -> None:
        self.session = session
        self.ledger = RewardLedger(session)
        self.window = window or settings.streak_window_days

    async def get_checkin_days(self, user_id: str, *, limit: int | None = None) -> list[date]:
        """UTC days of the user's check-ins, newest first."""
        records = await self.ledger.recent_completed(
            user_id, RewardActionType.DAILY_CHECKIN, limit=limit
        )
        return [utc_day(r.created_at) for r in records]

    async def get_checkin_streak(self, user_id: str, now: datetime | None = None) -> int:
        """Current streak, scanning at most the last ``window`` check-ins."""
        today = utc_day(now or utc_now())
        days = await self.get_checkin_days(user_id, limit=self.window)
        return count_current_streak(days, today)

    async def get_longest_streak(self, user_id: str) -> int:
        """Longest streak over the user's full check-in history."""
        return count_longest_streak(await self.get_checkin_days(user_id))
