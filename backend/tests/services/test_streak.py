"""Tests for check-in streak calculation."""

from datetime import date, timedelta

import pytest
from hypothesis import given, strategies as st

from app.models.reward import ReferenceKind, RewardActionType, RewardStatus
from app.services.ledger import RewardLedger
from app.services.streak import (
    StreakCalculator,
    count_current_streak,
    count_longest_streak,
)

TODAY = date(2025, 3, 12)


def days_ago(*offsets: int) -> list[date]:
    return [TODAY - timedelta(days=n) for n in offsets]


class TestCountCurrentStreak:
    """Pure streak counting."""

    def test_three_consecutive_days_ending_today(self):
        assert count_current_streak(days_ago(0, 1, 2), TODAY) == 3

    def test_gap_breaks_the_run(self):
        assert count_current_streak(days_ago(0, 1, 2, 4, 5), TODAY) == 3

    def test_run_anchored_at_yesterday_when_today_unclaimed(self):
        assert count_current_streak(days_ago(1, 2, 3), TODAY) == 3

    def test_run_ended_before_yesterday_is_zero(self):
        assert count_current_streak(days_ago(2, 3, 4), TODAY) == 0

    def test_no_checkins(self):
        assert count_current_streak([], TODAY) == 0

    def test_order_and_duplicates_do_not_matter(self):
        assert count_current_streak(days_ago(2, 0, 1, 0, 2), TODAY) == 3

    def test_future_days_ignored(self):
        assert count_current_streak(days_ago(-1, 0), TODAY) == 1

    @given(length=st.integers(min_value=1, max_value=60))
    def test_unbroken_run_counts_every_day(self, length):
        assert count_current_streak(days_ago(*range(length)), TODAY) == length


class TestCountLongestStreak:
    def test_longest_run_anywhere_in_history(self):
        history = days_ago(0, 1, 10, 11, 12, 13, 20)
        assert count_longest_streak(history) == 4

    def test_empty_history(self):
        assert count_longest_streak([]) == 0


class TestStreakCalculator:
    """Streaks read from daily_checkin records."""

    async def _checkin_on(self, ledger, user_id, day_offset, now, status=RewardStatus.COMPLETED):
        created = now - timedelta(days=day_offset)
        await ledger.append(
            user_id=user_id,
            amount=10,
            action_type=RewardActionType.DAILY_CHECKIN,
            reference_id=created.date().isoformat(),
            reference_kind=ReferenceKind.DAY,
            status=status,
            created_at=created,
        )

    @pytest.mark.asyncio
    async def test_three_day_streak_with_gap_before(self, test_db, alice, now):
        """Check-ins on D, D-1, D-2 and none on D-3 give a streak of 3."""
        ledger = RewardLedger(test_db)
        for offset in (0, 1, 2, 4, 5):
            await self._checkin_on(ledger, alice, offset, now)

        streak = await StreakCalculator(test_db).get_checkin_streak(alice, now)

        assert streak == 3

    @pytest.mark.asyncio
    async def test_streak_survives_until_today_is_claimed(self, test_db, alice, now):
        ledger = RewardLedger(test_db)
        for offset in (1, 2):
            await self._checkin_on(ledger, alice, offset, now)

        assert await StreakCalculator(test_db).get_checkin_streak(alice, now) == 2

    @pytest.mark.asyncio
    async def test_other_actions_and_incomplete_records_ignored(self, test_db, alice, now):
        ledger = RewardLedger(test_db)
        await self._checkin_on(ledger, alice, 0, now)
        await self._checkin_on(ledger, alice, 1, now, status=RewardStatus.CANCELLED)
        await ledger.append(
            user_id=alice, amount=5, action_type=RewardActionType.POST_CREATE,
            created_at=now - timedelta(days=1),
        )

        assert await StreakCalculator(test_db).get_checkin_streak(alice, now) == 1

    @pytest.mark.asyncio
    async def test_streak_bounded_by_window(self, test_db, alice, now):
        ledger = RewardLedger(test_db)
        for offset in range(8):
            await self._checkin_on(ledger, alice, offset, now)

        calculator = StreakCalculator(test_db, window=5)

        assert await calculator.get_checkin_streak(alice, now) == 5
        assert await calculator.get_longest_streak(alice) == 8

    @pytest.mark.asyncio
    async def test_no_history(self, test_db, alice, now):
        assert await StreakCalculator(test_db).get_checkin_streak(alice, now) == 0
