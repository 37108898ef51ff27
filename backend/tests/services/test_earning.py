"""Tests for the earning policy engine."""

import random
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from hypothesis import given, strategies as st

from app.models.reward import (
    DAILY_LIMITS,
    EARNING_POLICIES,
    RewardActionType,
    RewardPolicy,
)
from app.services.earning import EarningService, resolve_action
from app.services.ledger import RewardLedger
from app.services.user import UserService
from app.utils.errors import (
    AlreadyClaimedTodayError,
    DailyLimitReachedError,
    DuplicateClaimError,
    InvalidActionTypeError,
    UserNotFoundError,
)


@pytest.fixture
def earning(test_db):
    return EarningService(test_db, rng=random.Random(42))


class TestPolicies:
    """Policy table and action resolution."""

    def test_resolve_claimable_action(self):
        assert resolve_action("post_create") == RewardActionType.POST_CREATE

    @pytest.mark.parametrize("action", ["not_an_action", "transfer", "week_streak", "first_post"])
    def test_resolve_rejects_unknown_and_engine_only_actions(self, action):
        with pytest.raises(InvalidActionTypeError) as exc_info:
            resolve_action(action)
        assert exc_info.value.details["actionType"] == action

    def test_ranged_policy_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            RewardPolicy.ranged(10, 5, "broken")

    def test_signup_is_the_ranged_policy(self):
        signup = EARNING_POLICIES[RewardActionType.SIGNUP]
        assert signup.is_range
        assert (signup.min_amount, signup.max_amount) == (50, 200)

    @given(seed=st.integers(min_value=0, max_value=2**32 - 1))
    def test_ranged_draw_stays_within_bounds(self, seed):
        policy = EARNING_POLICIES[RewardActionType.SIGNUP]
        amount = policy.draw(random.Random(seed))
        assert policy.min_amount <= amount <= policy.max_amount

    @given(amount=st.integers(min_value=1, max_value=10_000))
    def test_fixed_draw_is_constant(self, amount):
        assert RewardPolicy.fixed(amount, "fixed").draw(random.Random(0)) == amount

    def test_list_policies_includes_caps(self):
        policies = {p["action_type"]: p for p in EarningService.list_policies()}

        assert policies["post_like"]["daily_limit"] == DAILY_LIMITS[RewardActionType.POST_LIKE]
        assert policies["blog_create"]["daily_limit"] is None
        assert policies["month_streak"]["claimable"] is False


class TestEarn:
    """Tests for EarningService.earn."""

    @pytest.mark.asyncio
    async def test_fixed_reward_credits_balance(self, earning, alice, now):
        result = await earning.earn(alice, "blog_create", "blog-1", now=now)

        assert result.amount == 25
        assert result.balance == 25
        assert result.record.reference_id == "blog-1"
        assert result.bonuses == []

    @pytest.mark.asyncio
    async def test_signup_reward_in_range(self, earning, alice, now):
        result = await earning.earn(alice, "signup", alice, now=now)
        assert 50 <= result.amount <= 200

    @pytest.mark.asyncio
    async def test_duplicate_reference_rejected(self, earning, test_db, alice, now):
        await earning.earn(alice, "blog_create", "blog-1", now=now)

        with pytest.raises(DuplicateClaimError) as exc_info:
            await earning.earn(alice, "blog_create", "blog-1", now=now + timedelta(days=3))

        assert exc_info.value.details == {"actionType": "blog_create", "referenceId": "blog-1"}
        assert await RewardLedger(test_db).sum_completed_by_user(alice) == 25

    @pytest.mark.asyncio
    async def test_duplicate_rejected_by_unique_index(self, earning, test_db, alice, now):
        """A concurrent duplicate that slips past the lookup is still rejected."""
        await earning.earn(alice, "nft_mint", "nft-1", now=now)
        await test_db.commit()

        with patch.object(RewardLedger, "find_by_reference", AsyncMock(return_value=None)):
            with pytest.raises(DuplicateClaimError):
                await earning.earn(alice, "nft_mint", "nft-1", now=now)

        assert await RewardLedger(test_db).sum_completed_by_user(alice) == 10

    @pytest.mark.asyncio
    async def test_actions_without_reference_are_repeatable(self, earning, alice, now):
        await earning.earn(alice, "blog_create", now=now)
        result = await earning.earn(alice, "blog_create", now=now)
        assert result.balance == 50

    @pytest.mark.asyncio
    async def test_unknown_action_writes_nothing(self, earning, test_db, alice, now):
        with pytest.raises(InvalidActionTypeError):
            await earning.earn(alice, "mine_bitcoin", "x", now=now)
        assert await RewardLedger(test_db).count_by_user(alice) == 0

    @pytest.mark.asyncio
    async def test_unknown_user_rejected(self, earning, test_db, now):
        with pytest.raises(UserNotFoundError):
            await earning.earn("missing-user", "blog_create", now=now)
        assert await RewardLedger(test_db).count_by_user("missing-user") == 0


class TestDailyCaps:
    """Per-action daily limits."""

    @pytest.mark.asyncio
    async def test_cap_reached(self, earning, test_db, alice, now):
        ledger = RewardLedger(test_db)
        limit = DAILY_LIMITS[RewardActionType.POST_SHARE]
        for i in range(limit):
            await earning.earn(alice, "post_share", f"share-{i}", now=now)

        with pytest.raises(DailyLimitReachedError) as exc_info:
            await earning.earn(alice, "post_share", "share-extra", now=now)

        assert exc_info.value.details["limit"] == limit
        assert await ledger.count_by_user(alice) == limit

    @pytest.mark.asyncio
    async def test_cap_resets_next_utc_day(self, earning, alice, now):
        limit = DAILY_LIMITS[RewardActionType.POST_SHARE]
        for i in range(limit):
            await earning.earn(alice, "post_share", f"share-{i}", now=now)

        tomorrow = now.replace(hour=0, minute=1) + timedelta(days=1)
        result = await earning.earn(alice, "post_share", "share-next-day", now=tomorrow)

        assert result.amount == 3

    @pytest.mark.asyncio
    async def test_caps_are_per_user(self, earning, alice, bob, now):
        limit = DAILY_LIMITS[RewardActionType.POST_SHARE]
        for i in range(limit):
            await earning.earn(alice, "post_share", f"share-{i}", now=now)

        result = await earning.earn(bob, "post_share", "share-0", now=now)
        assert result.balance == 3

    @pytest.mark.asyncio
    async def test_capped_actions_lock_the_user_row(self, earning, alice, now):
        """Capped claims hold the user row until commit; uncapped ones do not."""
        locked = []
        require_user = UserService.require_user

        async def recording_require_user(self, user_id, *, for_update=False):
            locked.append(for_update)
            return await require_user(self, user_id, for_update=for_update)

        with patch.object(UserService, "require_user", recording_require_user):
            await earning.earn(alice, "post_share", "share-0", now=now)
            await earning.earn(alice, "blog_create", "blog-0", now=now)

        assert locked == [True, False]


class TestDailyCheckinClaim:
    """The daily check-in is claimable once per UTC day."""

    @pytest.mark.asyncio
    async def test_second_claim_same_day_rejected(self, earning, alice, now):
        await earning.earn(alice, "daily_checkin", now=now)

        with pytest.raises(AlreadyClaimedTodayError) as exc_info:
            await earning.earn(alice, "daily_checkin", now=now + timedelta(hours=3))

        assert exc_info.value.details["nextClaimAt"] == "2025-03-13T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_caller_reference_is_replaced_by_day(self, earning, alice, now):
        result = await earning.earn(alice, "daily_checkin", "anything", now=now)
        assert result.record.reference_id == "2025-03-12"

    @pytest.mark.asyncio
    async def test_claim_allowed_after_midnight(self, earning, alice, now):
        await earning.earn(alice, "daily_checkin", now=now)
        result = await earning.earn(alice, "daily_checkin", now=now + timedelta(days=1))
        assert result.balance == 20


class TestFirstPostBonus:
    """The first post_create also grants first_post once."""

    @pytest.mark.asyncio
    async def test_first_post_grants_bonus_once(self, earning, alice, now):
        first = await earning.earn(alice, "post_create", "post-1", now=now)
        second = await earning.earn(alice, "post_create", "post-2", now=now)

        assert [b.action_type for b in first.bonuses] == [RewardActionType.FIRST_POST]
        assert first.balance == 5 + 15
        assert second.bonuses == []
        assert second.balance == 5 + 15 + 5

    @pytest.mark.asyncio
    async def test_result_dict(self, earning, alice, now):
        data = (await earning.earn(alice, "post_create", "post-1", now=now)).to_dict()

        assert data["action_type"] == "post_create"
        assert data["amount"] == 5
        assert data["balance"] == 20
        assert data["bonuses"][0]["action_type"] == "first_post"


class TestStreakMilestones:
    """Milestone bonuses follow every daily_checkin claim, not just the check-in endpoint."""

    @pytest.mark.asyncio
    async def test_seventh_day_claimed_through_earn_grants_week_bonus(
        self, earning, test_db, alice, now
    ):
        for offset in range(6, 0, -1):
            await earning.earn(alice, "daily_checkin", now=now - timedelta(days=offset))
        await test_db.commit()

        result = await earning.earn(alice, "daily_checkin", now=now)

        assert result.streak == 7
        assert [b.action_type for b in result.bonuses] == [RewardActionType.WEEK_STREAK]
        assert result.balance == 7 * 10 + 20
        ledger = RewardLedger(test_db)
        assert await ledger.count_by_user(alice, action_type=RewardActionType.WEEK_STREAK) == 1

    @pytest.mark.asyncio
    async def test_non_milestone_day_has_no_bonus(self, earning, alice, now):
        result = await earning.earn(alice, "daily_checkin", now=now)

        assert result.streak == 1
        assert result.bonuses == []
