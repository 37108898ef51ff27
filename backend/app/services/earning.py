"""Earning policy engine.

Turns a user action into a ledger credit:

1. resolve the action's policy (fixed amount or random range)
2. reject events that were already rewarded (reference id)
3. reject a second daily check-in in the same UTC day
4. enforce per-action daily caps
5. append one completed record
6. grant engine bonuses (first post, check-in streak milestones)

Duplicate suppression does not depend on step 2 alone: the unique index on
(user_id, action_type, reference_id) rejects concurrent duplicates, which are
reported the same way.

Capped actions are serialized per user twice: the Redis lock keeps
workers apart while the checks run, and a row lock on the user (held until
the request transaction commits) keeps a second request from counting
before the first one's record is visible.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reward import (
    DAILY_LIMITS,
    EARNING_POLICIES,
    STREAK_BONUSES,
    ReferenceKind,
    RewardActionType,
    RewardPolicy,
    RewardRecord,
)
from app.services.ledger import RewardLedger
from app.services.streak import StreakCalculator, count_current_streak
from app.services.user import UserService
from app.utils.clock import as_utc, next_utc_midnight, utc_day, utc_day_bounds, utc_now
from app.utils.errors import (
    AlreadyClaimedTodayError,
    DailyLimitReachedError,
    DuplicateClaimError,
    InvalidActionTypeError,
)
from app.utils.redis_client import UserLock

logger = logging.getLogger(__name__)

FIRST_POST_REFERENCE = "first_post"

# Actions whose checks count existing rows, serialized per user
_LOCKED_ACTIONS = frozenset(DAILY_LIMITS) | {RewardActionType.POST_CREATE}


@dataclass
class EarnResult:
    """Outcome of a successful earn call."""

    record: RewardRecord
    balance: int
    bonuses: list[RewardRecord] = field(default_factory=list)
    # Full consecutive check-in run, set for daily_checkin only
    streak: int | None = None

    @property
    def amount(self) -> int:
        return self.record.amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record.id,
            "action_type": self.record.action_type.value,
            "amount": self.record.amount,
            "reason": self.record.reason_text,
            "balance": self.balance,
            "bonuses": [
                {"action_type": b.action_type.value, "amount": b.amount, "reason": b.reason_text}
                for b in self.bonuses
            ],
        }


def resolve_action(action_type: str | RewardActionType) -> RewardActionType:
    """Map user input to a claimable action type.

    Raises:
        InvalidActionTypeError: For unknown actions and actions without a
            claimable policy (transfers, engine-granted bonuses)
    """
    try:
        action = RewardActionType(action_type)
    except ValueError:
        raise InvalidActionTypeError(str(action_type))

    policy = EARNING_POLICIES.get(action)
    if policy is None or not policy.claimable:
        raise InvalidActionTypeError(action.value)
    return action


class EarningService:
    """Applies earning policies and writes reward credits."""

    def __init__(
        self,
        session: AsyncSession,
        redis: Redis | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.session = session
        self.ledger = RewardLedger(session)
        self.users = UserService(session)
        self.streaks = StreakCalculator(session)
        self.lock = UserLock(redis)
        self.rng = rng or random.Random()

    @staticmethod
    def list_policies() -> list[dict[str, Any]]:
        """Claimable and bonus policies with their daily caps."""
        return [
            {
                "action_type": action.value,
                "min_amount": policy.min_amount,
                "max_amount": policy.max_amount,
                "description": policy.description,
                "claimable": policy.claimable,
                "daily_limit": DAILY_LIMITS.get(action),
            }
            for action, policy in EARNING_POLICIES.items()
        ]

    async def earn(
        self,
        user_id: str,
        action_type: str | RewardActionType,
        reference_id: str | None = None,
        reference_kind: ReferenceKind | None = None,
        *,
        now: datetime | None = None,
    ) -> EarnResult:
        """Reward ``user_id`` for one action.

        Args:
            user_id: User earning the reward
            action_type: Policy key
            reference_id: Triggering entity id; at most one reward per
                (user, action, reference)
            reference_kind: What reference_id points at
            now: Clock override

        Returns:
            EarnResult with the new record, any bonus records and the balance

        Raises:
            InvalidActionTypeError: Unknown or non-claimable action
            DuplicateClaimError: Event already rewarded
            AlreadyClaimedTodayError: Daily check-in already claimed
            DailyLimitReachedError: Per-action daily cap exhausted
            UserNotFoundError: Unknown user
        """
        action = resolve_action(action_type)
        now = as_utc(now or utc_now())

        if action == RewardActionType.DAILY_CHECKIN:
            # One claim per UTC day, enforced by the unique index on the day key
            reference_id = utc_day(now).isoformat()
            reference_kind = ReferenceKind.DAY

        if action in _LOCKED_ACTIONS:
            async with self.lock.hold(user_id):
                await self.users.require_user(user_id, for_update=True)
                return await self._earn(user_id, action, reference_id, reference_kind, now)
        await self.users.require_user(user_id)
        return await self._earn(user_id, action, reference_id, reference_kind, now)

    async def _earn(
        self,
        user_id: str,
        action: RewardActionType,
        reference_id: str | None,
        reference_kind: ReferenceKind | None,
        now: datetime,
    ) -> EarnResult:
        policy = EARNING_POLICIES[action]
        start, end = utc_day_bounds(now)

        if action == RewardActionType.DAILY_CHECKIN:
            claimed = await self.ledger.count_completed_between(user_id, action, start, end)
            if claimed:
                raise AlreadyClaimedTodayError(next_utc_midnight(now))

        if reference_id is not None:
            existing = await self.ledger.find_by_reference(user_id, action, reference_id)
            if existing is not None:
                raise DuplicateClaimError(action.value, reference_id)

        limit = DAILY_LIMITS.get(action)
        if limit is not None and action != RewardActionType.DAILY_CHECKIN:
            used = await self.ledger.count_completed_between(user_id, action, start, end)
            if used >= limit:
                raise DailyLimitReachedError(action.value, limit, next_utc_midnight(now))

        record = await self.grant(
            user_id,
            action,
            policy,
            reference_id=reference_id,
            reference_kind=reference_kind,
            now=now,
        )

        bonuses: list[RewardRecord] = []
        if action == RewardActionType.POST_CREATE:
            bonus = await self._grant_first_post_bonus(user_id, now)
            if bonus is not None:
                bonuses.append(bonus)

        streak = None
        if action == RewardActionType.DAILY_CHECKIN:
            streak, milestone_bonuses = await self._grant_streak_bonuses(user_id, now)
            bonuses.extend(milestone_bonuses)

        balance = await self.ledger.sum_completed_by_user(user_id)
        logger.info(
            f"Reward earned: user={user_id[:8]}... action={action.value} "
            f"amount={record.amount:+,} bonuses={len(bonuses)} balance={balance:,}"
        )
        return EarnResult(record=record, balance=balance, bonuses=bonuses, streak=streak)

    async def grant(
        self,
        user_id: str,
        action: RewardActionType,
        policy: RewardPolicy | None = None,
        *,
        reference_id: str | None = None,
        reference_kind: ReferenceKind | None = None,
        reason_text: str | None = None,
        now: datetime | None = None,
    ) -> RewardRecord:
        """Append a credit for ``action`` without policy checks.

        Used for engine-granted bonuses and by ``earn`` once all checks
        passed. A unique-index violation rolls the session back and is
        reported as a duplicate (or as a repeated daily check-in).
        """
        policy = policy or EARNING_POLICIES[action]
        now = now or utc_now()
        try:
            return await self.ledger.append(
                user_id=user_id,
                amount=policy.draw(self.rng),
                action_type=action,
                reason_text=reason_text or policy.description,
                reference_id=reference_id,
                reference_kind=reference_kind,
                created_at=now,
            )
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                f"Duplicate reward rejected by store: user={user_id[:8]}... "
                f"action={action.value} ref={reference_id}"
            )
            if action == RewardActionType.DAILY_CHECKIN:
                raise AlreadyClaimedTodayError(next_utc_midnight(now))
            raise DuplicateClaimError(action.value, reference_id or "")

    async def _grant_first_post_bonus(self, user_id: str, now: datetime) -> RewardRecord | None:
        existing = await self.ledger.find_by_reference(
            user_id, RewardActionType.FIRST_POST, FIRST_POST_REFERENCE
        )
        if existing is not None:
            return None
        return await self.grant(
            user_id,
            RewardActionType.FIRST_POST,
            reference_id=FIRST_POST_REFERENCE,
            reference_kind=ReferenceKind.ACHIEVEMENT,
            now=now,
        )

    async def _grant_streak_bonuses(
        self, user_id: str, now: datetime
    ) -> tuple[int, list[RewardRecord]]:
        """Grant milestone bonuses for the check-in run ending today.

        Milestones are judged on the full run, so the 30-day bonus is paid
        once per 30 days rather than on every day past 30.
        """
        today = utc_day(now)
        run = count_current_streak(await self.streaks.get_checkin_days(user_id), today)

        bonuses = []
        for length, bonus_action in sorted(STREAK_BONUSES.items()):
            if run % length:
                continue
            bonuses.append(
                await self.grant(
                    user_id,
                    bonus_action,
                    reference_id=today.isoformat(),
                    reference_kind=ReferenceKind.DAY,
                    reason_text=f"{run}-day check-in streak",
                    now=now,
                )
            )
        return run, bonuses
