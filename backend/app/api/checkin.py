"""Daily check-in API."""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from app.api.deps import CurrentUser, DbSession, RedisClient
from app.services.checkin import CheckinService

router = APIRouter(prefix="/checkin", tags=["Checkin"])


# ============================================================================
# Response Models
# ============================================================================


class BonusReward(BaseModel):
    type: str
    amount: int


class CheckinResponse(BaseModel):
    """Check-in result."""
    checkin_date: str
    streak_days: int
    reward_amount: int
    bonus_rewards: list[BonusReward]
    new_balance: int
    next_claim_at: datetime


class NextBonus(BaseModel):
    type: str
    days_remaining: int
    bonus: int


class CheckinStatusResponse(BaseModel):
    """Check-in status."""
    can_checkin: bool
    streak_days: int
    longest_streak: int
    next_claim_at: datetime
    daily_reward: int
    next_bonus: NextBonus | None


class CheckinHistoryItem(BaseModel):
    date: str
    reward_amount: int
    checked_at: datetime


class CheckinHistoryResponse(BaseModel):
    items: list[CheckinHistoryItem]


# ============================================================================
# API Endpoints
# ============================================================================


@router.post("", response_model=CheckinResponse)
async def do_checkin(
    user: CurrentUser,
    db: DbSession,
    redis: RedisClient,
):
    """Claim the daily check-in bonus.

    - Once per UTC day; a second claim returns 409 with ``nextClaimAt``
    - Streak bonuses every 7 and 30 consecutive days
    """
    result = await CheckinService(db, redis).checkin(user.id)
    return CheckinResponse(**result)


@router.get("/status", response_model=CheckinStatusResponse)
async def get_checkin_status(
    user: CurrentUser,
    db: DbSession,
):
    """Whether today can be claimed, current/longest streak, next milestone."""
    result = await CheckinService(db).get_status(user.id)
    return CheckinStatusResponse(**result)


@router.get("/history", response_model=CheckinHistoryResponse)
async def get_checkin_history(
    user: CurrentUser,
    db: DbSession,
    limit: int = Query(30, ge=1, le=100),
):
    """Recent check-ins, newest first."""
    items = await CheckinService(db).get_history(user.id, limit)
    return CheckinHistoryResponse(items=items)
