"""Reward earning API.

Endpoints:
- POST /rewards/earn - Earn a reward for an action
- GET /rewards/policies - Earning policy catalog
- GET /rewards/leaderboard - Top earners
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import CurrentUser, DbSession, RedisClient
from app.config import get_settings
from app.models.reward import ReferenceKind
from app.services.balance import BalanceService
from app.services.earning import EarningService

settings = get_settings()

router = APIRouter(prefix="/rewards", tags=["Rewards"])


# ============================================================
# Pydantic Schemas
# ============================================================


class EarnRequest(BaseModel):
    """Earn request. ``referenceId`` makes the reward at-most-once."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    action: str = Field(..., min_length=1, max_length=64, description="Policy key, e.g. post_create")
    reference_id: str | None = Field(
        default=None, alias="referenceId", min_length=1, max_length=128
    )
    reference_kind: ReferenceKind | None = Field(default=None, alias="referenceKind")


class BonusItem(BaseModel):
    action_type: str
    amount: int
    reason: str


class EarnResponse(BaseModel):
    record_id: str
    action_type: str
    amount: int
    reason: str
    balance: int
    bonuses: list[BonusItem]


class PolicyItem(BaseModel):
    action_type: str
    min_amount: int
    max_amount: int
    description: str
    claimable: bool
    daily_limit: int | None


class PoliciesResponse(BaseModel):
    items: list[PolicyItem]


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    nickname: str
    total_earned: int


class LeaderboardResponse(BaseModel):
    items: list[LeaderboardEntry]


# ============================================================
# API Endpoints
# ============================================================


@router.post("/earn", response_model=EarnResponse)
async def earn_reward(
    request: EarnRequest,
    user: CurrentUser,
    db: DbSession,
    redis: RedisClient,
):
    """Earn a reward for an action.

    - Unknown actions: 400 REWARD_INVALID_ACTION_TYPE
    - Same referenceId twice: 409 REWARD_DUPLICATE_CLAIM
    - Daily cap reached: 429 REWARD_DAILY_LIMIT_REACHED
    """
    service = EarningService(db, redis)
    result = await service.earn(
        user.id,
        request.action,
        reference_id=request.reference_id,
        reference_kind=request.reference_kind,
    )
    return EarnResponse(**result.to_dict())


@router.get("/policies", response_model=PoliciesResponse)
async def list_policies():
    """Earning policy catalog (amounts and daily caps)."""
    return PoliciesResponse(items=EarningService.list_policies())


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    db: DbSession,
    limit: int = Query(10, ge=1, le=settings.leaderboard_max_limit),
):
    """Top earners by completed rewards (transfers excluded)."""
    items = await BalanceService(db).get_leaderboard(limit)
    return LeaderboardResponse(items=items)
