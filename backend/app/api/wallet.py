"""Wallet API endpoints.

Endpoints:
- GET /wallet/balance - Current token balance
- GET /wallet/history - Paginated ledger history
- GET /wallet/summary - Earned/spent breakdown
- POST /wallet/transfer - Send tokens to another user
"""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.api.deps import CurrentUser, DbSession, RedisClient
from app.models.reward import RewardActionType
from app.services.balance import BalanceService
from app.services.transfer import MAX_NOTE_LENGTH, TransferService
from app.services.user import UserService

router = APIRouter(prefix="/wallet", tags=["Wallet"])


# ============================================================
# Pydantic Schemas
# ============================================================


class BalanceResponse(BaseModel):
    """Balance response."""

    user_id: str
    balance: int = Field(..., description="Sum of completed reward records")


class RecordResponse(BaseModel):
    """Ledger record."""

    id: str
    amount: int
    action_type: str
    reason: str
    reference_id: str | None = None
    reference_kind: str | None = None
    transfer_id: str | None = None
    status: str
    created_at: datetime


class HistoryResponse(BaseModel):
    items: list[RecordResponse]
    total: int
    page: int
    limit: int
    pages: int


class ActionTotal(BaseModel):
    action_type: str
    earned: int
    spent: int
    count: int


class DailyTotal(BaseModel):
    date: str
    earned: int
    spent: int
    net: int
    transactions: int


class SummaryResponse(BaseModel):
    balance: int
    total_earned: int
    total_spent: int
    by_action: list[ActionTotal]
    daily: list[DailyTotal]


class TransferRequest(BaseModel):
    """Transfer request. The recipient is given by id or by nickname."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    to_user_id: str | None = Field(default=None, alias="toUserId", min_length=1, max_length=36)
    to_nickname: str | None = Field(default=None, alias="toNickname", min_length=1, max_length=50)
    amount: int = Field(..., gt=0, description="Tokens to send")
    note: str | None = Field(default=None, max_length=MAX_NOTE_LENGTH)

    @model_validator(mode="after")
    def validate_recipient(self) -> "TransferRequest":
        if (self.to_user_id is None) == (self.to_nickname is None):
            raise ValueError("Exactly one of toUserId or toNickname is required")
        return self


class TransferResponse(BaseModel):
    transfer_id: str
    amount: int
    to_user_id: str
    new_balance: int


# ============================================================
# API Endpoints
# ============================================================


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(user: CurrentUser, db: DbSession):
    """Current balance, recomputed from the ledger."""
    balance = await BalanceService(db).get_balance(user.id)
    return BalanceResponse(user_id=user.id, balance=balance)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action_type: RewardActionType | None = Query(None, alias="actionType"),
):
    """Ledger history, newest first, optionally filtered by action type."""
    result = await BalanceService(db).get_history(
        user.id, page=page, limit=limit, action_type=action_type
    )
    return HistoryResponse(**result)


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    user: CurrentUser,
    db: DbSession,
    days: int = Query(30, ge=1, le=BalanceService.MAX_SUMMARY_DAYS),
):
    """Totals earned/spent, per action and per UTC day."""
    result = await BalanceService(db).get_summary(user.id, days=days)
    return SummaryResponse(**result)


@router.post("/transfer", response_model=TransferResponse)
async def transfer_tokens(
    request: TransferRequest,
    user: CurrentUser,
    db: DbSession,
    redis: RedisClient,
):
    """Send tokens to another user.

    - Self-transfers: 400 WALLET_INVALID_TRANSFER
    - Unknown recipient: 404 USER_NOT_FOUND
    - Balance too low: 400 WALLET_INSUFFICIENT_BALANCE
    """
    to_user_id = request.to_user_id
    if to_user_id is None:
        recipient = await UserService(db).require_user_by_nickname(request.to_nickname)
        to_user_id = recipient.id

    result = await TransferService(db, redis).transfer(
        user.id, to_user_id, request.amount, request.note
    )
    return TransferResponse(**result)
