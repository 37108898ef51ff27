"""Exception classes for reward ledger errors.

Every error carries a stable code, a message that tells the client why the
request was rejected, and optional structured details.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for reward ledger errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Earning errors
    INVALID_ACTION_TYPE = "REWARD_INVALID_ACTION_TYPE"
    DUPLICATE_CLAIM = "REWARD_DUPLICATE_CLAIM"
    ALREADY_CLAIMED_TODAY = "REWARD_ALREADY_CLAIMED_TODAY"
    DAILY_LIMIT_REACHED = "REWARD_DAILY_LIMIT_REACHED"

    # Wallet errors
    INSUFFICIENT_BALANCE = "WALLET_INSUFFICIENT_BALANCE"
    INVALID_TRANSFER = "WALLET_INVALID_TRANSFER"
    LOCK_NOT_ACQUIRED = "WALLET_LOCK_NOT_ACQUIRED"

    # User directory
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Ledger store
    RECORD_NOT_FOUND = "LEDGER_RECORD_NOT_FOUND"
    INVALID_STATUS_TRANSITION = "LEDGER_INVALID_STATUS_TRANSITION"
    STORE_UNAVAILABLE = "LEDGER_STORE_UNAVAILABLE"


class RewardError(Exception):
    """Base exception for reward ledger errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-facing explanation
        details: Additional error details
        retryable: Whether retrying the same request may succeed
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidActionTypeError(RewardError):
    """Raised when an action type has no earning policy."""

    def __init__(self, action_type: str):
        super().__init__(
            code=ErrorCode.INVALID_ACTION_TYPE,
            message=f"Action '{action_type}' does not earn rewards",
            details={"actionType": action_type},
        )


class DuplicateClaimError(RewardError):
    """Raised when the same event was already rewarded."""

    def __init__(self, action_type: str, reference_id: str):
        super().__init__(
            code=ErrorCode.DUPLICATE_CLAIM,
            message=(
                f"Reward for '{action_type}' on {reference_id} was already claimed"
            ),
            details={"actionType": action_type, "referenceId": reference_id},
        )


class AlreadyClaimedTodayError(RewardError):
    """Raised when the daily check-in was already claimed for the UTC day."""

    def __init__(self, next_claim_at: datetime):
        super().__init__(
            code=ErrorCode.ALREADY_CLAIMED_TODAY,
            message=(
                "Already checked in today, try again at "
                f"{next_claim_at.isoformat()}"
            ),
            details={"nextClaimAt": next_claim_at.isoformat()},
        )
        self.next_claim_at = next_claim_at


class DailyLimitReachedError(RewardError):
    """Raised when a per-action daily cap is exhausted."""

    def __init__(self, action_type: str, limit: int, next_claim_at: datetime):
        super().__init__(
            code=ErrorCode.DAILY_LIMIT_REACHED,
            message=(
                f"Daily limit of {limit} rewards for '{action_type}' reached, "
                f"try again at {next_claim_at.isoformat()}"
            ),
            details={
                "actionType": action_type,
                "limit": limit,
                "nextClaimAt": next_claim_at.isoformat(),
            },
        )


class InsufficientBalanceError(RewardError):
    """Raised when a debit exceeds the current balance."""

    def __init__(self, balance: int, requested: int):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_BALANCE,
            message=f"Insufficient balance: {balance} available, {requested} requested",
            details={"balance": balance, "requested": requested},
        )


class InvalidTransferError(RewardError):
    """Raised for self-transfers and non-positive amounts."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_TRANSFER,
            message=message,
            details=details,
        )


class LockNotAcquiredError(RewardError):
    """Raised when another request holds the user's ledger lock."""

    def __init__(self, user_id: str):
        super().__init__(
            code=ErrorCode.LOCK_NOT_ACQUIRED,
            message="Another wallet operation is in progress, try again shortly",
            details={"userId": user_id},
            retryable=True,
        )


class UserNotFoundError(RewardError):
    """Raised when a user id (or nickname) does not resolve to an account."""

    def __init__(self, user_id: str | None = None, *, nickname: str | None = None):
        details = {"userId": user_id} if nickname is None else {"nickname": nickname}
        super().__init__(
            code=ErrorCode.USER_NOT_FOUND,
            message=f"User not found: {user_id if nickname is None else nickname}",
            details=details,
        )


class RecordNotFoundError(RewardError):
    """Raised when a reward record id does not exist."""

    def __init__(self, record_id: str):
        super().__init__(
            code=ErrorCode.RECORD_NOT_FOUND,
            message=f"Reward record not found: {record_id}",
            details={"recordId": record_id},
        )


class InvalidStatusTransitionError(RewardError):
    """Raised when a record status change is not allowed."""

    def __init__(self, record_id: str, current: str, requested: str):
        super().__init__(
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Cannot move record {record_id} from {current} to {requested}",
            details={"recordId": record_id, "current": current, "requested": requested},
        )


class StoreUnavailableError(RewardError):
    """Raised on transient database failures."""

    def __init__(self, message: str = "Reward store is temporarily unavailable"):
        super().__init__(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=message,
            retryable=True,
        )
