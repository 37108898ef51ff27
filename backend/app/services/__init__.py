"""Business logic services."""

from app.services.audit import LedgerAuditService
from app.services.balance import BalanceService
from app.services.checkin import CheckinService
from app.services.earning import EarningService, EarnResult
from app.services.ledger import RewardLedger
from app.services.streak import StreakCalculator
from app.services.transfer import TransferService
from app.services.user import UserService

__all__ = [
    # Ledger
    "RewardLedger",
    "BalanceService",
    "LedgerAuditService",
    # Earning
    "EarningService",
    "EarnResult",
    "CheckinService",
    "StreakCalculator",
    # Wallet
    "TransferService",
    # Users
    "UserService",
]
