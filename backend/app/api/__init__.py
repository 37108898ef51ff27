"""API routers."""

from app.api import checkin, rewards, wallet

__all__ = ["checkin", "rewards", "wallet"]
