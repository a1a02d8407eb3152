"""Data access layer."""

from .balance_repository import BalanceRepository
from .content_repository import ContentRepository

__all__ = ["BalanceRepository", "ContentRepository"]
