"""Database models."""

from .user import User
from .content import Content, ContentStatus
from .balance import BalanceOperation, BalanceType, OriginatorType

__all__ = [
    "User",
    "Content", "ContentStatus",
    "BalanceOperation", "BalanceType", "OriginatorType",
]
