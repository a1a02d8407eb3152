"""Balance ledger model."""

from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func
from ..database import Base


class BalanceType(str, Enum):
    """What a balance entry counts and whom it belongs to."""
    USER_TABCOIN = "user:tabcoin"
    CONTENT_TABCOIN = "content:tabcoin"


class OriginatorType(str, Enum):
    """What caused a balance entry."""
    CONTENT = "content"
    EVENT = "event"


class BalanceOperation(Base):
    """Append-only ledger entry.

    The current balance of a recipient is the sum of ``amount`` over its
    entries of one ``balance_type``. Rows are never updated or removed.
    """

    __tablename__ = "balance_operations"
    __table_args__ = (
        Index("ix_balance_operations_type_recipient", "balance_type", "recipient_id"),
        Index("ix_balance_operations_originator_id", "originator_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    balance_type = Column(String(50), nullable=False)
    recipient_id = Column(String(36), nullable=False)
    amount = Column(Integer, nullable=False)
    originator_type = Column(String(50), nullable=False)
    originator_id = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
