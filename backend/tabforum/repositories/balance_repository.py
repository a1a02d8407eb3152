"""Balance ledger repository.

The ledger is append-only: entries are created inside the caller's
transaction and only flushed here, so a content mutation and the entries it
causes commit or roll back together.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import BalanceOperation, BalanceType


def tabcoins_expression(id_column):
    """Correlated ``content:tabcoin`` balance of the content whose id is *id_column*."""
    return (
        select(func.coalesce(func.sum(BalanceOperation.amount), 0))
        .where(
            BalanceOperation.balance_type == BalanceType.CONTENT_TABCOIN.value,
            BalanceOperation.recipient_id == id_column,
        )
        .correlate_except(BalanceOperation)
        .scalar_subquery()
    )


class BalanceRepository:
    """Read and append balance entries."""

    def __init__(self, db: Session):
        self.db = db

    def get_total(self, balance_type: str, recipient_id: str) -> int:
        """Current balance of *recipient_id* for *balance_type*."""
        total = self.db.execute(
            select(func.coalesce(func.sum(BalanceOperation.amount), 0)).where(
                BalanceOperation.balance_type == balance_type,
                BalanceOperation.recipient_id == recipient_id,
            )
        ).scalar_one()
        return int(total)

    def create(
        self,
        balance_type: str,
        recipient_id: str,
        amount: int,
        originator_type: str,
        originator_id: str,
    ) -> BalanceOperation:
        """Append one entry. Flushed, not committed."""
        operation = BalanceOperation(
            balance_type=balance_type,
            recipient_id=recipient_id,
            amount=amount,
            originator_type=originator_type,
            originator_id=originator_id,
        )
        self.db.add(operation)
        self.db.flush()
        return operation

    def sum_by_originator(self, balance_type: str, originator_id: str, recipient_id: Optional[str] = None) -> int:
        """Sum of *balance_type* amounts caused by *originator_id*."""
        stmt = select(func.coalesce(func.sum(BalanceOperation.amount), 0)).where(
            BalanceOperation.balance_type == balance_type,
            BalanceOperation.originator_id == originator_id,
        )
        if recipient_id is not None:
            stmt = stmt.where(BalanceOperation.recipient_id == recipient_id)
        return int(self.db.execute(stmt).scalar_one())

    def first_for_recipient(self, balance_type: str, recipient_id: str) -> Optional[BalanceOperation]:
        """Oldest entry of one balance, or None."""
        return self.db.execute(
            select(BalanceOperation)
            .where(
                BalanceOperation.balance_type == balance_type,
                BalanceOperation.recipient_id == recipient_id,
            )
            .order_by(BalanceOperation.id)
            .limit(1)
        ).scalar_one_or_none()
