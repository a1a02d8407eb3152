"""Prestige: how many tabcoins a user earns when publishing.

Settlement only depends on the ``PrestigeCalculator`` protocol; the
ledger-backed calculator below is the default and can be swapped for any
object with the same two methods.
"""

from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models import BalanceOperation, BalanceType, Content, ContentStatus
from ..repositories.balance_repository import BalanceRepository, tabcoins_expression


class PrestigeCalculator(Protocol):
    def get_by_content_id(self, content_id: str) -> int:
        """User earnings originally credited for publishing *content_id*."""
        ...

    def get_by_user_id(self, user_id: str, is_root: bool) -> int:
        """User earnings for publishing a new root content or comment."""
        ...


class LedgerPrestigeCalculator:
    """Prestige derived from the balance ledger.

    The earnings of a new publication look at the user's last
    ``prestige_window`` credited contents of the same kind: tabcoins above
    the default earning add up, below it they subtract. A negative total is
    returned as is and blocks publishing; a positive one is scaled down by
    ``prestige_scale``.
    """

    def __init__(self, db: Session, window: int = None, scale: int = None, content_default_earnings: int = None):
        self.db = db
        self.balance_repo = BalanceRepository(db)
        self.window = window or settings.prestige_window
        self.scale = scale or settings.prestige_scale
        self.content_default_earnings = (
            settings.content_default_earnings if content_default_earnings is None else content_default_earnings
        )

    def get_by_content_id(self, content_id: str) -> int:
        # The publish credit is the content's first content:tabcoin entry. The
        # owner's share was appended under the same originator, which is the
        # content itself or the event that published it.
        credit = self.balance_repo.first_for_recipient(BalanceType.CONTENT_TABCOIN.value, content_id)
        if credit is None:
            return 0
        owner_id = self.db.execute(select(Content.owner_id).where(Content.id == content_id)).scalar_one_or_none()
        if owner_id is None:
            return 0
        return self.balance_repo.sum_by_originator(
            BalanceType.USER_TABCOIN.value, credit.originator_id, recipient_id=owner_id
        )

    def get_by_user_id(self, user_id: str, is_root: bool) -> int:
        kind = Content.parent_id.is_(None) if is_root else Content.parent_id.is_not(None)
        # Only credited contents count: self-replies and the content being
        # published have no content:tabcoin entry yet.
        credited = (
            select(BalanceOperation.id)
            .where(
                BalanceOperation.balance_type == BalanceType.CONTENT_TABCOIN.value,
                BalanceOperation.recipient_id == Content.id,
            )
            .exists()
        )
        recent = (
            select(tabcoins_expression(Content.id).label("tabcoins"))
            .select_from(Content)
            .where(
                Content.owner_id == user_id,
                Content.status == ContentStatus.PUBLISHED.value,
                kind,
                credited,
            )
            .order_by(Content.published_at.desc())
            .limit(self.window)
            .subquery()
        )
        total = self.db.execute(
            select(func.coalesce(func.sum(recent.c.tabcoins - self.content_default_earnings), 0))
        ).scalar_one()
        total = int(total)

        if total < 0:
            return total
        return total // self.scale
