"""Tabcoin settlement of content lifecycle transitions.

Deciding *what* to credit or debit is pure: ``classify_transition`` maps the
old and new state of a content to a ``SettlementAction`` and ``plan_debit`` /
``plan_credit`` turn it into ledger operations. ``TabcoinSettlement`` does the
I/O: it looks up the parent owner and the prestige earnings, then appends the
planned operations through ``BalanceRepository`` in the caller's session, so
they commit or roll back together with the content row.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..exceptions import ForbiddenError
from ..models import BalanceType, ContentStatus, OriginatorType
from ..repositories.balance_repository import BalanceRepository
from ..repositories.content_repository import ContentRepository
from .prestige import LedgerPrestigeCalculator, PrestigeCalculator

logger = logging.getLogger(__name__)

Originator = Tuple[str, str]


class SettlementAction(str, Enum):
    NONE = "none"
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class LedgerOperation:
    """One balance entry to append."""
    balance_type: str
    recipient_id: str
    amount: int
    originator_type: str
    originator_id: str


def originator_for(content: Dict[str, Any], event_id: Optional[str] = None) -> Originator:
    """The event when one is given, otherwise the content itself."""
    if event_id:
        return OriginatorType.EVENT.value, event_id
    return OriginatorType.CONTENT.value, content["id"]


def classify_transition(
    old: Optional[Dict[str, Any]],
    new: Dict[str, Any],
    parent_owner_id: Optional[str] = None,
) -> SettlementAction:
    """Decide what a transition from *old* to *new* settles. First matching rule wins."""
    # Replies to your own content neither earn nor cost.
    if new.get("parent_id") and parent_owner_id == new["owner_id"]:
        return SettlementAction.NONE

    # Never published, deleted straight away (draft -> deleted).
    if old and not old.get("published_at") and new["status"] == ContentStatus.DELETED.value:
        return SettlementAction.NONE

    if old and old.get("published_at") and new["status"] == ContentStatus.DELETED.value:
        return SettlementAction.DEBIT

    if (not old and new.get("published_at")) or (
        old and not old.get("published_at") and new["status"] == ContentStatus.PUBLISHED.value
    ):
        return SettlementAction.CREDIT

    return SettlementAction.NONE


def plan_debit(
    old: Dict[str, Any],
    new: Dict[str, Any],
    user_earnings: int,
    originator: Originator,
    content_default_earnings: Optional[int] = None,
) -> List[LedgerOperation]:
    """Take back what a published content earned its owner.

    With positive tabcoins the content's own default earning is kept out and
    everything else it gathered is debited along with the original earnings.
    Otherwise only the original earnings are debited.
    """
    if content_default_earnings is None:
        content_default_earnings = settings.content_default_earnings

    if old["tabcoins"] > 0:
        amount = content_default_earnings - old["tabcoins"] - user_earnings
    else:
        amount = -user_earnings

    originator_type, originator_id = originator
    return [
        LedgerOperation(BalanceType.USER_TABCOIN.value, new["owner_id"], amount, originator_type, originator_id),
    ]


def plan_credit(
    new: Dict[str, Any],
    user_earnings: int,
    originator: Originator,
    content_default_earnings: Optional[int] = None,
) -> List[LedgerOperation]:
    """Credit the owner and the content on first publish.

    Raises:
        ForbiddenError: The owner's recent contents carry negative earnings.
    """
    if content_default_earnings is None:
        content_default_earnings = settings.content_default_earnings

    if user_earnings < 0:
        raise ForbiddenError(
            "Publishing is not possible while other poorly rated contents have not been deleted.",
            action="Delete your most recent contents rated as not relevant.",
            error_location_code="MODEL:CONTENT:CREDIT_OR_DEBIT_TABCOINS:NEGATIVE_USER_EARNINGS",
        )

    originator_type, originator_id = originator
    return [
        LedgerOperation(BalanceType.USER_TABCOIN.value, new["owner_id"], user_earnings, originator_type, originator_id),
        LedgerOperation(
            BalanceType.CONTENT_TABCOIN.value, new["id"], content_default_earnings, originator_type, originator_id
        ),
    ]


class TabcoinSettlement:
    """Apply the settlement of one content transition in the caller's session."""

    def __init__(self, db: Session, prestige: Optional[PrestigeCalculator] = None):
        self.db = db
        self.content_repo = ContentRepository(db)
        self.balance_repo = BalanceRepository(db)
        self.prestige = prestige or LedgerPrestigeCalculator(db)

    def settle(
        self,
        old: Optional[Dict[str, Any]],
        new: Dict[str, Any],
        event_id: Optional[str] = None,
    ) -> List[LedgerOperation]:
        """Append the ledger operations caused by *old* -> *new*. Returns what was appended."""
        parent_owner_id = None
        if new.get("parent_id"):
            parent = self.content_repo.get_row(new["parent_id"])
            parent_owner_id = parent["owner_id"] if parent else None

        action = classify_transition(old, new, parent_owner_id)
        originator = originator_for(new, event_id)

        if action == SettlementAction.DEBIT:
            user_earnings = self.prestige.get_by_content_id(old["id"])
            operations = plan_debit(old, new, user_earnings, originator)
        elif action == SettlementAction.CREDIT:
            user_earnings = self.prestige.get_by_user_id(new["owner_id"], is_root=not new.get("parent_id"))
            operations = plan_credit(new, user_earnings, originator)
        else:
            logger.debug("No settlement for content transition", extra={"content_id": new["id"]})
            return []

        for operation in operations:
            self.balance_repo.create(
                balance_type=operation.balance_type,
                recipient_id=operation.recipient_id,
                amount=operation.amount,
                originator_type=operation.originator_type,
                originator_id=operation.originator_id,
            )

        logger.info(
            "Settled content transition",
            extra={
                "content_id": new["id"],
                "settlement": action.value,
                "user_earnings": user_earnings,
                "operations": len(operations),
            },
        )
        return operations
