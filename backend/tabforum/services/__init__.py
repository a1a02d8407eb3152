"""Business logic services."""

from .content_service import ContentService
from .prestige import LedgerPrestigeCalculator, PrestigeCalculator
from .settlement import TabcoinSettlement

__all__ = ["ContentService", "LedgerPrestigeCalculator", "PrestigeCalculator", "TabcoinSettlement"]
