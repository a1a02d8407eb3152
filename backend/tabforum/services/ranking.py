"""Relevance ranking and strategy ordering of content lists.

The score is a Hacker News / Reddit style decay: tabcoins (minus a small
offset) boosted during the first minutes after publishing and weighted by
an exponential gravity term that fades over hours.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..schemas import Strategy

AGE_BASE_MS = 1000 * 60 * 60 * 6  # 6 hours
BOOST_PERIOD_MS = 1000 * 60 * 10  # 10 minutes
BOOST_FACTOR = 3
TABCOINS_OFFSET = 0.5

# Rows never published rank as if published at the epoch.
NEVER_PUBLISHED = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_content_score(content: Dict[str, Any], now: Optional[datetime] = None) -> float:
    """Relevance score of one content row (needs ``tabcoins`` and ``published_at``)."""
    now = _as_utc(now or datetime.now(timezone.utc))
    tabcoins = content["tabcoins"]
    published_at = content.get("published_at") or NEVER_PUBLISHED
    age_ms = (now - _as_utc(published_at)).total_seconds() * 1000

    boost = BOOST_FACTOR if age_ms < BOOST_PERIOD_MS else 1
    gravity = math.exp(-age_ms / AGE_BASE_MS)
    score = (tabcoins - TABCOINS_OFFSET) * boost
    return score * (1 + gravity) if tabcoins > 0 else score * (1 - gravity)


def rank_content_by_relevance(rows: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Copies of *rows* with ``score`` set, highest first.

    ``sorted`` is stable, so rows with equal scores keep their input order.
    """
    now = now or datetime.now(timezone.utc)
    scored = [{**row, "score": get_content_score(row, now)} for row in rows]
    return sorted(scored, key=lambda row: row["score"], reverse=True)


def sort_content_by_strategy(
    rows: List[Dict[str, Any]],
    strategy: str,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Order *rows* for the given strategy."""
    strategy = Strategy(strategy)
    if strategy == Strategy.NEW:
        return sorted(rows, key=lambda row: _as_utc(row["published_at"]), reverse=True)
    if strategy == Strategy.OLD:
        return sorted(rows, key=lambda row: _as_utc(row["published_at"]))
    return rank_content_by_relevance(rows, now)
