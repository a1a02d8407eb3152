"""Assemble flat tree rows into nested content trees."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .ranking import sort_content_by_strategy

logger = logging.getLogger(__name__)


def flat_list_to_tree(
    rows: List[Dict[str, Any]],
    strategy: str,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Nest *rows* under their parents and sort every level by *strategy*.

    Rows whose parent is not in the list become top-level nodes. Rows that
    can not be reached from a top-level node belong to a parent cycle; they
    are logged and left out instead of being followed.
    """
    table: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        if row["id"] not in table:
            table[row["id"]] = {**row, "children": []}

    top_level = []
    for node in table.values():
        parent = table.get(node.get("parent_id"))
        if parent is not None:
            parent["children"].append(node)
        else:
            top_level.append(node)

    reached = set()
    top_level = _sort_recursively(top_level, strategy, now, reached)

    dropped = [content_id for content_id in table if content_id not in reached]
    if dropped:
        logger.warning(
            "Dropped content rows caught in a parent cycle",
            extra={"content_ids": [str(content_id) for content_id in dropped]},
        )

    return top_level


def _sort_recursively(nodes, strategy, now, reached):
    nodes = sort_content_by_strategy(nodes, strategy, now)
    for node in nodes:
        reached.add(node["id"])
        node["children"] = _sort_recursively(node["children"], strategy, now, reached)
    return nodes
