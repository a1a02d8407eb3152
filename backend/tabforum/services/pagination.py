"""Pagination metadata for content listings."""

import math
from typing import Optional

from ..schemas import Pagination


def get_pagination(total_rows: int, page: int, per_page: int, strategy: Optional[str] = None) -> Pagination:
    """Page numbers around *page* for a listing of *total_rows* rows.

    ``previous_page`` points back at the last page when *page* is past it,
    so clients that overshoot can still navigate.
    """
    last_page = math.ceil(total_rows / per_page)
    next_page = None if page >= last_page else page + 1
    if page <= 1:
        previous_page = None
    elif page > last_page:
        previous_page = last_page
    else:
        previous_page = page - 1

    return Pagination(
        current_page=page,
        total_rows=total_rows,
        per_page=per_page,
        first_page=1,
        next_page=next_page,
        previous_page=previous_page,
        last_page=last_page,
        strategy=strategy,
    )
