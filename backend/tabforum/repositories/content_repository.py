"""Content repository for database operations.

Owns every query over ``contents``: paginated listings, the recursive
tree walk, the ascent to a root content and the deep descendant counts.
Reads return plain dicts annotated with ``owner_username`` and ``tabcoins``
(and ``children_deep_count`` / ``total_rows`` where relevant), so the
service layer can overlay values and assemble trees without touching ORM
state.

Queries are written with the SQLAlchemy expression language so the same
recursive CTEs run on PostgreSQL and on SQLite (tests).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import sqlalchemy.exc
from sqlalchemy import DateTime, Integer, case, cast, func, insert, literal, null, select, update
from sqlalchemy.orm import Session

from ..core.config import settings
from ..exceptions import ValidationError
from ..models import Content, ContentStatus, User
from ..schemas import FindAllParams, TreeWhere, validate
from .balance_repository import tabcoins_expression
from .filters import build_where_clause, owner_username_clause, parse_order, parse_where

logger = logging.getLogger(__name__)

contents = Content.__table__

PUBLISHED = ContentStatus.PUBLISHED.value

# PostgreSQL reports unique violations with SQLSTATE 23505.
UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: sqlalchemy.exc.IntegrityError) -> bool:
    """True when *error* comes from a unique constraint."""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(orig)


def _content_columns(exclude=()):
    return [column for column in contents.c if column.name not in exclude]


class ContentRepository:
    """Data access for contents.

    Writes go through Core ``insert``/``update`` on the contents table and
    are never committed here; the service decides when the unit of work ends.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def find_all(self, params: Union[FindAllParams, Dict[str, Any], None] = None) -> Union[List[Dict[str, Any]], int]:
        """Paginated listing.

        Page rows and ``total_rows`` come from one statement: a
        ``content_window`` CTE selects the ids of the page together with
        ``COUNT(*) OVER()``, and is joined back to contents and users.
        With ``count`` set only the scalar count is returned.
        """
        params = validate(FindAllParams, params or {})
        where_clause = build_where_clause(parse_where(params.where))

        if params.count:
            return self._count(where_clause)

        order_by = parse_order(params.order)
        limit = params.limit or params.per_page
        offset = (params.page - 1) * params.per_page

        window = select(contents.c.id, func.count().over().label("total_rows"))
        if where_clause is not None:
            window = window.where(where_clause)
        window = window.order_by(*order_by).limit(limit).offset(offset).cte("content_window")

        exclude = params.attributes.exclude if params.attributes else []
        stmt = (
            select(
                *_content_columns(exclude),
                User.username.label("owner_username"),
                window.c.total_rows,
                tabcoins_expression(contents.c.id).label("tabcoins"),
            )
            .select_from(contents)
            .join(window, contents.c.id == window.c.id)
            .join(User, contents.c.owner_id == User.id)
            .order_by(*order_by)
        )

        rows = [dict(row._mapping) for row in self.db.execute(stmt)]
        self._attach_deep_counts(rows)
        return rows

    def find_one(self, params: Union[FindAllParams, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """First row of ``find_all`` with limit 1, or None."""
        params = validate(FindAllParams, params).model_copy(update={"limit": 1, "count": False})
        rows = self.find_all(params)
        return rows[0] if rows else None

    def get_row(self, content_id: str) -> Optional[Dict[str, Any]]:
        """Content by id regardless of status, or None."""
        return self.find_one({"where": {"id": content_id}})

    def count(self, where: Optional[Dict[str, Any]] = None) -> int:
        """Number of contents matching *where*."""
        return self._count(build_where_clause(parse_where(where)))

    def _count(self, where_clause) -> int:
        stmt = select(func.count()).select_from(contents)
        if where_clause is not None:
            stmt = stmt.where(where_clause)
        return int(self.db.execute(stmt).scalar_one())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a content row and return it with owner_username and tabcoins."""
        try:
            self.db.execute(insert(contents).values(**values))
        except sqlalchemy.exc.IntegrityError as e:
            self._raise_for_integrity_error(e)
            raise
        return self.get_row(values["id"])

    def update_row(self, content_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a content row. Returns the persisted row, or None if *content_id* is unknown."""
        try:
            result = self.db.execute(update(contents).where(contents.c.id == content_id).values(**values))
        except sqlalchemy.exc.IntegrityError as e:
            self._raise_for_integrity_error(e)
            raise
        if result.rowcount == 0:
            return None
        return self.get_row(content_id)

    @staticmethod
    def _raise_for_integrity_error(error: sqlalchemy.exc.IntegrityError) -> None:
        if is_unique_violation(error):
            raise ValidationError(
                "This content already appears to exist.",
                key="slug",
                action='Use a different "title" or "slug".',
                error_location_code="MODEL:CONTENT:CHECK_FOR_CONTENT_UNIQUENESS:ALREADY_EXISTS",
            ) from error

    # ------------------------------------------------------------------
    # Recursive reads
    # ------------------------------------------------------------------

    def find_tree_rows(
        self,
        where: TreeWhere,
        per_page: int,
        published_before: Optional[datetime] = None,
        published_after: Optional[datetime] = None,
        ascending: bool = False,
        max_depth: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Flat rows of the published trees rooted at the matching candidates.

        At most *per_page* root candidates are selected (cursors apply to
        them only). The walk descends through published children for
        ``max_depth`` levels counting the candidates, and each row carries
        its publish-time path ``sort_1..sort_4`` used for ordering.
        """
        max_depth = max_depth or settings.tree_max_depth

        root_filter = [contents.c.status == PUBLISHED]
        if where.parent_id:
            root_filter.append(contents.c.parent_id == where.parent_id)
        elif where.id:
            root_filter.append(contents.c.id == where.id)
        elif where.owner_id:
            root_filter.extend([contents.c.owner_id == where.owner_id, contents.c.slug == where.slug])
        elif where.owner_username:
            root_filter.extend([owner_username_clause(where.owner_username), contents.c.slug == where.slug])
        if published_before:
            root_filter.append(contents.c.published_at < published_before)
        if published_after:
            root_filter.append(contents.c.published_at > published_after)

        direction = "asc" if ascending else "desc"
        roots = (
            select(contents.c.id)
            .where(*root_filter)
            .order_by(getattr(contents.c.published_at, direction)())
            .limit(per_page)
            .cte("tree_roots")
        )

        empty_sort = cast(null(), DateTime(timezone=True))
        tree = (
            select(
                contents.c.id,
                contents.c.parent_id,
                literal(1, Integer).label("depth"),
                contents.c.published_at.label("sort_1"),
                empty_sort.label("sort_2"),
                empty_sort.label("sort_3"),
                empty_sort.label("sort_4"),
            )
            .where(contents.c.id.in_(select(roots.c.id)))
            .cte("tree", recursive=True)
        )
        parent = tree.alias("parent")
        child = contents.alias("child")
        tree = tree.union_all(
            select(
                child.c.id,
                child.c.parent_id,
                parent.c.depth + 1,
                parent.c.sort_1,
                case((parent.c.depth == 1, child.c.published_at), else_=parent.c.sort_2),
                case((parent.c.depth == 2, child.c.published_at), else_=parent.c.sort_3),
                case((parent.c.depth == 3, child.c.published_at), else_=parent.c.sort_4),
            ).where(
                child.c.parent_id == parent.c.id,
                child.c.status == PUBLISHED,
                parent.c.depth < max_depth,
            )
        )

        sort_columns = [tree.c.sort_1, tree.c.sort_2, tree.c.sort_3, tree.c.sort_4]
        order_by = [getattr(sort_columns[0], direction)()]
        order_by.extend(getattr(column, direction)().nulls_first() for column in sort_columns[1:])

        stmt = (
            select(
                *contents.c,
                User.username.label("owner_username"),
                tree.c.depth,
                tabcoins_expression(contents.c.id).label("tabcoins"),
            )
            .select_from(tree)
            .join(contents, contents.c.id == tree.c.id)
            .join(User, contents.c.owner_id == User.id)
            .order_by(*order_by)
        )

        rows = [dict(row._mapping) for row in self.db.execute(stmt)]
        self._attach_deep_counts(rows)
        return rows

    def _ascent(self, content_id: str):
        """Recursive CTE of *content_id* and every ancestor above it."""
        ascent = select(contents.c.id, contents.c.parent_id).where(contents.c.id == content_id).cte(
            "ascent", recursive=True
        )
        below = ascent.alias("below")
        above = contents.alias("above")
        # UNION stops on corrupted parent cycles.
        return ascent.union(select(above.c.id, above.c.parent_id).where(above.c.id == below.c.parent_id))

    def find_root_content(self, content_id: str) -> Optional[Dict[str, Any]]:
        """Walk parent links up from *content_id* to the content with no parent."""
        ascent = self._ascent(content_id)
        stmt = (
            select(
                *contents.c,
                User.username.label("owner_username"),
                tabcoins_expression(contents.c.id).label("tabcoins"),
            )
            .select_from(ascent)
            .join(contents, contents.c.id == ascent.c.id)
            .join(User, contents.c.owner_id == User.id)
            .where(contents.c.parent_id.is_(None))
            .limit(1)
        )
        row = self.db.execute(stmt).first()
        if row is None:
            return None
        root = dict(row._mapping)
        self._attach_deep_counts([root])
        return root

    def find_ancestor_ids(self, content_id: str) -> List[str]:
        """Ids from *content_id* up to its root, *content_id* included."""
        ascent = self._ascent(content_id)
        return list(self.db.execute(select(ascent.c.id)).scalars())

    def children_deep_counts(self, ids: List[str]) -> Dict[str, int]:
        """Published descendants at any depth, per id in *ids*."""
        if not ids:
            return {}

        descendants = (
            select(contents.c.id, contents.c.parent_id.label("origin_id"))
            .where(contents.c.parent_id.in_(ids), contents.c.status == PUBLISHED)
            .cte("descendants", recursive=True)
        )
        found = descendants.alias("found")
        child = contents.alias("child")
        descendants = descendants.union(
            select(child.c.id, found.c.origin_id).where(
                child.c.parent_id == found.c.id,
                child.c.status == PUBLISHED,
            )
        )

        stmt = (
            select(descendants.c.origin_id, func.count(descendants.c.id))
            .group_by(descendants.c.origin_id)
        )
        counts = {origin_id: int(total) for origin_id, total in self.db.execute(stmt)}
        return {content_id: counts.get(content_id, 0) for content_id in ids}

    def _attach_deep_counts(self, rows: List[Dict[str, Any]]) -> None:
        counts = self.children_deep_counts(list({row["id"] for row in rows}))
        for row in rows:
            row["children_deep_count"] = counts.get(row["id"], 0)
