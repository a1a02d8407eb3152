"""Content service: lifecycle, tree reads and strategy listings.

Every mutating method runs inside the caller's session. With ``commit=True``
(the default) the service owns the unit of work: it commits at the end and
rolls back if anything fails. With ``commit=False`` it only flushes, so a
caller can group several operations in one transaction. Either way the
content row and the ledger entries it causes are written together.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.config import settings
from ..exceptions import NotFoundError, ValidationError
from ..models import BalanceType, ContentStatus
from ..repositories.balance_repository import BalanceRepository
from ..repositories.content_repository import ContentRepository
from ..schemas import ContentCreate, ContentUpdate, FindAllParams, Strategy, TreeOptions, TreeWhere, validate
from .content_utils import generate_slug
from .pagination import get_pagination
from .prestige import PrestigeCalculator
from .ranking import rank_content_by_relevance
from .settlement import TabcoinSettlement
from .tree import flat_list_to_tree

logger = logging.getLogger(__name__)

# Columns an update may write. id, owner_id and created_at never change.
WRITABLE_COLUMNS = ("parent_id", "slug", "title", "body", "status", "source_url", "published_at", "deleted_at")

# Update fields that may be cleared by sending null.
NULLABLE_UPDATE_FIELDS = ("parent_id", "title", "source_url")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _elapsed_ms(start: float, end: float) -> float:
    return round((end - start) * 1000, 3)


def check_root_content_title(content: Dict[str, Any]) -> None:
    if not content.get("parent_id") and not content.get("title"):
        raise ValidationError(
            '"title" is a required field.',
            key="title",
            error_location_code="MODEL:CONTENT:CHECK_ROOT_CONTENT_TITLE:MISSING_TITLE",
        )


def _parent_recursion_error() -> ValidationError:
    return ValidationError(
        '"parent_id" must not point to the content itself or to one of its replies.',
        key="parent_id",
        action='Use a "parent_id" other than the "id" of the same content.',
        error_location_code="MODEL:CONTENT:CHECK_FOR_PARENT_ID_RECURSION:RECURSION_FOUND",
    )


def populate_published_at(old: Optional[Dict[str, Any]], new: Dict[str, Any]) -> None:
    """``published_at`` is set on first publish and kept from then on."""
    if old and old.get("published_at"):
        new["published_at"] = old["published_at"]
    elif new["status"] == ContentStatus.PUBLISHED.value:
        new["published_at"] = _now()
    else:
        new["published_at"] = None


def populate_deleted_at(content: Dict[str, Any]) -> None:
    if not content.get("deleted_at") and content["status"] == ContentStatus.DELETED.value:
        content["deleted_at"] = _now()


class ContentService:
    """Content lifecycle and reads behind a narrow interface.

    Public methods:
        create             -- new draft or published content, settles tabcoins
        update             -- partial update with status gates, None if unknown
        update_or_404      -- same, raises NotFoundError for an unknown id
        find_one/find_all  -- plain repository listings
        find_tree          -- nested published replies under root candidates
        find_root_content  -- ultimate ancestor of a content
        find               -- dispatcher over the reads above
        find_with_strategy -- paginated listing ordered new/old/relevant
    """

    def __init__(self, db: Session, prestige: Optional[PrestigeCalculator] = None):
        self.db = db
        self.content_repo = ContentRepository(db)
        self.balance_repo = BalanceRepository(db)
        self.settlement = TabcoinSettlement(db, prestige)

    @contextmanager
    def _unit_of_work(self, commit: bool):
        try:
            yield
            if commit:
                self.db.commit()
        except Exception:
            if commit:
                self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, data, event_id: Optional[str] = None, commit: bool = True) -> Dict[str, Any]:
        """Create a content. Status defaults to draft; a published one is credited at once."""
        payload = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else dict(data)
        if not payload.get("slug"):
            payload["slug"] = generate_slug(payload.get("title"))
        content = validate(ContentCreate, payload)

        if content.status == ContentStatus.DELETED.value:
            raise ValidationError(
                'A content can not be created with status "deleted".',
                key="status",
                error_location_code="MODEL:CONTENT:VALIDATE_CREATE_SCHEMA:STATUS_DELETED",
            )

        values = content.model_dump()
        values["id"] = values.get("id") or str(uuid.uuid4())

        check_root_content_title(values)
        if values["parent_id"]:
            if values["parent_id"] == values["id"]:
                raise _parent_recursion_error()
            self._check_parent_exists(values["parent_id"])

        populate_published_at(None, values)

        with self._unit_of_work(commit):
            new_content = self.content_repo.insert(values)
            self.settlement.settle(None, new_content, event_id=event_id)
            new_content["tabcoins"] = self.balance_repo.get_total(
                BalanceType.CONTENT_TABCOIN.value, new_content["id"]
            )

        logger.info(
            "Created content",
            extra={"content_id": new_content["id"], "status": new_content["status"]},
        )
        return new_content

    def update(
        self,
        content_id: str,
        data,
        event_id: Optional[str] = None,
        skip_balance_operations: bool = False,
        commit: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """Merge the fields sent in *data* over the stored content.

        Returns None when *content_id* does not exist.
        """
        changes = validate(ContentUpdate, data).model_dump(exclude_unset=True)
        changes = {
            key: value for key, value in changes.items() if value is not None or key in NULLABLE_UPDATE_FIELDS
        }

        old_content = self.content_repo.get_row(content_id)
        if old_content is None:
            return None

        new_content = {**old_content, **changes}

        if old_content["status"] == ContentStatus.DELETED.value:
            raise ValidationError(
                "A deleted content can not be changed.",
                key="status",
                error_location_code="MODEL:CONTENT:CHECK_STATUS_CHANGE:STATUS_ALREADY_DELETED",
            )
        if (
            old_content["status"] == ContentStatus.PUBLISHED.value
            and new_content["status"] == ContentStatus.DRAFT.value
        ):
            raise ValidationError(
                "A published content can not go back to draft.",
                key="status",
                error_location_code="MODEL:CONTENT:CHECK_STATUS_CHANGE:STATUS_ALREADY_PUBLISHED",
            )

        check_root_content_title(new_content)
        if new_content["parent_id"]:
            self._check_parent_recursion(new_content)
            self._check_parent_exists(new_content["parent_id"])

        populate_published_at(old_content, new_content)
        populate_deleted_at(new_content)

        values = {column: new_content[column] for column in WRITABLE_COLUMNS}
        with self._unit_of_work(commit):
            updated_content = self.content_repo.update_row(content_id, values)
            if not skip_balance_operations:
                self.settlement.settle(old_content, updated_content, event_id=event_id)
            updated_content["tabcoins"] = self.balance_repo.get_total(
                BalanceType.CONTENT_TABCOIN.value, updated_content["id"]
            )

        logger.info(
            "Updated content",
            extra={
                "content_id": content_id,
                "old_status": old_content["status"],
                "status": updated_content["status"],
            },
        )
        return updated_content

    def update_or_404(self, content_id: str, data, **kwargs) -> Dict[str, Any]:
        """``update`` that raises NotFoundError for an unknown id."""
        updated = self.update(content_id, data, **kwargs)
        if updated is None:
            raise NotFoundError(error_location_code="MODEL:CONTENT:UPDATE:CONTENT_NOT_FOUND")
        return updated

    def _check_parent_exists(self, parent_id: str) -> None:
        if self.content_repo.get_row(parent_id) is None:
            raise ValidationError(
                "You are trying to create or update a reply to a content that does not exist.",
                key="parent_id",
                action='Use a "parent_id" that points to an existing content.',
                error_location_code="MODEL:CONTENT:CHECK_IF_PARENT_ID_EXISTS:NOT_FOUND",
            )

    def _check_parent_recursion(self, content: Dict[str, Any]) -> None:
        if content["parent_id"] == content["id"]:
            raise _parent_recursion_error()
        if content["id"] in self.content_repo.find_ancestor_ids(content["parent_id"]):
            raise _parent_recursion_error()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_one(self, params) -> Optional[Dict[str, Any]]:
        return self.content_repo.find_one(params)

    def find_all(self, params=None):
        return self.content_repo.find_all(params)

    def find_root_content(self, content_id: str) -> Optional[Dict[str, Any]]:
        return self.content_repo.find_root_content(content_id)

    def find_tree(self, options) -> List[Dict[str, Any]]:
        """Published trees under the root candidates selected by ``options.where``.

        ``where`` must name exactly one of ``parent_id``, ``id``,
        ``owner_id`` + ``slug`` or ``owner_username`` + ``slug``.
        """
        start = time.perf_counter()
        options = validate(TreeOptions, options)
        where = self._validate_tree_where(options.where)
        strategy = options.strategy
        published_before = _to_utc(options.published_before)
        published_after = _to_utc(options.published_after)

        ascending = (strategy != Strategy.OLD.value and bool(published_after)) or (
            strategy == Strategy.OLD.value and not published_before
        )

        query_start = time.perf_counter()
        rows = self.content_repo.find_tree_rows(
            where,
            per_page=options.per_page,
            published_before=published_before,
            published_after=published_after,
            ascending=ascending,
        )
        query_end = time.perf_counter()
        tree = flat_list_to_tree(rows, strategy)
        end = time.perf_counter()

        logger.info(
            "Loaded content tree",
            extra={
                "find_tree_ms": _elapsed_ms(start, end),
                "query_ms": _elapsed_ms(query_start, query_end),
                "flat_list_to_tree_ms": _elapsed_ms(query_end, end),
                "rows": len(rows),
                "per_page": options.per_page,
                "strategy": strategy,
                "published_before": published_before,
                "published_after": published_after,
                **where.model_dump(exclude_none=True),
            },
        )
        return tree

    @staticmethod
    def _validate_tree_where(where: TreeWhere) -> TreeWhere:
        if where.parent_id:
            return TreeWhere(parent_id=where.parent_id)
        if where.id:
            return TreeWhere(id=where.id)
        if where.owner_id or where.owner_username:
            if not where.slug:
                raise ValidationError(
                    '"slug" is required together with "owner_id" or "owner_username".',
                    key="slug",
                    error_location_code="MODEL:CONTENT:FIND_TREE:MISSING_SLUG",
                )
            if where.owner_id:
                return TreeWhere(owner_id=where.owner_id, slug=where.slug)
            return TreeWhere(owner_username=where.owner_username, slug=where.slug)
        raise ValidationError(
            'Send a "parent_id", an "id" or a "slug" together with "owner_id" or "owner_username" '
            "to load a content tree.",
            key="where",
            action="Check that the data was typed correctly.",
            error_location_code="MODEL:CONTENT:FIND_TREE:MISSING_WHERE",
        )

    def find(
        self,
        parent_id: Optional[str] = None,
        id: Optional[str] = None,
        owner_id: Optional[str] = None,
        owner_username: Optional[str] = None,
        slug: Optional[str] = None,
        with_parent: Optional[bool] = None,
        with_root: Optional[bool] = None,
        with_children: Optional[bool] = None,
        strategy: str = Strategy.RELEVANT.value,
        page: int = 1,
        per_page: Optional[int] = None,
        published_before: Optional[datetime] = None,
        published_after: Optional[datetime] = None,
    ):
        """Route a read to a tree, a single content or a strategy listing."""
        per_page = per_page or settings.default_per_page
        tree_options = {
            "strategy": strategy,
            "per_page": per_page,
            "published_before": published_before,
            "published_after": published_after,
        }

        if parent_id:
            return self.find_tree({"where": {"parent_id": parent_id}, **tree_options})

        lookup = None
        if id:
            lookup = {"id": id}
        elif owner_id and slug:
            lookup = {"owner_id": owner_id, "slug": slug}
        elif owner_username and slug:
            lookup = {"owner_username": owner_username, "slug": slug}

        if lookup:
            return self._find_content(lookup, with_parent, with_root, with_children, tree_options)

        if slug:
            raise ValidationError(
                'Searching by "slug" also needs "owner_id" or "owner_username".',
                key="slug",
                error_location_code="MODEL:CONTENT:FIND:MISSING_OWNER_ID_OR_USERNAME",
            )
        if with_parent:
            raise ValidationError(
                '"with_parent" can not be used without "id" or "slug".',
                key="with_parent",
                error_location_code="MODEL:CONTENT:FIND:MISSING_ID_OR_SLUG",
            )
        if with_root is False and with_children is False:
            raise ValidationError(
                'The search must return root contents ("with_root") and/or replies ("with_children").',
                key="with_root",
                error_location_code="MODEL:CONTENT:FIND:MISSING_ROOT_AND_CHILDREN_FLAG",
            )

        where: Dict[str, Any] = {}
        if not with_children and with_root is not False:
            where["parent_id"] = None
        if with_root is False:
            where["$not_null"] = ["parent_id"]
        if owner_id:
            where["owner_id"] = owner_id
        if owner_username:
            where["owner_username"] = owner_username
        where["status"] = ContentStatus.PUBLISHED.value

        return self.find_with_strategy(
            strategy=strategy,
            where=where,
            page=page,
            per_page=per_page,
            attributes={"exclude": ["body"]},
        )

    def _find_content(self, lookup, with_parent, with_root, with_children, tree_options) -> Dict[str, Any]:
        if with_children:
            trees = self.find_tree({"where": lookup, **tree_options})
            content = trees[0] if trees else None
        else:
            content = self.content_repo.find_one(
                {"where": {**lookup, "status": ContentStatus.PUBLISHED.value}}
            )

        if content is None:
            raise NotFoundError(
                "The requested content was not found.",
                error_location_code="MODEL:CONTENT:FIND:CONTENT_NOT_FOUND",
            )

        if with_parent and content["parent_id"]:
            content["parent"] = self.content_repo.get_row(content["parent_id"])

        if with_root and content["parent_id"]:
            parent = content.get("parent")
            if parent and parent["parent_id"]:
                content["root"] = self.content_repo.find_root_content(parent["parent_id"])
            else:
                content["root"] = parent or self.content_repo.find_root_content(content["parent_id"])

        return content

    def find_with_strategy(
        self,
        strategy: str = Strategy.RELEVANT.value,
        where: Optional[Dict[str, Any]] = None,
        page: int = 1,
        per_page: Optional[int] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Paginated listing ordered by *strategy*.

        ``relevant`` over unscoped published root contents is ranked globally
        (see ``_find_relevant_global``); any other ``relevant`` listing ranks
        the page it fetched. Returns ``{"rows": [...], "pagination": Pagination}``.
        """
        start = time.perf_counter()
        strategy = Strategy(strategy)
        params = validate(
            FindAllParams,
            {
                "where": where,
                "page": page,
                "per_page": per_page or settings.default_per_page,
                "attributes": attributes,
            },
        )
        rank_ms = None

        if strategy == Strategy.RELEVANT and self._is_global_listing(params.where):
            strategy = Strategy.RELEVANT_GLOBAL

        if strategy == Strategy.NEW:
            rows = self.content_repo.find_all(params.model_copy(update={"order": "published_at DESC"}))
        elif strategy == Strategy.OLD:
            rows = self.content_repo.find_all(params.model_copy(update={"order": "published_at ASC"}))
        elif strategy == Strategy.RELEVANT_GLOBAL:
            rows = self._find_relevant_global(params)
        else:
            rows = self.content_repo.find_all(params.model_copy(update={"order": "published_at DESC"}))
            rank_start = time.perf_counter()
            rows = rank_content_by_relevance(rows)
            rank_ms = _elapsed_ms(rank_start, time.perf_counter())

        if rows:
            total_rows = rows[0]["total_rows"]
        else:
            total_rows = self.content_repo.count(params.where)
            if strategy == Strategy.RELEVANT_GLOBAL:
                total_rows = min(total_rows, settings.relevant_global_window)

        pagination = get_pagination(total_rows, params.page, params.per_page, strategy.value)

        logger.info(
            "Loaded content listing",
            extra={
                "find_with_strategy_ms": _elapsed_ms(start, time.perf_counter()),
                "rank_ms": rank_ms,
                "strategy": strategy.value,
                "page": params.page,
                "per_page": params.per_page,
                "where": params.where,
            },
        )
        return {"rows": rows, "pagination": pagination}

    @staticmethod
    def _is_global_listing(where: Optional[Dict[str, Any]]) -> bool:
        where = where or {}
        return (
            not where.get("owner_username")
            and not where.get("owner_id")
            and "parent_id" in where
            and where["parent_id"] is None
        )

    def _find_relevant_global(self, params: FindAllParams) -> List[Dict[str, Any]]:
        """Rank the most recent root contents as a whole, then cut the page.

        Only the latest ``relevant_global_window`` candidates are ranked, so
        ``total_rows`` is capped at that window.
        """
        window = settings.relevant_global_window
        candidates = self.content_repo.find_all(
            params.model_copy(update={"page": 1, "order": "published_at DESC", "limit": window})
        )
        if not candidates:
            return []

        total_rows = min(candidates[0]["total_rows"], window)
        offset = (params.page - 1) * params.per_page
        rows = rank_content_by_relevance(candidates)[offset:offset + params.per_page]
        for row in rows:
            row["total_rows"] = total_rows
        return rows
