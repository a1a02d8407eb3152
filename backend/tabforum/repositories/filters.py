"""Filter and order clauses for content listings.

Listings accept a small ``where`` mini-language::

    {
        "status": "published",                 # contents.status = :p
        "parent_id": None,                     # contents.parent_id IS NOT DISTINCT FROM NULL
        "$or": [{"id": "a"}, {"slug": "b"}],   # (contents.id = :p OR contents.slug = :p)
        "$not_null": ["parent_id"],            # contents.parent_id IS NOT NULL
        "owner_username": "Alice",             # owner resolved case-insensitively
    }

``parse_where`` turns the mapping into typed filters and ``build_where_clause``
compiles them into one AND-joined predicate. Every value becomes a bound
parameter, in the order the filters were given; column names are checked
against the contents table so nothing from the caller reaches the SQL text.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from ..exceptions import ValidationError
from ..models import Content, User

FILTERABLE_COLUMNS = frozenset(column.name for column in Content.__table__.columns)
ORDERABLE_COLUMNS = frozenset({"published_at", "created_at", "updated_at", "deleted_at", "title", "slug"})


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any


@dataclass(frozen=True)
class IsNotDistinct:
    """Null-safe comparison, used when the requested value is ``None``."""
    column: str
    value: Any = None


@dataclass(frozen=True)
class AnyOf:
    alternatives: Tuple[Equals, ...]


@dataclass(frozen=True)
class NotNull:
    columns: Tuple[str, ...]


@dataclass(frozen=True)
class OwnerUsername:
    username: str


Filter = Union[Equals, IsNotDistinct, AnyOf, NotNull, OwnerUsername]


def _check_column(name: str) -> str:
    if name not in FILTERABLE_COLUMNS:
        raise ValidationError(
            f'"{name}" is not a filterable content column.',
            key="where",
            error_location_code="MODEL:CONTENT:BUILD_WHERE_CLAUSE:UNKNOWN_COLUMN",
        )
    return name


def parse_where(where: Optional[Mapping[str, Any]]) -> List[Filter]:
    """Translate a ``where`` mapping into filters, preserving key order."""
    filters: List[Filter] = []

    for key, value in (where or {}).items():
        if key == "$or":
            if not value:
                raise ValidationError(
                    '"$or" needs at least one alternative.',
                    key="where",
                    error_location_code="MODEL:CONTENT:BUILD_WHERE_CLAUSE:EMPTY_OR",
                )
            alternatives = []
            for alternative in value:
                if len(alternative) != 1:
                    raise ValidationError(
                        'Each "$or" alternative must have exactly one column.',
                        key="where",
                        error_location_code="MODEL:CONTENT:BUILD_WHERE_CLAUSE:INVALID_OR",
                    )
                (column, alternative_value), = alternative.items()
                alternatives.append(Equals(_check_column(column), alternative_value))
            filters.append(AnyOf(tuple(alternatives)))
        elif key == "$not_null":
            if value:
                filters.append(NotNull(tuple(_check_column(column) for column in value)))
        elif key == "owner_username":
            if value is None:
                raise ValidationError(
                    '"owner_username" can not be null.',
                    key="owner_username",
                    error_location_code="MODEL:CONTENT:BUILD_WHERE_CLAUSE:NULL_USERNAME",
                )
            filters.append(OwnerUsername(value))
        elif value is None:
            filters.append(IsNotDistinct(_check_column(key)))
        else:
            filters.append(Equals(_check_column(key), value))

    return filters


def owner_username_clause(username: str) -> ColumnElement:
    """``contents.owner_id`` matches the user whose name equals *username*, ignoring case."""
    owner_id = (
        select(User.id)
        .where(func.lower(User.username) == func.lower(username))
        .limit(1)
        .scalar_subquery()
    )
    return Content.owner_id == owner_id


def compile_filter(item: Filter) -> ColumnElement:
    """Compile one filter into a SQLAlchemy predicate."""
    columns = Content.__table__.c

    if isinstance(item, Equals):
        return columns[item.column] == item.value
    if isinstance(item, IsNotDistinct):
        return columns[item.column].is_not_distinct_from(item.value)
    if isinstance(item, AnyOf):
        return or_(*(compile_filter(alternative) for alternative in item.alternatives))
    if isinstance(item, NotNull):
        return and_(*(columns[column].is_not(None) for column in item.columns))
    if isinstance(item, OwnerUsername):
        return owner_username_clause(item.username)
    raise TypeError(f"Unsupported filter: {item!r}")


def build_where_clause(filters: List[Filter]) -> Optional[ColumnElement]:
    """AND-join the compiled filters. Returns None when there is nothing to filter."""
    if not filters:
        return None
    return and_(*(compile_filter(item) for item in filters))


def parse_order(order: Optional[str]) -> List[ColumnElement]:
    """Compile ``"published_at DESC"`` style strings (comma-separated) into order clauses."""
    if not order:
        return []

    clauses = []
    for part in order.split(","):
        tokens = part.split()
        if not tokens or len(tokens) > 2:
            raise ValidationError(
                f'Invalid order "{order}".',
                key="order",
                error_location_code="MODEL:CONTENT:BUILD_ORDER_BY_CLAUSE:INVALID_ORDER",
            )
        column_name = tokens[0]
        direction = tokens[1].upper() if len(tokens) == 2 else "ASC"
        if column_name not in ORDERABLE_COLUMNS or direction not in ("ASC", "DESC"):
            raise ValidationError(
                f'Invalid order "{order}".',
                key="order",
                error_location_code="MODEL:CONTENT:BUILD_ORDER_BY_CLAUSE:INVALID_ORDER",
            )
        column = Content.__table__.c[column_name]
        clauses.append(column.desc() if direction == "DESC" else column.asc())
    return clauses
