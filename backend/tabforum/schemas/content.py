"""Content schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.config import settings
from ..models import ContentStatus

# Same length limits as the contents table.
TITLE_MAX_LENGTH = 255
BODY_MAX_LENGTH = 20000
SLUG_MAX_LENGTH = 255
SOURCE_URL_MAX_LENGTH = 2000


class Strategy(str, Enum):
    """Sort order of listings and trees."""
    NEW = "new"
    OLD = "old"
    RELEVANT = "relevant"
    # Unscoped listing of published root content ranked as a whole.
    RELEVANT_GLOBAL = "relevant_global"


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class ContentBase(BaseModel):
    """Fields shared by create and update payloads."""
    model_config = ConfigDict(use_enum_values=True)

    slug: Optional[str] = Field(None, max_length=SLUG_MAX_LENGTH, pattern=r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    source_url: Optional[str] = Field(None, max_length=SOURCE_URL_MAX_LENGTH)

    @field_validator('title', 'source_url')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class ContentCreate(ContentBase):
    """Schema for creating content. ``status`` defaults to draft."""
    id: Optional[str] = Field(None, max_length=36)
    owner_id: str
    parent_id: Optional[str] = Field(None, max_length=36)
    body: str = Field(..., max_length=BODY_MAX_LENGTH)
    status: ContentStatus = Field(ContentStatus.DRAFT, validate_default=True)

    @field_validator('body')
    @classmethod
    def validate_body(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("body must not be empty")
        return v


class ContentUpdate(ContentBase):
    """Schema for a partial update. Only fields sent by the caller are merged."""
    parent_id: Optional[str] = Field(None, max_length=36)
    body: Optional[str] = Field(None, max_length=BODY_MAX_LENGTH)
    status: Optional[ContentStatus] = None

    @field_validator('body')
    @classmethod
    def validate_body(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("body must not be empty")
        return v


class ContentAttributes(BaseModel):
    """Columns left out of a listing."""
    exclude: List[Literal["body"]] = []


class FindAllParams(BaseModel):
    """Parameters of a paginated content listing.

    ``where`` uses the listing mini-language understood by
    ``repositories.filters.parse_where``.
    """
    page: int = Field(1, ge=1)
    per_page: int = Field(default_factory=lambda: settings.default_per_page, ge=1)
    order: Optional[str] = None
    where: Optional[Dict[str, Any]] = None
    count: bool = False
    limit: Optional[int] = Field(None, ge=1)
    attributes: Optional[ContentAttributes] = None

    @field_validator('per_page')
    @classmethod
    def validate_per_page(cls, v: int) -> int:
        if v > settings.max_per_page:
            raise ValueError(f"per_page must be at most {settings.max_per_page}")
        return v


class TreeWhere(BaseModel):
    """Selects the root candidates of a tree walk."""
    parent_id: Optional[str] = None
    id: Optional[str] = None
    owner_id: Optional[str] = None
    owner_username: Optional[str] = None
    slug: Optional[str] = None


class TreeOptions(BaseModel):
    """Parameters of a content tree read."""
    model_config = ConfigDict(use_enum_values=True)

    where: TreeWhere
    per_page: int = Field(default_factory=lambda: settings.default_per_page, ge=1)
    strategy: Strategy = Field(Strategy.RELEVANT, validate_default=True)
    published_before: Optional[datetime] = None
    published_after: Optional[datetime] = None

    @field_validator('per_page')
    @classmethod
    def validate_per_page(cls, v: int) -> int:
        if v > settings.max_per_page:
            raise ValueError(f"per_page must be at most {settings.max_per_page}")
        return v


class Pagination(BaseModel):
    """Pagination metadata returned alongside a listing."""
    current_page: int
    total_rows: int
    per_page: int
    first_page: int = 1
    next_page: Optional[int] = None
    previous_page: Optional[int] = None
    last_page: int
    strategy: Optional[str] = None
