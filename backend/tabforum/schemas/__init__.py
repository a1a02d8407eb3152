"""Pydantic schemas for input validation."""

from .content import (
    Strategy,
    ContentCreate,
    ContentUpdate,
    ContentAttributes,
    FindAllParams,
    TreeWhere,
    TreeOptions,
    Pagination,
)
from .validation import validate

__all__ = [
    "Strategy",
    "ContentCreate",
    "ContentUpdate",
    "ContentAttributes",
    "FindAllParams",
    "TreeWhere",
    "TreeOptions",
    "Pagination",
    "validate",
]
