"""Content model."""

import uuid
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class ContentStatus(str, Enum):
    """Publication workflow states. ``deleted`` is terminal."""
    DRAFT = "draft"
    PUBLISHED = "published"
    DELETED = "deleted"


class Content(Base):
    """Posts and nested comments.

    Root content has ``parent_id = NULL`` and must carry a title. Comments
    point at their parent through ``parent_id``. Rows are never physically
    deleted; ``status = 'deleted'`` plus ``deleted_at`` marks removal.
    """

    __tablename__ = "contents"
    __table_args__ = (
        UniqueConstraint("owner_id", "slug", name="uq_contents_owner_id_slug"),
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_contents_parent_not_self"),
        Index("ix_contents_parent_id", "parent_id"),
        Index("ix_contents_owner_id", "owner_id"),
        Index("ix_contents_published_at", "published_at"),
        Index("ix_contents_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    parent_id = Column(String(36), ForeignKey("contents.id"), nullable=True)

    slug = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ContentStatus.DRAFT.value)
    source_url = Column(String(2000), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    published_at = Column(DateTime(timezone=True), nullable=True)  # set once, on first publish
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # set once, on delete
