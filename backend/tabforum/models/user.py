"""User model.

Accounts are managed elsewhere; this core only reads ``id`` and ``username``
to resolve owners and render ``owner_username``.
"""

import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func
from ..database import Base


class User(Base):
    """Content owner."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(30), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
