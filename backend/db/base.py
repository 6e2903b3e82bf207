"""SQLAlchemy declarative base and shared metadata for vault indexer models."""

from __future__ import annotations

import logging

from sqlalchemy import JSON, MetaData, Numeric, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

metadata = MetaData()

# uint256 / int256 values need 78 decimal digits; SQLite (test schema) keeps them as exact text.
UINT256 = Numeric(78, 0).with_variant(Text(), "sqlite")

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test schema).
JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""

    metadata = metadata
