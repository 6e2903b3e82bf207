"""Vault indexer schema: declarative models and the Alembic migration."""

from __future__ import annotations

import logging

from backend.db import models
from backend.db.base import JSON_DOCUMENT, UINT256, Base

logger = logging.getLogger(__name__)

__all__ = ["Base", "JSON_DOCUMENT", "UINT256", "models"]
