"""SQLite-backed adapter implementing the indexer DB protocol for unit tests.

uint256 columns are stored as TEXT on SQLite (see ``UINT256``) and additive updates go
through an exact ``uint_add`` function, so amounts beyond 64 bits survive unchanged.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import Numeric, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

import backend.db.models  # noqa: F401  # Ensure all mapped classes are registered.
from backend.db.base import Base
from indexer.common import to_int

_SQLITE_INT_MIN = -(2**63)
_SQLITE_INT_MAX = 2**63 - 1

# `col + :delta` and `table.col + excluded.col`; literal increments such as row_version + 1 stay native.
_ADDITIVE_RE = re.compile(r"([A-Za-z_][\w.]*) \+ (:[A-Za-z_]\w*|excluded\.\w+)")
_INT_TEXT_RE = re.compile(r"-?\d+")

UINT_COLUMNS: frozenset[str] = frozenset(
    column.name
    for table in Base.metadata.tables.values()
    for column in table.columns
    if isinstance(column.type, Numeric)
)


def _uint_add(left: Any, right: Any) -> str:
    return str(to_int(left) + to_int(right))


def create_schema_engine() -> Engine:
    """In-memory engine with the ORM schema created on a single shared connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.create_function("uint_add", 2, _uint_add, deterministic=True)

    Base.metadata.create_all(engine)
    return engine


def _bind(params: Mapping[str, Any]) -> dict[str, Any]:
    bound: dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, int) and not isinstance(value, bool) and not _SQLITE_INT_MIN <= value <= _SQLITE_INT_MAX:
            value = str(value)
        bound[key] = value
    return bound


def _decode(row: Mapping[str, Any]) -> dict[str, Any]:
    decoded: dict[str, Any] = {}
    for key, value in row.items():
        if key in UINT_COLUMNS and isinstance(value, str) and _INT_TEXT_RE.fullmatch(value):
            value = int(value)
        decoded[key] = value
    return decoded


class SqliteIndexerDB:
    """Adapter over a SQLAlchemy connection; the connection autobegins on first use."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn
        self.commits = 0
        self.rollbacks = 0

    def begin(self) -> None:
        return None

    def commit(self) -> None:
        self.conn.commit()
        self.commits += 1

    def rollback(self) -> None:
        self.conn.rollback()
        self.rollbacks += 1

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        result = self.conn.execute(text(_ADDITIVE_RE.sub(r"uint_add(\1, \2)", sql)), _bind(params))
        if not result.returns_rows:
            return []
        return [_decode(row) for row in result.mappings().all()]

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        self.conn.execute(text(_ADDITIVE_RE.sub(r"uint_add(\1, \2)", sql)), _bind(params))

    def count(self, table: str) -> int:
        row = self.fetch_one(f"SELECT COUNT(*) AS n FROM {table}", {})
        assert row is not None
        return int(row["n"])
