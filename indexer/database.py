"""psycopg adapter implementing the indexer DB protocol."""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Mapping, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

logger = logging.getLogger(__name__)

_NAMED_PARAM_RE = re.compile(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)")


def convert_named_params(sql: str) -> str:
    """Rewrite ``:name`` placeholders to psycopg ``%(name)s`` form."""
    return _NAMED_PARAM_RE.sub(r"%(\1)s", sql)


class PsycopgIndexerDB:
    """Minimal DB adapter with explicit transaction control."""

    def __init__(self, conn: psycopg.Connection[Any]) -> None:
        self.conn = conn
        self._tx_started = False

    def begin(self) -> None:
        if self._tx_started:
            return
        with self.conn.cursor() as cur:
            cur.execute("BEGIN")
        self._tx_started = True

    def commit(self) -> None:
        self.conn.commit()
        self._tx_started = False

    def rollback(self) -> None:
        self.conn.rollback()
        self._tx_started = False

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        converted = convert_named_params(sql)
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute(converted, dict(params))
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        converted = convert_named_params(sql)
        with self.conn.cursor() as cur:
            cur.execute(converted, dict(params))


def connect(
    dsn: Optional[str] = None,
    *,
    host: Optional[str] = None,
    port: Optional[str] = None,
    dbname: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
) -> psycopg.Connection[Any]:
    """Open a connection from a DSN or from explicit/``DB_*`` environment parameters."""
    if dsn:
        return psycopg.connect(dsn, autocommit=False)

    resolved = {
        "host": host or os.getenv("DB_HOST"),
        "port": port or os.getenv("DB_PORT"),
        "dbname": dbname or os.getenv("DB_NAME"),
        "user": user or os.getenv("DB_USER"),
        "password": password or os.getenv("DB_PASSWORD"),
    }
    missing = [key for key, value in resolved.items() if not value]
    if missing:
        raise RuntimeError(
            "Missing DB connection settings. Provide a DSN or set DB_HOST/DB_PORT/DB_NAME/DB_USER/DB_PASSWORD "
            f"(missing: {', '.join(missing)})."
        )
    return psycopg.connect(autocommit=False, **resolved)
