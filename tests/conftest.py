"""Pytest fixtures shared across unit and integration tests."""

from __future__ import annotations

import os
from typing import Any, Iterator

import psycopg
import pytest

from indexer.database import PsycopgIndexerDB
from tests.utils.sqlite_db import SqliteIndexerDB, create_schema_engine


@pytest.fixture(scope="session")
def pg_conn() -> Any:
    """Session-scoped psycopg connection for integration tests."""
    host = os.getenv("TEST_DB_HOST")
    port = os.getenv("TEST_DB_PORT")
    dbname = os.getenv("TEST_DB_NAME")
    user = os.getenv("TEST_DB_USER")
    password = os.getenv("TEST_DB_PASSWORD")

    if not all([host, port, dbname, user, password]):
        pytest.skip("Integration DB env vars are missing; set TEST_DB_* to run against PostgreSQL")

    conn = psycopg.connect(
        host=host,
        port=port,
        dbname=dbname,
        user=user,
        password=password,
        autocommit=False,
    )
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def indexer_pg_db(pg_conn: Any) -> PsycopgIndexerDB:
    """PostgreSQL indexer DB adapter fixture."""
    return PsycopgIndexerDB(pg_conn)


@pytest.fixture
def sqlite_db() -> Iterator[SqliteIndexerDB]:
    """Fresh in-memory schema per test."""
    engine = create_schema_engine()
    conn = engine.connect()
    try:
        yield SqliteIndexerDB(conn)
    finally:
        conn.close()
        engine.dispose()
