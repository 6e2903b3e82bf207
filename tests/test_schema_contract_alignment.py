"""Schema contract alignment checks between the migration DDL and ORM metadata."""

from __future__ import annotations

import importlib.util
from pathlib import Path
import re
import sys
import types
from typing import Any

import pytest

import backend.db.models  # noqa: F401  # Ensure all mapped classes are registered.
from backend.db.base import Base

MIGRATION_PATH = Path(__file__).resolve().parents[1] / "backend" / "db" / "migrations" / "versions" / "0001_initial_schema.py"


class _NoopOp:
    def execute(self, statement: str) -> None:
        return None


@pytest.fixture
def migration(monkeypatch: pytest.MonkeyPatch) -> Any:
    fake_alembic = types.ModuleType("alembic")
    fake_alembic.op = _NoopOp()
    monkeypatch.setitem(sys.modules, "alembic", fake_alembic)

    spec = importlib.util.spec_from_file_location("migration_0001_alignment", MIGRATION_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _ddl_columns(statements: tuple[str, ...]) -> dict[str, set[str]]:
    pattern = re.compile(r"CREATE TABLE (\w+) \((.*?)\);", re.S)

    tables: dict[str, set[str]] = {}
    for statement in statements:
        for table_name, body in pattern.findall(statement):
            columns: set[str] = set()
            for raw_line in body.splitlines():
                line = raw_line.strip()
                if not line or line.startswith("CONSTRAINT"):
                    continue
                columns.add(line.split()[0].rstrip(","))
            tables[table_name] = columns
    return tables


def _ddl_index_names(statements: tuple[str, ...]) -> set[str]:
    pattern = re.compile(r"CREATE INDEX (\w+) ON")
    return {name for statement in statements for name in pattern.findall(statement)}


def test_orm_tables_and_columns_match_migration(migration: Any) -> None:
    """ORM models must cover all migrated tables and columns exactly."""

    ddl = _ddl_columns(migration.TABLE_DDL)
    mapped_tables = Base.metadata.tables

    assert sorted(set(ddl) - set(mapped_tables)) == []
    assert sorted(set(mapped_tables) - set(ddl)) == []

    column_mismatches: dict[str, dict[str, list[str]]] = {}
    for table_name in sorted(mapped_tables):
        ddl_columns = ddl[table_name]
        orm_columns = {column.name for column in mapped_tables[table_name].columns}

        missing_columns = sorted(ddl_columns - orm_columns)
        extra_columns = sorted(orm_columns - ddl_columns)
        if missing_columns or extra_columns:
            column_mismatches[table_name] = {
                "missing_columns": missing_columns,
                "extra_columns": extra_columns,
            }

    assert column_mismatches == {}, f"Migration/ORM column mismatches detected: {column_mismatches}"


def test_orm_indexes_match_migration(migration: Any) -> None:
    orm_indexes = {index.name for table in Base.metadata.tables.values() for index in table.indexes}
    assert orm_indexes == _ddl_index_names(migration.INDEX_DDL)


def test_drop_order_covers_every_table(migration: Any) -> None:
    assert sorted(migration.DROP_TABLE_ORDER) == sorted(Base.metadata.tables)
