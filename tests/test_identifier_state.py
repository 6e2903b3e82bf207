"""Unit tests for per-identifier cap and allocation tracking."""

from __future__ import annotations

import logging

import pytest

from indexer.identifier_state import IdentifierStateRow, IdentifierStateTracker
from tests.utils.fake_reader import VAULT
from tests.utils.sqlite_db import SqliteIndexerDB

ID_X = "0x" + "11" * 32
ID_Y = "0x" + "22" * 32


def test_absent_identifier_reads_as_zero_state(sqlite_db: SqliteIndexerDB) -> None:
    state = IdentifierStateTracker(sqlite_db).get(1, VAULT, ID_X)
    assert state == IdentifierStateRow(1, VAULT, ID_X, 0, 0, 0)


def test_set_cap_replaces_one_field_only(sqlite_db: SqliteIndexerDB) -> None:
    tracker = IdentifierStateTracker(sqlite_db)

    tracker.set_cap(1, VAULT, ID_X, "absolute_cap", 1000)
    tracker.add_allocation(1, VAULT, ID_X, 200)
    state = tracker.set_cap(1, VAULT, ID_X, "relative_cap", 5 * 10**17)

    assert state.absolute_cap == 1000
    assert state.relative_cap == 5 * 10**17
    assert state.allocation == 200

    state = tracker.set_cap(1, VAULT, ID_X, "absolute_cap", 0)
    assert (state.absolute_cap, state.relative_cap, state.allocation) == (0, 5 * 10**17, 200)


def test_set_cap_rejects_unknown_field(sqlite_db: SqliteIndexerDB) -> None:
    with pytest.raises(ValueError):
        IdentifierStateTracker(sqlite_db).set_cap(1, VAULT, ID_X, "allocation", 1)


def test_add_allocation_starts_at_delta_and_accumulates(sqlite_db: SqliteIndexerDB) -> None:
    tracker = IdentifierStateTracker(sqlite_db)

    assert tracker.add_allocation(1, VAULT, ID_Y, 75).allocation == 75
    assert tracker.add_allocation(1, VAULT, ID_Y, -25).allocation == 50
    assert tracker.get(1, VAULT, ID_Y).absolute_cap == 0


def test_negative_allocation_is_logged(sqlite_db: SqliteIndexerDB, caplog: pytest.LogCaptureFixture) -> None:
    tracker = IdentifierStateTracker(sqlite_db)

    with caplog.at_level(logging.WARNING, logger="indexer.identifier_state"):
        state = tracker.add_allocation(1, VAULT, ID_X, -10)

    assert state.allocation == -10
    assert "negative" in caplog.text


def test_list_for_vault_is_ordered_by_hash(sqlite_db: SqliteIndexerDB) -> None:
    tracker = IdentifierStateTracker(sqlite_db)
    tracker.add_allocation(1, VAULT, ID_Y, 1)
    tracker.set_cap(1, VAULT, ID_X, "absolute_cap", 2)
    tracker.add_allocation(1, "0x00000000000000000000000000000000000000ff", ID_X, 3)

    states = tracker.list_for_vault(1, VAULT)
    assert [state.identifier_hash for state in states] == [ID_X, ID_Y]
