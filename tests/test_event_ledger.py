"""Unit tests for the append-only event ledger writer."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Sequence

import pytest

from indexer import events as ev
from indexer.events import decode_event
from indexer.ledger import LEDGER_ROUTES, EventLedger, ledger_table_for
from tests.utils.event_payloads import payload
from tests.utils.fake_reader import ADAPTER_A, OWNER
from tests.utils.sqlite_db import SqliteIndexerDB


def test_every_event_record_has_a_ledger_table() -> None:
    records = {cls for cls in vars(ev).values() if isinstance(cls, type) and issubclass(cls, ev.VaultEvent)}
    records.discard(ev.VaultEvent)
    assert records == set(LEDGER_ROUTES)


def test_insert_writes_coordinate_and_payload(sqlite_db: SqliteIndexerDB) -> None:
    event = decode_event(
        payload(
            "Allocate",
            {"sender": OWNER, "adapter": ADAPTER_A, "assets": 200, "ids": ["0x02", "0x01"], "change": 200},
            block=50,
            transaction_index=1,
            log_index=4,
        )
    )

    assert EventLedger(sqlite_db).insert(event) is True

    row = sqlite_db.fetch_one("SELECT * FROM allocate_event WHERE id = :id", {"id": event.event_id})
    assert row is not None
    assert row["block_number"] == 50
    assert row["transaction_index"] == 1
    assert row["log_index"] == 4
    assert row["adapter"] == ADAPTER_A
    assert int(row["change"]) == 200
    assert json.loads(row["ids"]) == ["0x02", "0x01"]


def test_redelivered_event_is_detected_as_duplicate(sqlite_db: SqliteIndexerDB) -> None:
    ledger = EventLedger(sqlite_db)
    event = decode_event(payload("SetIsAllocator", {"account": OWNER, "newIsAllocator": True}, block=1))

    assert ledger.insert(event) is True
    assert ledger.insert(event) is False
    assert sqlite_db.count("allocator_set_event") == 1


def test_gate_and_cap_events_store_discriminators(sqlite_db: SqliteIndexerDB) -> None:
    ledger = EventLedger(sqlite_db)
    gate = decode_event(payload("SetSendAssetsGate", {"newSendAssetsGate": OWNER}, block=1))
    cap = decode_event(
        payload("DecreaseAbsoluteCap", {"sender": OWNER, "id": "0x01", "idData": "0x", "newAbsoluteCap": 9}, block=1, log_index=1)
    )

    ledger.insert(gate)
    ledger.insert(cap)

    gate_row = sqlite_db.fetch_one("SELECT gate_type, new_gate FROM gate_set_event", {})
    cap_row = sqlite_db.fetch_one("SELECT action, sender, identifier_data FROM absolute_cap_change_event", {})
    assert gate_row == {"gate_type": "SEND_ASSETS", "new_gate": OWNER}
    assert cap_row == {"action": "DECREASE", "sender": OWNER, "identifier_data": "0x"}


def test_ledger_table_for_unknown_type_fails() -> None:
    coordinate = ev.EventCoordinate(1, "0x01", 1, 1, "0x02", 0, 0)
    with pytest.raises(ValueError):
        ledger_table_for(ev.VaultEvent(coordinate))
    assert ledger_table_for(ev.NameSet(coordinate, new_name="x")) == "name_set_event"


class _FakeDB:
    """Records SQL and reports a conflict whenever the statement carries ``conflict_marker``."""

    def __init__(self, conflict_marker: str | None = None) -> None:
        self.conflict_marker = conflict_marker
        self.statements: list[tuple[str, dict[str, Any]]] = []

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        self.statements.append((sql, dict(params)))
        if self.conflict_marker and self.conflict_marker in sql:
            return None
        return {"id": params["id"]}

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        raise AssertionError("ledger writer never selects")

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        raise AssertionError("ledger writer only issues conflict-aware inserts")


def test_insert_sql_targets_routed_table_and_ignores_conflicts() -> None:
    event = decode_event(payload("SetName", {"newName": "Vault"}, block=3))
    db = _FakeDB(conflict_marker="INSERT INTO name_set_event")

    assert EventLedger(db).insert(event) is False

    assert len(db.statements) == 1
    sql, params = db.statements[0]
    assert "ON CONFLICT (id) DO NOTHING" in sql
    assert "RETURNING id" in sql
    assert params["id"] == event.event_id
    assert params["new_name"] == "Vault"


def test_insert_reports_success_when_row_returned() -> None:
    event = decode_event(payload("SetName", {"newName": "Vault"}, block=3))
    db = _FakeDB(conflict_marker="INSERT INTO deposit_event")

    assert EventLedger(db).insert(event) is True
