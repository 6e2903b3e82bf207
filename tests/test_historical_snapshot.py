"""Unit tests for denormalized historical vault snapshots."""

from __future__ import annotations

import logging

import pytest

from backend.db.enums import VaultOrigin
from indexer.common import WAD
from indexer.events import decode_event
from indexer.historical_snapshot import (
    HistoricalSnapshotCompactor,
    latest_snapshot,
    raw_share_price,
    should_snapshot,
    snapshot_at_block,
    snapshots_for_vault,
)
from indexer.identifier_state import IdentifierStateTracker
from indexer.vault_state import VaultRow
from tests.utils.event_payloads import payload
from tests.utils.fake_reader import ADAPTER_A, ASSET, OWNER, VAULT, ZERO, FakeContractReader
from tests.utils.sqlite_db import SqliteIndexerDB

ID_X = "0x" + "11" * 32
ID_Y = "0x" + "22" * 32
ALLOCATOR = "0x00000000000000000000000000000000000000e1"


def _vault(**overrides: object) -> VaultRow:
    values: dict[str, object] = {
        "chain_id": 1,
        "address": VAULT,
        "created_at_block": 1,
        "created_at_timestamp": 1,
        "created_at_transaction": "0x01",
        "origin": VaultOrigin.CONSTRUCTOR.value,
        "asset": ASSET,
        "owner": OWNER,
        "total_assets": 150,
        "total_supply": 100,
        "allocators": (ALLOCATOR,),
        "adapters": (ADAPTER_A,),
    }
    values.update(overrides)
    return VaultRow(**values)  # type: ignore[arg-type]


def _deposit(block: int, log_index: int = 0) -> object:
    return decode_event(
        payload(
            "Deposit",
            {"sender": OWNER, "onBehalf": OWNER, "assets": 10, "shares": 10},
            block=block,
            log_index=log_index,
        )
    )


def test_raw_share_price_defaults_to_one_when_supply_is_zero() -> None:
    assert raw_share_price(0, 0) == WAD
    assert raw_share_price(500, 0) == WAD
    assert raw_share_price(150, 100) == 15 * 10**17


def test_snapshot_allow_list() -> None:
    assert should_snapshot(decode_event(payload("SetIsAllocator", {"account": OWNER, "newIsAllocator": True}, block=1)))
    assert should_snapshot(decode_event(payload("Transfer", {"from": ZERO, "to": OWNER, "shares": 1}, block=1)))
    assert not should_snapshot(decode_event(payload("Transfer", {"from": OWNER, "to": ASSET, "shares": 1}, block=1)))
    assert not should_snapshot(decode_event(payload("SetName", {"newName": "x"}, block=1)))
    assert not should_snapshot(decode_event(payload("IncreaseTimelock", {"selector": "0x01", "newDuration": 1}, block=1)))


def test_capture_builds_complete_state_with_identifier_maps(sqlite_db: SqliteIndexerDB) -> None:
    identifiers = IdentifierStateTracker(sqlite_db)
    identifiers.set_cap(1, VAULT, ID_Y, "absolute_cap", 1000)
    identifiers.add_allocation(1, VAULT, ID_Y, 200)
    identifiers.set_cap(1, VAULT, ID_X, "relative_cap", 5)
    reader = FakeContractReader({"convertToAssets": 1_400_000_000_000_000_000})
    compactor = HistoricalSnapshotCompactor(sqlite_db, reader, identifiers)

    snapshot = compactor.capture(_deposit(40), _vault())  # type: ignore[arg-type]

    assert snapshot is not None
    stored = latest_snapshot(sqlite_db, 1, VAULT)
    assert stored == snapshot
    assert stored.event_type == "Deposit"
    assert stored.raw_share_price == 15 * 10**17
    assert stored.share_price == 14 * 10**17
    assert stored.allocations == {ID_X: "0", ID_Y: "200"}
    assert stored.absolute_caps == {ID_X: "0", ID_Y: "1000"}
    assert stored.relative_caps == {ID_X: "5", ID_Y: "0"}
    assert list(stored.allocations) == [ID_X, ID_Y]
    assert stored.total_allocated == 200
    assert stored.allocators == (ALLOCATOR,)
    assert stored.adapters == (ADAPTER_A,)
    assert stored.sentinels == ()
    assert reader.calls == [(VAULT, "convertToAssets", (WAD,), 40)]


def test_canonical_price_falls_back_to_raw_on_read_failure(
    sqlite_db: SqliteIndexerDB, caplog: pytest.LogCaptureFixture
) -> None:
    compactor = HistoricalSnapshotCompactor(
        sqlite_db, FakeContractReader(failing=["convertToAssets"]), IdentifierStateTracker(sqlite_db)
    )

    with caplog.at_level(logging.WARNING, logger="indexer.historical_snapshot"):
        snapshot = compactor.capture(_deposit(40), _vault())  # type: ignore[arg-type]

    assert snapshot is not None
    assert snapshot.share_price == snapshot.raw_share_price == 15 * 10**17
    assert "using raw share price" in caplog.text


def test_canonical_price_can_be_disabled(sqlite_db: SqliteIndexerDB) -> None:
    reader = FakeContractReader({"convertToAssets": 1})
    compactor = HistoricalSnapshotCompactor(
        sqlite_db, reader, IdentifierStateTracker(sqlite_db), canonical_price_enabled=False
    )

    snapshot = compactor.capture(_deposit(40), _vault(total_supply=0))  # type: ignore[arg-type]

    assert snapshot is not None and snapshot.share_price == WAD
    assert reader.calls == []


def test_non_allow_listed_event_produces_no_row(sqlite_db: SqliteIndexerDB) -> None:
    compactor = HistoricalSnapshotCompactor(sqlite_db, FakeContractReader(), IdentifierStateTracker(sqlite_db))
    event = decode_event(payload("SetSymbol", {"newSymbol": "v"}, block=2))

    assert compactor.capture(event, _vault()) is None
    assert sqlite_db.count("vault_metrics_historical") == 0


def test_snapshot_at_block_returns_latest_row_not_after_block(sqlite_db: SqliteIndexerDB) -> None:
    compactor = HistoricalSnapshotCompactor(
        sqlite_db, FakeContractReader(), IdentifierStateTracker(sqlite_db), canonical_price_enabled=False
    )
    compactor.capture(_deposit(40), _vault(total_assets=100))  # type: ignore[arg-type]
    compactor.capture(_deposit(40, log_index=3), _vault(total_assets=110))  # type: ignore[arg-type]
    compactor.capture(_deposit(45), _vault(total_assets=120))  # type: ignore[arg-type]

    assert snapshot_at_block(sqlite_db, 1, VAULT, 39) is None
    at_40 = snapshot_at_block(sqlite_db, 1, VAULT, 44)
    assert at_40 is not None and at_40.total_assets == 110
    assert [row.total_assets for row in snapshots_for_vault(sqlite_db, 1, VAULT)] == [100, 110, 120]


def test_recapturing_the_same_event_keeps_the_first_row(sqlite_db: SqliteIndexerDB) -> None:
    compactor = HistoricalSnapshotCompactor(
        sqlite_db, FakeContractReader(), IdentifierStateTracker(sqlite_db), canonical_price_enabled=False
    )
    event = _deposit(40)
    compactor.capture(event, _vault(total_assets=100))  # type: ignore[arg-type]
    compactor.capture(event, _vault(total_assets=999))  # type: ignore[arg-type]

    (only,) = snapshots_for_vault(sqlite_db, 1, VAULT)
    assert only.total_assets == 100
