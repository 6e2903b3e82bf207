"""Unit tests for the real-assets reconciliation diagnostic."""

from __future__ import annotations

from backend.db.enums import VaultOrigin
from indexer.diagnostics import reconcile_real_assets
from indexer.vault_state import VaultRow, VaultStateProjector
from tests.utils.fake_reader import ADAPTER_A, ADAPTER_B, ASSET, OWNER, VAULT, FakeContractReader
from tests.utils.sqlite_db import SqliteIndexerDB


def _projector(db: SqliteIndexerDB) -> VaultStateProjector:
    projector = VaultStateProjector(db)
    projector.insert(
        VaultRow(
            chain_id=1,
            address=VAULT,
            created_at_block=1,
            created_at_timestamp=1,
            created_at_transaction="0x01",
            origin=VaultOrigin.CONSTRUCTOR.value,
            asset=ASSET,
            owner=OWNER,
            adapters=(ADAPTER_A, ADAPTER_B),
            total_assets=1_000,
        )
    )
    return projector


def test_reconcile_sums_idle_and_adapter_assets(sqlite_db: SqliteIndexerDB) -> None:
    reader = FakeContractReader(
        by_address={
            ASSET: {"balanceOf": 300},
            ADAPTER_A: {"realAssets": 500},
            ADAPTER_B: {"realAssets": 200},
        }
    )

    report = reconcile_real_assets(_projector(sqlite_db), reader, 1, VAULT, 77)

    assert report.complete is True
    assert report.idle_assets == 300
    assert report.adapter_assets == {ADAPTER_A: 500, ADAPTER_B: 200}
    assert report.real_assets == 1_000
    assert report.difference == 0
    assert (ASSET, "balanceOf", (VAULT,), 77) in reader.calls


def test_failed_reads_mark_report_incomplete(sqlite_db: SqliteIndexerDB) -> None:
    reader = FakeContractReader(by_address={ASSET: {"balanceOf": 300}, ADAPTER_A: {"realAssets": 500}})

    report = reconcile_real_assets(_projector(sqlite_db), reader, 1, VAULT, 77)

    assert report.complete is False
    assert report.adapter_assets == {ADAPTER_A: 500, ADAPTER_B: None}
    assert report.real_assets == 800
    assert report.difference == -200


def test_reconcile_never_writes_state(sqlite_db: SqliteIndexerDB) -> None:
    projector = _projector(sqlite_db)
    before = projector.require(1, VAULT)

    reconcile_real_assets(projector, FakeContractReader(failing=["*"]), 1, VAULT, 77)

    assert projector.require(1, VAULT) == before
