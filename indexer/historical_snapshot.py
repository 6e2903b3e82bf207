"""Denormalized full-state vault snapshots, one per allow-listed event."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Optional

from indexer.chain_reader import ContractReader
from indexer.common import WAD, IndexerDatabase, dump_json, int_map, load_json, to_int
from indexer.errors import ContractReadError
from indexer.events import SharesTransferred, VaultEvent
from indexer.identifier_state import IdentifierStateTracker
from indexer.vault_state import VaultRow

logger = logging.getLogger(__name__)

# Event kinds that produce a snapshot; anything else would only add duplicate rows.
SNAPSHOT_EVENT_KINDS: frozenset[str] = frozenset(
    {
        "Deposit",
        "Withdraw",
        "AccrueInterest",
        "Transfer",
        "Allocate",
        "Deallocate",
        "ForceDeallocate",
        "IncreaseAbsoluteCap",
        "DecreaseAbsoluteCap",
        "IncreaseRelativeCap",
        "DecreaseRelativeCap",
        "SetIsAllocator",
        "SetIsSentinel",
        "SetPerformanceFee",
        "SetManagementFee",
        "SetPerformanceFeeRecipient",
        "SetManagementFeeRecipient",
        "SetMaxRate",
        "SetOwner",
        "SetCurator",
        "AddAdapter",
        "RemoveAdapter",
        "SetAdapterRegistry",
        "SetLiquidityAdapterAndData",
        "SetForceDeallocatePenalty",
        "SetReceiveSharesGate",
        "SetSendSharesGate",
        "SetReceiveAssetsGate",
        "SetSendAssetsGate",
    }
)


@dataclass(frozen=True)
class HistoricalSnapshotRow:
    id: str
    chain_id: int
    vault_address: str
    block_number: int
    block_timestamp: int
    transaction_hash: str
    transaction_index: int
    log_index: int
    event_type: str
    total_assets: int
    total_supply: int
    raw_share_price: int
    share_price: int
    last_update_timestamp: int
    allocations: dict[str, str]
    absolute_caps: dict[str, str]
    relative_caps: dict[str, str]
    total_allocated: int
    max_rate: int
    performance_fee: int
    management_fee: int
    performance_fee_recipient: str
    management_fee_recipient: str
    allocators: tuple[str, ...]
    sentinels: tuple[str, ...]
    adapters: tuple[str, ...]
    receive_shares_gate: str
    send_shares_gate: str
    receive_assets_gate: str
    send_assets_gate: str
    owner: str
    curator: str
    adapter_registry: str
    liquidity_adapter: str


SNAPSHOT_COLUMNS: tuple[str, ...] = tuple(HistoricalSnapshotRow.__dataclass_fields__)

_MAP_COLUMNS: frozenset[str] = frozenset({"allocations", "absolute_caps", "relative_caps"})
_LIST_COLUMNS: frozenset[str] = frozenset({"allocators", "sentinels", "adapters"})
_INT_COLUMNS: frozenset[str] = frozenset(
    {
        "chain_id",
        "block_number",
        "block_timestamp",
        "transaction_index",
        "log_index",
        "total_assets",
        "total_supply",
        "raw_share_price",
        "share_price",
        "last_update_timestamp",
        "total_allocated",
        "max_rate",
        "performance_fee",
        "management_fee",
    }
)


def snapshot_from_mapping(row: Mapping[str, Any]) -> HistoricalSnapshotRow:
    values: dict[str, Any] = {}
    for column in SNAPSHOT_COLUMNS:
        raw = row[column]
        if column in _MAP_COLUMNS:
            values[column] = {str(key): str(value) for key, value in sorted(load_json(raw, {}).items())}
        elif column in _LIST_COLUMNS:
            values[column] = tuple(load_json(raw, []))
        elif column in _INT_COLUMNS:
            values[column] = to_int(raw)
        else:
            values[column] = str(raw)
    return HistoricalSnapshotRow(**values)


def raw_share_price(total_assets: int, total_supply: int) -> int:
    """WAD-scaled assets per share; 1:1 when no shares exist."""
    if total_supply == 0:
        return WAD
    return total_assets * WAD // total_supply


def should_snapshot(event: VaultEvent) -> bool:
    if event.kind not in SNAPSHOT_EVENT_KINDS:
        return False
    if isinstance(event, SharesTransferred):
        return event.is_mint or event.is_burn
    return True


class HistoricalSnapshotCompactor:
    """Builds complete, join-free vault state rows for point-in-time reads."""

    def __init__(
        self,
        db: IndexerDatabase,
        reader: ContractReader,
        identifiers: IdentifierStateTracker,
        *,
        canonical_price_enabled: bool = True,
    ) -> None:
        self._db = db
        self._reader = reader
        self._identifiers = identifiers
        self._canonical_price_enabled = canonical_price_enabled

    def capture(self, event: VaultEvent, vault: VaultRow) -> Optional[HistoricalSnapshotRow]:
        """Insert a snapshot of ``vault`` after ``event``; returns None when not allow-listed."""
        if not should_snapshot(event):
            return None

        coordinate = event.coordinate
        states = self._identifiers.list_for_vault(coordinate.chain_id, coordinate.vault_address)
        raw_price = raw_share_price(vault.total_assets, vault.total_supply)

        snapshot = HistoricalSnapshotRow(
            id=coordinate.event_id,
            chain_id=coordinate.chain_id,
            vault_address=coordinate.vault_address,
            block_number=coordinate.block_number,
            block_timestamp=coordinate.block_timestamp,
            transaction_hash=coordinate.transaction_hash,
            transaction_index=coordinate.transaction_index,
            log_index=coordinate.log_index,
            event_type=event.kind,
            total_assets=vault.total_assets,
            total_supply=vault.total_supply,
            raw_share_price=raw_price,
            share_price=self._canonical_price(coordinate.vault_address, coordinate.block_number, raw_price),
            last_update_timestamp=vault.last_update_timestamp,
            allocations=int_map((state.identifier_hash, state.allocation) for state in states),
            absolute_caps=int_map((state.identifier_hash, state.absolute_cap) for state in states),
            relative_caps=int_map((state.identifier_hash, state.relative_cap) for state in states),
            total_allocated=sum(state.allocation for state in states),
            max_rate=vault.max_rate,
            performance_fee=vault.performance_fee,
            management_fee=vault.management_fee,
            performance_fee_recipient=vault.performance_fee_recipient,
            management_fee_recipient=vault.management_fee_recipient,
            allocators=tuple(sorted(vault.allocators)),
            sentinels=tuple(sorted(vault.sentinels)),
            adapters=tuple(sorted(vault.adapters)),
            receive_shares_gate=vault.receive_shares_gate,
            send_shares_gate=vault.send_shares_gate,
            receive_assets_gate=vault.receive_assets_gate,
            send_assets_gate=vault.send_assets_gate,
            owner=vault.owner,
            curator=vault.curator,
            adapter_registry=vault.adapter_registry,
            liquidity_adapter=vault.liquidity_adapter,
        )

        previous = latest_snapshot(self._db, coordinate.chain_id, coordinate.vault_address)
        if not self._insert(snapshot):
            logger.info("Historical snapshot %s already exists.", snapshot.id)
            return snapshot
        self._log_changes(previous, snapshot)
        return snapshot

    def _canonical_price(self, vault_address: str, block_number: int, raw_price: int) -> int:
        if not self._canonical_price_enabled:
            return raw_price
        try:
            return to_int(self._reader.read(vault_address, "convertToAssets", (WAD,), block_number))
        except ContractReadError as exc:
            logger.warning(
                "convertToAssets failed for vault %s at block %s; using raw share price: %s",
                vault_address,
                block_number,
                exc,
            )
            return raw_price

    def _insert(self, snapshot: HistoricalSnapshotRow) -> bool:
        params: dict[str, Any] = {}
        for column in SNAPSHOT_COLUMNS:
            value = getattr(snapshot, column)
            if column in _MAP_COLUMNS:
                params[column] = dump_json(value)
            elif column in _LIST_COLUMNS:
                params[column] = dump_json(list(value))
            else:
                params[column] = value
        inserted = self._db.fetch_one(
            f"""
            INSERT INTO vault_metrics_historical ({", ".join(SNAPSHOT_COLUMNS)})
            VALUES ({", ".join(f":{column}" for column in SNAPSHOT_COLUMNS)})
            ON CONFLICT (id) DO NOTHING
            RETURNING id
            """,
            params,
        )
        return inserted is not None

    @staticmethod
    def _log_changes(previous: Optional[HistoricalSnapshotRow], current: HistoricalSnapshotRow) -> None:
        if previous is None:
            logger.info(
                "First historical snapshot for vault %s at block %s (%s).",
                current.vault_address,
                current.block_number,
                current.event_type,
            )
            return
        logger.info(
            "Snapshot %s for vault %s: total_assets %s -> %s, total_allocated %s -> %s, "
            "allocators %s -> %s, raw_share_price %s -> %s, share_price %s -> %s.",
            current.event_type,
            current.vault_address,
            previous.total_assets,
            current.total_assets,
            previous.total_allocated,
            current.total_allocated,
            len(previous.allocators),
            len(current.allocators),
            previous.raw_share_price,
            current.raw_share_price,
            previous.share_price,
            current.share_price,
        )


def latest_snapshot(db: IndexerDatabase, chain_id: int, vault_address: str) -> Optional[HistoricalSnapshotRow]:
    row = db.fetch_one(
        f"""
        SELECT {", ".join(SNAPSHOT_COLUMNS)}
        FROM vault_metrics_historical
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
        ORDER BY block_number DESC, transaction_index DESC, log_index DESC
        LIMIT 1
        """,
        {"chain_id": chain_id, "vault_address": vault_address},
    )
    return None if row is None else snapshot_from_mapping(row)


def snapshot_at_block(
    db: IndexerDatabase,
    chain_id: int,
    vault_address: str,
    block_number: int,
) -> Optional[HistoricalSnapshotRow]:
    """Complete vault state as of the end of ``block_number``."""
    row = db.fetch_one(
        f"""
        SELECT {", ".join(SNAPSHOT_COLUMNS)}
        FROM vault_metrics_historical
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
          AND block_number <= :block_number
        ORDER BY block_number DESC, transaction_index DESC, log_index DESC
        LIMIT 1
        """,
        {"chain_id": chain_id, "vault_address": vault_address, "block_number": block_number},
    )
    return None if row is None else snapshot_from_mapping(row)


def snapshots_for_vault(db: IndexerDatabase, chain_id: int, vault_address: str) -> tuple[HistoricalSnapshotRow, ...]:
    rows = db.fetch_all(
        f"""
        SELECT {", ".join(SNAPSHOT_COLUMNS)}
        FROM vault_metrics_historical
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
        ORDER BY block_number ASC, transaction_index ASC, log_index ASC
        """,
        {"chain_id": chain_id, "vault_address": vault_address},
    )
    return tuple(snapshot_from_mapping(row) for row in rows)
