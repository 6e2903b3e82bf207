"""Current-state projection of vaults: point lookups and guarded mutations."""

from __future__ import annotations

from dataclasses import dataclass, fields
import logging
from typing import Any, Callable, Mapping, Optional

from backend.db.enums import VaultOrigin
from indexer.common import IndexerDatabase, ZERO_ADDRESS, address_set, dump_json, load_json, to_int
from indexer.errors import ConcurrentUpdateError, OutOfOrderEventError, VaultNotFoundError
from indexer.events import EventCoordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultRow:
    """Latest projected state of one vault."""

    chain_id: int
    address: str
    created_at_block: int
    created_at_timestamp: int
    created_at_transaction: str
    origin: str
    asset: str
    owner: str
    curator: str = ZERO_ADDRESS
    allocators: tuple[str, ...] = ()
    sentinels: tuple[str, ...] = ()
    adapter_registry: str = ZERO_ADDRESS
    adapters: tuple[str, ...] = ()
    liquidity_adapter: str = ZERO_ADDRESS
    liquidity_data: str = ""
    performance_fee: int = 0
    performance_fee_recipient: str = ZERO_ADDRESS
    management_fee: int = 0
    management_fee_recipient: str = ZERO_ADDRESS
    max_rate: int = 0
    receive_shares_gate: str = ZERO_ADDRESS
    send_shares_gate: str = ZERO_ADDRESS
    receive_assets_gate: str = ZERO_ADDRESS
    send_assets_gate: str = ZERO_ADDRESS
    name: str = ""
    symbol: str = ""
    total_assets: int = 0
    total_supply: int = 0
    last_update_timestamp: int = 0
    last_event_block_number: Optional[int] = None
    last_event_transaction_index: Optional[int] = None
    last_event_log_index: Optional[int] = None
    row_version: int = 0

    @property
    def last_event_order_key(self) -> Optional[tuple[int, int, int]]:
        if self.last_event_block_number is None:
            return None
        return (
            self.last_event_block_number,
            self.last_event_transaction_index or 0,
            self.last_event_log_index or 0,
        )


VAULT_COLUMNS: tuple[str, ...] = tuple(field.name for field in fields(VaultRow))

_ROLE_SET_COLUMNS: frozenset[str] = frozenset({"allocators", "sentinels", "adapters"})
_INT_COLUMNS: frozenset[str] = frozenset(
    {
        "chain_id",
        "created_at_block",
        "created_at_timestamp",
        "performance_fee",
        "management_fee",
        "max_rate",
        "total_assets",
        "total_supply",
        "last_update_timestamp",
        "row_version",
    }
)
_NULLABLE_INT_COLUMNS: frozenset[str] = frozenset(
    {"last_event_block_number", "last_event_transaction_index", "last_event_log_index"}
)
# Columns only this module may write.
_GUARDED_COLUMNS: frozenset[str] = frozenset(
    {"chain_id", "address", "row_version", *_NULLABLE_INT_COLUMNS}
)


def vault_row_from_mapping(row: Mapping[str, Any]) -> VaultRow:
    values: dict[str, Any] = {}
    for column in VAULT_COLUMNS:
        raw = row[column]
        if column in _ROLE_SET_COLUMNS:
            values[column] = tuple(address_set(load_json(raw, [])))
        elif column in _INT_COLUMNS:
            values[column] = to_int(raw)
        elif column in _NULLABLE_INT_COLUMNS:
            values[column] = None if raw is None else to_int(raw)
        elif column == "origin":
            values[column] = raw.value if isinstance(raw, VaultOrigin) else str(raw)
        else:
            values[column] = raw
    return VaultRow(**values)


def _column_params(updates: Mapping[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for column, value in updates.items():
        if column in _ROLE_SET_COLUMNS:
            params[column] = dump_json(address_set(value))
        elif isinstance(value, VaultOrigin):
            params[column] = value.value
        else:
            params[column] = value
    return params


def toggle_member(members: tuple[str, ...], account: str, present: bool) -> tuple[str, ...]:
    """Add or remove one address; adding a member or removing a non-member is a no-op."""
    current = set(members)
    if present:
        current.add(account)
    else:
        current.discard(account)
    return tuple(sorted(current))


class VaultStateProjector:
    """Reads and mutates the single current-state row per vault.

    Every mutation bumps ``row_version``; read-modify-write updates are conditioned on the
    version they read so concurrent writers cannot silently overwrite each other.
    """

    def __init__(self, db: IndexerDatabase, *, max_update_retries: int = 3) -> None:
        self._db = db
        self._max_update_retries = max(1, max_update_retries)

    def find(self, chain_id: int, address: str) -> Optional[VaultRow]:
        row = self._db.fetch_one(
            f"""
            SELECT {", ".join(VAULT_COLUMNS)}
            FROM vault_v2
            WHERE chain_id = :chain_id
              AND address = :address
            """,
            {"chain_id": chain_id, "address": address},
        )
        return None if row is None else vault_row_from_mapping(row)

    def require(self, chain_id: int, address: str) -> VaultRow:
        row = self.find(chain_id, address)
        if row is None:
            raise VaultNotFoundError(f"vault_v2 row missing for {chain_id}:{address}")
        return row

    def exists(self, chain_id: int, address: str) -> bool:
        row = self._db.fetch_one(
            """
            SELECT 1 AS present
            FROM vault_v2
            WHERE chain_id = :chain_id
              AND address = :address
            """,
            {"chain_id": chain_id, "address": address},
        )
        return row is not None

    def insert(self, row: VaultRow) -> bool:
        """Insert a new vault row; returns False when the key already exists."""
        columns = [column for column in VAULT_COLUMNS if column not in _NULLABLE_INT_COLUMNS]
        params = _column_params({column: getattr(row, column) for column in columns})
        inserted = self._db.fetch_one(
            f"""
            INSERT INTO vault_v2 ({", ".join(columns)})
            VALUES ({", ".join(f":{column}" for column in columns)})
            ON CONFLICT (chain_id, address) DO NOTHING
            RETURNING address
            """,
            params,
        )
        return inserted is not None

    def set_fields(self, chain_id: int, address: str, updates: Mapping[str, Any]) -> None:
        """Overwrite configuration fields unconditionally."""
        self._update(chain_id, address, updates, expected_version=None)

    def apply(
        self,
        chain_id: int,
        address: str,
        mutate: Callable[[VaultRow], Mapping[str, Any]],
    ) -> VaultRow:
        """Optimistic read-modify-write; ``mutate`` returns the fields to replace."""
        for _ in range(self._max_update_retries):
            current = self.require(chain_id, address)
            updates = dict(mutate(current))
            if not updates:
                return current
            if self._update(chain_id, address, updates, expected_version=current.row_version):
                return self.require(chain_id, address)
            logger.warning(
                "Optimistic update lost a race on vault %s:%s at version %s; retrying.",
                chain_id,
                address,
                current.row_version,
            )
        raise ConcurrentUpdateError(
            f"vault_v2 {chain_id}:{address} update failed after {self._max_update_retries} attempts"
        )

    def add_totals(
        self,
        chain_id: int,
        address: str,
        *,
        assets_delta: int = 0,
        supply_delta: int = 0,
    ) -> None:
        """Additive accounting update resolved inside the store."""
        updated = self._db.fetch_one(
            """
            UPDATE vault_v2
            SET total_assets = total_assets + :assets_delta,
                total_supply = total_supply + :supply_delta,
                row_version = row_version + 1
            WHERE chain_id = :chain_id
              AND address = :address
            RETURNING total_assets, total_supply
            """,
            {
                "chain_id": chain_id,
                "address": address,
                "assets_delta": assets_delta,
                "supply_delta": supply_delta,
            },
        )
        if updated is None:
            raise VaultNotFoundError(f"vault_v2 row missing for {chain_id}:{address}")
        if to_int(updated["total_assets"]) < 0 or to_int(updated["total_supply"]) < 0:
            logger.warning(
                "Vault %s:%s accounting went negative (total_assets=%s, total_supply=%s).",
                chain_id,
                address,
                updated["total_assets"],
                updated["total_supply"],
            )

    def assert_in_order(self, coordinate: EventCoordinate) -> None:
        """Reject a new event that sorts before the last one applied to its vault."""
        row = self.require(coordinate.chain_id, coordinate.vault_address)
        last_key = row.last_event_order_key
        if last_key is not None and coordinate.order_key < last_key:
            raise OutOfOrderEventError(
                f"event {coordinate.event_id} at {coordinate.order_key} precedes last applied "
                f"event at {last_key} for vault {coordinate.vault_address}"
            )

    def record_applied(self, coordinate: EventCoordinate) -> None:
        """Advance the last-applied coordinate; never moves backwards."""
        self._db.execute(
            """
            UPDATE vault_v2
            SET last_event_block_number = :block_number,
                last_event_transaction_index = :transaction_index,
                last_event_log_index = :log_index,
                row_version = row_version + 1
            WHERE chain_id = :chain_id
              AND address = :address
            """,
            {
                "chain_id": coordinate.chain_id,
                "address": coordinate.vault_address,
                "block_number": coordinate.block_number,
                "transaction_index": coordinate.transaction_index,
                "log_index": coordinate.log_index,
            },
        )

    def _update(
        self,
        chain_id: int,
        address: str,
        updates: Mapping[str, Any],
        *,
        expected_version: Optional[int],
    ) -> bool:
        requested = set(updates)
        illegal = sorted((requested & _GUARDED_COLUMNS) | (requested - set(VAULT_COLUMNS)))
        if illegal:
            raise ValueError(f"Columns cannot be updated through the projector: {illegal}")

        assignments = ", ".join(f"{column} = :{column}" for column in updates)
        params = _column_params(updates)
        params.update({"chain_id": chain_id, "address": address})
        version_clause = ""
        if expected_version is not None:
            version_clause = "AND row_version = :expected_version"
            params["expected_version"] = expected_version

        updated = self._db.fetch_one(
            f"""
            UPDATE vault_v2
            SET {assignments},
                row_version = row_version + 1
            WHERE chain_id = :chain_id
              AND address = :address
              {version_clause}
            RETURNING row_version
            """,
            params,
        )
        if updated is not None:
            return True
        if expected_version is None or not self.exists(chain_id, address):
            raise VaultNotFoundError(f"vault_v2 row missing for {chain_id}:{address}")
        return False


class AdapterPenaltyStore:
    """Configured force-deallocate penalty per (vault, adapter)."""

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def set_penalty(
        self,
        chain_id: int,
        vault_address: str,
        adapter_address: str,
        penalty: int,
        block_number: int,
    ) -> None:
        self._db.execute(
            """
            INSERT INTO adapter_penalty (
                chain_id, vault_address, adapter_address, force_deallocate_penalty, updated_at_block
            )
            VALUES (:chain_id, :vault_address, :adapter_address, :penalty, :block_number)
            ON CONFLICT (chain_id, vault_address, adapter_address)
            DO UPDATE SET force_deallocate_penalty = excluded.force_deallocate_penalty,
                          updated_at_block = excluded.updated_at_block
            """,
            {
                "chain_id": chain_id,
                "vault_address": vault_address,
                "adapter_address": adapter_address,
                "penalty": penalty,
                "block_number": block_number,
            },
        )

    def get_penalty(self, chain_id: int, vault_address: str, adapter_address: str) -> int:
        row = self._db.fetch_one(
            """
            SELECT force_deallocate_penalty
            FROM adapter_penalty
            WHERE chain_id = :chain_id
              AND vault_address = :vault_address
              AND adapter_address = :adapter_address
            """,
            {"chain_id": chain_id, "vault_address": vault_address, "adapter_address": adapter_address},
        )
        return 0 if row is None else to_int(row["force_deallocate_penalty"])
