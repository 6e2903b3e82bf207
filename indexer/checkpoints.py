"""Append-only checkpoint timelines and "state as of time T" lookups."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Optional, Sequence

from indexer.common import IndexerDatabase, to_int
from indexer.events import EventCoordinate
from indexer.identifier_state import IdentifierStateRow
from indexer.vault_state import VaultRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultCheckpointRow:
    id: str
    chain_id: int
    vault_address: str
    block_number: int
    block_timestamp: int
    transaction_hash: str
    transaction_index: int
    log_index: int
    total_assets: int
    total_supply: int
    max_rate: int
    performance_fee: int
    management_fee: int
    performance_fee_recipient: str
    management_fee_recipient: str
    last_update_timestamp: int


@dataclass(frozen=True)
class CapCheckpointRow:
    id: str
    chain_id: int
    vault_address: str
    identifier_hash: str
    identifier_data: Optional[str]
    block_number: int
    block_timestamp: int
    transaction_hash: str
    transaction_index: int
    log_index: int
    absolute_cap: int
    relative_cap: int
    allocation: int


_VAULT_CHECKPOINT_COLUMNS: tuple[str, ...] = tuple(VaultCheckpointRow.__dataclass_fields__)
_CAP_CHECKPOINT_COLUMNS: tuple[str, ...] = tuple(CapCheckpointRow.__dataclass_fields__)
_TEXT_COLUMNS: frozenset[str] = frozenset(
    {
        "id",
        "vault_address",
        "transaction_hash",
        "performance_fee_recipient",
        "management_fee_recipient",
        "identifier_hash",
    }
)


def _coerce(row: Mapping[str, Any], columns: Sequence[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for column in columns:
        raw = row[column]
        if column in _TEXT_COLUMNS:
            values[column] = str(raw)
        elif column == "identifier_data":
            values[column] = None if raw is None else str(raw)
        else:
            values[column] = to_int(raw)
    return values


def _coordinate_params(checkpoint_id: str, coordinate: EventCoordinate) -> dict[str, Any]:
    return {
        "id": checkpoint_id,
        "chain_id": coordinate.chain_id,
        "vault_address": coordinate.vault_address,
        "block_number": coordinate.block_number,
        "block_timestamp": coordinate.block_timestamp,
        "transaction_hash": coordinate.transaction_hash,
        "transaction_index": coordinate.transaction_index,
        "log_index": coordinate.log_index,
    }


def _insert(db: IndexerDatabase, table: str, params: Mapping[str, Any]) -> bool:
    columns = list(params)
    inserted = db.fetch_one(
        f"""
        INSERT INTO {table} ({", ".join(columns)})
        VALUES ({", ".join(f":{column}" for column in columns)})
        ON CONFLICT (id) DO NOTHING
        RETURNING id
        """,
        params,
    )
    return inserted is not None


class VaultCheckpointManager:
    """Snapshots vault accounting and fee config right after a triggering event."""

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def record(self, coordinate: EventCoordinate, vault: VaultRow) -> bool:
        params = _coordinate_params(coordinate.event_id, coordinate)
        params.update(
            {
                "total_assets": vault.total_assets,
                "total_supply": vault.total_supply,
                "max_rate": vault.max_rate,
                "performance_fee": vault.performance_fee,
                "management_fee": vault.management_fee,
                "performance_fee_recipient": vault.performance_fee_recipient,
                "management_fee_recipient": vault.management_fee_recipient,
                "last_update_timestamp": vault.last_update_timestamp,
            }
        )
        inserted = _insert(self._db, "vault_checkpoint", params)
        if not inserted:
            logger.info("Vault checkpoint %s already exists.", coordinate.event_id)
        return inserted


class CapCheckpointManager:
    """Snapshots one identifier's caps and allocation right after a triggering event."""

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def record(
        self,
        coordinate: EventCoordinate,
        state: IdentifierStateRow,
        *,
        identifier_data: Optional[str] = None,
        position: Optional[int] = None,
    ) -> bool:
        """``position`` suffixes the id when one event touches several identifiers."""
        checkpoint_id = coordinate.event_id if position is None else f"{coordinate.event_id}-{position}"
        params = _coordinate_params(checkpoint_id, coordinate)
        params.update(
            {
                "identifier_hash": state.identifier_hash,
                "identifier_data": identifier_data,
                "absolute_cap": state.absolute_cap,
                "relative_cap": state.relative_cap,
                "allocation": state.allocation,
            }
        )
        inserted = _insert(self._db, "cap_checkpoint", params)
        if not inserted:
            logger.info("Cap checkpoint %s already exists.", checkpoint_id)
        return inserted


def vault_state_at(
    db: IndexerDatabase,
    chain_id: int,
    vault_address: str,
    timestamp: int,
) -> Optional[VaultCheckpointRow]:
    """Latest vault checkpoint with block_timestamp <= ``timestamp``."""
    row = db.fetch_one(
        f"""
        SELECT {", ".join(_VAULT_CHECKPOINT_COLUMNS)}
        FROM vault_checkpoint
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
          AND block_timestamp <= :timestamp
        ORDER BY block_timestamp DESC, block_number DESC, transaction_index DESC, log_index DESC
        LIMIT 1
        """,
        {"chain_id": chain_id, "vault_address": vault_address, "timestamp": timestamp},
    )
    return None if row is None else VaultCheckpointRow(**_coerce(row, _VAULT_CHECKPOINT_COLUMNS))


def identifier_state_at(
    db: IndexerDatabase,
    chain_id: int,
    vault_address: str,
    identifier_hash: str,
    timestamp: int,
) -> Optional[CapCheckpointRow]:
    """Latest cap checkpoint of one identifier with block_timestamp <= ``timestamp``."""
    row = db.fetch_one(
        f"""
        SELECT {", ".join(_CAP_CHECKPOINT_COLUMNS)}
        FROM cap_checkpoint
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
          AND identifier_hash = :identifier_hash
          AND block_timestamp <= :timestamp
        ORDER BY block_timestamp DESC, block_number DESC, transaction_index DESC, log_index DESC
        LIMIT 1
        """,
        {
            "chain_id": chain_id,
            "vault_address": vault_address,
            "identifier_hash": identifier_hash,
            "timestamp": timestamp,
        },
    )
    return None if row is None else CapCheckpointRow(**_coerce(row, _CAP_CHECKPOINT_COLUMNS))


def vault_checkpoints(db: IndexerDatabase, chain_id: int, vault_address: str) -> Sequence[VaultCheckpointRow]:
    """Full vault timeline in canonical event order."""
    rows = db.fetch_all(
        f"""
        SELECT {", ".join(_VAULT_CHECKPOINT_COLUMNS)}
        FROM vault_checkpoint
        WHERE chain_id = :chain_id
          AND vault_address = :vault_address
        ORDER BY block_number ASC, transaction_index ASC, log_index ASC
        """,
        {"chain_id": chain_id, "vault_address": vault_address},
    )
    return tuple(VaultCheckpointRow(**_coerce(row, _VAULT_CHECKPOINT_COLUMNS)) for row in rows)
