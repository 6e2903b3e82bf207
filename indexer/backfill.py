"""Lazy materialization of vaults first referenced before their creation event."""

from __future__ import annotations

import logging
from typing import Any

from backend.db.enums import VaultOrigin
from indexer.chain_reader import ContractReader
from indexer.common import ZERO_ADDRESS, address_set, normalize_data, to_int
from indexer.errors import ContractReadError
from indexer.events import EventCoordinate
from indexer.vault_state import VaultRow, VaultStateProjector

logger = logging.getLogger(__name__)

# (row field, view function) pairs read at the referencing event's block.
_SCALAR_READS: tuple[tuple[str, str], ...] = (
    ("asset", "asset"),
    ("owner", "owner"),
    ("curator", "curator"),
    ("name", "name"),
    ("symbol", "symbol"),
    ("total_assets", "totalAssets"),
    ("total_supply", "totalSupply"),
    ("performance_fee", "performanceFee"),
    ("management_fee", "managementFee"),
    ("performance_fee_recipient", "performanceFeeRecipient"),
    ("management_fee_recipient", "managementFeeRecipient"),
    ("max_rate", "maxRate"),
    ("adapter_registry", "adapterRegistry"),
    ("liquidity_adapter", "liquidityAdapter"),
    ("liquidity_data", "liquidityData"),
    ("receive_shares_gate", "receiveSharesGate"),
    ("send_shares_gate", "sendSharesGate"),
    ("receive_assets_gate", "receiveAssetsGate"),
    ("send_assets_gate", "sendAssetsGate"),
    ("last_update_timestamp", "lastUpdate"),
)

_INT_FIELDS: frozenset[str] = frozenset(
    {
        "total_assets",
        "total_supply",
        "performance_fee",
        "management_fee",
        "max_rate",
        "last_update_timestamp",
    }
)


class BackfillResolver:
    """Creates the vault row from point-in-time reads, or a zeroed row if reads fail.

    Role sets (allocators, sentinels) have no enumerable view function and start empty;
    later role events populate them.
    """

    def __init__(self, projector: VaultStateProjector, reader: ContractReader) -> None:
        self._projector = projector
        self._reader = reader

    def ensure_vault(self, coordinate: EventCoordinate) -> VaultRow:
        existing = self._projector.find(coordinate.chain_id, coordinate.vault_address)
        if existing is not None:
            return existing

        try:
            row = self._read_full_row(coordinate)
        except ContractReadError as exc:
            logger.warning(
                "Backfill reads failed for vault %s at block %s; inserting degraded row: %s",
                coordinate.vault_address,
                coordinate.block_number,
                exc,
            )
            row = self._degraded_row(coordinate)

        # Existence was checked above; a concurrent insert loses harmlessly on the key.
        if self._projector.insert(row):
            logger.info(
                "Backfilled vault %s on chain %s at block %s (origin=%s).",
                coordinate.vault_address,
                coordinate.chain_id,
                coordinate.block_number,
                row.origin,
            )
        return self._projector.require(coordinate.chain_id, coordinate.vault_address)

    def _read(self, coordinate: EventCoordinate, function_name: str, *args: Any) -> Any:
        return self._reader.read(coordinate.vault_address, function_name, args, coordinate.block_number)

    def _read_full_row(self, coordinate: EventCoordinate) -> VaultRow:
        values: dict[str, Any] = {}
        for field_name, function_name in _SCALAR_READS:
            value = self._read(coordinate, function_name)
            if field_name in _INT_FIELDS:
                values[field_name] = to_int(value)
            elif field_name == "liquidity_data":
                values[field_name] = normalize_data(value)
            else:
                values[field_name] = str(value)

        adapter_count = to_int(self._read(coordinate, "adaptersLength"))
        adapters = [str(self._read(coordinate, "adapters", index)) for index in range(adapter_count)]

        return VaultRow(
            chain_id=coordinate.chain_id,
            address=coordinate.vault_address,
            created_at_block=coordinate.block_number,
            created_at_timestamp=coordinate.block_timestamp,
            created_at_transaction=coordinate.transaction_hash,
            origin=VaultOrigin.BACKFILL.value,
            adapters=tuple(address_set(adapters)),
            **values,
        )

    @staticmethod
    def _degraded_row(coordinate: EventCoordinate) -> VaultRow:
        return VaultRow(
            chain_id=coordinate.chain_id,
            address=coordinate.vault_address,
            created_at_block=coordinate.block_number,
            created_at_timestamp=coordinate.block_timestamp,
            created_at_transaction=coordinate.transaction_hash,
            origin=VaultOrigin.BACKFILL_DEGRADED.value,
            asset=ZERO_ADDRESS,
            owner=ZERO_ADDRESS,
        )
