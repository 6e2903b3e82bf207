"""Per-account depositor ledger: share balances and lifetime deposit/withdraw totals."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Optional

from indexer.common import ZERO_ADDRESS, IndexerDatabase, to_int
from indexer.events import Deposited, EventCoordinate, SharesTransferred, VaultEvent, Withdrawn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultAccountRow:
    chain_id: int
    vault_address: str
    account_address: str
    shares_balance: int
    deposit_count: int
    total_deposited_assets: int
    total_deposited_shares: int
    withdraw_count: int
    total_withdrawn_assets: int
    total_withdrawn_shares: int
    first_seen_block_number: int
    first_seen_block_timestamp: int
    first_seen_transaction_hash: str
    last_seen_block_number: int
    last_seen_block_timestamp: int
    last_transaction_hash: str
    last_log_index: int


ACCOUNT_COLUMNS: tuple[str, ...] = tuple(VaultAccountRow.__dataclass_fields__)
_TEXT_COLUMNS: frozenset[str] = frozenset(
    {"vault_address", "account_address", "first_seen_transaction_hash", "last_transaction_hash"}
)

_ACCUMULATED_COLUMNS: tuple[str, ...] = (
    "shares_balance",
    "deposit_count",
    "total_deposited_assets",
    "total_deposited_shares",
    "withdraw_count",
    "total_withdrawn_assets",
    "total_withdrawn_shares",
)

_UPSERT_SQL = f"""
    INSERT INTO vault_account (
        chain_id, vault_address, account_address,
        {", ".join(_ACCUMULATED_COLUMNS)},
        first_seen_block_number, first_seen_block_timestamp, first_seen_transaction_hash,
        last_seen_block_number, last_seen_block_timestamp, last_transaction_hash, last_log_index
    )
    VALUES (
        :chain_id, :vault_address, :account_address,
        {", ".join(f":{column}" for column in _ACCUMULATED_COLUMNS)},
        :block_number, :block_timestamp, :transaction_hash,
        :block_number, :block_timestamp, :transaction_hash, :log_index
    )
    ON CONFLICT (chain_id, vault_address, account_address)
    DO UPDATE SET
        {", ".join(f"{column} = vault_account.{column} + excluded.{column}" for column in _ACCUMULATED_COLUMNS)},
        last_seen_block_number = excluded.last_seen_block_number,
        last_seen_block_timestamp = excluded.last_seen_block_timestamp,
        last_transaction_hash = excluded.last_transaction_hash,
        last_log_index = excluded.last_log_index
    RETURNING shares_balance
"""


def _row_from_mapping(row: Mapping[str, Any]) -> VaultAccountRow:
    return VaultAccountRow(
        **{
            column: str(row[column]) if column in _TEXT_COLUMNS else to_int(row[column])
            for column in ACCOUNT_COLUMNS
        }
    )


class DepositorLedger:
    """Additive upserts keyed by (chain, vault, account).

    Counters and totals only grow; ``first_seen_*`` is written on insert only and
    ``last_seen_*`` on every touch.
    """

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def apply(self, event: VaultEvent) -> None:
        if isinstance(event, Deposited):
            self._upsert(
                event.coordinate,
                event.on_behalf,
                deposit_count=1,
                total_deposited_assets=event.assets,
                total_deposited_shares=event.shares,
            )
        elif isinstance(event, Withdrawn):
            self._upsert(
                event.coordinate,
                event.on_behalf,
                withdraw_count=1,
                total_withdrawn_assets=event.assets,
                total_withdrawn_shares=event.shares,
            )
        elif isinstance(event, SharesTransferred):
            if event.from_address != ZERO_ADDRESS:
                self._upsert(event.coordinate, event.from_address, shares_balance=-event.shares)
            if event.to_address != ZERO_ADDRESS:
                self._upsert(event.coordinate, event.to_address, shares_balance=event.shares)

    def get(self, chain_id: int, vault_address: str, account_address: str) -> Optional[VaultAccountRow]:
        row = self._db.fetch_one(
            f"""
            SELECT {", ".join(ACCOUNT_COLUMNS)}
            FROM vault_account
            WHERE chain_id = :chain_id
              AND vault_address = :vault_address
              AND account_address = :account_address
            """,
            {"chain_id": chain_id, "vault_address": vault_address, "account_address": account_address},
        )
        return None if row is None else _row_from_mapping(row)

    def _upsert(self, coordinate: EventCoordinate, account: str, **deltas: int) -> None:
        params: dict[str, Any] = {column: deltas.get(column, 0) for column in _ACCUMULATED_COLUMNS}
        params.update(
            {
                "chain_id": coordinate.chain_id,
                "vault_address": coordinate.vault_address,
                "account_address": account,
                "block_number": coordinate.block_number,
                "block_timestamp": coordinate.block_timestamp,
                "transaction_hash": coordinate.transaction_hash,
                "log_index": coordinate.log_index,
            }
        )
        row = self._db.fetch_one(_UPSERT_SQL, params)
        if row is not None and to_int(row["shares_balance"]) < 0:
            # Holdings acquired before indexing started are not observable.
            logger.warning(
                "Account %s in vault %s has negative share balance %s after event %s.",
                account,
                coordinate.vault_address,
                row["shares_balance"],
                coordinate.event_id,
            )
