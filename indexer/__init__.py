"""Event-sourced vault state indexer package."""

from indexer.chain_reader import ContractReader, Web3ContractReader
from indexer.checkpoints import identifier_state_at, vault_state_at
from indexer.config import IndexerConfig, load_indexer_config
from indexer.diagnostics import RealAssetsReport, reconcile_real_assets
from indexer.dispatcher import DispatchResult, VaultEventDispatcher
from indexer.errors import (
    ConcurrentUpdateError,
    ContractReadError,
    IndexerAbortError,
    OutOfOrderEventError,
    VaultNotFoundError,
)
from indexer.events import EventCoordinate, VaultEvent, decode_event
from indexer.historical_snapshot import snapshot_at_block

__all__ = [
    "ConcurrentUpdateError",
    "ContractReadError",
    "ContractReader",
    "DispatchResult",
    "EventCoordinate",
    "IndexerAbortError",
    "IndexerConfig",
    "OutOfOrderEventError",
    "RealAssetsReport",
    "VaultEvent",
    "VaultEventDispatcher",
    "VaultNotFoundError",
    "Web3ContractReader",
    "decode_event",
    "identifier_state_at",
    "load_indexer_config",
    "reconcile_real_assets",
    "snapshot_at_block",
    "vault_state_at",
]
