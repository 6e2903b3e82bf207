"""Event dispatcher: routes each decoded event through the state-reconstruction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Callable, Iterable, Optional, Sequence

from backend.db.enums import GateType, MembershipAction, VaultOrigin
from indexer import events as ev
from indexer.accounting import apply_accounting
from indexer.backfill import BackfillResolver
from indexer.chain_reader import ContractReader
from indexer.checkpoints import CapCheckpointManager, VaultCheckpointManager
from indexer.common import IndexerDatabase, normalize_data
from indexer.config import IndexerConfig
from indexer.depositors import DepositorLedger
from indexer.errors import ContractReadError
from indexer.historical_snapshot import HistoricalSnapshotCompactor
from indexer.identifier_state import IdentifierStateTracker
from indexer.ledger import EventLedger
from indexer.vault_state import AdapterPenaltyStore, VaultRow, VaultStateProjector, toggle_member

logger = logging.getLogger(__name__)

STATUS_APPLIED = "APPLIED"
STATUS_DUPLICATE = "DUPLICATE"

_GATE_COLUMNS: dict[GateType, str] = {
    GateType.RECEIVE_SHARES: "receive_shares_gate",
    GateType.SEND_SHARES: "send_shares_gate",
    GateType.RECEIVE_ASSETS: "receive_assets_gate",
    GateType.SEND_ASSETS: "send_assets_gate",
}

# Events whose effect shows up in the vault checkpoint columns.
_VAULT_CHECKPOINT_TYPES: tuple[type[ev.VaultEvent], ...] = (
    ev.InterestAccrued,
    ev.Deposited,
    ev.Withdrawn,
    ev.MaxRateSet,
    ev.PerformanceFeeSet,
    ev.ManagementFeeSet,
    ev.PerformanceFeeRecipientSet,
    ev.ManagementFeeRecipientSet,
)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of processing one event."""

    event_id: str
    kind: str
    status: str
    vault_checkpoint: bool = False
    cap_checkpoints: int = 0
    snapshot: bool = False


def _needs_vault_checkpoint(event: ev.VaultEvent) -> bool:
    if isinstance(event, ev.SharesTransferred):
        return event.is_mint or event.is_burn
    return isinstance(event, _VAULT_CHECKPOINT_TYPES)


class VaultEventDispatcher:
    """Applies one event at a time, all-or-nothing.

    Sequence per event: backfill (non-creation events) -> ledger insert -> ordering guard
    -> projection mutation -> identifier mutation -> checkpoints -> historical snapshot
    -> depositor ledger. A ledger conflict marks a re-delivered event and rolls back.
    """

    def __init__(
        self,
        db: IndexerDatabase,
        reader: ContractReader,
        *,
        canonical_price_enabled: bool = True,
        force_deallocate_applies_delta: bool = True,
        max_update_retries: int = 3,
    ) -> None:
        self._db = db
        self._reader = reader
        self._force_deallocate_applies_delta = force_deallocate_applies_delta
        self.projector = VaultStateProjector(db, max_update_retries=max_update_retries)
        self.identifiers = IdentifierStateTracker(db)
        self.penalties = AdapterPenaltyStore(db)
        self.ledger = EventLedger(db)
        self.backfill = BackfillResolver(self.projector, reader)
        self.vault_checkpoints = VaultCheckpointManager(db)
        self.cap_checkpoints = CapCheckpointManager(db)
        self.snapshots = HistoricalSnapshotCompactor(
            db,
            reader,
            self.identifiers,
            canonical_price_enabled=canonical_price_enabled,
        )
        self.depositors = DepositorLedger(db)

    @classmethod
    def from_config(
        cls,
        db: IndexerDatabase,
        reader: ContractReader,
        config: IndexerConfig,
    ) -> "VaultEventDispatcher":
        return cls(
            db,
            reader,
            canonical_price_enabled=config.canonical_price_enabled,
            force_deallocate_applies_delta=config.force_deallocate_applies_delta,
            max_update_retries=config.max_update_retries,
        )

    def dispatch_many(self, events: Iterable[ev.VaultEvent]) -> Sequence[DispatchResult]:
        return tuple(self.dispatch(event) for event in events)

    def dispatch(self, event: ev.VaultEvent) -> DispatchResult:
        begin = getattr(self._db, "begin", None)
        commit = getattr(self._db, "commit", None)
        rollback = getattr(self._db, "rollback", None)
        tx_started = False

        try:
            if callable(begin):
                begin()
                tx_started = True

            result = self._process(event)

            if tx_started:
                if result.status == STATUS_DUPLICATE:
                    if callable(rollback):
                        rollback()
                elif callable(commit):
                    commit()
            return result
        except Exception:
            logger.exception("Failed to apply %s event %s.", event.kind, event.event_id)
            if tx_started and callable(rollback):
                rollback()
            raise

    def _process(self, event: ev.VaultEvent) -> DispatchResult:
        coordinate = event.coordinate

        if isinstance(event, ev.VaultCreated):
            if not self.ledger.insert(event):
                return DispatchResult(event.event_id, event.kind, STATUS_DUPLICATE)
            self._create_vault(event)
            self.projector.record_applied(coordinate)
            return DispatchResult(event.event_id, event.kind, STATUS_APPLIED)

        self.backfill.ensure_vault(coordinate)
        if isinstance(event, ev.LiquidityAdapterSet) and event.new_liquidity_data is None:
            # Re-deliveries skip the chain read.
            if self.ledger.contains(event):
                logger.info("Event %s already recorded; skipping liquidity data read.", event.event_id)
                return DispatchResult(event.event_id, event.kind, STATUS_DUPLICATE)
            event = replace(event, new_liquidity_data=self._resolve_liquidity_data(event))

        if not self.ledger.insert(event):
            return DispatchResult(event.event_id, event.kind, STATUS_DUPLICATE)
        self.projector.assert_in_order(coordinate)

        self._mutate_vault(event)
        cap_checkpoints = self._mutate_identifiers(event)
        self.projector.record_applied(coordinate)

        vault = self.projector.require(coordinate.chain_id, coordinate.vault_address)
        vault_checkpoint = False
        if _needs_vault_checkpoint(event):
            vault_checkpoint = self.vault_checkpoints.record(coordinate, vault)
        snapshot = self.snapshots.capture(event, vault)
        self.depositors.apply(event)

        return DispatchResult(
            event_id=event.event_id,
            kind=event.kind,
            status=STATUS_APPLIED,
            vault_checkpoint=vault_checkpoint,
            cap_checkpoints=cap_checkpoints,
            snapshot=snapshot is not None,
        )

    def _create_vault(self, event: ev.VaultCreated) -> None:
        coordinate = event.coordinate
        row = VaultRow(
            chain_id=coordinate.chain_id,
            address=coordinate.vault_address,
            created_at_block=coordinate.block_number,
            created_at_timestamp=coordinate.block_timestamp,
            created_at_transaction=coordinate.transaction_hash,
            origin=VaultOrigin.CONSTRUCTOR.value,
            asset=event.asset,
            owner=event.owner,
        )
        if not self.projector.insert(row):
            # Already materialized by an earlier backfill; keep that row.
            self.projector.assert_in_order(coordinate)
            logger.info("Vault %s already exists; constructor event recorded only.", coordinate.vault_address)

    def _resolve_liquidity_data(self, event: ev.LiquidityAdapterSet) -> str:
        coordinate = event.coordinate
        try:
            value = self._reader.read(coordinate.vault_address, "liquidityData", (), coordinate.block_number)
        except ContractReadError as exc:
            logger.warning(
                "liquidityData read failed for vault %s at block %s; storing empty data: %s",
                coordinate.vault_address,
                coordinate.block_number,
                exc,
            )
            return ""
        return normalize_data(value)

    def _mutate_vault(self, event: ev.VaultEvent) -> None:
        coordinate = event.coordinate
        chain_id, address = coordinate.chain_id, coordinate.vault_address

        replacements = self._field_replacements(event)
        if replacements:
            self.projector.set_fields(chain_id, address, replacements)
            return

        toggle = self._role_toggle(event)
        if toggle is not None:
            self.projector.apply(chain_id, address, toggle)
            return

        if isinstance(event, ev.ForceDeallocatePenaltySet):
            self.penalties.set_penalty(
                chain_id,
                address,
                event.adapter,
                event.force_deallocate_penalty,
                coordinate.block_number,
            )
            return

        apply_accounting(self.projector, event)

    @staticmethod
    def _field_replacements(event: ev.VaultEvent) -> dict[str, object]:
        if isinstance(event, ev.OwnerSet):
            return {"owner": event.new_owner}
        if isinstance(event, ev.CuratorSet):
            return {"curator": event.new_curator}
        if isinstance(event, ev.NameSet):
            return {"name": event.new_name}
        if isinstance(event, ev.SymbolSet):
            return {"symbol": event.new_symbol}
        if isinstance(event, ev.GateSet):
            return {_GATE_COLUMNS[event.gate_type]: event.new_gate}
        if isinstance(event, ev.AdapterRegistrySet):
            return {"adapter_registry": event.new_adapter_registry}
        if isinstance(event, ev.LiquidityAdapterSet):
            return {
                "liquidity_adapter": event.new_liquidity_adapter,
                "liquidity_data": event.new_liquidity_data or "",
            }
        if isinstance(event, ev.PerformanceFeeSet):
            return {"performance_fee": event.new_performance_fee}
        if isinstance(event, ev.PerformanceFeeRecipientSet):
            return {"performance_fee_recipient": event.new_performance_fee_recipient}
        if isinstance(event, ev.ManagementFeeSet):
            return {"management_fee": event.new_management_fee}
        if isinstance(event, ev.ManagementFeeRecipientSet):
            return {"management_fee_recipient": event.new_management_fee_recipient}
        if isinstance(event, ev.MaxRateSet):
            return {"max_rate": event.new_max_rate}
        return {}

    @staticmethod
    def _role_toggle(event: ev.VaultEvent) -> Optional[Callable[[VaultRow], dict[str, object]]]:
        if isinstance(event, ev.AllocatorSet):
            return lambda row: {
                "allocators": toggle_member(row.allocators, event.account, event.new_is_allocator)
            }
        if isinstance(event, ev.SentinelSet):
            return lambda row: {"sentinels": toggle_member(row.sentinels, event.account, event.new_is_sentinel)}
        if isinstance(event, ev.AdapterMembershipChanged):
            present = event.action is MembershipAction.ADD
            return lambda row: {"adapters": toggle_member(row.adapters, event.account, present)}
        return None

    def _mutate_identifiers(self, event: ev.VaultEvent) -> int:
        """Apply cap/allocation changes and write cap checkpoints; returns checkpoints written."""
        coordinate = event.coordinate
        chain_id, address = coordinate.chain_id, coordinate.vault_address

        if isinstance(event, (ev.AbsoluteCapChanged, ev.RelativeCapChanged)):
            if isinstance(event, ev.AbsoluteCapChanged):
                state = self.identifiers.set_cap(
                    chain_id, address, event.identifier_hash, "absolute_cap", event.new_absolute_cap
                )
            else:
                state = self.identifiers.set_cap(
                    chain_id, address, event.identifier_hash, "relative_cap", event.new_relative_cap
                )
            written = self.cap_checkpoints.record(coordinate, state, identifier_data=event.identifier_data)
            return int(written)

        if isinstance(event, (ev.Allocated, ev.Deallocated)):
            delta: Optional[int] = event.change
        elif isinstance(event, ev.ForceDeallocated):
            delta = -event.assets if self._force_deallocate_applies_delta else None
        else:
            return 0

        written = 0
        for position, identifier_hash in enumerate(event.ids):
            if delta is None:
                state = self.identifiers.get(chain_id, address, identifier_hash)
            else:
                state = self.identifiers.add_allocation(chain_id, address, identifier_hash, delta)
            written += int(self.cap_checkpoints.record(coordinate, state, position=position))
        return written
