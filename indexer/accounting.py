"""Accounting update rules for total assets, total supply and last update time."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from indexer.events import Deposited, InterestAccrued, SharesTransferred, VaultEvent, Withdrawn
from indexer.vault_state import VaultStateProjector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountingChange:
    """Effect of one event on vault totals; ``None`` fields are left untouched."""

    assets_delta: int = 0
    supply_delta: int = 0
    total_assets: Optional[int] = None
    last_update_timestamp: Optional[int] = None

    @property
    def is_noop(self) -> bool:
        return (
            self.assets_delta == 0
            and self.supply_delta == 0
            and self.total_assets is None
            and self.last_update_timestamp is None
        )


NO_CHANGE = AccountingChange()


def accounting_change(event: VaultEvent) -> AccountingChange:
    """Map an event to its accounting effect.

    Mint and burn are detected structurally against the zero address. A transfer with
    both endpoints at the zero address has no defined meaning and changes nothing.
    """
    if isinstance(event, InterestAccrued):
        return AccountingChange(
            total_assets=event.new_total_assets,
            last_update_timestamp=event.coordinate.block_timestamp,
        )
    if isinstance(event, Deposited):
        return AccountingChange(assets_delta=event.assets)
    if isinstance(event, Withdrawn):
        return AccountingChange(assets_delta=-event.assets)
    if isinstance(event, SharesTransferred):
        if event.is_null_transfer:
            return NO_CHANGE
        if event.is_mint:
            return AccountingChange(supply_delta=event.shares)
        if event.is_burn:
            return AccountingChange(supply_delta=-event.shares)
    return NO_CHANGE


def apply_accounting(projector: VaultStateProjector, event: VaultEvent) -> AccountingChange:
    change = accounting_change(event)
    if isinstance(event, SharesTransferred) and event.is_null_transfer:
        logger.warning(
            "Ignoring transfer of %s shares from and to the zero address in event %s.",
            event.shares,
            event.event_id,
        )
    if change.is_noop:
        return change

    coordinate = event.coordinate
    if change.total_assets is not None or change.last_update_timestamp is not None:
        updates: dict[str, int] = {}
        if change.total_assets is not None:
            updates["total_assets"] = change.total_assets
        if change.last_update_timestamp is not None:
            updates["last_update_timestamp"] = change.last_update_timestamp
        projector.set_fields(coordinate.chain_id, coordinate.vault_address, updates)
    if change.assets_delta or change.supply_delta:
        projector.add_totals(
            coordinate.chain_id,
            coordinate.vault_address,
            assets_delta=change.assets_delta,
            supply_delta=change.supply_delta,
        )
    return change
