"""Append-only event ledger writer: one immutable row per observed event."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from indexer.common import IndexerDatabase, dump_json
from indexer import events as ev

logger = logging.getLogger(__name__)


_Payload = Callable[[Any], Mapping[str, Any]]


def _gate_payload(event: ev.GateSet) -> Mapping[str, Any]:
    return {"gate_type": event.gate_type.value, "new_gate": event.new_gate}


def _cap_payload(cap_field: str) -> _Payload:
    return lambda event: {
        "action": event.action.value,
        "sender": event.sender,
        "identifier_hash": event.identifier_hash,
        "identifier_data": event.identifier_data,
        cap_field: getattr(event, cap_field),
    }


def _allocation_payload(event: Any) -> Mapping[str, Any]:
    return {
        "sender": event.sender,
        "adapter": event.adapter,
        "assets": event.assets,
        "ids": dump_json(list(event.ids)),
        "change": event.change,
    }


# Event type -> (ledger table, payload builder).
LEDGER_ROUTES: dict[type[ev.VaultEvent], tuple[str, _Payload]] = {
    ev.VaultCreated: ("vault_created_event", lambda e: {"owner": e.owner, "asset": e.asset}),
    ev.OwnerSet: ("owner_set_event", lambda e: {"new_owner": e.new_owner}),
    ev.CuratorSet: ("curator_set_event", lambda e: {"new_curator": e.new_curator}),
    ev.SentinelSet: (
        "sentinel_set_event",
        lambda e: {"account": e.account, "new_is_sentinel": e.new_is_sentinel},
    ),
    ev.AllocatorSet: (
        "allocator_set_event",
        lambda e: {"account": e.account, "new_is_allocator": e.new_is_allocator},
    ),
    ev.NameSet: ("name_set_event", lambda e: {"new_name": e.new_name}),
    ev.SymbolSet: ("symbol_set_event", lambda e: {"new_symbol": e.new_symbol}),
    ev.GateSet: ("gate_set_event", _gate_payload),
    ev.AdapterRegistrySet: (
        "adapter_registry_set_event",
        lambda e: {"new_adapter_registry": e.new_adapter_registry},
    ),
    ev.AdapterMembershipChanged: (
        "adapter_membership_event",
        lambda e: {"action": e.action.value, "account": e.account},
    ),
    ev.TimelockChanged: (
        "timelock_duration_change_event",
        lambda e: {"action": e.action.value, "selector": e.selector, "new_duration": e.new_duration},
    ),
    ev.Abdicated: ("abdicate_event", lambda e: {"selector": e.selector}),
    ev.LiquidityAdapterSet: (
        "liquidity_adapter_set_event",
        lambda e: {
            "sender": e.sender,
            "new_liquidity_adapter": e.new_liquidity_adapter,
            "new_liquidity_data_topic": e.new_liquidity_data_topic,
            "new_liquidity_data": e.new_liquidity_data or "",
        },
    ),
    ev.PerformanceFeeSet: (
        "performance_fee_set_event",
        lambda e: {"new_performance_fee": e.new_performance_fee},
    ),
    ev.PerformanceFeeRecipientSet: (
        "performance_fee_recipient_set_event",
        lambda e: {"new_performance_fee_recipient": e.new_performance_fee_recipient},
    ),
    ev.ManagementFeeSet: (
        "management_fee_set_event",
        lambda e: {"new_management_fee": e.new_management_fee},
    ),
    ev.ManagementFeeRecipientSet: (
        "management_fee_recipient_set_event",
        lambda e: {"new_management_fee_recipient": e.new_management_fee_recipient},
    ),
    ev.AbsoluteCapChanged: ("absolute_cap_change_event", _cap_payload("new_absolute_cap")),
    ev.RelativeCapChanged: ("relative_cap_change_event", _cap_payload("new_relative_cap")),
    ev.MaxRateSet: ("max_rate_set_event", lambda e: {"new_max_rate": e.new_max_rate}),
    ev.ForceDeallocatePenaltySet: (
        "force_deallocate_penalty_set_event",
        lambda e: {"adapter": e.adapter, "force_deallocate_penalty": e.force_deallocate_penalty},
    ),
    ev.InterestAccrued: (
        "accrue_interest_event",
        lambda e: {
            "previous_total_assets": e.previous_total_assets,
            "new_total_assets": e.new_total_assets,
            "performance_fee_shares": e.performance_fee_shares,
            "management_fee_shares": e.management_fee_shares,
        },
    ),
    ev.Deposited: (
        "deposit_event",
        lambda e: {"sender": e.sender, "on_behalf": e.on_behalf, "assets": e.assets, "shares": e.shares},
    ),
    ev.Withdrawn: (
        "withdraw_event",
        lambda e: {
            "sender": e.sender,
            "receiver": e.receiver,
            "on_behalf": e.on_behalf,
            "assets": e.assets,
            "shares": e.shares,
        },
    ),
    ev.SharesTransferred: (
        "transfer_event",
        lambda e: {"from_address": e.from_address, "to_address": e.to_address, "shares": e.shares},
    ),
    ev.Allocated: ("allocate_event", _allocation_payload),
    ev.Deallocated: ("deallocate_event", _allocation_payload),
    ev.ForceDeallocated: (
        "force_deallocate_event",
        lambda e: {
            "sender": e.sender,
            "adapter": e.adapter,
            "assets": e.assets,
            "on_behalf": e.on_behalf,
            "ids": dump_json(list(e.ids)),
            "penalty_assets": e.penalty_assets,
        },
    ),
}


def ledger_table_for(event: ev.VaultEvent) -> str:
    route = LEDGER_ROUTES.get(type(event))
    if route is None:
        raise ValueError(f"No ledger table for event type {type(event).__name__}")
    return route[0]


class EventLedger:
    """Inserts ledger rows; a key conflict means the event was already recorded."""

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def insert(self, event: ev.VaultEvent) -> bool:
        """Return True for a new row, False when the event id already exists."""
        route = LEDGER_ROUTES.get(type(event))
        if route is None:
            raise ValueError(f"No ledger table for event type {type(event).__name__}")
        table, payload_builder = route

        coordinate = event.coordinate
        params: dict[str, Any] = {
            "id": coordinate.event_id,
            "chain_id": coordinate.chain_id,
            "vault_address": coordinate.vault_address,
            "block_number": coordinate.block_number,
            "block_timestamp": coordinate.block_timestamp,
            "transaction_hash": coordinate.transaction_hash,
            "transaction_index": coordinate.transaction_index,
            "log_index": coordinate.log_index,
        }
        params.update(payload_builder(event))

        columns = list(params)
        inserted = self._db.fetch_one(
            f"""
            INSERT INTO {table} ({", ".join(columns)})
            VALUES ({", ".join(f":{column}" for column in columns)})
            ON CONFLICT (id) DO NOTHING
            RETURNING id
            """,
            params,
        )
        if inserted is None:
            logger.info("Event %s already recorded in %s; skipping.", coordinate.event_id, table)
            return False
        return True


    def contains(self, event: ev.VaultEvent) -> bool:
        """Whether the event id is already recorded; lets callers skip work for re-deliveries."""
        row = self._db.fetch_one(
            f"SELECT id FROM {ledger_table_for(event)} WHERE id = :id",
            {"id": event.coordinate.event_id},
        )
        return row is not None
