"""Model module imports for SQLAlchemy metadata registration."""

from __future__ import annotations

import logging

from backend.db.models.account import VaultAccount
from backend.db.models.checkpoint import CapCheckpoint, VaultCheckpoint
from backend.db.models.events import (
    AbdicateEvent,
    AbsoluteCapChangeEvent,
    AccrueInterestEvent,
    AdapterMembershipEvent,
    AdapterRegistrySetEvent,
    AllocateEvent,
    AllocatorSetEvent,
    CuratorSetEvent,
    DeallocateEvent,
    DepositEvent,
    ForceDeallocateEvent,
    ForceDeallocatePenaltySetEvent,
    GateSetEvent,
    LiquidityAdapterSetEvent,
    ManagementFeeRecipientSetEvent,
    ManagementFeeSetEvent,
    MaxRateSetEvent,
    NameSetEvent,
    OwnerSetEvent,
    PerformanceFeeRecipientSetEvent,
    PerformanceFeeSetEvent,
    RelativeCapChangeEvent,
    SentinelSetEvent,
    SymbolSetEvent,
    TimelockDurationChangeEvent,
    TransferEvent,
    VaultCreatedEvent,
    WithdrawEvent,
)
from backend.db.models.historical import VaultMetricsHistorical
from backend.db.models.vault import AdapterPenalty, IdentifierState, VaultV2

logger = logging.getLogger(__name__)

__all__ = [
    "AbdicateEvent",
    "AbsoluteCapChangeEvent",
    "AccrueInterestEvent",
    "AdapterMembershipEvent",
    "AdapterPenalty",
    "AdapterRegistrySetEvent",
    "AllocateEvent",
    "AllocatorSetEvent",
    "CapCheckpoint",
    "CuratorSetEvent",
    "DeallocateEvent",
    "DepositEvent",
    "ForceDeallocateEvent",
    "ForceDeallocatePenaltySetEvent",
    "GateSetEvent",
    "IdentifierState",
    "LiquidityAdapterSetEvent",
    "ManagementFeeRecipientSetEvent",
    "ManagementFeeSetEvent",
    "MaxRateSetEvent",
    "NameSetEvent",
    "OwnerSetEvent",
    "PerformanceFeeRecipientSetEvent",
    "PerformanceFeeSetEvent",
    "RelativeCapChangeEvent",
    "SentinelSetEvent",
    "SymbolSetEvent",
    "TimelockDurationChangeEvent",
    "TransferEvent",
    "VaultAccount",
    "VaultCheckpoint",
    "VaultCreatedEvent",
    "VaultMetricsHistorical",
    "VaultV2",
    "WithdrawEvent",
]
