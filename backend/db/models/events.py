"""Event ledger models: one immutable row per observed event, one table per kind family."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, PrimaryKeyConstraint, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from backend.db.base import JSON_DOCUMENT, UINT256, Base
from backend.db.enums import change_direction_enum, gate_type_enum, membership_action_enum

logger = logging.getLogger(__name__)


class EventLedgerMixin:
    """Coordinate columns and indexes shared by every ledger table.

    The primary key is the ``{chain_id}-{transaction_hash}-{log_index}`` event id, so a
    re-delivered log collides instead of duplicating. Per-vault ordering is recovered by
    sorting on (block_number, transaction_index, log_index).
    """

    __extra_indexes__: tuple[tuple[str, ...], ...] = ()

    id: Mapped[str] = mapped_column(Text, nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_index: Mapped[int] = mapped_column(Integer, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        table = cls.__tablename__
        args: list[Any] = [
            PrimaryKeyConstraint("id", name=f"pk_{table}"),
            CheckConstraint("log_index >= 0", name=f"ck_{table}_log_index_nonneg"),
            Index(f"idx_{table}_vault", "chain_id", "vault_address"),
            Index(
                f"idx_{table}_vault_order",
                "chain_id",
                "vault_address",
                "block_number",
                "transaction_index",
                "log_index",
            ),
        ]
        for columns in cls.__extra_indexes__:
            args.append(Index(f"idx_{table}_{'_'.join(columns)}", *columns))
        return tuple(args)


class VaultCreatedEvent(EventLedgerMixin, Base):
    __tablename__ = "vault_created_event"

    owner: Mapped[str] = mapped_column(Text, nullable=False)
    asset: Mapped[str] = mapped_column(Text, nullable=False)


class OwnerSetEvent(EventLedgerMixin, Base):
    __tablename__ = "owner_set_event"

    new_owner: Mapped[str] = mapped_column(Text, nullable=False)


class CuratorSetEvent(EventLedgerMixin, Base):
    __tablename__ = "curator_set_event"

    new_curator: Mapped[str] = mapped_column(Text, nullable=False)


class SentinelSetEvent(EventLedgerMixin, Base):
    __tablename__ = "sentinel_set_event"
    __extra_indexes__ = (("account",),)

    account: Mapped[str] = mapped_column(Text, nullable=False)
    new_is_sentinel: Mapped[bool] = mapped_column(Boolean, nullable=False)


class AllocatorSetEvent(EventLedgerMixin, Base):
    __tablename__ = "allocator_set_event"
    __extra_indexes__ = (("account",),)

    account: Mapped[str] = mapped_column(Text, nullable=False)
    new_is_allocator: Mapped[bool] = mapped_column(Boolean, nullable=False)


class NameSetEvent(EventLedgerMixin, Base):
    __tablename__ = "name_set_event"

    new_name: Mapped[str] = mapped_column(Text, nullable=False)


class SymbolSetEvent(EventLedgerMixin, Base):
    __tablename__ = "symbol_set_event"

    new_symbol: Mapped[str] = mapped_column(Text, nullable=False)


class GateSetEvent(EventLedgerMixin, Base):
    __tablename__ = "gate_set_event"
    __extra_indexes__ = (("gate_type",),)

    gate_type: Mapped[str] = mapped_column(gate_type_enum, nullable=False)
    new_gate: Mapped[str] = mapped_column(Text, nullable=False)


class AdapterRegistrySetEvent(EventLedgerMixin, Base):
    __tablename__ = "adapter_registry_set_event"

    new_adapter_registry: Mapped[str] = mapped_column(Text, nullable=False)


class AdapterMembershipEvent(EventLedgerMixin, Base):
    __tablename__ = "adapter_membership_event"
    __extra_indexes__ = (("account",),)

    action: Mapped[str] = mapped_column(membership_action_enum, nullable=False)
    account: Mapped[str] = mapped_column(Text, nullable=False)


class TimelockDurationChangeEvent(EventLedgerMixin, Base):
    __tablename__ = "timelock_duration_change_event"

    action: Mapped[str] = mapped_column(change_direction_enum, nullable=False)
    selector: Mapped[str] = mapped_column(Text, nullable=False)
    new_duration: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class AbdicateEvent(EventLedgerMixin, Base):
    __tablename__ = "abdicate_event"

    selector: Mapped[str] = mapped_column(Text, nullable=False)


class LiquidityAdapterSetEvent(EventLedgerMixin, Base):
    __tablename__ = "liquidity_adapter_set_event"

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    new_liquidity_adapter: Mapped[str] = mapped_column(Text, nullable=False)
    # The log only carries the keccak topic of the indexed bytes argument.
    new_liquidity_data_topic: Mapped[str] = mapped_column(Text, nullable=False)
    new_liquidity_data: Mapped[str] = mapped_column(Text, nullable=False)


class PerformanceFeeSetEvent(EventLedgerMixin, Base):
    __tablename__ = "performance_fee_set_event"

    new_performance_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class PerformanceFeeRecipientSetEvent(EventLedgerMixin, Base):
    __tablename__ = "performance_fee_recipient_set_event"

    new_performance_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)


class ManagementFeeSetEvent(EventLedgerMixin, Base):
    __tablename__ = "management_fee_set_event"

    new_management_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class ManagementFeeRecipientSetEvent(EventLedgerMixin, Base):
    __tablename__ = "management_fee_recipient_set_event"

    new_management_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)


class AbsoluteCapChangeEvent(EventLedgerMixin, Base):
    __tablename__ = "absolute_cap_change_event"
    __extra_indexes__ = (("identifier_hash",),)

    action: Mapped[str] = mapped_column(change_direction_enum, nullable=False)
    sender: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    identifier_hash: Mapped[str] = mapped_column(Text, nullable=False)
    identifier_data: Mapped[str] = mapped_column(Text, nullable=False)
    new_absolute_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class RelativeCapChangeEvent(EventLedgerMixin, Base):
    __tablename__ = "relative_cap_change_event"
    __extra_indexes__ = (("identifier_hash",),)

    action: Mapped[str] = mapped_column(change_direction_enum, nullable=False)
    sender: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    identifier_hash: Mapped[str] = mapped_column(Text, nullable=False)
    identifier_data: Mapped[str] = mapped_column(Text, nullable=False)
    new_relative_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class MaxRateSetEvent(EventLedgerMixin, Base):
    __tablename__ = "max_rate_set_event"

    new_max_rate: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class ForceDeallocatePenaltySetEvent(EventLedgerMixin, Base):
    __tablename__ = "force_deallocate_penalty_set_event"
    __extra_indexes__ = (("adapter",),)

    adapter: Mapped[str] = mapped_column(Text, nullable=False)
    force_deallocate_penalty: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class AccrueInterestEvent(EventLedgerMixin, Base):
    __tablename__ = "accrue_interest_event"
    __extra_indexes__ = (("block_timestamp",),)

    previous_total_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    new_total_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    performance_fee_shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    management_fee_shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class DepositEvent(EventLedgerMixin, Base):
    __tablename__ = "deposit_event"
    __extra_indexes__ = (("sender",), ("on_behalf",))

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    on_behalf: Mapped[str] = mapped_column(Text, nullable=False)
    assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class WithdrawEvent(EventLedgerMixin, Base):
    __tablename__ = "withdraw_event"
    __extra_indexes__ = (("sender",), ("receiver",), ("on_behalf",))

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    receiver: Mapped[str] = mapped_column(Text, nullable=False)
    on_behalf: Mapped[str] = mapped_column(Text, nullable=False)
    assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class TransferEvent(EventLedgerMixin, Base):
    __tablename__ = "transfer_event"
    __extra_indexes__ = (("from_address",), ("to_address",))

    from_address: Mapped[str] = mapped_column(Text, nullable=False)
    to_address: Mapped[str] = mapped_column(Text, nullable=False)
    shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class AllocateEvent(EventLedgerMixin, Base):
    __tablename__ = "allocate_event"
    __extra_indexes__ = (("sender",), ("adapter",))

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    adapter: Mapped[str] = mapped_column(Text, nullable=False)
    assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    ids: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False)
    change: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class DeallocateEvent(EventLedgerMixin, Base):
    __tablename__ = "deallocate_event"
    __extra_indexes__ = (("sender",), ("adapter",))

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    adapter: Mapped[str] = mapped_column(Text, nullable=False)
    assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    ids: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False)
    change: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


class ForceDeallocateEvent(EventLedgerMixin, Base):
    __tablename__ = "force_deallocate_event"
    __extra_indexes__ = (("sender",), ("adapter",), ("on_behalf",))

    sender: Mapped[str] = mapped_column(Text, nullable=False)
    adapter: Mapped[str] = mapped_column(Text, nullable=False)
    assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    on_behalf: Mapped[str] = mapped_column(Text, nullable=False)
    ids: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False)
    penalty_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
