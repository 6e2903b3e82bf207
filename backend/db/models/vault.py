"""Current-state projection models: one mutable row per vault or identifier."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    PrimaryKeyConstraint,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import JSON_DOCUMENT, UINT256, Base
from backend.db.enums import vault_origin_enum

logger = logging.getLogger(__name__)

_ZERO_ADDRESS_DEFAULT = text("'0x0000000000000000000000000000000000000000'")


class VaultV2(Base):
    """Latest known state of one vault, mutated in place by every relevant event."""

    __tablename__ = "vault_v2"
    __table_args__ = (
        PrimaryKeyConstraint("chain_id", "address", name="pk_vault_v2"),
        CheckConstraint("row_version >= 0", name="ck_vault_v2_row_version_nonneg"),
        Index("idx_vault_v2_asset", "chain_id", "asset"),
    )

    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)

    created_at_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at_transaction: Mapped[str] = mapped_column(Text, nullable=False)
    origin: Mapped[str] = mapped_column(vault_origin_enum, nullable=False)

    asset: Mapped[str] = mapped_column(Text, nullable=False)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    curator: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)

    allocators: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))
    sentinels: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))

    adapter_registry: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    adapters: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))

    liquidity_adapter: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    liquidity_data: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))

    performance_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    performance_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    management_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    management_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)

    max_rate: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))

    receive_shares_gate: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    send_shares_gate: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    receive_assets_gate: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)
    send_assets_gate: Mapped[str] = mapped_column(Text, nullable=False, server_default=_ZERO_ADDRESS_DEFAULT)

    name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    symbol: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))

    total_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    total_supply: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    last_update_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default=text("0"))

    # Coordinate of the most recently applied event; NULL until the first one lands.
    last_event_block_number: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    last_event_transaction_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_event_log_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))


class IdentifierState(Base):
    """Current cap and allocation state of one identifier inside a vault."""

    __tablename__ = "identifier_state"
    __table_args__ = (
        PrimaryKeyConstraint(
            "chain_id",
            "vault_address",
            "identifier_hash",
            name="pk_identifier_state",
        ),
        Index("idx_identifier_state_vault", "chain_id", "vault_address"),
    )

    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)
    identifier_hash: Mapped[str] = mapped_column(Text, nullable=False)

    absolute_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    relative_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    # Signed: accumulated from int256 allocation deltas.
    allocation: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))


class AdapterPenalty(Base):
    """Configured force-deallocate penalty per adapter."""

    __tablename__ = "adapter_penalty"
    __table_args__ = (
        PrimaryKeyConstraint(
            "chain_id",
            "vault_address",
            "adapter_address",
            name="pk_adapter_penalty",
        ),
        Index("idx_adapter_penalty_vault", "chain_id", "vault_address"),
    )

    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)
    adapter_address: Mapped[str] = mapped_column(Text, nullable=False)
    force_deallocate_penalty: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    updated_at_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
