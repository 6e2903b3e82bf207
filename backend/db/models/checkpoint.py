"""Append-only checkpoint timelines for vault-level and identifier-level state."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Index, Integer, PrimaryKeyConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import UINT256, Base

logger = logging.getLogger(__name__)


class VaultCheckpoint(Base):
    """Vault accounting and valuation config immediately after one triggering event."""

    __tablename__ = "vault_checkpoint"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_vault_checkpoint"),
        Index("idx_vault_checkpoint_vault", "chain_id", "vault_address"),
        Index("idx_vault_checkpoint_block_timestamp", "block_timestamp"),
    )

    id: Mapped[str] = mapped_column(Text, nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_index: Mapped[int] = mapped_column(Integer, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    total_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    total_supply: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    max_rate: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    performance_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    management_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    performance_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)
    management_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)
    last_update_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)


class CapCheckpoint(Base):
    """Cap and allocation state of one identifier immediately after one triggering event."""

    __tablename__ = "cap_checkpoint"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_cap_checkpoint"),
        Index("idx_cap_checkpoint_vault_identifier", "chain_id", "vault_address", "identifier_hash"),
        Index("idx_cap_checkpoint_block_timestamp", "block_timestamp"),
    )

    # Event id, suffixed with the array position when one event touches several identifiers.
    id: Mapped[str] = mapped_column(Text, nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)

    identifier_hash: Mapped[str] = mapped_column(Text, nullable=False)
    identifier_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_index: Mapped[int] = mapped_column(Integer, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    absolute_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    relative_cap: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    allocation: Mapped[Decimal] = mapped_column(UINT256, nullable=False)


# Serve "latest checkpoint <= T" lookups.
Index(
    "idx_vault_checkpoint_vault_ts_desc",
    VaultCheckpoint.chain_id,
    VaultCheckpoint.vault_address,
    VaultCheckpoint.block_timestamp.desc(),
)
Index(
    "idx_cap_checkpoint_vault_identifier_ts_desc",
    CapCheckpoint.chain_id,
    CapCheckpoint.vault_address,
    CapCheckpoint.identifier_hash,
    CapCheckpoint.block_timestamp.desc(),
)
