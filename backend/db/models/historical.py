"""Denormalized full-state vault snapshots for join-free point-in-time reads."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import BigInteger, Index, Integer, PrimaryKeyConstraint, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import JSON_DOCUMENT, UINT256, Base

logger = logging.getLogger(__name__)


class VaultMetricsHistorical(Base):
    """Complete vault state captured after every allow-listed event."""

    __tablename__ = "vault_metrics_historical"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_vault_metrics_historical"),
        Index("idx_vault_metrics_historical_vault", "chain_id", "vault_address"),
        Index("idx_vault_metrics_historical_block_number", "block_number"),
        Index("idx_vault_metrics_historical_block_timestamp", "block_timestamp"),
        Index("idx_vault_metrics_historical_event_type", "event_type"),
    )

    id: Mapped[str] = mapped_column(Text, nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_index: Mapped[int] = mapped_column(Integer, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)

    total_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    total_supply: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    # Both prices are WAD-scaled (1e18).
    raw_share_price: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    share_price: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    last_update_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # identifier_hash -> decimal string, keys sorted.
    allocations: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'{}'"))
    absolute_caps: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'{}'"))
    relative_caps: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'{}'"))
    total_allocated: Mapped[Decimal] = mapped_column(UINT256, nullable=False)

    max_rate: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    performance_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    management_fee: Mapped[Decimal] = mapped_column(UINT256, nullable=False)
    performance_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)
    management_fee_recipient: Mapped[str] = mapped_column(Text, nullable=False)

    allocators: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))
    sentinels: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))
    adapters: Mapped[Any] = mapped_column(JSON_DOCUMENT, nullable=False, server_default=text("'[]'"))

    receive_shares_gate: Mapped[str] = mapped_column(Text, nullable=False)
    send_shares_gate: Mapped[str] = mapped_column(Text, nullable=False)
    receive_assets_gate: Mapped[str] = mapped_column(Text, nullable=False)
    send_assets_gate: Mapped[str] = mapped_column(Text, nullable=False)

    owner: Mapped[str] = mapped_column(Text, nullable=False)
    curator: Mapped[str] = mapped_column(Text, nullable=False)
    adapter_registry: Mapped[str] = mapped_column(Text, nullable=False)
    liquidity_adapter: Mapped[str] = mapped_column(Text, nullable=False)


Index(
    "idx_vault_metrics_historical_vault_block_desc",
    VaultMetricsHistorical.chain_id,
    VaultMetricsHistorical.vault_address,
    VaultMetricsHistorical.block_number.desc(),
)
Index(
    "idx_vault_metrics_historical_vault_ts_desc",
    VaultMetricsHistorical.chain_id,
    VaultMetricsHistorical.vault_address,
    VaultMetricsHistorical.block_timestamp.desc(),
)
