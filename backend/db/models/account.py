"""Depositor account model definitions."""

from __future__ import annotations

import logging
from decimal import Decimal

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

from backend.db.base import UINT256, Base

logger = logging.getLogger(__name__)


class VaultAccount(Base):
    """Share balance and lifetime deposit/withdraw counters of one account in one vault."""

    __tablename__ = "vault_account"
    __table_args__ = (
        PrimaryKeyConstraint(
            "chain_id",
            "vault_address",
            "account_address",
            name="pk_vault_account",
        ),
        CheckConstraint("deposit_count >= 0", name="ck_vault_account_deposit_count_nonneg"),
        CheckConstraint("withdraw_count >= 0", name="ck_vault_account_withdraw_count_nonneg"),
        Index("idx_vault_account_vault", "chain_id", "vault_address"),
        Index("idx_vault_account_vault_balance", "chain_id", "vault_address", "shares_balance"),
        Index("idx_vault_account_account", "account_address"),
    )

    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vault_address: Mapped[str] = mapped_column(Text, nullable=False)
    account_address: Mapped[str] = mapped_column(Text, nullable=False)

    shares_balance: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))

    deposit_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_deposited_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    total_deposited_shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))

    withdraw_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_withdrawn_assets: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))
    total_withdrawn_shares: Mapped[Decimal] = mapped_column(UINT256, nullable=False, server_default=text("0"))

    first_seen_block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    first_seen_block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    first_seen_transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    last_seen_block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_seen_block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
    last_log_index: Mapped[int] = mapped_column(Integer, nullable=False)
