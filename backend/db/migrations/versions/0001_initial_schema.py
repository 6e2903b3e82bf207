"""Initial production schema for the vault state indexer."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from alembic import op

logger = logging.getLogger(__name__)

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


ENUM_DDL: tuple[str, ...] = (
    "CREATE TYPE gate_type_enum AS ENUM ('RECEIVE_SHARES', 'SEND_SHARES', 'RECEIVE_ASSETS', 'SEND_ASSETS');",
    "CREATE TYPE membership_action_enum AS ENUM ('ADD', 'REMOVE');",
    "CREATE TYPE change_direction_enum AS ENUM ('INCREASE', 'DECREASE');",
    "CREATE TYPE vault_origin_enum AS ENUM ('CONSTRUCTOR', 'BACKFILL', 'BACKFILL_DEGRADED');",
)

ZERO_ADDRESS_SQL = "'0x0000000000000000000000000000000000000000'"

# Payload columns per ledger table; the event coordinate columns are shared.
LEDGER_PAYLOAD_COLUMNS: dict[str, tuple[str, ...]] = {
    "vault_created_event": ("owner TEXT NOT NULL", "asset TEXT NOT NULL"),
    "owner_set_event": ("new_owner TEXT NOT NULL",),
    "curator_set_event": ("new_curator TEXT NOT NULL",),
    "sentinel_set_event": ("account TEXT NOT NULL", "new_is_sentinel BOOLEAN NOT NULL"),
    "allocator_set_event": ("account TEXT NOT NULL", "new_is_allocator BOOLEAN NOT NULL"),
    "name_set_event": ("new_name TEXT NOT NULL",),
    "symbol_set_event": ("new_symbol TEXT NOT NULL",),
    "gate_set_event": ("gate_type gate_type_enum NOT NULL", "new_gate TEXT NOT NULL"),
    "adapter_registry_set_event": ("new_adapter_registry TEXT NOT NULL",),
    "adapter_membership_event": ("action membership_action_enum NOT NULL", "account TEXT NOT NULL"),
    "timelock_duration_change_event": (
        "action change_direction_enum NOT NULL",
        "selector TEXT NOT NULL",
        "new_duration NUMERIC(78,0) NOT NULL",
    ),
    "abdicate_event": ("selector TEXT NOT NULL",),
    "liquidity_adapter_set_event": (
        "sender TEXT NOT NULL",
        "new_liquidity_adapter TEXT NOT NULL",
        "new_liquidity_data_topic TEXT NOT NULL",
        "new_liquidity_data TEXT NOT NULL",
    ),
    "performance_fee_set_event": ("new_performance_fee NUMERIC(78,0) NOT NULL",),
    "performance_fee_recipient_set_event": ("new_performance_fee_recipient TEXT NOT NULL",),
    "management_fee_set_event": ("new_management_fee NUMERIC(78,0) NOT NULL",),
    "management_fee_recipient_set_event": ("new_management_fee_recipient TEXT NOT NULL",),
    "absolute_cap_change_event": (
        "action change_direction_enum NOT NULL",
        "sender TEXT",
        "identifier_hash TEXT NOT NULL",
        "identifier_data TEXT NOT NULL",
        "new_absolute_cap NUMERIC(78,0) NOT NULL",
    ),
    "relative_cap_change_event": (
        "action change_direction_enum NOT NULL",
        "sender TEXT",
        "identifier_hash TEXT NOT NULL",
        "identifier_data TEXT NOT NULL",
        "new_relative_cap NUMERIC(78,0) NOT NULL",
    ),
    "max_rate_set_event": ("new_max_rate NUMERIC(78,0) NOT NULL",),
    "force_deallocate_penalty_set_event": (
        "adapter TEXT NOT NULL",
        "force_deallocate_penalty NUMERIC(78,0) NOT NULL",
    ),
    "accrue_interest_event": (
        "previous_total_assets NUMERIC(78,0) NOT NULL",
        "new_total_assets NUMERIC(78,0) NOT NULL",
        "performance_fee_shares NUMERIC(78,0) NOT NULL",
        "management_fee_shares NUMERIC(78,0) NOT NULL",
    ),
    "deposit_event": (
        "sender TEXT NOT NULL",
        "on_behalf TEXT NOT NULL",
        "assets NUMERIC(78,0) NOT NULL",
        "shares NUMERIC(78,0) NOT NULL",
    ),
    "withdraw_event": (
        "sender TEXT NOT NULL",
        "receiver TEXT NOT NULL",
        "on_behalf TEXT NOT NULL",
        "assets NUMERIC(78,0) NOT NULL",
        "shares NUMERIC(78,0) NOT NULL",
    ),
    "transfer_event": (
        "from_address TEXT NOT NULL",
        "to_address TEXT NOT NULL",
        "shares NUMERIC(78,0) NOT NULL",
    ),
    "allocate_event": (
        "sender TEXT NOT NULL",
        "adapter TEXT NOT NULL",
        "assets NUMERIC(78,0) NOT NULL",
        "ids JSONB NOT NULL",
        "change NUMERIC(78,0) NOT NULL",
    ),
    "deallocate_event": (
        "sender TEXT NOT NULL",
        "adapter TEXT NOT NULL",
        "assets NUMERIC(78,0) NOT NULL",
        "ids JSONB NOT NULL",
        "change NUMERIC(78,0) NOT NULL",
    ),
    "force_deallocate_event": (
        "sender TEXT NOT NULL",
        "adapter TEXT NOT NULL",
        "assets NUMERIC(78,0) NOT NULL",
        "on_behalf TEXT NOT NULL",
        "ids JSONB NOT NULL",
        "penalty_assets NUMERIC(78,0) NOT NULL",
    ),
}

LEDGER_EXTRA_INDEX_COLUMNS: dict[str, tuple[str, ...]] = {
    "sentinel_set_event": ("account",),
    "allocator_set_event": ("account",),
    "gate_set_event": ("gate_type",),
    "adapter_membership_event": ("account",),
    "absolute_cap_change_event": ("identifier_hash",),
    "relative_cap_change_event": ("identifier_hash",),
    "force_deallocate_penalty_set_event": ("adapter",),
    "accrue_interest_event": ("block_timestamp",),
    "deposit_event": ("sender", "on_behalf"),
    "withdraw_event": ("sender", "receiver", "on_behalf"),
    "transfer_event": ("from_address", "to_address"),
    "allocate_event": ("sender", "adapter"),
    "deallocate_event": ("sender", "adapter"),
    "force_deallocate_event": ("sender", "adapter", "on_behalf"),
}


def _ledger_table_ddl(table_name: str, payload_columns: Sequence[str]) -> str:
    payload = "".join(f"        {column},\n" for column in payload_columns)
    return f"""
    CREATE TABLE {table_name} (
        id TEXT NOT NULL,
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        block_number BIGINT NOT NULL,
        block_timestamp BIGINT NOT NULL,
        transaction_hash TEXT NOT NULL,
        transaction_index INTEGER NOT NULL,
        log_index INTEGER NOT NULL,
{payload}        CONSTRAINT pk_{table_name} PRIMARY KEY (id),
        CONSTRAINT ck_{table_name}_log_index_nonneg CHECK (log_index >= 0)
    );
    """


def _ledger_index_ddl(table_name: str) -> tuple[str, ...]:
    statements = [
        f"CREATE INDEX idx_{table_name}_vault ON {table_name} (chain_id, vault_address);",
        (
            f"CREATE INDEX idx_{table_name}_vault_order ON {table_name} "
            "(chain_id, vault_address, block_number, transaction_index, log_index);"
        ),
    ]
    for column in LEDGER_EXTRA_INDEX_COLUMNS.get(table_name, ()):
        statements.append(f"CREATE INDEX idx_{table_name}_{column} ON {table_name} ({column});")
    return tuple(statements)


STATE_TABLE_DDL: tuple[str, ...] = (
    f"""
    CREATE TABLE vault_v2 (
        chain_id INTEGER NOT NULL,
        address TEXT NOT NULL,
        created_at_block BIGINT NOT NULL,
        created_at_timestamp BIGINT NOT NULL,
        created_at_transaction TEXT NOT NULL,
        origin vault_origin_enum NOT NULL,
        asset TEXT NOT NULL,
        owner TEXT NOT NULL,
        curator TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        allocators JSONB NOT NULL DEFAULT '[]',
        sentinels JSONB NOT NULL DEFAULT '[]',
        adapter_registry TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        adapters JSONB NOT NULL DEFAULT '[]',
        liquidity_adapter TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        liquidity_data TEXT NOT NULL DEFAULT '',
        performance_fee NUMERIC(78,0) NOT NULL DEFAULT 0,
        performance_fee_recipient TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        management_fee NUMERIC(78,0) NOT NULL DEFAULT 0,
        management_fee_recipient TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        max_rate NUMERIC(78,0) NOT NULL DEFAULT 0,
        receive_shares_gate TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        send_shares_gate TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        receive_assets_gate TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        send_assets_gate TEXT NOT NULL DEFAULT {ZERO_ADDRESS_SQL},
        name TEXT NOT NULL DEFAULT '',
        symbol TEXT NOT NULL DEFAULT '',
        total_assets NUMERIC(78,0) NOT NULL DEFAULT 0,
        total_supply NUMERIC(78,0) NOT NULL DEFAULT 0,
        last_update_timestamp BIGINT NOT NULL DEFAULT 0,
        last_event_block_number BIGINT,
        last_event_transaction_index INTEGER,
        last_event_log_index INTEGER,
        row_version INTEGER NOT NULL DEFAULT 0,
        CONSTRAINT pk_vault_v2 PRIMARY KEY (chain_id, address),
        CONSTRAINT ck_vault_v2_row_version_nonneg CHECK (row_version >= 0)
    );
    """,
    """
    CREATE TABLE identifier_state (
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        identifier_hash TEXT NOT NULL,
        absolute_cap NUMERIC(78,0) NOT NULL DEFAULT 0,
        relative_cap NUMERIC(78,0) NOT NULL DEFAULT 0,
        allocation NUMERIC(78,0) NOT NULL DEFAULT 0,
        CONSTRAINT pk_identifier_state PRIMARY KEY (chain_id, vault_address, identifier_hash)
    );
    """,
    """
    CREATE TABLE adapter_penalty (
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        adapter_address TEXT NOT NULL,
        force_deallocate_penalty NUMERIC(78,0) NOT NULL DEFAULT 0,
        updated_at_block BIGINT NOT NULL,
        CONSTRAINT pk_adapter_penalty PRIMARY KEY (chain_id, vault_address, adapter_address)
    );
    """,
    """
    CREATE TABLE vault_checkpoint (
        id TEXT NOT NULL,
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        block_number BIGINT NOT NULL,
        block_timestamp BIGINT NOT NULL,
        transaction_hash TEXT NOT NULL,
        transaction_index INTEGER NOT NULL,
        log_index INTEGER NOT NULL,
        total_assets NUMERIC(78,0) NOT NULL,
        total_supply NUMERIC(78,0) NOT NULL,
        max_rate NUMERIC(78,0) NOT NULL,
        performance_fee NUMERIC(78,0) NOT NULL,
        management_fee NUMERIC(78,0) NOT NULL,
        performance_fee_recipient TEXT NOT NULL,
        management_fee_recipient TEXT NOT NULL,
        last_update_timestamp BIGINT NOT NULL,
        CONSTRAINT pk_vault_checkpoint PRIMARY KEY (id)
    );
    """,
    """
    CREATE TABLE cap_checkpoint (
        id TEXT NOT NULL,
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        identifier_hash TEXT NOT NULL,
        identifier_data TEXT,
        block_number BIGINT NOT NULL,
        block_timestamp BIGINT NOT NULL,
        transaction_hash TEXT NOT NULL,
        transaction_index INTEGER NOT NULL,
        log_index INTEGER NOT NULL,
        absolute_cap NUMERIC(78,0) NOT NULL,
        relative_cap NUMERIC(78,0) NOT NULL,
        allocation NUMERIC(78,0) NOT NULL,
        CONSTRAINT pk_cap_checkpoint PRIMARY KEY (id)
    );
    """,
    """
    CREATE TABLE vault_metrics_historical (
        id TEXT NOT NULL,
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        block_number BIGINT NOT NULL,
        block_timestamp BIGINT NOT NULL,
        transaction_hash TEXT NOT NULL,
        transaction_index INTEGER NOT NULL,
        log_index INTEGER NOT NULL,
        event_type TEXT NOT NULL,
        total_assets NUMERIC(78,0) NOT NULL,
        total_supply NUMERIC(78,0) NOT NULL,
        raw_share_price NUMERIC(78,0) NOT NULL,
        share_price NUMERIC(78,0) NOT NULL,
        last_update_timestamp BIGINT NOT NULL,
        allocations JSONB NOT NULL DEFAULT '{}',
        absolute_caps JSONB NOT NULL DEFAULT '{}',
        relative_caps JSONB NOT NULL DEFAULT '{}',
        total_allocated NUMERIC(78,0) NOT NULL,
        max_rate NUMERIC(78,0) NOT NULL,
        performance_fee NUMERIC(78,0) NOT NULL,
        management_fee NUMERIC(78,0) NOT NULL,
        performance_fee_recipient TEXT NOT NULL,
        management_fee_recipient TEXT NOT NULL,
        allocators JSONB NOT NULL DEFAULT '[]',
        sentinels JSONB NOT NULL DEFAULT '[]',
        adapters JSONB NOT NULL DEFAULT '[]',
        receive_shares_gate TEXT NOT NULL,
        send_shares_gate TEXT NOT NULL,
        receive_assets_gate TEXT NOT NULL,
        send_assets_gate TEXT NOT NULL,
        owner TEXT NOT NULL,
        curator TEXT NOT NULL,
        adapter_registry TEXT NOT NULL,
        liquidity_adapter TEXT NOT NULL,
        CONSTRAINT pk_vault_metrics_historical PRIMARY KEY (id)
    );
    """,
    """
    CREATE TABLE vault_account (
        chain_id INTEGER NOT NULL,
        vault_address TEXT NOT NULL,
        account_address TEXT NOT NULL,
        shares_balance NUMERIC(78,0) NOT NULL DEFAULT 0,
        deposit_count INTEGER NOT NULL DEFAULT 0,
        total_deposited_assets NUMERIC(78,0) NOT NULL DEFAULT 0,
        total_deposited_shares NUMERIC(78,0) NOT NULL DEFAULT 0,
        withdraw_count INTEGER NOT NULL DEFAULT 0,
        total_withdrawn_assets NUMERIC(78,0) NOT NULL DEFAULT 0,
        total_withdrawn_shares NUMERIC(78,0) NOT NULL DEFAULT 0,
        first_seen_block_number BIGINT NOT NULL,
        first_seen_block_timestamp BIGINT NOT NULL,
        first_seen_transaction_hash TEXT NOT NULL,
        last_seen_block_number BIGINT NOT NULL,
        last_seen_block_timestamp BIGINT NOT NULL,
        last_transaction_hash TEXT NOT NULL,
        last_log_index INTEGER NOT NULL,
        CONSTRAINT pk_vault_account PRIMARY KEY (chain_id, vault_address, account_address),
        CONSTRAINT ck_vault_account_deposit_count_nonneg CHECK (deposit_count >= 0),
        CONSTRAINT ck_vault_account_withdraw_count_nonneg CHECK (withdraw_count >= 0)
    );
    """,
)

TABLE_DDL: tuple[str, ...] = STATE_TABLE_DDL + tuple(
    _ledger_table_ddl(table_name, payload) for table_name, payload in LEDGER_PAYLOAD_COLUMNS.items()
)

STATE_INDEX_DDL: tuple[str, ...] = (
    "CREATE INDEX idx_vault_v2_asset ON vault_v2 (chain_id, asset);",
    "CREATE INDEX idx_identifier_state_vault ON identifier_state (chain_id, vault_address);",
    "CREATE INDEX idx_adapter_penalty_vault ON adapter_penalty (chain_id, vault_address);",
    "CREATE INDEX idx_vault_checkpoint_vault ON vault_checkpoint (chain_id, vault_address);",
    "CREATE INDEX idx_vault_checkpoint_block_timestamp ON vault_checkpoint (block_timestamp);",
    (
        "CREATE INDEX idx_vault_checkpoint_vault_ts_desc "
        "ON vault_checkpoint (chain_id, vault_address, block_timestamp DESC);"
    ),
    (
        "CREATE INDEX idx_cap_checkpoint_vault_identifier "
        "ON cap_checkpoint (chain_id, vault_address, identifier_hash);"
    ),
    "CREATE INDEX idx_cap_checkpoint_block_timestamp ON cap_checkpoint (block_timestamp);",
    (
        "CREATE INDEX idx_cap_checkpoint_vault_identifier_ts_desc "
        "ON cap_checkpoint (chain_id, vault_address, identifier_hash, block_timestamp DESC);"
    ),
    "CREATE INDEX idx_vault_metrics_historical_vault ON vault_metrics_historical (chain_id, vault_address);",
    "CREATE INDEX idx_vault_metrics_historical_block_number ON vault_metrics_historical (block_number);",
    "CREATE INDEX idx_vault_metrics_historical_block_timestamp ON vault_metrics_historical (block_timestamp);",
    (
        "CREATE INDEX idx_vault_metrics_historical_vault_block_desc "
        "ON vault_metrics_historical (chain_id, vault_address, block_number DESC);"
    ),
    (
        "CREATE INDEX idx_vault_metrics_historical_vault_ts_desc "
        "ON vault_metrics_historical (chain_id, vault_address, block_timestamp DESC);"
    ),
    "CREATE INDEX idx_vault_metrics_historical_event_type ON vault_metrics_historical (event_type);",
    "CREATE INDEX idx_vault_account_vault ON vault_account (chain_id, vault_address);",
    (
        "CREATE INDEX idx_vault_account_vault_balance "
        "ON vault_account (chain_id, vault_address, shares_balance);"
    ),
    "CREATE INDEX idx_vault_account_account ON vault_account (account_address);",
)

INDEX_DDL: tuple[str, ...] = STATE_INDEX_DDL + tuple(
    statement for table_name in LEDGER_PAYLOAD_COLUMNS for statement in _ledger_index_ddl(table_name)
)

# Ledger, checkpoint and snapshot rows are immutable once written.
APPEND_ONLY_TABLES: tuple[str, ...] = (
    *LEDGER_PAYLOAD_COLUMNS,
    "vault_checkpoint",
    "cap_checkpoint",
    "vault_metrics_historical",
)

APPEND_ONLY_DDL: tuple[str, ...] = (
    """
    CREATE OR REPLACE FUNCTION fn_enforce_append_only()
    RETURNS TRIGGER
    LANGUAGE plpgsql
    AS $$
    BEGIN
        RAISE EXCEPTION 'append-only violation on table %, operation % is not allowed', TG_TABLE_NAME, TG_OP;
    END;
    $$;
    """,
) + tuple(
    f"""
    CREATE TRIGGER trg_{table_name}_append_only
    BEFORE UPDATE OR DELETE ON {table_name}
    FOR EACH ROW EXECUTE FUNCTION fn_enforce_append_only();
    """
    for table_name in APPEND_ONLY_TABLES
)

DROP_TABLE_ORDER: tuple[str, ...] = (
    *reversed(tuple(LEDGER_PAYLOAD_COLUMNS)),
    "vault_account",
    "vault_metrics_historical",
    "cap_checkpoint",
    "vault_checkpoint",
    "adapter_penalty",
    "identifier_state",
    "vault_v2",
)


def _execute_all(statements: Sequence[str]) -> None:
    """Execute an ordered sequence of SQL statements."""

    for statement in statements:
        try:
            op.execute(statement)
        except Exception:
            logger.exception("Migration statement failed.")
            raise


def upgrade() -> None:
    """Apply the initial schema migration."""

    logger.info("Starting initial schema migration upgrade.")
    _execute_all(ENUM_DDL)
    _execute_all(TABLE_DDL)
    _execute_all(INDEX_DDL)
    _execute_all(APPEND_ONLY_DDL)
    logger.info("Completed initial schema migration upgrade.")


def downgrade() -> None:
    """Revert the initial schema migration."""

    logger.info("Starting initial schema migration downgrade.")
    _execute_all(
        tuple(
            f"DROP TRIGGER IF EXISTS trg_{table_name}_append_only ON {table_name};"
            for table_name in reversed(APPEND_ONLY_TABLES)
        )
        + ("DROP FUNCTION IF EXISTS fn_enforce_append_only();",)
        + tuple(f"DROP TABLE IF EXISTS {table_name};" for table_name in DROP_TABLE_ORDER)
        + (
            "DROP TYPE IF EXISTS vault_origin_enum;",
            "DROP TYPE IF EXISTS change_direction_enum;",
            "DROP TYPE IF EXISTS membership_action_enum;",
            "DROP TYPE IF EXISTS gate_type_enum;",
        )
    )
    logger.info("Completed initial schema migration downgrade.")
