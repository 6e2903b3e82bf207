"""Environment-backed configuration for the vault state indexer."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexerConfig:
    """Canonical configuration surface for ingestion and point-in-time reads."""

    rpc_url: str
    chain_id: int
    db_dsn: Optional[str]
    log_level: str
    rpc_timeout_seconds: float
    rpc_max_retries: int
    canonical_price_enabled: bool
    force_deallocate_applies_delta: bool
    max_update_retries: int


_REQUIRED_KEYS: tuple[str, ...] = (
    "INDEXER_RPC_URL",
    "INDEXER_CHAIN_ID",
)

_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _read_env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None or value.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def _read_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw}")


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw}") from exc
    return value


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid float value for {name}: {raw}") from exc
    return value


def read_log_level() -> str:
    """INDEXER_LOG_LEVEL, validated; usable without the rest of the configuration."""
    log_level = os.getenv("INDEXER_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        raise RuntimeError(f"Invalid log level for INDEXER_LOG_LEVEL: {log_level}")
    return log_level


def read_db_dsn() -> Optional[str]:
    return os.getenv("INDEXER_DB_DSN", "").strip() or None


def load_indexer_config() -> IndexerConfig:
    """Load and validate indexer configuration from environment."""
    for key in _REQUIRED_KEYS:
        _read_env(key)

    chain_id = _read_int("INDEXER_CHAIN_ID", 0)
    if chain_id <= 0:
        raise RuntimeError("INDEXER_CHAIN_ID must be a positive integer")

    rpc_timeout_seconds = _read_float("INDEXER_RPC_TIMEOUT_SECONDS", 20.0)
    if rpc_timeout_seconds <= 0:
        raise RuntimeError("INDEXER_RPC_TIMEOUT_SECONDS must be positive")

    rpc_max_retries = _read_int("INDEXER_RPC_MAX_RETRIES", 3)
    max_update_retries = _read_int("INDEXER_MAX_UPDATE_RETRIES", 3)
    if rpc_max_retries < 1 or max_update_retries < 1:
        raise RuntimeError("Retry counts must be at least 1")

    return IndexerConfig(
        rpc_url=_read_env("INDEXER_RPC_URL"),
        chain_id=chain_id,
        db_dsn=read_db_dsn(),
        log_level=read_log_level(),
        rpc_timeout_seconds=rpc_timeout_seconds,
        rpc_max_retries=rpc_max_retries,
        canonical_price_enabled=_read_bool("INDEXER_CANONICAL_PRICE_ENABLED", True),
        force_deallocate_applies_delta=_read_bool("INDEXER_FORCE_DEALLOCATE_APPLIES_DELTA", True),
        max_update_retries=max_update_retries,
    )
