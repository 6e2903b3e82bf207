"""Shared helpers and the storage protocol for indexer modules."""

from __future__ import annotations

from decimal import Decimal
import json
import logging
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Fixed-point unit used for share prices (1e18).
WAD = 10**18


class IndexerDatabase(Protocol):
    """Minimal DB protocol used by indexer modules."""

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Fetch one row."""

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        """Fetch rows."""

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        """Execute mutation statement."""


def normalize_address(value: str) -> str:
    """Lowercase 0x-prefixed hex form used as the canonical address key."""
    text = str(value).strip().lower()
    if not text.startswith("0x"):
        text = f"0x{text}"
    return text


def normalize_hex(value: Any) -> str:
    """Lowercase 0x-prefixed hex form of bytes or a hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).strip()
    return normalize_address(text) if text else "0x"


def normalize_data(value: Any) -> str:
    """Hex form of a dynamic bytes value; empty data is stored as an empty string."""
    hexed = normalize_hex(value)
    return "" if hexed == "0x" else hexed


def to_int(value: Any) -> int:
    """Convert a stored numeric (int, Decimal or decimal string) to an exact int."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        return int(value)
    return int(Decimal(str(value)))


def load_json(value: Any, default: Any) -> Any:
    """Parse a JSON column that may arrive pre-decoded (JSONB) or as text."""
    if value is None:
        return default
    if isinstance(value, (str, bytes, bytearray)):
        return json.loads(value)
    return value


def dump_json(value: Any) -> str:
    """Deterministic JSON serialization for JSON columns."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def address_set(values: Iterable[str]) -> list[str]:
    """Deduplicated, sorted address list used for role-set columns."""
    return sorted({normalize_address(value) for value in values})


def int_map(entries: Iterable[tuple[str, int]]) -> dict[str, str]:
    """Sorted hash -> decimal-string map used in historical snapshots."""
    return {key: str(value) for key, value in sorted(entries)}
