"""Per-identifier cap and allocation tracking inside a vault."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Optional, Sequence

from indexer.common import IndexerDatabase, to_int

logger = logging.getLogger(__name__)

CAP_FIELDS: frozenset[str] = frozenset({"absolute_cap", "relative_cap"})


@dataclass(frozen=True)
class IdentifierStateRow:
    chain_id: int
    vault_address: str
    identifier_hash: str
    absolute_cap: int = 0
    relative_cap: int = 0
    allocation: int = 0


def _row_from_mapping(row: Mapping[str, Any]) -> IdentifierStateRow:
    return IdentifierStateRow(
        chain_id=to_int(row["chain_id"]),
        vault_address=str(row["vault_address"]),
        identifier_hash=str(row["identifier_hash"]),
        absolute_cap=to_int(row["absolute_cap"]),
        relative_cap=to_int(row["relative_cap"]),
        allocation=to_int(row["allocation"]),
    )


class IdentifierStateTracker:
    """Upserts identifier rows; an absent row reads as all zeros."""

    def __init__(self, db: IndexerDatabase) -> None:
        self._db = db

    def get(self, chain_id: int, vault_address: str, identifier_hash: str) -> IdentifierStateRow:
        row = self._find(chain_id, vault_address, identifier_hash)
        if row is None:
            return IdentifierStateRow(chain_id, vault_address, identifier_hash)
        return row

    def list_for_vault(self, chain_id: int, vault_address: str) -> Sequence[IdentifierStateRow]:
        rows = self._db.fetch_all(
            """
            SELECT chain_id, vault_address, identifier_hash, absolute_cap, relative_cap, allocation
            FROM identifier_state
            WHERE chain_id = :chain_id
              AND vault_address = :vault_address
            ORDER BY identifier_hash ASC
            """,
            {"chain_id": chain_id, "vault_address": vault_address},
        )
        return tuple(_row_from_mapping(row) for row in rows)

    def set_cap(
        self,
        chain_id: int,
        vault_address: str,
        identifier_hash: str,
        cap_field: str,
        value: int,
    ) -> IdentifierStateRow:
        """Replace one cap; the other cap and the allocation keep their values (zero if new)."""
        if cap_field not in CAP_FIELDS:
            raise ValueError(f"Unknown cap field: {cap_field}")
        self._db.execute(
            f"""
            INSERT INTO identifier_state (chain_id, vault_address, identifier_hash, {cap_field})
            VALUES (:chain_id, :vault_address, :identifier_hash, :value)
            ON CONFLICT (chain_id, vault_address, identifier_hash)
            DO UPDATE SET {cap_field} = excluded.{cap_field}
            """,
            {
                "chain_id": chain_id,
                "vault_address": vault_address,
                "identifier_hash": identifier_hash,
                "value": value,
            },
        )
        return self.get(chain_id, vault_address, identifier_hash)

    def add_allocation(
        self,
        chain_id: int,
        vault_address: str,
        identifier_hash: str,
        delta: int,
    ) -> IdentifierStateRow:
        """Additive upsert: a new row starts at ``delta``, an existing one accumulates it."""
        self._db.execute(
            """
            INSERT INTO identifier_state (chain_id, vault_address, identifier_hash, allocation)
            VALUES (:chain_id, :vault_address, :identifier_hash, :delta)
            ON CONFLICT (chain_id, vault_address, identifier_hash)
            DO UPDATE SET allocation = identifier_state.allocation + excluded.allocation
            """,
            {
                "chain_id": chain_id,
                "vault_address": vault_address,
                "identifier_hash": identifier_hash,
                "delta": delta,
            },
        )
        row = self.get(chain_id, vault_address, identifier_hash)
        if row.allocation < 0:
            logger.warning(
                "Allocation for identifier %s in vault %s is negative (%s).",
                identifier_hash,
                vault_address,
                row.allocation,
            )
        return row

    def _find(self, chain_id: int, vault_address: str, identifier_hash: str) -> Optional[IdentifierStateRow]:
        row = self._db.fetch_one(
            """
            SELECT chain_id, vault_address, identifier_hash, absolute_cap, relative_cap, allocation
            FROM identifier_state
            WHERE chain_id = :chain_id
              AND vault_address = :vault_address
              AND identifier_hash = :identifier_hash
            """,
            {"chain_id": chain_id, "vault_address": vault_address, "identifier_hash": identifier_hash},
        )
        return None if row is None else _row_from_mapping(row)
