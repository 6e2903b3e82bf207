"""Error taxonomy for the vault state indexer."""

from __future__ import annotations


class IndexerAbortError(RuntimeError):
    """Raised when an event cannot be applied; the whole event must be retried."""


class VaultNotFoundError(IndexerAbortError):
    """Raised when a mutation targets a vault row that does not exist."""


class OutOfOrderEventError(IndexerAbortError):
    """Raised when a new event sorts before the last event applied to its vault."""


class ConcurrentUpdateError(IndexerAbortError):
    """Raised when an optimistic vault update keeps losing to concurrent writers."""


class ContractReadError(RuntimeError):
    """Raised when a point-in-time contract read fails.

    Callers that catch this must substitute a defined fallback value.
    """
