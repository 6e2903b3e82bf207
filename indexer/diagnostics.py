"""Read-only reconciliation of stored totals against on-chain real assets."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from indexer.chain_reader import ContractReader
from indexer.common import to_int
from indexer.errors import ContractReadError
from indexer.vault_state import VaultStateProjector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RealAssetsReport:
    """Idle balance plus per-adapter real assets, compared to stored ``total_assets``.

    ``complete`` is False when any read failed; missing parts count as zero.
    """

    chain_id: int
    vault_address: str
    block_number: int
    stored_total_assets: int
    idle_assets: Optional[int]
    adapter_assets: dict[str, Optional[int]]
    real_assets: int
    difference: int
    complete: bool


def reconcile_real_assets(
    projector: VaultStateProjector,
    reader: ContractReader,
    chain_id: int,
    vault_address: str,
    block_number: int,
) -> RealAssetsReport:
    """Diagnostic cross-check only; never writes state."""
    vault = projector.require(chain_id, vault_address)
    complete = True

    idle_assets: Optional[int]
    try:
        idle_assets = to_int(reader.read(vault.asset, "balanceOf", (vault_address,), block_number))
    except ContractReadError as exc:
        logger.warning("Idle balance read failed for vault %s: %s", vault_address, exc)
        idle_assets = None
        complete = False

    adapter_assets: dict[str, Optional[int]] = {}
    for adapter in sorted(vault.adapters):
        try:
            adapter_assets[adapter] = to_int(reader.read(adapter, "realAssets", (), block_number))
        except ContractReadError as exc:
            logger.warning("realAssets read failed for adapter %s of vault %s: %s", adapter, vault_address, exc)
            adapter_assets[adapter] = None
            complete = False

    real_assets = (idle_assets or 0) + sum(value or 0 for value in adapter_assets.values())
    difference = real_assets - vault.total_assets
    if difference != 0:
        logger.info(
            "Vault %s real assets %s differ from stored total_assets %s by %s at block %s.",
            vault_address,
            real_assets,
            vault.total_assets,
            difference,
            block_number,
        )

    return RealAssetsReport(
        chain_id=chain_id,
        vault_address=vault_address,
        block_number=block_number,
        stored_total_assets=vault.total_assets,
        idle_assets=idle_assets,
        adapter_assets=adapter_assets,
        real_assets=real_assets,
        difference=difference,
        complete=complete,
    )
