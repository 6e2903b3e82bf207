"""Point-in-time contract reads against a JSON-RPC node."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from indexer.common import normalize_address, normalize_hex
from indexer.errors import ContractReadError

logger = logging.getLogger(__name__)


class ContractReader(Protocol):
    """Reads one view function of one contract as of one block."""

    def read(self, address: str, function_name: str, args: Sequence[Any], block_number: int) -> Any:
        """Return the decoded result or raise ContractReadError."""


def _view(name: str, outputs: Sequence[str], inputs: Sequence[str] = ()) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": f"arg{index}", "type": kind} for index, kind in enumerate(inputs)],
        "outputs": [{"name": "", "type": kind} for kind in outputs],
    }


# View surface of the vault, plus the ERC20 and adapter reads used by diagnostics.
VAULT_READ_ABI: tuple[dict[str, Any], ...] = (
    _view("asset", ("address",)),
    _view("owner", ("address",)),
    _view("curator", ("address",)),
    _view("name", ("string",)),
    _view("symbol", ("string",)),
    _view("totalAssets", ("uint256",)),
    _view("totalSupply", ("uint256",)),
    _view("performanceFee", ("uint96",)),
    _view("managementFee", ("uint96",)),
    _view("performanceFeeRecipient", ("address",)),
    _view("managementFeeRecipient", ("address",)),
    _view("maxRate", ("uint64",)),
    _view("adapterRegistry", ("address",)),
    _view("liquidityAdapter", ("address",)),
    _view("liquidityData", ("bytes",)),
    _view("adaptersLength", ("uint256",)),
    _view("adapters", ("address",), ("uint256",)),
    _view("receiveSharesGate", ("address",)),
    _view("sendSharesGate", ("address",)),
    _view("receiveAssetsGate", ("address",)),
    _view("sendAssetsGate", ("address",)),
    _view("lastUpdate", ("uint64",)),
    _view("convertToAssets", ("uint256",), ("uint256",)),
    _view("balanceOf", ("uint256",), ("address",)),
    _view("realAssets", ("uint256",)),
)

_ADDRESS_OUTPUTS: frozenset[str] = frozenset(
    entry["name"] for entry in VAULT_READ_ABI if entry["outputs"][0]["type"] == "address"
)


def _normalize_result(function_name: str, value: Any) -> Any:
    if function_name in _ADDRESS_OUTPUTS:
        return normalize_address(value)
    if isinstance(value, (bytes, bytearray)):
        return normalize_hex(value)
    return value


class Web3ContractReader:
    """web3.py-backed reader with bounded retries on transport errors."""

    def __init__(
        self,
        *,
        rpc_url: str,
        timeout_seconds: float = 20.0,
        max_retries: int = 3,
        web3: Optional[Web3] = None,
    ) -> None:
        self._web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self._max_retries = max(1, max_retries)
        self._call_count = 0

    @property
    def call_count(self) -> int:
        """Return RPC call attempts for diagnostics."""
        return self._call_count

    def read(self, address: str, function_name: str, args: Sequence[Any], block_number: int) -> Any:
        contract = self._web3.eth.contract(address=Web3.to_checksum_address(address), abi=list(VAULT_READ_ABI))
        call_args = [
            Web3.to_checksum_address(arg) if isinstance(arg, str) and arg.startswith("0x") and len(arg) == 42 else arg
            for arg in args
        ]

        last_error: Exception | None = None
        for _ in range(self._max_retries):
            self._call_count += 1
            try:
                function = contract.get_function_by_name(function_name)(*call_args)
                value = function.call(block_identifier=block_number)
                return _normalize_result(function_name, value)
            except (ContractLogicError, BadFunctionCallOutput) as exc:
                # Reverts and missing functions are deterministic at a fixed block.
                raise ContractReadError(
                    f"{function_name} reverted on {address} at block {block_number}: {exc}"
                ) from exc
            except (Web3Exception, ValueError, OSError) as exc:
                last_error = exc
                continue

        if last_error is None:
            raise ContractReadError(f"{function_name} read failed without an exception")
        raise ContractReadError(
            f"{function_name} read on {address} at block {block_number} failed after retries: {last_error}"
        ) from last_error
