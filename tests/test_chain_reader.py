"""Unit tests for point-in-time contract reads with retry semantics."""

from __future__ import annotations

from typing import Any

import pytest
from web3.exceptions import ContractLogicError

from indexer.chain_reader import VAULT_READ_ABI, Web3ContractReader
from indexer.errors import ContractReadError
from tests.utils.fake_reader import VAULT


class _FunctionStub:
    def __init__(self, owner: "_ContractStub", name: str, args: tuple[Any, ...]) -> None:
        self._owner = owner
        self._name = name
        self._args = args

    def call(self, block_identifier: int) -> Any:
        self._owner.calls.append((self._name, self._args, block_identifier))
        outcome = self._owner.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _ContractStub:
    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = outcomes
        self.calls: list[tuple[str, tuple[Any, ...], int]] = []

    def get_function_by_name(self, name: str) -> Any:
        return lambda *args: _FunctionStub(self, name, args)


class _EthStub:
    def __init__(self, contract: _ContractStub) -> None:
        self._contract = contract
        self.contract_requests: list[str] = []

    def contract(self, address: str, abi: list[dict[str, Any]]) -> _ContractStub:
        self.contract_requests.append(address)
        assert abi == list(VAULT_READ_ABI)
        return self._contract


class _Web3Stub:
    def __init__(self, outcomes: list[Any]) -> None:
        self.contract = _ContractStub(outcomes)
        self.eth = _EthStub(self.contract)


def _reader(outcomes: list[Any], max_retries: int = 3) -> tuple[Web3ContractReader, _Web3Stub]:
    web3 = _Web3Stub(outcomes)
    reader = Web3ContractReader(rpc_url="http://unused", max_retries=max_retries, web3=web3)  # type: ignore[arg-type]
    return reader, web3


def test_read_pins_block_and_normalizes_address_output() -> None:
    reader, web3 = _reader(["0x00000000000000000000000000000000000000AB"])

    value = reader.read(VAULT, "owner", (), 1234)

    assert value == "0x00000000000000000000000000000000000000ab"
    assert web3.contract.calls == [("owner", (), 1234)]
    assert reader.call_count == 1


def test_bytes_results_become_hex_strings() -> None:
    reader, _ = _reader([b"\xbe\xef"])
    assert reader.read(VAULT, "liquidityData", (), 1) == "0xbeef"


def test_address_arguments_are_checksummed() -> None:
    reader, web3 = _reader([42])

    assert reader.read(VAULT, "balanceOf", (VAULT,), 9) == 42
    called_args = web3.contract.calls[0][1]
    assert called_args[0].lower() == VAULT
    assert called_args[0] != VAULT


def test_transport_errors_are_retried_then_succeed() -> None:
    reader, web3 = _reader([OSError("connection reset"), ValueError("rate limited"), 100])

    assert reader.read(VAULT, "totalAssets", (), 5) == 100
    assert reader.call_count == 3
    assert len(web3.contract.calls) == 3


def test_exhausted_retries_raise_contract_read_error() -> None:
    reader, _ = _reader([OSError("down"), OSError("down")], max_retries=2)

    with pytest.raises(ContractReadError, match="failed after retries"):
        reader.read(VAULT, "totalAssets", (), 5)
    assert reader.call_count == 2


def test_revert_is_not_retried() -> None:
    reader, web3 = _reader([ContractLogicError("execution reverted"), 1])

    with pytest.raises(ContractReadError, match="reverted"):
        reader.read(VAULT, "convertToAssets", (10**18,), 5)
    assert len(web3.contract.calls) == 1
