"""Typed vault event records and decoding from the delivery hand-off format."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, ClassVar, Mapping, Optional

from backend.db.enums import ChangeDirection, GateType, MembershipAction
from indexer.common import ZERO_ADDRESS, normalize_address, normalize_data, normalize_hex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventCoordinate:
    """Location of one log on chain; unique per (chain, transaction, log index)."""

    chain_id: int
    vault_address: str
    block_number: int
    block_timestamp: int
    transaction_hash: str
    transaction_index: int
    log_index: int

    @property
    def event_id(self) -> str:
        return f"{self.chain_id}-{self.transaction_hash}-{self.log_index}"

    @property
    def order_key(self) -> tuple[int, int, int]:
        return (self.block_number, self.transaction_index, self.log_index)


@dataclass(frozen=True)
class VaultEvent:
    """Base record: every event carries its coordinate."""

    KIND: ClassVar[str] = ""

    coordinate: EventCoordinate

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def event_id(self) -> str:
        return self.coordinate.event_id


@dataclass(frozen=True)
class VaultCreated(VaultEvent):
    KIND: ClassVar[str] = "Constructor"

    owner: str
    asset: str


@dataclass(frozen=True)
class OwnerSet(VaultEvent):
    KIND: ClassVar[str] = "SetOwner"

    new_owner: str


@dataclass(frozen=True)
class CuratorSet(VaultEvent):
    KIND: ClassVar[str] = "SetCurator"

    new_curator: str


@dataclass(frozen=True)
class SentinelSet(VaultEvent):
    KIND: ClassVar[str] = "SetIsSentinel"

    account: str
    new_is_sentinel: bool


@dataclass(frozen=True)
class AllocatorSet(VaultEvent):
    KIND: ClassVar[str] = "SetIsAllocator"

    account: str
    new_is_allocator: bool


@dataclass(frozen=True)
class NameSet(VaultEvent):
    KIND: ClassVar[str] = "SetName"

    new_name: str


@dataclass(frozen=True)
class SymbolSet(VaultEvent):
    KIND: ClassVar[str] = "SetSymbol"

    new_symbol: str


_GATE_KINDS: dict[GateType, str] = {
    GateType.RECEIVE_SHARES: "SetReceiveSharesGate",
    GateType.SEND_SHARES: "SetSendSharesGate",
    GateType.RECEIVE_ASSETS: "SetReceiveAssetsGate",
    GateType.SEND_ASSETS: "SetSendAssetsGate",
}


@dataclass(frozen=True)
class GateSet(VaultEvent):
    gate_type: GateType
    new_gate: str

    @property
    def kind(self) -> str:
        return _GATE_KINDS[self.gate_type]


@dataclass(frozen=True)
class AdapterRegistrySet(VaultEvent):
    KIND: ClassVar[str] = "SetAdapterRegistry"

    new_adapter_registry: str


@dataclass(frozen=True)
class AdapterMembershipChanged(VaultEvent):
    action: MembershipAction
    account: str

    @property
    def kind(self) -> str:
        return "AddAdapter" if self.action is MembershipAction.ADD else "RemoveAdapter"


@dataclass(frozen=True)
class TimelockChanged(VaultEvent):
    action: ChangeDirection
    selector: str
    new_duration: int

    @property
    def kind(self) -> str:
        return "IncreaseTimelock" if self.action is ChangeDirection.INCREASE else "DecreaseTimelock"


@dataclass(frozen=True)
class Abdicated(VaultEvent):
    KIND: ClassVar[str] = "Abdicate"

    selector: str


@dataclass(frozen=True)
class LiquidityAdapterSet(VaultEvent):
    """The data argument is indexed, so the log only carries its keccak topic.

    ``new_liquidity_data`` is the decoded value when the delivery side recovered it
    from calldata, otherwise ``None``.
    """

    KIND: ClassVar[str] = "SetLiquidityAdapterAndData"

    sender: str
    new_liquidity_adapter: str
    new_liquidity_data_topic: str
    new_liquidity_data: Optional[str] = None


@dataclass(frozen=True)
class PerformanceFeeSet(VaultEvent):
    KIND: ClassVar[str] = "SetPerformanceFee"

    new_performance_fee: int


@dataclass(frozen=True)
class PerformanceFeeRecipientSet(VaultEvent):
    KIND: ClassVar[str] = "SetPerformanceFeeRecipient"

    new_performance_fee_recipient: str


@dataclass(frozen=True)
class ManagementFeeSet(VaultEvent):
    KIND: ClassVar[str] = "SetManagementFee"

    new_management_fee: int


@dataclass(frozen=True)
class ManagementFeeRecipientSet(VaultEvent):
    KIND: ClassVar[str] = "SetManagementFeeRecipient"

    new_management_fee_recipient: str


@dataclass(frozen=True)
class AbsoluteCapChanged(VaultEvent):
    action: ChangeDirection
    identifier_hash: str
    identifier_data: str
    new_absolute_cap: int
    # Only decreases name the caller.
    sender: Optional[str] = None

    @property
    def kind(self) -> str:
        return "IncreaseAbsoluteCap" if self.action is ChangeDirection.INCREASE else "DecreaseAbsoluteCap"


@dataclass(frozen=True)
class RelativeCapChanged(VaultEvent):
    action: ChangeDirection
    identifier_hash: str
    identifier_data: str
    new_relative_cap: int
    sender: Optional[str] = None

    @property
    def kind(self) -> str:
        return "IncreaseRelativeCap" if self.action is ChangeDirection.INCREASE else "DecreaseRelativeCap"


@dataclass(frozen=True)
class MaxRateSet(VaultEvent):
    KIND: ClassVar[str] = "SetMaxRate"

    new_max_rate: int


@dataclass(frozen=True)
class ForceDeallocatePenaltySet(VaultEvent):
    KIND: ClassVar[str] = "SetForceDeallocatePenalty"

    adapter: str
    force_deallocate_penalty: int


@dataclass(frozen=True)
class InterestAccrued(VaultEvent):
    KIND: ClassVar[str] = "AccrueInterest"

    previous_total_assets: int
    new_total_assets: int
    performance_fee_shares: int
    management_fee_shares: int


@dataclass(frozen=True)
class Deposited(VaultEvent):
    KIND: ClassVar[str] = "Deposit"

    sender: str
    on_behalf: str
    assets: int
    shares: int


@dataclass(frozen=True)
class Withdrawn(VaultEvent):
    KIND: ClassVar[str] = "Withdraw"

    sender: str
    receiver: str
    on_behalf: str
    assets: int
    shares: int


@dataclass(frozen=True)
class SharesTransferred(VaultEvent):
    KIND: ClassVar[str] = "Transfer"

    from_address: str
    to_address: str
    shares: int

    @property
    def is_mint(self) -> bool:
        return self.from_address == ZERO_ADDRESS and self.to_address != ZERO_ADDRESS

    @property
    def is_burn(self) -> bool:
        return self.to_address == ZERO_ADDRESS and self.from_address != ZERO_ADDRESS

    @property
    def is_null_transfer(self) -> bool:
        return self.from_address == ZERO_ADDRESS and self.to_address == ZERO_ADDRESS


@dataclass(frozen=True)
class Allocated(VaultEvent):
    KIND: ClassVar[str] = "Allocate"

    sender: str
    adapter: str
    assets: int
    ids: tuple[str, ...]
    change: int


@dataclass(frozen=True)
class Deallocated(VaultEvent):
    KIND: ClassVar[str] = "Deallocate"

    sender: str
    adapter: str
    assets: int
    ids: tuple[str, ...]
    change: int


@dataclass(frozen=True)
class ForceDeallocated(VaultEvent):
    KIND: ClassVar[str] = "ForceDeallocate"

    sender: str
    adapter: str
    assets: int
    on_behalf: str
    ids: tuple[str, ...]
    penalty_assets: int


def _address(args: Mapping[str, Any], name: str) -> str:
    return normalize_address(args[name])


def _uint(args: Mapping[str, Any], name: str) -> int:
    return int(args[name])


def _flag(args: Mapping[str, Any], name: str) -> bool:
    value = args[name]
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


def _ids(args: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(normalize_hex(value) for value in args["ids"])


def _optional_address(args: Mapping[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    return None if value is None else normalize_address(value)


_Decoder = Callable[[EventCoordinate, Mapping[str, Any]], VaultEvent]


def _gate_decoder(gate_type: GateType, arg_name: str) -> _Decoder:
    return lambda c, a: GateSet(c, gate_type=gate_type, new_gate=_address(a, arg_name))


def _absolute_cap_decoder(action: ChangeDirection) -> _Decoder:
    return lambda c, a: AbsoluteCapChanged(
        c,
        action=action,
        identifier_hash=normalize_hex(a["id"]),
        identifier_data=normalize_hex(a["idData"]),
        new_absolute_cap=_uint(a, "newAbsoluteCap"),
        sender=_optional_address(a, "sender"),
    )


def _relative_cap_decoder(action: ChangeDirection) -> _Decoder:
    return lambda c, a: RelativeCapChanged(
        c,
        action=action,
        identifier_hash=normalize_hex(a["id"]),
        identifier_data=normalize_hex(a["idData"]),
        new_relative_cap=_uint(a, "newRelativeCap"),
        sender=_optional_address(a, "sender"),
    )


def _liquidity_decoder(c: EventCoordinate, a: Mapping[str, Any]) -> VaultEvent:
    decoded = a.get("newLiquidityDataDecoded")
    return LiquidityAdapterSet(
        c,
        sender=_address(a, "sender"),
        new_liquidity_adapter=_address(a, "newLiquidityAdapter"),
        new_liquidity_data_topic=normalize_hex(a["newLiquidityData"]),
        new_liquidity_data=None if decoded is None else normalize_data(decoded),
    )


# Keyed by ABI event name; args use the ABI parameter names.
_DECODERS: dict[str, _Decoder] = {
    "Constructor": lambda c, a: VaultCreated(c, owner=_address(a, "owner"), asset=_address(a, "asset")),
    "SetOwner": lambda c, a: OwnerSet(c, new_owner=_address(a, "newOwner")),
    "SetCurator": lambda c, a: CuratorSet(c, new_curator=_address(a, "newCurator")),
    "SetIsSentinel": lambda c, a: SentinelSet(
        c, account=_address(a, "account"), new_is_sentinel=_flag(a, "newIsSentinel")
    ),
    "SetIsAllocator": lambda c, a: AllocatorSet(
        c, account=_address(a, "account"), new_is_allocator=_flag(a, "newIsAllocator")
    ),
    "SetName": lambda c, a: NameSet(c, new_name=str(a["newName"])),
    "SetSymbol": lambda c, a: SymbolSet(c, new_symbol=str(a["newSymbol"])),
    "SetReceiveSharesGate": _gate_decoder(GateType.RECEIVE_SHARES, "newReceiveSharesGate"),
    "SetSendSharesGate": _gate_decoder(GateType.SEND_SHARES, "newSendSharesGate"),
    "SetReceiveAssetsGate": _gate_decoder(GateType.RECEIVE_ASSETS, "newReceiveAssetsGate"),
    "SetSendAssetsGate": _gate_decoder(GateType.SEND_ASSETS, "newSendAssetsGate"),
    "SetAdapterRegistry": lambda c, a: AdapterRegistrySet(
        c, new_adapter_registry=_address(a, "newAdapterRegistry")
    ),
    "AddAdapter": lambda c, a: AdapterMembershipChanged(
        c, action=MembershipAction.ADD, account=_address(a, "account")
    ),
    "RemoveAdapter": lambda c, a: AdapterMembershipChanged(
        c, action=MembershipAction.REMOVE, account=_address(a, "account")
    ),
    "IncreaseTimelock": lambda c, a: TimelockChanged(
        c,
        action=ChangeDirection.INCREASE,
        selector=normalize_hex(a["selector"]),
        new_duration=_uint(a, "newDuration"),
    ),
    "DecreaseTimelock": lambda c, a: TimelockChanged(
        c,
        action=ChangeDirection.DECREASE,
        selector=normalize_hex(a["selector"]),
        new_duration=_uint(a, "newDuration"),
    ),
    "Abdicate": lambda c, a: Abdicated(c, selector=normalize_hex(a["selector"])),
    "SetLiquidityAdapterAndData": _liquidity_decoder,
    "SetPerformanceFee": lambda c, a: PerformanceFeeSet(c, new_performance_fee=_uint(a, "newPerformanceFee")),
    "SetPerformanceFeeRecipient": lambda c, a: PerformanceFeeRecipientSet(
        c, new_performance_fee_recipient=_address(a, "newPerformanceFeeRecipient")
    ),
    "SetManagementFee": lambda c, a: ManagementFeeSet(c, new_management_fee=_uint(a, "newManagementFee")),
    "SetManagementFeeRecipient": lambda c, a: ManagementFeeRecipientSet(
        c, new_management_fee_recipient=_address(a, "newManagementFeeRecipient")
    ),
    "IncreaseAbsoluteCap": _absolute_cap_decoder(ChangeDirection.INCREASE),
    "DecreaseAbsoluteCap": _absolute_cap_decoder(ChangeDirection.DECREASE),
    "IncreaseRelativeCap": _relative_cap_decoder(ChangeDirection.INCREASE),
    "DecreaseRelativeCap": _relative_cap_decoder(ChangeDirection.DECREASE),
    "SetMaxRate": lambda c, a: MaxRateSet(c, new_max_rate=_uint(a, "newMaxRate")),
    "SetForceDeallocatePenalty": lambda c, a: ForceDeallocatePenaltySet(
        c,
        adapter=_address(a, "adapter"),
        force_deallocate_penalty=_uint(a, "forceDeallocatePenalty"),
    ),
    "AccrueInterest": lambda c, a: InterestAccrued(
        c,
        previous_total_assets=_uint(a, "previousTotalAssets"),
        new_total_assets=_uint(a, "newTotalAssets"),
        performance_fee_shares=_uint(a, "performanceFeeShares"),
        management_fee_shares=_uint(a, "managementFeeShares"),
    ),
    "Deposit": lambda c, a: Deposited(
        c,
        sender=_address(a, "sender"),
        on_behalf=_address(a, "onBehalf"),
        assets=_uint(a, "assets"),
        shares=_uint(a, "shares"),
    ),
    "Withdraw": lambda c, a: Withdrawn(
        c,
        sender=_address(a, "sender"),
        receiver=_address(a, "receiver"),
        on_behalf=_address(a, "onBehalf"),
        assets=_uint(a, "assets"),
        shares=_uint(a, "shares"),
    ),
    "Transfer": lambda c, a: SharesTransferred(
        c,
        from_address=_address(a, "from"),
        to_address=_address(a, "to"),
        shares=_uint(a, "shares"),
    ),
    "Allocate": lambda c, a: Allocated(
        c,
        sender=_address(a, "sender"),
        adapter=_address(a, "adapter"),
        assets=_uint(a, "assets"),
        ids=_ids(a),
        change=_uint(a, "change"),
    ),
    "Deallocate": lambda c, a: Deallocated(
        c,
        sender=_address(a, "sender"),
        adapter=_address(a, "adapter"),
        assets=_uint(a, "assets"),
        ids=_ids(a),
        change=_uint(a, "change"),
    ),
    "ForceDeallocate": lambda c, a: ForceDeallocated(
        c,
        sender=_address(a, "sender"),
        adapter=_address(a, "adapter"),
        assets=_uint(a, "assets"),
        on_behalf=_address(a, "onBehalf"),
        ids=_ids(a),
        penalty_assets=_uint(a, "penaltyAssets"),
    ),
}

SUPPORTED_EVENT_NAMES: frozenset[str] = frozenset(_DECODERS)


def decode_event(payload: Mapping[str, Any]) -> VaultEvent:
    """Build a typed event from a decoded-log mapping.

    Expected shape::

        {"event": "Deposit", "chain_id": 1, "address": "0x..", "block_number": 1,
         "block_timestamp": 1700000000, "transaction_hash": "0x..",
         "transaction_index": 0, "log_index": 3, "args": {...}}
    """
    name = str(payload.get("event", ""))
    decoder = _DECODERS.get(name)
    if decoder is None:
        raise ValueError(f"Unsupported vault event: {name!r}")

    coordinate = EventCoordinate(
        chain_id=int(payload["chain_id"]),
        vault_address=normalize_address(payload["address"]),
        block_number=int(payload["block_number"]),
        block_timestamp=int(payload["block_timestamp"]),
        transaction_hash=normalize_hex(payload["transaction_hash"]),
        transaction_index=int(payload["transaction_index"]),
        log_index=int(payload["log_index"]),
    )
    if coordinate.log_index < 0:
        raise ValueError(f"Negative log index in event {coordinate.event_id}")
    try:
        return decoder(coordinate, payload.get("args", {}))
    except KeyError as exc:
        raise ValueError(f"Missing argument {exc.args[0]!r} for {name} event {coordinate.event_id}") from exc
