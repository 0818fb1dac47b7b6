"""
Typed contract proxies.

Each contract interface is declared once as a ``ContractInterface`` and
registered under an ``InterfaceTag``.  The interface turns an operation name
plus arguments into a payload and turns raw results back into values.

Payload layout:

- call / view: 4-byte keccak selector of ``name(type,...)`` followed by the
  ABI encoding of the arguments
- init / upgrade: ABI encoding of the arguments only, the way constructor
  arguments travel with deploy code
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_hash.auto import keccak

from ..errors import ArgumentTypeMismatch, ResultDecodeError, UnknownOperation
from ..utils import num_expr
from .address import Address


class InterfaceTag(str, enum.Enum):
    ADDER = "adder"
    CALLER = "caller"


class ResultShape(enum.Enum):
    NONE = "none"
    UNMANAGED_NUMERIC = "unmanaged_numeric"
    RAW_BYTES = "raw_bytes"


class EndpointKind(enum.Enum):
    INIT = "init"
    UPGRADE = "upgrade"
    CALL = "call"
    VIEW = "view"


@dataclass(frozen=True)
class Endpoint:
    name: str
    inputs: tuple[str, ...] = ()
    returns: ResultShape = ResultShape.NONE
    kind: EndpointKind = EndpointKind.CALL
    min_gas: int = 0

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(self.signature.encode("utf-8"))[:4]


@dataclass(frozen=True)
class ContractInterface:
    tag: InterfaceTag
    name: str
    endpoints: tuple[Endpoint, ...]
    _by_name: Mapping[str, Endpoint] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {e.name: e for e in self.endpoints})

    def endpoint(self, operation: str) -> Endpoint:
        try:
            return self._by_name[operation]
        except KeyError:
            raise UnknownOperation(self.name, operation) from None

    def encode(self, operation: str, args: Sequence[Any] = ()) -> bytes:
        """
        Encode an operation call.

        Raises:
            UnknownOperation: If ``operation`` is not declared
            ArgumentTypeMismatch: If an argument does not fit its declared type
        """
        endpoint = self.endpoint(operation)
        args = list(args)
        if len(args) != len(endpoint.inputs):
            raise ArgumentTypeMismatch(
                f"{self.name}.{operation} takes {len(endpoint.inputs)} argument(s), got {len(args)}"
            )

        values = [_coerce(abi_type, arg, endpoint) for abi_type, arg in zip(endpoint.inputs, args)]
        try:
            encoded = encode(list(endpoint.inputs), values) if values else b""
        except EncodingError as exc:
            raise ArgumentTypeMismatch(f"{endpoint.signature}: {exc}") from exc

        if endpoint.kind in (EndpointKind.INIT, EndpointKind.UPGRADE):
            return encoded
        return endpoint.selector + encoded

    def decode(self, operation: str, raw: Union[bytes, str, None]) -> Any:
        return decode_result(self.endpoint(operation).returns, raw)


def _coerce(abi_type: str, value: Any, endpoint: Endpoint) -> Any:
    if abi_type == "address":
        try:
            return Address.parse(value).value
        except (ValueError, TypeError) as exc:
            raise ArgumentTypeMismatch(f"{endpoint.signature}: expected address, got {value!r}") from exc

    if abi_type.startswith("uint"):
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ArgumentTypeMismatch(
                f"{endpoint.signature}: expected {abi_type}, got {type(value).__name__}"
            )
        try:
            return num_expr(value)
        except ValueError as exc:
            raise ArgumentTypeMismatch(f"{endpoint.signature}: {exc}") from exc

    return value


def decode_result(shape: ResultShape, raw: Union[bytes, str, None]) -> Any:
    """
    Decode one raw result value.

    ``raw`` may be bytes or a hex string.  Numeric results are unsigned
    big-endian integers of any width; empty data decodes to 0.
    """
    if shape is ResultShape.NONE:
        return None

    if raw is None:
        data = b""
    elif isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
    elif isinstance(raw, str):
        try:
            data = bytes.fromhex(raw.removeprefix("0x"))
        except ValueError as exc:
            raise ResultDecodeError(f"Result is not valid hex: {raw!r}") from exc
    else:
        raise ResultDecodeError(f"Cannot decode result of type {type(raw).__name__}")

    if shape is ResultShape.RAW_BYTES:
        return data
    return int.from_bytes(data, "big")


# ============ Declared interfaces ============

ADDER = ContractInterface(
    tag=InterfaceTag.ADDER,
    name="adder",
    endpoints=(
        Endpoint("init", ("uint32",), kind=EndpointKind.INIT),
        Endpoint("add", ("uint256",)),
        Endpoint("sum", (), ResultShape.UNMANAGED_NUMERIC, EndpointKind.VIEW),
        Endpoint("upgrade", ("uint256",), ResultShape.UNMANAGED_NUMERIC, EndpointKind.UPGRADE),
    ),
)

# callAdd makes the ledger run a synchronous adder.add with this gas budget,
# so a callAdd transaction must carry at least that much.
CALLER_NESTED_GAS = 2_000_000

CALLER = ContractInterface(
    tag=InterfaceTag.CALLER,
    name="caller",
    endpoints=(
        Endpoint("init", ("address",), kind=EndpointKind.INIT),
        Endpoint("upgrade", ("address",), kind=EndpointKind.UPGRADE),
        Endpoint("callAdd", ("uint256",), min_gas=CALLER_NESTED_GAS),
        Endpoint("targetAddress", (), ResultShape.RAW_BYTES, EndpointKind.VIEW),
    ),
)

INTERFACES: dict[InterfaceTag, ContractInterface] = {
    ADDER.tag: ADDER,
    CALLER.tag: CALLER,
}


def get_interface(tag: Union[InterfaceTag, str]) -> ContractInterface:
    try:
        return INTERFACES[InterfaceTag(tag)]
    except ValueError:
        raise KeyError(f"Unknown contract interface: {tag!r}") from None


__all__ = [
    "ADDER",
    "CALLER",
    "CALLER_NESTED_GAS",
    "ContractInterface",
    "Endpoint",
    "EndpointKind",
    "INTERFACES",
    "InterfaceTag",
    "ResultShape",
    "decode_result",
    "get_interface",
]
