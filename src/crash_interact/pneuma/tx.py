"""
Transaction Builder - Assemble immutable pending transactions.

A ``TransactionBuilder`` accumulates optional attributes and validates them
once, in ``build()``.  The resulting ``PendingTransaction`` is frozen; to
change anything, start a new builder.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..errors import (
    BuildError,
    ConflictingTransactionShape,
    InvalidValue,
    MissingField,
    MissingGasBudget,
)
from ..utils import num_expr
from .address import Address
from .proxy import ContractInterface, EndpointKind, InterfaceTag

logger = logging.getLogger(__name__)


class CodeMetadata(enum.IntFlag):
    """Flags attached to deployed code."""

    NONE = 0
    PAYABLE = 0x0002
    PAYABLE_BY_SC = 0x0004
    UPGRADEABLE = 0x0100
    READABLE = 0x0400

    def to_bytes(self) -> bytes:
        return int(self).to_bytes(2, "big")

    def to_hex(self) -> str:
        return self.to_bytes().hex()


class TxKind(str, enum.Enum):
    TRANSFER = "transfer"
    CALL = "call"
    DEPLOY = "deploy"
    UPGRADE = "upgrade"
    QUERY = "query"

    @property
    def mutates_state(self) -> bool:
        return self is not TxKind.QUERY


@dataclass(frozen=True)
class PendingTransaction:
    kind: TxKind
    sender: Address
    receiver: Optional[Address]
    value: int
    gas_limit: int
    data: bytes = b""
    code: Optional[bytes] = None
    code_metadata: Optional[CodeMetadata] = None
    nonce: int = 0
    gas_price: int = 0
    chain_id: str = ""
    interface: Optional[InterfaceTag] = None
    operation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Wire form.  ``value`` travels as a decimal string."""
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "sender": self.sender.checksum(),
            "receiver": self.receiver.checksum() if self.receiver else None,
            "value": str(self.value),
            "gasLimit": self.gas_limit,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "data": "0x" + self.data.hex(),
        }
        if self.code is not None:
            payload["code"] = "0x" + self.code.hex()
            payload["codeMetadata"] = (self.code_metadata or CodeMetadata.NONE).to_hex()
        return payload

    @property
    def shape(self) -> tuple[TxKind, Optional[InterfaceTag], Optional[str]]:
        return (self.kind, self.interface, self.operation)


class TransactionBuilder:
    """
    Fluent builder for ``PendingTransaction``.

    Example::

        tx = (
            TransactionBuilder(sender)
            .to(adder)
            .gas("30,000,000")
            .operation(ADDER, "add", 5)
            .nonce(7)
            .build()
        )
    """

    def __init__(self, sender: Optional[Union[Address, str]] = None) -> None:
        self.sender = Address.parse(sender) if sender is not None else None
        self._receiver: Optional[Address] = None
        self._value = 0
        self._gas: Optional[int] = None
        self._data = b""
        self._deploy_code: Optional[bytes] = None
        self._upgrade_code: Optional[bytes] = None
        self._code_metadata = CodeMetadata.NONE
        self._nonce = 0
        self._gas_price = 0
        self._chain_id = ""
        self._query = False
        self._interface: Optional[ContractInterface] = None
        self._operation: Optional[str] = None
        self._built = False

    def to(self, receiver: Union[Address, str]) -> "TransactionBuilder":
        self._receiver = Address.parse(receiver)
        return self

    def value(self, amount: Union[int, str]) -> "TransactionBuilder":
        try:
            amount = num_expr(amount)
        except (TypeError, ValueError) as exc:
            raise InvalidValue(str(exc)) from exc
        if amount < 0:
            raise InvalidValue(f"Value must be non-negative, got {amount}")
        self._value = amount
        return self

    def gas(self, limit: Union[int, str]) -> "TransactionBuilder":
        try:
            limit = num_expr(limit)
        except (TypeError, ValueError) as exc:
            raise MissingGasBudget(f"Invalid gas budget: {exc}") from exc
        if limit <= 0:
            raise MissingGasBudget(f"Gas budget must be positive, got {limit}")
        self._gas = limit
        return self

    def data(self, payload: bytes) -> "TransactionBuilder":
        self._data = bytes(payload)
        return self

    def operation(self, interface: ContractInterface, name: str, *args: Any) -> "TransactionBuilder":
        """Encode ``name(*args)`` through the interface proxy as the payload."""
        self._data = interface.encode(name, args)
        self._interface = interface
        self._operation = name
        return self

    def code(self, blob: bytes, metadata: CodeMetadata = CodeMetadata.NONE) -> "TransactionBuilder":
        """Deploy ``blob`` as a new contract."""
        self._deploy_code = bytes(blob)
        self._code_metadata = metadata
        return self

    def upgrade_code(self, blob: bytes, metadata: CodeMetadata = CodeMetadata.NONE) -> "TransactionBuilder":
        """Replace the receiver's code with ``blob``."""
        self._upgrade_code = bytes(blob)
        self._code_metadata = metadata
        return self

    def nonce(self, nonce: int) -> "TransactionBuilder":
        self._nonce = nonce
        return self

    def gas_price(self, price: Union[int, str]) -> "TransactionBuilder":
        self._gas_price = num_expr(price)
        return self

    def chain_id(self, chain_id: str) -> "TransactionBuilder":
        self._chain_id = chain_id
        return self

    def query(self) -> "TransactionBuilder":
        """Mark as a read-only query: no gas, no signature, no state change."""
        self._query = True
        return self

    def _resolve_kind(self) -> TxKind:
        if self._deploy_code is not None and self._upgrade_code is not None:
            raise ConflictingTransactionShape("Transaction cannot both deploy and upgrade code")

        if self._query:
            if self._deploy_code is not None or self._upgrade_code is not None:
                raise ConflictingTransactionShape("Queries cannot carry code")
            if self._receiver is None:
                raise MissingField("Query requires a receiver")
            return TxKind.QUERY

        if self._deploy_code is not None:
            if self._receiver is not None:
                raise ConflictingTransactionShape("Deploy transaction cannot have a receiver")
            return TxKind.DEPLOY

        if self._upgrade_code is not None:
            if self._receiver is None:
                raise MissingField("Upgrade requires the receiver contract")
            return TxKind.UPGRADE

        if self._receiver is None:
            raise MissingField("Transaction requires a receiver")
        return TxKind.CALL if self._data else TxKind.TRANSFER

    def _check_operation(self, kind: TxKind) -> None:
        if self._interface is None:
            return
        endpoint = self._interface.endpoint(self._operation)
        expected = {
            TxKind.DEPLOY: (EndpointKind.INIT,),
            TxKind.UPGRADE: (EndpointKind.UPGRADE,),
            TxKind.CALL: (EndpointKind.CALL, EndpointKind.VIEW),
            TxKind.QUERY: (EndpointKind.VIEW,),
        }.get(kind, ())
        if endpoint.kind not in expected:
            raise ConflictingTransactionShape(
                f"{self._interface.name}.{endpoint.name} ({endpoint.kind.value}) "
                f"cannot be sent as a {kind.value} transaction"
            )

    def build(self) -> PendingTransaction:
        """
        Validate and freeze.

        Raises:
            MissingField: No sender, or no receiver where one is needed
            MissingGasBudget: State-mutating transaction without gas, or below
                the operation's minimum
            ConflictingTransactionShape: Receiver with deploy code, or an
                operation that does not fit the transaction kind
        """
        if self._built:
            raise BuildError("Builder already produced a transaction; start a new one")
        if self.sender is None:
            raise MissingField("Transaction requires a sender")

        kind = self._resolve_kind()
        self._check_operation(kind)

        if kind.mutates_state and self._gas is None:
            raise MissingGasBudget(f"{kind.value} transaction requires a gas budget")
        if self._interface is not None:
            floor = self._interface.endpoint(self._operation).min_gas
            if kind.mutates_state and self._gas < floor:
                raise MissingGasBudget(
                    f"{self._interface.name}.{self._operation} needs at least {floor} gas, got {self._gas}"
                )

        code = self._deploy_code if kind is TxKind.DEPLOY else self._upgrade_code
        tx = PendingTransaction(
            kind=kind,
            sender=self.sender,
            receiver=self._receiver,
            value=self._value,
            gas_limit=self._gas or 0,
            data=self._data,
            code=code,
            code_metadata=self._code_metadata if code is not None else None,
            nonce=self._nonce,
            gas_price=self._gas_price,
            chain_id=self._chain_id,
            interface=self._interface.tag if self._interface else None,
            operation=self._operation,
        )
        self._built = True
        logger.debug("Built %s transaction nonce=%d gas=%d", kind.value, tx.nonce, tx.gas_limit)
        return tx


@dataclass
class SenderAccount:
    """Sender context: the wallet address plus the ledger's view of it."""

    address: Address
    nonce: int = 0
    balance: int = 0

    @classmethod
    def from_ledger(cls, address: Address, account: dict[str, Any]) -> "SenderAccount":
        return cls(
            address=address,
            nonce=int(account.get("nonce", 0)),
            balance=int(account.get("balance", "0")),
        )

    def next_nonce(self) -> int:
        nonce = self.nonce
        self.nonce += 1
        return nonce
