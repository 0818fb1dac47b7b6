"""
Error taxonomy for the crash interactor.

Every error raised on purpose derives from ``InteractError`` and carries an
``exit_code`` used by the CLI.  The upgrade post-condition is the exception:
it is an ``AssertionError`` and is never caught.
"""

from __future__ import annotations

from typing import Any, Optional


class InteractError(RuntimeError):
    exit_code: int = 1


# ============ Proxy ============


class ProxyError(InteractError):
    exit_code = 3


class UnknownOperation(ProxyError):
    def __init__(self, interface: str, operation: str) -> None:
        super().__init__(f"Operation {operation!r} is not declared by the {interface} interface")
        self.interface = interface
        self.operation = operation


class ArgumentTypeMismatch(ProxyError):
    pass


class ResultDecodeError(ProxyError):
    pass


# ============ Builder ============


class BuildError(InteractError):
    exit_code = 4


class MissingGasBudget(BuildError):
    pass


class ConflictingTransactionShape(BuildError):
    pass


class MissingField(BuildError):
    pass


class InvalidValue(BuildError, ValueError):
    pass


class HeterogeneousBatch(BuildError):
    pass


# ============ Session ============


class MissingDependency(InteractError):
    exit_code = 2


class StateFileError(InteractError):
    exit_code = 6


# ============ Ledger ============


class LedgerError(InteractError):
    exit_code = 5


class LedgerRpcError(LedgerError):
    """Transport failure or JSON-RPC error object returned by the gateway."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        code: Optional[int] = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.code = code
        self.data = data


class TransactionFailed(LedgerError):
    """The ledger finalized the transaction with a failure status."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reason = reason


class UpgradeInvariantError(AssertionError):
    """Stored sum after an upgrade differs from the value the upgrade set."""
