__all__ = [
    # Session
    "CrashInteract",
    "Config",
    # Address book
    "AddressBook",
    "ContractRole",
    # Proxies
    "ADDER",
    "CALLER",
    "ContractInterface",
    "InterfaceTag",
    "ResultShape",
    "decode_result",
    "get_interface",
    # Transactions
    "Address",
    "CodeMetadata",
    "PendingTransaction",
    "TransactionBuilder",
    "TxKind",
    "Dispatcher",
    "TxOutcome",
    "LedgerGateway",
    "TraceRecorder",
    # Errors
    "InteractError",
    "UnknownOperation",
    "ArgumentTypeMismatch",
    "ResultDecodeError",
    "MissingGasBudget",
    "ConflictingTransactionShape",
    "MissingDependency",
    "LedgerError",
    "LedgerRpcError",
    "TransactionFailed",
    "UpgradeInvariantError",
    # Helpers
    "num_expr",
]

from .config import Config
from .errors import (
    ArgumentTypeMismatch,
    ConflictingTransactionShape,
    InteractError,
    LedgerError,
    LedgerRpcError,
    MissingDependency,
    MissingGasBudget,
    ResultDecodeError,
    TransactionFailed,
    UnknownOperation,
    UpgradeInvariantError,
)
from .interact import CrashInteract
from .pneuma.address import Address
from .pneuma.dispatch import Dispatcher, TxOutcome
from .pneuma.proxy import ADDER, CALLER, ContractInterface, InterfaceTag, ResultShape, decode_result, get_interface
from .pneuma.rpc import LedgerGateway
from .pneuma.trace import TraceRecorder
from .pneuma.tx import CodeMetadata, PendingTransaction, TransactionBuilder, TxKind
from .state import AddressBook, ContractRole
from .utils import num_expr
