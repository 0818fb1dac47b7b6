"""
Dispatcher - Sign, submit and await transactions.

``submit_one`` sends a transaction and suspends until the ledger reports a
final status.  ``submit_batch`` runs one task per transaction and joins them
with ``asyncio.gather``, so results come back in submission order no matter
which transaction finalizes first.  A failing slot never cancels the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from eth_account.signers.local import LocalAccount

from ..errors import (
    ConflictingTransactionShape,
    HeterogeneousBatch,
    LedgerError,
    LedgerRpcError,
    ResultDecodeError,
    TransactionFailed,
)
from ..sigil.eth import recover_signer, sign_transaction
from ..utils import hex_to_bytes
from .address import Address
from .rpc import FINAL_STATUSES, LedgerGateway
from .trace import TraceRecorder
from .tx import PendingTransaction, TxKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TxOutcome:
    status: str
    tx_hash: Optional[str] = None
    return_data: tuple[bytes, ...] = ()
    contract_address: Optional[Address] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def first(self) -> bytes:
        return self.return_data[0] if self.return_data else b""

    @classmethod
    def failed(cls, reason: str, tx_hash: Optional[str] = None) -> "TxOutcome":
        return cls(status="fail", tx_hash=tx_hash, reason=reason)

    @classmethod
    def from_status(cls, tx_hash: str, status: dict[str, Any]) -> "TxOutcome":
        """
        Outcome from a final status reported by the ledger.

        Raises:
            ResultDecodeError: If return data or the new contract address
                in a final status is malformed
        """
        new_address = status.get("contractAddress")
        try:
            return_data = tuple(hex_to_bytes(item or "") for item in status.get("returnData") or [])
            contract_address = Address.from_hex(new_address) if new_address else None
        except (TypeError, ValueError) as exc:
            raise ResultDecodeError(f"Transaction {tx_hash} has a malformed final status: {exc}") from exc
        return cls(
            status=status["status"],
            tx_hash=tx_hash,
            return_data=return_data,
            contract_address=contract_address,
            reason=status.get("reason"),
        )

    def raise_for_status(self) -> "TxOutcome":
        if not self.ok:
            raise TransactionFailed(
                f"Transaction {self.tx_hash or '<unsent>'} failed: {self.reason or self.status}",
                tx_hash=self.tx_hash,
                reason=self.reason,
            )
        return self


class Dispatcher:
    def __init__(
        self,
        gateway: LedgerGateway,
        account: LocalAccount,
        *,
        poll_interval: float = 2.0,
        timeout: Optional[float] = None,
        query_attempts: int = 3,
        trace: Optional[TraceRecorder] = None,
    ) -> None:
        self.gateway = gateway
        self.account = account
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.query_attempts = query_attempts
        self.trace = trace

    def _sign(self, tx: PendingTransaction) -> dict[str, Any]:
        payload = tx.to_dict()
        signature = sign_transaction(payload, self.account)
        if Address.from_hex(recover_signer(payload, signature)) != tx.sender:
            raise LedgerError(f"Sender {tx.sender} is not the signing wallet {self.account.address}")
        payload["signature"] = signature
        return payload

    async def submit_one(self, tx: PendingTransaction) -> TxOutcome:
        """
        Submit a transaction and wait for finality.

        Returns:
            Outcome with the ledger's final status; failures are returned,
            not raised

        Raises:
            LedgerError: If the gateway cannot be reached or the optional
                timeout elapses
            ResultDecodeError: If the final status is malformed
        """
        if tx.kind is TxKind.QUERY:
            raise ConflictingTransactionShape("Queries are not submitted; use Dispatcher.query")

        tx_hash = await self.gateway.send_transaction(self._sign(tx))
        logger.info("Sent %s transaction %s (nonce %d)", tx.kind.value, tx_hash, tx.nonce)

        outcome = await self._await_final(tx_hash)
        logger.info("Transaction %s finalized: %s", tx_hash, outcome.status)
        if self.trace is not None:
            self.trace.record_tx(tx, outcome)
        return outcome

    async def _await_final(self, tx_hash: str) -> TxOutcome:
        if self.timeout is None:
            return await self._poll(tx_hash)
        try:
            return await asyncio.wait_for(self._poll(tx_hash), self.timeout)
        except asyncio.TimeoutError as exc:
            raise LedgerError(f"Transaction {tx_hash} not final within {self.timeout}s") from exc

    async def _poll(self, tx_hash: str) -> TxOutcome:
        while True:
            status = await self.gateway.get_transaction_status(tx_hash)
            if status and status.get("status") in FINAL_STATUSES:
                return TxOutcome.from_status(tx_hash, status)
            logger.debug("Transaction %s still pending", tx_hash)
            await asyncio.sleep(self.poll_interval)

    async def submit_batch(self, txs: Iterable[PendingTransaction]) -> list[TxOutcome]:
        """
        Submit a homogeneous batch concurrently.

        Returns:
            One outcome per transaction, index-aligned with ``txs``

        Raises:
            HeterogeneousBatch: If the transactions differ in kind, interface
                or operation
        """
        txs = list(txs)
        if not txs:
            return []
        if len({tx.shape for tx in txs}) > 1:
            raise HeterogeneousBatch("Batch transactions must share kind, interface and operation")

        logger.info("Dispatching batch of %d %s transactions", len(txs), txs[0].kind.value)
        tasks = [asyncio.create_task(self._submit_slot(index, tx)) for index, tx in enumerate(txs)]
        return list(await asyncio.gather(*tasks))

    async def _submit_slot(self, index: int, tx: PendingTransaction) -> TxOutcome:
        try:
            return await self.submit_one(tx)
        except (LedgerError, ResultDecodeError) as exc:
            logger.warning("Batch slot %d failed: %s", index, exc)
            outcome = TxOutcome.failed(str(exc))
            if self.trace is not None:
                self.trace.record_tx(tx, outcome)
            return outcome

    async def query(self, tx: PendingTransaction) -> list[bytes]:
        """
        Run a read-only query.

        Transport failures are retried up to ``query_attempts`` times since a
        query has no side effects.  Errors reported by the ledger itself are
        raised immediately.
        """
        if tx.kind is not TxKind.QUERY:
            raise ConflictingTransactionShape(f"Expected a query, got a {tx.kind.value} transaction")

        attempt = 0
        while True:
            attempt += 1
            try:
                data = await self.gateway.query(tx.receiver, tx.data)
            except LedgerRpcError as exc:
                if exc.code is not None or attempt >= self.query_attempts:
                    if self.trace is not None:
                        self.trace.record_query(tx, [], error=str(exc))
                    raise
                logger.debug("Query attempt %d failed, retrying: %s", attempt, exc)
                await asyncio.sleep(self.poll_interval)
                continue

            if self.trace is not None:
                self.trace.record_query(tx, data)
            return data
