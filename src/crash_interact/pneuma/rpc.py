"""
JSON-RPC client for the ledger gateway.

Async httpx client speaking the gateway's ``ledger_*`` methods.  One
``LedgerGateway`` owns one ``httpx.AsyncClient`` and is shared by every
concurrent task of a session.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx

from ..errors import LedgerRpcError, ResultDecodeError
from ..utils import hex_to_bytes
from .address import Address

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://devnet-gateway.example.org"

FINAL_STATUSES = frozenset({"success", "fail", "invalid"})


class LedgerGateway:
    def __init__(
        self,
        url: str = DEFAULT_GATEWAY_URL,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "LedgerGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _rpc_call(self, method: str, params: list) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "ledger_query")
            params: RPC parameters

        Returns:
            Result field from the RPC response

        Raises:
            LedgerRpcError: On transport failure or a JSON-RPC error object
        """
        request_id = next(self._ids)
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }
        logger.debug("rpc -> %s #%d", method, request_id)

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise LedgerRpcError(f"{method} failed: {exc}", method=method) from exc
        except ValueError as exc:
            raise LedgerRpcError(f"{method} returned invalid JSON", method=method) from exc

        if not isinstance(data, dict):
            raise LedgerRpcError(f"{method} returned a non-object response", method=method)

        error = data.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": error}
            raise LedgerRpcError(
                f"RPC error: {error.get('message', error)}",
                method=method,
                code=error.get("code"),
                data=error.get("data"),
            )

        return data.get("result")

    async def get_account(self, address: Address) -> dict[str, Any]:
        """Nonce and balance of an account."""
        return await self._rpc_call("ledger_getAccount", [address.checksum()])

    async def send_transaction(self, signed_tx: dict[str, Any]) -> str:
        """
        Send a signed transaction.

        Returns:
            Transaction hash
        """
        return await self._rpc_call("ledger_sendTransaction", [signed_tx])

    async def get_transaction_status(self, tx_hash: str) -> dict[str, Any]:
        return await self._rpc_call("ledger_getTransactionStatus", [tx_hash])

    async def query(self, to: Address, data: bytes) -> list[bytes]:
        """
        Run a read-only contract query.

        Returns:
            Raw return data values

        Raises:
            ResultDecodeError: If the return data is not hex
        """
        result = await self._rpc_call(
            "ledger_query",
            [{"to": to.checksum(), "data": "0x" + data.hex()}],
        )
        try:
            return [hex_to_bytes(item or "") for item in (result or {}).get("returnData") or []]
        except (AttributeError, TypeError, ValueError) as exc:
            raise ResultDecodeError(f"Malformed query return data: {result!r}") from exc
