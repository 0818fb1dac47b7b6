"""
Shared fixtures: an in-memory ledger served through httpx.MockTransport.

The fake ledger understands the adder and caller contracts well enough to
run the interactor end to end without network access.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
import pytest
import rfc8785
from eth_abi import decode
from eth_hash.auto import keccak

from crash_interact.config import Config
from crash_interact.interact import CrashInteract
from crash_interact.pneuma.proxy import ADDER, CALLER, CALLER_NESTED_GAS, ContractInterface, Endpoint, EndpointKind
from crash_interact.pneuma.rpc import LedgerGateway
from crash_interact.pneuma.trace import TraceRecorder
from crash_interact.sigil.eth import generate_eoa, get_account, recover_signer
from crash_interact.state import AddressBook
from crash_interact.utils import hex_to_bytes

ADDER_CODE = b"\x00asm adder v1"
CALLER_CODE = b"\x00asm caller v1"
UPGRADEABLE = 0x0100


def minimal_big_endian(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def selector_table(interface: ContractInterface) -> dict[bytes, Endpoint]:
    return {e.selector: e for e in interface.endpoints if e.kind in (EndpointKind.CALL, EndpointKind.VIEW)}


class FakeRpcError(Exception):
    pass


class ExecutionFailed(Exception):
    pass


class FakeLedger:
    """Executes transactions immediately; finality is reported after
    ``pending_rounds`` status polls."""

    def __init__(self, pending_rounds: Union[int, Callable[[int], int]] = 0) -> None:
        self.accounts: dict[str, dict[str, int]] = {}
        self.contracts: dict[str, dict[str, Any]] = {}
        self.statuses: dict[str, dict[str, Any]] = {}
        self.polls_left: dict[str, int] = {}
        self.sent: list[dict[str, Any]] = []
        self.finalized: list[str] = []
        self.pending_rounds = pending_rounds
        self.fail_nonces: set[int] = set()
        self.reject_send_nonces: set[int] = set()
        self.query_transport_failures = 0
        self.corrupt_upgrade = False
        self.corrupt_address_nonces: set[int] = set()
        self.code_kinds = {ADDER_CODE: "adder", CALLER_CODE: "caller"}
        self._methods = {
            "ledger_getAccount": self.get_account,
            "ledger_sendTransaction": self.send_transaction,
            "ledger_getTransactionStatus": self.get_transaction_status,
            "ledger_query": self.query,
        }

    # ---- transport ----

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "ledger_query" and self.query_transport_failures > 0:
            self.query_transport_failures -= 1
            raise httpx.ConnectError("connection refused", request=request)
        try:
            result = self._methods[body["method"]](*body["params"])
        except FakeRpcError as exc:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": str(exc)}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    # ---- helpers ----

    def fund(self, address: str, amount: int = 10**21) -> None:
        self._account(address)["balance"] = amount

    def _account(self, address: str) -> dict[str, int]:
        return self.accounts.setdefault(address.lower(), {"nonce": 0, "balance": 0})

    @staticmethod
    def expected_address(sender: str, nonce: int) -> str:
        raw = keccak(bytes.fromhex(sender.removeprefix("0x")) + nonce.to_bytes(8, "big"))[-20:]
        return "0x" + raw.hex()

    def sum_of(self, address: Any) -> int:
        return self.contracts[str(address).lower()]["sum"]

    # ---- RPC methods ----

    def get_account(self, address: str) -> dict[str, Any]:
        account = self._account(address)
        return {"nonce": account["nonce"], "balance": str(account["balance"])}

    def send_transaction(self, signed: dict[str, Any]) -> str:
        payload = {k: v for k, v in signed.items() if k != "signature"}
        if recover_signer(payload, signed["signature"]).lower() != payload["sender"].lower():
            raise FakeRpcError("invalid signature")
        if payload["nonce"] in self.reject_send_nonces:
            raise FakeRpcError("transaction rejected by mempool")

        self.sent.append(signed)
        tx_hash = "0x" + keccak(rfc8785.dumps(signed)).hex()
        sender = self._account(payload["sender"])
        sender["nonce"] = max(sender["nonce"], payload["nonce"] + 1)

        self.statuses[tx_hash] = self._execute(payload)
        rounds = self.pending_rounds
        self.polls_left[tx_hash] = rounds(payload["nonce"]) if callable(rounds) else rounds
        return tx_hash

    def get_transaction_status(self, tx_hash: str) -> dict[str, Any]:
        if tx_hash not in self.statuses:
            raise FakeRpcError("transaction not found")
        if self.polls_left[tx_hash] > 0:
            self.polls_left[tx_hash] -= 1
            return {"status": "pending"}
        if tx_hash not in self.finalized:
            self.finalized.append(tx_hash)
        return self.statuses[tx_hash]

    def query(self, request: dict[str, Any]) -> dict[str, Any]:
        contract = self.contracts.get(request["to"].lower())
        if contract is None:
            raise FakeRpcError("account not found")
        data = hex_to_bytes(request["data"])
        interface = ADDER if contract["kind"] == "adder" else CALLER
        endpoint = selector_table(interface).get(data[:4])
        if endpoint is None:
            raise FakeRpcError("invalid function")
        if endpoint.name == "sum":
            return {"returnData": [minimal_big_endian(contract["sum"]).hex()]}
        return {"returnData": [contract["target"].removeprefix("0x")]}

    # ---- execution ----

    def _execute(self, tx: dict[str, Any]) -> dict[str, Any]:
        try:
            if tx["nonce"] in self.fail_nonces:
                raise ExecutionFailed("execution failed")
            handler = getattr(self, f"_exec_{tx['kind']}")
            status = handler(tx, hex_to_bytes(tx["data"]))
            if tx["nonce"] in self.corrupt_address_nonces:
                status["contractAddress"] = "0x1234"
            return status
        except ExecutionFailed as exc:
            return {"status": "fail", "reason": str(exc), "returnData": [], "contractAddress": None}

    @staticmethod
    def _success(return_data: Optional[list[bytes]] = None, new_address: Optional[str] = None) -> dict[str, Any]:
        return {
            "status": "success",
            "returnData": [item.hex() for item in return_data or []],
            "contractAddress": new_address,
            "reason": None,
        }

    def _init_contract(self, contract: dict[str, Any], code: bytes, args: bytes, upgrade: bool) -> None:
        kind = self.code_kinds.get(code)
        if kind is None:
            raise ExecutionFailed("invalid contract code")
        contract["kind"] = kind
        if kind == "adder":
            (value,) = decode(["uint256" if upgrade else "uint32"], args)
            contract["sum"] = value + 1 if upgrade and self.corrupt_upgrade else value
        else:
            (target,) = decode(["address"], args)
            contract["target"] = target.lower()

    def _exec_deploy(self, tx: dict[str, Any], data: bytes) -> dict[str, Any]:
        address = self.expected_address(tx["sender"], tx["nonce"])
        contract = {"balance": 0, "metadata": int(tx["codeMetadata"], 16)}
        self._init_contract(contract, hex_to_bytes(tx["code"]), data, upgrade=False)
        self.contracts[address] = contract
        return self._success(new_address=address)

    def _exec_upgrade(self, tx: dict[str, Any], data: bytes) -> dict[str, Any]:
        contract = self.contracts.get(tx["receiver"].lower())
        if contract is None:
            raise ExecutionFailed("account not found")
        if not contract["metadata"] & UPGRADEABLE:
            raise ExecutionFailed("contract is not upgradeable")
        self._init_contract(contract, hex_to_bytes(tx["code"]), data, upgrade=True)
        contract["metadata"] = int(tx["codeMetadata"], 16)
        if contract["kind"] == "adder":
            return self._success([minimal_big_endian(contract["sum"])])
        return self._success()

    def _exec_call(self, tx: dict[str, Any], data: bytes) -> dict[str, Any]:
        contract = self.contracts.get(tx["receiver"].lower())
        if contract is None:
            raise ExecutionFailed("account not found")
        interface = ADDER if contract["kind"] == "adder" else CALLER
        endpoint = selector_table(interface).get(data[:4])
        if endpoint is None:
            raise ExecutionFailed("invalid function")

        if endpoint.name == "add":
            (value,) = decode(["uint256"], data[4:])
            contract["sum"] += value
        elif endpoint.name == "callAdd":
            if tx["gasLimit"] < CALLER_NESTED_GAS:
                raise ExecutionFailed("not enough gas")
            target = self.contracts.get(contract["target"])
            if target is None:
                raise ExecutionFailed("target account not found")
            (value,) = decode(["uint256"], data[4:])
            target["sum"] += value
        return self._success()

    def _exec_transfer(self, tx: dict[str, Any], data: bytes) -> dict[str, Any]:
        value = int(tx["value"])
        sender = self._account(tx["sender"])
        if sender["balance"] < value:
            raise ExecutionFailed("insufficient funds")
        sender["balance"] -= value
        receiver = self.contracts.get(tx["receiver"].lower()) or self._account(tx["receiver"])
        receiver["balance"] += value
        return self._success()


# ============ Fixtures ============


@pytest.fixture()
def wallet() -> tuple[str, str]:
    """(private_key, address) of a fresh wallet."""
    return generate_eoa()


@pytest.fixture()
def ledger(wallet: tuple[str, str]) -> FakeLedger:
    fake = FakeLedger()
    fake.fund(wallet[1])
    return fake


@pytest.fixture()
def artifacts(tmp_path: Path) -> tuple[Path, Path]:
    out = tmp_path / "output"
    out.mkdir()
    adder = out / "crash.mxsc.json"
    adder.write_text(json.dumps({"name": "crash", "code": ADDER_CODE.hex()}), encoding="utf-8")
    caller = out / "caller-sc.mxsc.json"
    caller.write_text(json.dumps({"name": "caller-sc", "code": CALLER_CODE.hex()}), encoding="utf-8")
    return adder, caller


@pytest.fixture()
def config(tmp_path: Path, artifacts: tuple[Path, Path]) -> Config:
    return Config(
        gateway_url="http://ledger.test",
        poll_interval=0,
        state_file=tmp_path / "state.json",
        trace_file=tmp_path / "interactor_trace.scen.json",
        adder_code_path=artifacts[0],
        caller_code_path=artifacts[1],
        env_file=tmp_path / ".env",
    )


@pytest.fixture()
def session(
    config: Config,
    wallet: tuple[str, str],
    ledger: FakeLedger,
) -> Callable[[Callable[[CrashInteract], Awaitable[Any]]], Any]:
    """Run one action in a fresh session, as one CLI invocation would.

    The address book is reloaded from disk every time.
    """

    def run(action: Callable[[CrashInteract], Awaitable[Any]]) -> Any:
        async def main() -> Any:
            interact = CrashInteract(
                config,
                get_account(wallet[0]),
                LedgerGateway(config.gateway_url, transport=ledger.transport()),
                AddressBook.load(config.state_file),
                TraceRecorder(config.trace_file),
            )
            async with interact:
                return await action(interact)

        return asyncio.run(main())

    return run
