"""
CrashInteract - session façade over the adder and caller contracts.

One ``CrashInteract`` owns everything a run needs: the wallet, the gateway,
the dispatcher and the address book.  It is the only component that writes
the address book, and it does so only after a deploy has succeeded.

Warning: multi deploy is not fully supported.  Every deploy overwrites the
adder entry, so only the last deployed address is kept.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import click
from eth_account.signers.local import LocalAccount

from .config import Config
from .errors import ResultDecodeError, TransactionFailed, UpgradeInvariantError
from .pneuma.abi import load_code
from .pneuma.address import Address
from .pneuma.dispatch import Dispatcher, TxOutcome
from .pneuma.proxy import ADDER, CALLER
from .pneuma.rpc import LedgerGateway
from .pneuma.trace import TraceRecorder
from .pneuma.tx import CodeMetadata, PendingTransaction, SenderAccount, TransactionBuilder
from .sigil.eth import get_account, load_private_key
from .state import AddressBook, ContractRole

logger = logging.getLogger(__name__)

DEPLOY_GAS = 30_000_000
MULTI_DEPLOY_GAS = "70,000,000"
CALL_GAS = "30,000,000"
FEED_GAS = "5,000,000"
FEED_AMOUNT = "0,050000000000000000"


def _new_address(outcome: TxOutcome) -> Address:
    if outcome.contract_address is None:
        raise ResultDecodeError(f"Deploy {outcome.tx_hash} returned no contract address")
    return outcome.contract_address


class CrashInteract:
    def __init__(
        self,
        config: Config,
        account: LocalAccount,
        gateway: LedgerGateway,
        state: AddressBook,
        trace: Optional[TraceRecorder] = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.state = state
        self.trace = trace
        self.wallet_address = Address.from_hex(account.address)
        self.dispatcher = Dispatcher(
            gateway,
            account,
            poll_interval=config.poll_interval,
            timeout=config.tx_timeout,
            trace=trace,
        )
        self.sender: Optional[SenderAccount] = None

    @classmethod
    def from_config(cls, config: Config, transport: Any = None) -> "CrashInteract":
        account = get_account(load_private_key(config.env_file))
        gateway = LedgerGateway(config.gateway_url, transport=transport)
        trace = TraceRecorder(config.trace_file) if config.trace_file else None
        return cls(config, account, gateway, AddressBook.load(config.state_file), trace)

    async def __aenter__(self) -> "CrashInteract":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        try:
            if self.trace is not None:
                self.trace.write()
        finally:
            await self.gateway.aclose()

    # ============ Sender context ============

    async def set_state(self) -> SenderAccount:
        """Refresh nonce and balance of the wallet from the ledger."""
        click.echo(f"wallet address: {self.wallet_address}")
        account = await self.gateway.get_account(self.wallet_address)
        self.sender = SenderAccount.from_ledger(self.wallet_address, account)
        logger.debug("Sender nonce=%d balance=%d", self.sender.nonce, self.sender.balance)
        return self.sender

    async def _sender(self) -> SenderAccount:
        if self.sender is None:
            account = await self.gateway.get_account(self.wallet_address)
            self.sender = SenderAccount.from_ledger(self.wallet_address, account)
        return self.sender

    def _tx(self) -> TransactionBuilder:
        return (
            TransactionBuilder(self.wallet_address)
            .chain_id(self.config.chain_id)
            .gas_price(self.config.gas_price)
        )

    def _query(self) -> TransactionBuilder:
        return TransactionBuilder(self.wallet_address).query()

    async def _seal(self, builder: TransactionBuilder) -> PendingTransaction:
        """Assign the next nonce and build."""
        sender = await self._sender()
        tx = builder.nonce(sender.nonce).build()
        sender.next_nonce()
        return tx

    async def _run(self, builder: TransactionBuilder) -> TxOutcome:
        tx = await self._seal(builder)
        outcome = await self.dispatcher.submit_one(tx)
        return outcome.raise_for_status()

    # ============ Deploys ============

    async def deploy(self) -> Address:
        await self.set_state()

        outcome = await self._run(
            self._tx()
            .gas(DEPLOY_GAS)
            .operation(ADDER, "init", 0)
            .code(load_code(self.config.adder_code_path), CodeMetadata.UPGRADEABLE)
        )

        new_address = _new_address(outcome)
        click.echo(f"new address: {new_address}")
        self.state.set(ContractRole.PRIMARY, new_address)
        return new_address

    async def deploy_caller(self) -> Address:
        adder = self.state.current_adder_address
        await self.set_state()

        outcome = await self._run(
            self._tx()
            .gas(DEPLOY_GAS)
            .operation(CALLER, "init", adder)
            .code(load_code(self.config.caller_code_path), CodeMetadata.UPGRADEABLE)
        )

        new_address = _new_address(outcome)
        click.echo(f"new address: {new_address}")
        self.state.set(ContractRole.CALLER, new_address)
        return new_address

    async def multi_deploy(self, count: int) -> list[Address]:
        """
        Deploy ``count`` adders in one concurrent batch.

        Each successful deploy overwrites the adder entry in batch order, so
        the address book ends up with the last one.

        Raises:
            TransactionFailed: After recording the successes, if any
                deploy in the batch failed
        """
        if count < 1:
            click.echo("count must be greater than 0")
            return []

        await self.set_state()
        click.echo(f"deploying {count} contracts...")

        code = load_code(self.config.adder_code_path)
        txs = []
        for _ in range(count):
            txs.append(
                await self._seal(
                    self._tx()
                    .operation(ADDER, "init", 0)
                    .code(code)
                    .gas(MULTI_DEPLOY_GAS)
                )
            )

        outcomes = await self.dispatcher.submit_batch(txs)

        deployed: list[Address] = []
        failures: list[TxOutcome] = []
        for outcome in outcomes:
            if not outcome.ok:
                click.secho(f"deploy failed: {outcome.reason or outcome.status}", fg="red")
                failures.append(outcome)
                continue
            new_address = _new_address(outcome)
            click.echo(f"new address: {new_address}")
            self.state.set(ContractRole.PRIMARY, new_address)
            deployed.append(new_address)

        if failures:
            raise TransactionFailed(
                f"{len(failures)} of {count} deploys failed",
                tx_hash=failures[0].tx_hash,
                reason=failures[0].reason,
            )
        return deployed

    # ============ Calls ============

    async def feed(self) -> TxOutcome:
        """Send a fixed amount of funds to the adder."""
        adder = self.state.current_adder_address
        return await self._run(self._tx().to(adder).value(FEED_AMOUNT).gas(FEED_GAS))

    async def add(self, value: int) -> TxOutcome:
        adder = self.state.current_adder_address
        outcome = await self._run(self._tx().to(adder).gas(CALL_GAS).operation(ADDER, "add", value))
        click.echo("successfully performed add")
        return outcome

    async def call_caller(self, value: int) -> TxOutcome:
        """Ask the caller contract to add ``value`` on the adder it targets."""
        caller = self.state.current_caller_address
        outcome = await self._run(self._tx().to(caller).gas(CALL_GAS).operation(CALLER, "callAdd", value))
        click.echo("successfully performed add")
        return outcome

    # ============ Queries ============

    async def sum(self) -> int:
        adder = self.state.current_adder_address
        tx = self._query().to(adder).operation(ADDER, "sum").build()
        data = await self.dispatcher.query(tx)
        return ADDER.decode("sum", data[0] if data else b"")

    async def print_sum(self) -> int:
        total = await self.sum()
        click.echo(f"sum: {total}")
        return total

    # ============ Upgrade ============

    async def upgrade(self, new_value: int) -> int:
        """
        Upgrade the adder in place, reinitializing its sum to ``new_value``.

        Raises:
            UpgradeInvariantError: If the stored sum differs from
                ``new_value`` after the upgrade
        """
        adder = self.state.current_adder_address
        outcome = await self._run(
            self._tx()
            .to(adder)
            .gas(CALL_GAS)
            .operation(ADDER, "upgrade", new_value)
            .upgrade_code(load_code(self.config.adder_code_path), CodeMetadata.UPGRADEABLE)
        )
        response = ADDER.decode("upgrade", outcome.first)

        total = await self.sum()
        if total != new_value:
            raise UpgradeInvariantError(f"sum after upgrade is {total}, expected {new_value}")

        click.echo(f"response: {response}")
        return response
