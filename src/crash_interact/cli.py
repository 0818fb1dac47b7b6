"""
Crash Interact CLI

Commands:
  deploy         - Deploy the adder contract
  deploy-caller  - Deploy the caller contract, targeting the current adder
  multi-deploy   - Deploy several adders concurrently
  add            - Add a value to the adder
  call-caller    - Ask the caller contract to add a value on the adder
  feed           - Send funds to the adder
  sum            - Print the adder's sum
  upgrade        - Upgrade the adder, resetting its sum
  whoami         - Show the wallet address
  addresses      - Show the address book
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click

from .config import Config
from .errors import InteractError
from .interact import CrashInteract
from .sigil.eth import get_address, load_private_key
from .state import AddressBook, ContractRole

VERSION = "0.1.0"

Action = Callable[[CrashInteract], Awaitable[Any]]


def _open_interact(config: Config) -> CrashInteract:
    return CrashInteract.from_config(config)


def _run(ctx: click.Context, action: Action) -> Any:
    """Run one façade action in a fresh session and map errors to exit codes."""
    config: Config = ctx.obj

    async def main() -> Any:
        async with _open_interact(config) as interact:
            return await action(interact)

    try:
        return asyncio.run(main())
    except InteractError as exc:
        click.secho(f"ERROR: {exc}", fg="red", err=True)
        sys.exit(exc.exit_code)
    except (ValueError, FileNotFoundError) as exc:
        click.secho(f"ERROR: {exc}", fg="red", err=True)
        sys.exit(1)


# ============ Main CLI Group ============


@click.group()
@click.version_option(version=VERSION, prog_name="crash-interact")
@click.option(
    "--env-file",
    type=click.Path(path_type=Path),
    default=".env",
    show_default=True,
    help="dotenv file with PRIVATE_KEY and ledger settings",
)
@click.option("--gateway", envvar="LEDGER_GATEWAY_URL", default=None, help="Ledger gateway URL")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, env_file: Path, gateway: Optional[str], verbose: bool) -> None:
    """Crash Interact CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = Config.load(env_file)
    if gateway:
        config = dataclasses.replace(config, gateway_url=gateway)
    ctx.obj = config


# ============ Deploys ============


@cli.command()
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy contract"""
    _run(ctx, lambda interact: interact.deploy())


@cli.command("deploy-caller")
@click.pass_context
def deploy_caller(ctx: click.Context) -> None:
    """Deploy caller contract"""
    _run(ctx, lambda interact: interact.deploy_caller())


@cli.command("multi-deploy")
@click.option("--count", "-c", required=True, type=click.IntRange(0, 255), help="The number of contracts to deploy")
@click.pass_context
def multi_deploy(ctx: click.Context, count: int) -> None:
    """Multiple deploy contracts"""
    _run(ctx, lambda interact: interact.multi_deploy(count))


# ============ Calls ============


@cli.command()
@click.option("--value", "-v", required=True, type=click.IntRange(0, 2**32 - 1), help="The value to add")
@click.pass_context
def add(ctx: click.Context, value: int) -> None:
    """Add value"""
    _run(ctx, lambda interact: interact.add(value))


@cli.command("call-caller")
@click.option("--value", "-v", required=True, type=click.IntRange(0, 2**32 - 1), help="The value to add")
@click.pass_context
def call_caller(ctx: click.Context, value: int) -> None:
    """Call caller to add"""
    _run(ctx, lambda interact: interact.call_caller(value))


@cli.command()
@click.pass_context
def feed(ctx: click.Context) -> None:
    """Feed contract funds"""
    outcome = _run(ctx, lambda interact: interact.feed())
    click.echo(f"fed contract, tx {outcome.tx_hash}")


@cli.command("sum")
@click.pass_context
def sum_(ctx: click.Context) -> None:
    """Print sum"""
    _run(ctx, lambda interact: interact.print_sum())


@cli.command()
@click.option("--value", "-v", required=True, type=click.IntRange(0, 2**32 - 1), help="The new sum")
@click.pass_context
def upgrade(ctx: click.Context, value: int) -> None:
    """Upgrade contract"""
    _run(ctx, lambda interact: interact.upgrade(value))


# ============ Local state ============


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show wallet address."""
    config: Config = ctx.obj
    try:
        address = get_address(load_private_key(config.env_file))
    except ValueError as exc:
        click.echo(f"No wallet found: {exc}")
        sys.exit(1)
    click.echo(f"Address: {address}")


@cli.command()
@click.pass_context
def addresses(ctx: click.Context) -> None:
    """Show the address book."""
    config: Config = ctx.obj
    try:
        book = AddressBook.load(config.state_file)
    except InteractError as exc:
        click.secho(f"ERROR: {exc}", fg="red", err=True)
        sys.exit(exc.exit_code)

    for role in ContractRole:
        address = book.get(role)
        click.echo(f"{role.value}: {address if address else 'not deployed'}")


# ============ Entry Points ============


def main() -> None:
    """Crash Interact CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
