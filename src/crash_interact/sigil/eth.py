"""
ECDSA / secp256k1 wallet for the crash interactor.

The wallet key is read from a .env file (``PRIVATE_KEY``) or the process
environment.  Transactions are signed as EIP-191 personal messages over the
RFC 8785 canonical JSON of the unsigned transaction.

Dependencies: eth-account, rfc8785, python-dotenv
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import Any, Optional

import rfc8785
from dotenv import load_dotenv
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount


DEFAULT_ENV = Path(".env")


def generate_eoa() -> tuple[str, str]:
    """
    Generate a new ECDSA/secp256k1 keypair.

    Returns:
        Tuple of (private_key_hex, address)
    """
    private_key = "0x" + secrets.token_hex(32)
    account = Account.from_key(private_key)
    return private_key, account.address


def load_private_key(env_path: Optional[Path] = None) -> str:
    """
    Load private key from .env file or environment.

    Args:
        env_path: Path to .env file (default: ./.env)

    Returns:
        0x-prefixed hex private key

    Raises:
        ValueError: If PRIVATE_KEY is not configured
    """
    env_path = env_path or DEFAULT_ENV

    if env_path.exists():
        load_dotenv(env_path, override=False)

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        raise ValueError(f"PRIVATE_KEY not found. Set it in the environment or in {env_path}")

    if not private_key.startswith("0x"):
        private_key = "0x" + private_key

    return private_key


def get_account(private_key: Optional[str] = None) -> LocalAccount:
    if private_key is None:
        private_key = load_private_key()
    return Account.from_key(private_key)


def get_address(private_key: Optional[str] = None) -> str:
    """Checksummed address for a private key (loaded from .env if omitted)."""
    return get_account(private_key).address


def canonicalize_for_signing(payload: dict[str, Any]) -> bytes:
    """RFC 8785 canonical bytes of a transaction dict, minus any signature."""
    unsigned = {k: v for k, v in payload.items() if k != "signature"}
    return rfc8785.dumps(unsigned)


def sign_transaction(payload: dict[str, Any], account: LocalAccount) -> str:
    """
    Sign a transaction dict.

    Args:
        payload: Wire form of the unsigned transaction
        account: Signing account; must be the transaction sender

    Returns:
        0x-prefixed hex signature (65 bytes: r + s + v)
    """
    signable = encode_defunct(primitive=canonicalize_for_signing(payload))
    signed = account.sign_message(signable)
    return "0x" + bytes(signed.signature).hex()


def recover_signer(payload: dict[str, Any], signature: str) -> str:
    """Recover the address that produced ``signature`` over ``payload``."""
    signable = encode_defunct(primitive=canonicalize_for_signing(payload))
    return Account.recover_message(signable, signature=bytes.fromhex(signature.removeprefix("0x")))
