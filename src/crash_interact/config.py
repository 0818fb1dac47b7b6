"""
Interactor configuration.

Values come from a .env file (loaded with python-dotenv, without overriding
variables already set in the process) and then from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .pneuma.rpc import DEFAULT_GATEWAY_URL
from .utils import num_expr

DEFAULT_ENV_FILE = Path(".env")

_DEFAULTS: dict[str, str] = {
    "LEDGER_GATEWAY_URL": DEFAULT_GATEWAY_URL,
    "LEDGER_CHAIN_ID": "D",
    "LEDGER_GAS_PRICE": "1,000,000,000",
    "LEDGER_POLL_INTERVAL": "2.0",
    "INTERACT_STATE_FILE": "state.json",
    "INTERACT_TRACE_FILE": "interactor_trace.scen.json",
    "ADDER_CODE_PATH": "../crash-sc/output/crash.mxsc.json",
    "CALLER_CODE_PATH": "../caller-sc/output/caller-sc.mxsc.json",
}


@dataclass(frozen=True)
class Config:
    gateway_url: str = DEFAULT_GATEWAY_URL
    chain_id: str = "D"
    gas_price: int = 1_000_000_000
    poll_interval: float = 2.0
    tx_timeout: Optional[float] = None
    state_file: Path = Path("state.json")
    trace_file: Optional[Path] = Path("interactor_trace.scen.json")
    adder_code_path: Path = Path(_DEFAULTS["ADDER_CODE_PATH"])
    caller_code_path: Path = Path(_DEFAULTS["CALLER_CODE_PATH"])
    env_file: Path = DEFAULT_ENV_FILE

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "Config":
        """
        Build the configuration from ``env_file`` and the environment.

        An empty ``INTERACT_TRACE_FILE`` disables the scenario trace; an
        unset ``LEDGER_TX_TIMEOUT`` waits for finality forever.
        """
        env_file = Path(env_file or DEFAULT_ENV_FILE)
        if env_file.exists():
            load_dotenv(env_file, override=False)

        def get(key: str) -> str:
            return os.environ.get(key, _DEFAULTS.get(key, ""))

        timeout = os.environ.get("LEDGER_TX_TIMEOUT")
        trace = get("INTERACT_TRACE_FILE")
        return cls(
            gateway_url=get("LEDGER_GATEWAY_URL"),
            chain_id=get("LEDGER_CHAIN_ID"),
            gas_price=num_expr(get("LEDGER_GAS_PRICE")),
            poll_interval=float(get("LEDGER_POLL_INTERVAL")),
            tx_timeout=float(timeout) if timeout else None,
            state_file=Path(get("INTERACT_STATE_FILE")),
            trace_file=Path(trace) if trace else None,
            adder_code_path=Path(get("ADDER_CODE_PATH")),
            caller_code_path=Path(get("CALLER_CODE_PATH")),
            env_file=env_file,
        )
