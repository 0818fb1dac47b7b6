"""
Scenario trace of a session.

Every submitted transaction and every query becomes one step; the steps
are written as a single JSON document when the session closes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..utils import utc_now_rfc3339, write_json
from .tx import PendingTransaction, TxKind

if TYPE_CHECKING:
    from .dispatch import TxOutcome

_STEP_NAMES = {
    TxKind.TRANSFER: "transfer",
    TxKind.CALL: "scCall",
    TxKind.DEPLOY: "scDeploy",
    TxKind.UPGRADE: "scUpgrade",
    TxKind.QUERY: "scQuery",
}


@dataclass
class TraceRecorder:
    path: Path
    name: str = "crash-interact"
    steps: list[dict[str, Any]] = field(default_factory=list)

    def _tx_step(self, tx: "PendingTransaction") -> dict[str, Any]:
        step = tx.to_dict()
        step["step"] = _STEP_NAMES[tx.kind]
        if tx.operation:
            step["operation"] = f"{tx.interface.value if tx.interface else '?'}.{tx.operation}"
        step["recordedAt"] = utc_now_rfc3339()
        return step

    def record_tx(self, tx: "PendingTransaction", outcome: "TxOutcome") -> None:
        step = self._tx_step(tx)
        step["expect"] = {
            "status": outcome.status,
            "txHash": outcome.tx_hash,
            "out": ["0x" + item.hex() for item in outcome.return_data],
            "newAddress": str(outcome.contract_address) if outcome.contract_address else None,
            "message": outcome.reason,
        }
        self.steps.append(step)

    def record_query(self, tx: "PendingTransaction", return_data: list[bytes], error: Optional[str] = None) -> None:
        step = self._tx_step(tx)
        step["expect"] = {
            "status": "error" if error else "success",
            "out": ["0x" + item.hex() for item in return_data],
            "message": error,
        }
        self.steps.append(step)

    def write(self) -> None:
        if not self.steps:
            return
        write_json(self.path, {"name": self.name, "steps": self.steps})
