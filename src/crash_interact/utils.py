from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union


def num_expr(value: Union[int, str]) -> int:
    """Parse a numeric literal such as ``"30,000,000"`` or ``"70_000_000"``.

    Separators are stripped before parsing, so ``"0,050000000000000000"``
    is 5 * 10**16.
    """
    if isinstance(value, bool):
        raise TypeError("Numeric literal must be an int or a string, not bool")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Numeric literal must be an int or a string, got {type(value).__name__}")
    digits = value.strip().replace(",", "").replace("_", "")
    if not digits.isdigit():
        raise ValueError(f"Invalid numeric literal: {value!r}")
    return int(digits)


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value.removeprefix("0x"))


def load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Write JSON atomically: the previous file stays valid until the rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
