"""
Code artifact loader.

Contract code is produced outside this project and shipped as build
artifacts.  Two formats are understood:

- JSON with a top-level ``"code"`` hex string (mxsc-style output)
- JSON with ``bytecode.object`` (Foundry output)

Any other file is taken as the raw code blob.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=16)
def load_code(path: Path) -> bytes:
    """
    Load a contract code blob.

    Args:
        path: Artifact path

    Returns:
        Code bytes

    Raises:
        FileNotFoundError: If the artifact does not exist
        ValueError: If a JSON artifact carries no code
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Code artifact not found: {path}. Build the contracts first.")

    if path.suffix != ".json":
        return path.read_bytes()

    with path.open("r", encoding="utf-8") as f:
        artifact = json.load(f)

    code = artifact.get("code")
    if not code:
        code = artifact.get("bytecode", {}).get("object", "")
    if not code:
        raise ValueError(f"No code in artifact {path}")

    return bytes.fromhex(code.removeprefix("0x"))
