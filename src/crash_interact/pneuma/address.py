from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from eth_hash.auto import keccak


@dataclass(frozen=True)
class Address:
    """A 20-byte account or contract address.

    Equality is byte equality, so checksummed and lower-case renderings of
    the same address compare equal once parsed.
    """

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes) or len(self.value) != 20:
            raise ValueError("Address must be exactly 20 bytes")

    @classmethod
    def from_hex(cls, text: str) -> "Address":
        if not isinstance(text, str):
            raise ValueError(f"Address must be a hex string, got {type(text).__name__}")
        body = text.removeprefix("0x").removeprefix("0X")
        if len(body) != 40:
            raise ValueError(f"Address must have 40 hex digits: {text!r}")
        try:
            raw = bytes.fromhex(body)
        except ValueError as exc:
            raise ValueError(f"Address is not valid hex: {text!r}") from exc
        return cls(raw)

    @classmethod
    def parse(cls, value: Union["Address", str, bytes]) -> "Address":
        if isinstance(value, Address):
            return value
        if isinstance(value, bytes):
            return cls(value)
        return cls.from_hex(value)

    def to_hex(self) -> str:
        return "0x" + self.value.hex()

    def checksum(self) -> str:
        """EIP-55 rendering: a hex letter is upper-cased when the matching
        nibble of keccak(lower-case hex) is 8 or more."""
        digits = self.value.hex()
        digest = keccak(digits.encode("ascii"))
        nibbles = (digest[i // 2] >> (4 if i % 2 == 0 else 0) & 0xF for i in range(len(digits)))
        return "0x" + "".join(c.upper() if n >= 8 else c for c, n in zip(digits, nibbles))

    def __str__(self) -> str:
        return self.checksum()
