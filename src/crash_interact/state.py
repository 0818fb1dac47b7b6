"""
Address book - the on-chain addresses this operator controls.

One address per contract role.  Deploying again overwrites the entry, so
after several deploys only the last address is kept.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import MissingDependency, StateFileError
from .pneuma.address import Address
from .utils import load_json, write_json

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path("state.json")


class ContractRole(str, enum.Enum):
    PRIMARY = "adder_address"
    CALLER = "caller_address"


_DEPLOY_HINTS = {
    ContractRole.PRIMARY: "deploy",
    ContractRole.CALLER: "deploy-caller",
}


@dataclass
class AddressBook:
    path: Path = DEFAULT_STATE_FILE
    entries: dict[ContractRole, Address] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AddressBook":
        """
        Load the address book, or start empty if the file does not exist.

        Raises:
            StateFileError: If the file exists but cannot be parsed
        """
        path = Path(path or DEFAULT_STATE_FILE)
        book = cls(path=path)
        if not path.exists():
            return book

        try:
            data = load_json(path)
            for role in ContractRole:
                value = data.get(role.value)
                if value:
                    book.entries[role] = Address.from_hex(value)
        except (json.JSONDecodeError, AttributeError, ValueError, OSError) as exc:
            raise StateFileError(f"Cannot read address book {path}: {exc}") from exc

        return book

    def get(self, role: ContractRole) -> Optional[Address]:
        return self.entries.get(role)

    def require(self, role: ContractRole) -> Address:
        address = self.entries.get(role)
        if address is None:
            raise MissingDependency(
                f"No {role.value} in {self.path}. Run '{_DEPLOY_HINTS[role]}' first."
            )
        return address

    def set(self, role: ContractRole, address: Address) -> None:
        """Bind ``role`` to ``address`` and persist immediately."""
        self.entries[role] = address
        self.save()
        logger.debug("Bound %s to %s", role.value, address)

    def save(self) -> None:
        write_json(self.path, self.to_dict())

    def to_dict(self) -> dict[str, str]:
        return {role.value: str(address) for role, address in self.entries.items()}

    @property
    def current_adder_address(self) -> Address:
        return self.require(ContractRole.PRIMARY)

    @property
    def current_caller_address(self) -> Address:
        return self.require(ContractRole.CALLER)
