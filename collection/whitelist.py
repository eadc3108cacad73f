"""
Whitelist Registry

Owner-controlled allow-set gating mint eligibility for whitelist phases.
Membership is a pure set; batch updates either apply completely or not at all.
"""

from typing import Iterable, List, Set

from pydantic import BaseModel, Field

from .addresses import normalize_address, normalize_addresses
from .exceptions import ValidationError


class WhitelistRegistry(BaseModel):
    """Per-collection membership set."""

    members: Set[str] = Field(default_factory=set, description="Whitelisted addresses")

    def set_whitelist(self, addresses: Iterable[str], value: bool) -> List[str]:
        """
        Set every listed address to the same membership value.

        All addresses are validated before any is applied.

        Returns:
            The normalized addresses that were updated
        """
        normalized = normalize_addresses(addresses)

        if value:
            self.members.update(normalized)
        else:
            self.members.difference_update(normalized)

        return normalized

    def is_whitelisted(self, address: str) -> bool:
        """Check membership; malformed addresses are never members."""
        try:
            return normalize_address(address, allow_zero=True) in self.members
        except ValidationError:
            return False

    def list_members(self) -> List[str]:
        """Return members in a stable order."""
        return sorted(self.members)

    def count(self) -> int:
        """Number of members."""
        return len(self.members)
