"""
Mintpad Launchpad - Address Derivation and Validation

This module provides utilities for validating account addresses and deriving
deterministic addresses for implementations and collection clones.
"""

import hashlib
import re
from typing import Callable, Iterable, List, Optional

from .exceptions import ValidationError


ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_RE = re.compile(r'^0x[a-fA-F0-9]{40}$')


def is_valid_address(address: str) -> bool:
    """Check that an address is 0x-prefixed, 20 bytes of hex."""
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address))


def normalize_address(address: str, allow_zero: bool = False) -> str:
    """
    Validate and normalize an address to lower case.

    Args:
        address: Address string to validate
        allow_zero: Whether the all-zero address is acceptable

    Returns:
        Lower-cased address

    Raises:
        ValidationError: If the address is malformed or zero when not allowed
    """
    if not is_valid_address(address):
        raise ValidationError(f"Invalid address: {address!r}")

    address = address.lower()
    if not allow_zero and address == ZERO_ADDRESS:
        raise ValidationError("Zero address is not allowed")
    return address


def normalize_addresses(addresses: Iterable[str]) -> List[str]:
    """Normalize a batch of addresses, failing on the first bad entry."""
    return [normalize_address(a) for a in addresses]


def address_check(value: str) -> str:
    """Pydantic-friendly validator that raises ValueError on bad addresses."""
    try:
        return normalize_address(value)
    except ValidationError as e:
        raise ValueError(str(e)) from e


class AddressGenerator:
    """Deterministic address generator with collision detection."""

    def __init__(self, collision_checker: Optional[Callable[[str], bool]] = None):
        """
        Initialize address generator.

        Args:
            collision_checker: Function that returns True if an address is taken
        """
        self.collision_checker = collision_checker or (lambda x: False)

    def derive(self, deployer: str, nonce: int, salt: str = "") -> str:
        """
        Derive the address a deployer would create at a given nonce.

        The last 20 bytes of SHA-256 over "deployer|nonce|salt" are used.
        """
        data = f"{deployer.lower()}|{nonce}|{salt}".encode('utf-8')
        return "0x" + hashlib.sha256(data).hexdigest()[-40:]

    def next_free(self, deployer: str, start_nonce: int, salt: str = "",
                  max_attempts: int = 100) -> tuple:
        """
        Find the first unused address at or after ``start_nonce``.

        Returns:
            (address, nonce) tuple
        """
        for nonce in range(start_nonce, start_nonce + max_attempts):
            address = self.derive(deployer, nonce, salt)
            if not self.collision_checker(address):
                return address, nonce

        raise ValidationError(
            f"Unable to derive a free address after {max_attempts} attempts"
        )
