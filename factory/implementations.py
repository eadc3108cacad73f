"""
Implementation Registry

The versioned behavior table clones are built from. Each implementation has an
address, a variant and a version, and points at the Collection class that
provides its behavior. Clones store only the implementation address; the
registry resolves it back to behavior when a clone is created or resumed.
"""

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Dict, List, Optional, Type

from collection.addresses import AddressGenerator, normalize_address
from collection.core import (
    Collection, MultiTokenCollection, OpenEditionCollection, SingleTokenCollection
)
from collection.exceptions import ValidationError
from collection.schema import CollectionVariant


logger = logging.getLogger("mintpad.implementations")

DEFAULT_BEHAVIORS: Dict[CollectionVariant, Type[Collection]] = {
    CollectionVariant.SINGLE: SingleTokenCollection,
    CollectionVariant.MULTI: MultiTokenCollection,
    CollectionVariant.OPEN_EDITION: OpenEditionCollection,
}

IMPLEMENTATION_DEPLOYER = "0x" + "1" * 40


@dataclass(frozen=True)
class Implementation:
    """One published implementation."""
    address: str
    variant: CollectionVariant
    version: str
    behavior: Type[Collection]


class ImplementationRegistry:
    """Thread-safe mapping of implementation addresses to behavior."""

    def __init__(self):
        self._lock = RLock()
        self._implementations: Dict[str, Implementation] = {}
        self._generator = AddressGenerator(lambda a: a in self._implementations)
        self._nonce = 0

    def publish(self, variant: CollectionVariant, version: str = "1.0.0",
                behavior: Optional[Type[Collection]] = None,
                address: Optional[str] = None) -> Implementation:
        """
        Publish a new implementation.

        Args:
            variant: Collection variant it implements
            version: Version label
            behavior: Collection class; defaults to the stock class for the variant
            address: Explicit address (used when restoring); derived if omitted

        Returns:
            The published implementation
        """
        variant = CollectionVariant(variant)
        behavior = behavior or DEFAULT_BEHAVIORS[variant]
        if behavior.variant != variant:
            raise ValidationError(
                f"{behavior.__name__} implements {behavior.variant.value}, not {variant.value}"
            )

        with self._lock:
            if address is None:
                address, self._nonce = self._generator.next_free(
                    IMPLEMENTATION_DEPLOYER, self._nonce, salt=f"{variant.value}:{version}"
                )
                self._nonce += 1
            else:
                address = normalize_address(address)
                if address in self._implementations:
                    existing = self._implementations[address]
                    if existing.variant != variant:
                        raise ValidationError(f"Implementation address {address} is already in use")
                    return existing

            implementation = Implementation(address, variant, version, behavior)
            self._implementations[address] = implementation

        logger.info(f"Published {variant.value} implementation {version} at {address}")
        return implementation

    def get(self, address: str) -> Implementation:
        """Resolve an implementation address."""
        with self._lock:
            implementation = self._implementations.get(address.lower())
        if implementation is None:
            raise ValidationError(f"Unknown implementation: {address}")
        return implementation

    def is_published(self, address: str) -> bool:
        with self._lock:
            return address.lower() in self._implementations

    def list_implementations(self, variant: Optional[CollectionVariant] = None) -> List[Implementation]:
        with self._lock:
            implementations = list(self._implementations.values())
        if variant is not None:
            implementations = [i for i in implementations if i.variant == variant]
        return implementations
