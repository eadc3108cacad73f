"""
Mintpad Factory Module

This module provides the launchpad side of the system: the implementation
registry, the collection factory that deploys clones and collects the
platform fee, and snapshot persistence.
"""

from .implementations import Implementation, ImplementationRegistry
from .manager import (
    CollectionFactory,
    DeploymentRecord,
    FactorySettings,
    FactorySnapshot,
    FactoryState,
    FeePolicy
)
from .storage import LaunchpadStorage, StorageError, IntegrityError, LockTimeoutError

__all__ = [
    "Implementation",
    "ImplementationRegistry",
    "CollectionFactory",
    "DeploymentRecord",
    "FactorySettings",
    "FactorySnapshot",
    "FactoryState",
    "FeePolicy",
    "LaunchpadStorage",
    "StorageError",
    "IntegrityError",
    "LockTimeoutError"
]
