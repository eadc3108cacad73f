"""
Mintpad Collection Module

This module provides the per-instance side of the launchpad: collection state
records, the phased-sale state machine, whitelist and royalty ledgers, and the
single-token, multi-token and open-edition collection behaviors.
"""

from .core import Collection, SingleTokenCollection, MultiTokenCollection, OpenEditionCollection
from .schema import (
    CollectionParams,
    CollectionSettings,
    CollectionState,
    CollectionVariant,
    MintReceipt,
    OpenEditionParams
)
from .phases import Phase, PhaseSchedule
from .whitelist import WhitelistRegistry
from .royalties import RoyaltySplitLedger, SHARE_DENOMINATOR
from .access import OwnershipRecord
from .ledger import ValueLedger, TransferResult
from .events import EventLog
from .clock import SystemClock, ManualClock
from .addresses import ZERO_ADDRESS
from .exceptions import (
    LaunchpadError,
    ValidationError,
    AuthorizationError,
    PhaseStateError,
    AccessError,
    PaymentError,
    SupplyExceededError,
    AlreadyInitializedError,
    TransferError
)

__all__ = [
    "Collection",
    "SingleTokenCollection",
    "MultiTokenCollection",
    "OpenEditionCollection",
    "CollectionParams",
    "CollectionSettings",
    "CollectionState",
    "CollectionVariant",
    "MintReceipt",
    "OpenEditionParams",
    "Phase",
    "PhaseSchedule",
    "WhitelistRegistry",
    "RoyaltySplitLedger",
    "SHARE_DENOMINATOR",
    "OwnershipRecord",
    "ValueLedger",
    "TransferResult",
    "EventLog",
    "SystemClock",
    "ManualClock",
    "ZERO_ADDRESS",
    "LaunchpadError",
    "ValidationError",
    "AuthorizationError",
    "PhaseStateError",
    "AccessError",
    "PaymentError",
    "SupplyExceededError",
    "AlreadyInitializedError",
    "TransferError"
]
