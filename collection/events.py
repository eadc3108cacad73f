"""
Launchpad Notifications

Event records emitted by the factory and collections once an operation has
committed, and the EventLog that stores them and fans them out to handlers
(off-chain indexers subscribe here).
"""

import logging
import time
import uuid
from collections import defaultdict, deque
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Type


logger = logging.getLogger("mintpad.events")


@dataclass(frozen=True)
class LaunchpadEvent:
    """Base event; ``source`` is the address of the emitting collection or factory."""
    source: str

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event"] = self.event_type
        return data


@dataclass(frozen=True)
class CollectionDeployed(LaunchpadEvent):
    collection_address: str
    variant: str
    implementation: str
    owner: str
    name: str
    symbol: str
    max_supply: int
    mint_price: int
    base_uri: str
    sale_recipient: str
    royalty_recipients: Tuple[str, ...]
    royalty_percentage: int
    deployer: str
    fee_paid: int


@dataclass(frozen=True)
class OpenEditionDeployed(LaunchpadEvent):
    collection_address: str
    implementation: str
    owner: str
    name: str
    symbol: str
    base_uri: str
    mint_price: int
    sale_recipient: str
    edition_start: int
    edition_end: int
    deployer: str
    fee_paid: int


@dataclass(frozen=True)
class TokensMinted(LaunchpadEvent):
    minter: str
    phase_index: int
    token_id: int
    quantity: int
    payment: int


@dataclass(frozen=True)
class PhaseAdded(LaunchpadEvent):
    phase_index: int
    mint_price: int
    mint_limit: int
    mint_start_time: int
    mint_end_time: int
    supply: int
    whitelist_enabled: bool


@dataclass(frozen=True)
class PhaseUpdated(LaunchpadEvent):
    phase_index: int
    changes: Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True)
class WhitelistUpdated(LaunchpadEvent):
    addresses: Tuple[str, ...]
    value: bool


@dataclass(frozen=True)
class Revealed(LaunchpadEvent):
    base_uri: str


@dataclass(frozen=True)
class SaleRecipientUpdated(LaunchpadEvent):
    sale_recipient: str


@dataclass(frozen=True)
class OwnershipTransferStarted(LaunchpadEvent):
    previous_owner: str
    new_owner: str


@dataclass(frozen=True)
class OwnershipTransferred(LaunchpadEvent):
    previous_owner: str
    new_owner: str


@dataclass(frozen=True)
class ImplementationUpgraded(LaunchpadEvent):
    variant: str
    previous_implementation: str
    new_implementation: str


@dataclass(frozen=True)
class PlatformFeeUpdated(LaunchpadEvent):
    previous_fee: int
    new_fee: int


@dataclass
class EventRecord:
    """An emitted event with delivery metadata."""
    event: LaunchpadEvent
    event_id: str = ""
    timestamp: float = 0.0
    sequence: int = 0

    def __post_init__(self):
        if not self.event_id:
            self.event_id = f"evt_{int(time.time() * 1000000)}_{uuid.uuid4().hex[:8]}"
        if not self.timestamp:
            self.timestamp = time.time()


EventHandler = Callable[[LaunchpadEvent], None]


class EventLog:
    """Ordered, thread-safe store of emitted events with subscriber fan-out."""

    def __init__(self, max_events: Optional[int] = None):
        self._lock = Lock()
        self._records: Deque[EventRecord] = deque(maxlen=max_events)
        self._handlers: Dict[Optional[Type[LaunchpadEvent]], List[EventHandler]] = defaultdict(list)
        self._sequence = 0

    def subscribe(self, handler: EventHandler,
                  event_type: Optional[Type[LaunchpadEvent]] = None) -> None:
        """Register a handler for one event type, or for all events if None."""
        with self._lock:
            self._handlers[event_type].append(handler)

    def emit(self, event: LaunchpadEvent) -> EventRecord:
        """
        Record an event and notify subscribers.

        Handler failures are logged and do not affect the emitter, whose
        operation has already committed.
        """
        with self._lock:
            self._sequence += 1
            record = EventRecord(event=event, sequence=self._sequence)
            self._records.append(record)
            handlers = list(self._handlers.get(type(event), [])) + list(self._handlers.get(None, []))

        logger.info(f"{event.event_type} from {event.source}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.event_type}: {e}")

        return record

    def events(self, event_type: Optional[Type[LaunchpadEvent]] = None,
               source: Optional[str] = None) -> List[LaunchpadEvent]:
        """Emitted events, optionally filtered by type and source address."""
        with self._lock:
            records = list(self._records)

        result = []
        for record in records:
            if event_type is not None and not isinstance(record.event, event_type):
                continue
            if source is not None and record.event.source != source.lower():
                continue
            result.append(record.event)
        return result

    def records(self) -> List[EventRecord]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
