"""
Pytest configuration and fixtures for Mintpad tests.
"""

import logging
import tempfile
import threading

import pytest

from collection.clock import ManualClock
from collection.events import EventLog
from collection.ledger import ValueLedger
from collection.royalties import SHARE_DENOMINATOR
from collection.schema import CollectionParams, CollectionVariant
from factory.manager import CollectionFactory, FeePolicy


START_TIME = 1_700_000_000
PLATFORM_FEE = 100


def addr(n: int) -> str:
    """Deterministic test address."""
    return "0x" + f"{n:040x}"


OWNER = addr(0xA1)
ARTIST = addr(0xA2)
PLATFORM_A = addr(0xB1)
PLATFORM_B = addr(0xB2)
ALICE = addr(0xC1)
BOB = addr(0xC2)
CAROL = addr(0xC3)


@pytest.fixture
def test_data_dir():
    """Create temporary test data directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def ledger():
    """Ledger with every test wallet funded."""
    return ValueLedger({
        OWNER: 10_000,
        ARTIST: 10_000,
        ALICE: 1_000,
        BOB: 1_000,
        CAROL: 1_000,
    })


@pytest.fixture
def factory(ledger, events, clock):
    """Initialized factory forwarding fees to two platform addresses."""
    launchpad = CollectionFactory(ledger=ledger, events=events, clock=clock)
    launchpad.initialize(
        OWNER, None, None, [PLATFORM_A, PLATFORM_B], PLATFORM_FEE,
        fee_policy=FeePolicy.FORWARD,
    )
    return launchpad


@pytest.fixture
def collection_params():
    """Parameters of a 100-unit single-token collection owned by the artist."""
    return CollectionParams(
        name="Test Collection",
        symbol="TEST",
        max_supply=100,
        base_uri="ipfs://revealed/",
        pre_reveal_uri="ipfs://hidden.json",
        owner=ARTIST,
        sale_recipient=ARTIST,
        royalty_recipients=[ARTIST, PLATFORM_A],
        royalty_shares=[7_500, 2_500],
        royalty_percentage=500,
        mint_price=1,
        variant=CollectionVariant.SINGLE,
    )


@pytest.fixture
def single_collection(factory, collection_params):
    """Deployed single-token collection."""
    address = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
    return factory.get_collection(address)


@pytest.fixture
def multi_collection(factory, collection_params):
    """Deployed multi-token collection."""
    params = collection_params.model_copy(update={"variant": CollectionVariant.MULTI, "symbol": "MULTI"})
    address = factory.deploy_collection(ARTIST, params, PLATFORM_FEE)
    return factory.get_collection(address)


@pytest.fixture
def open_phase(single_collection, clock):
    """Index of a public one-hour phase (price 1, limit 2) open right now."""
    return single_collection.add_mint_phase(ARTIST, 1, 2, clock.now(), clock.now() + 3600)


@pytest.fixture(autouse=True)
def reset_cli_logging():
    """CLI invocations attach handlers bound to CliRunner streams."""
    yield
    for name in ("mintpad", "mintpad-cli"):
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.setLevel(logging.NOTSET)


class ThreadSafeCounter:
    """Thread-safe counter for testing."""

    def __init__(self, initial_value: int = 0):
        self._value = initial_value
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def get_value(self) -> int:
        with self._lock:
            return self._value


@pytest.fixture
def thread_counter():
    """Create thread-safe counter for testing."""
    return ThreadSafeCounter()


# Test markers for different test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as a concurrency test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test paths and names."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "concurrent" in item.name or "thread" in item.name:
            item.add_marker(pytest.mark.concurrency)

        if "slow" in item.name or "large" in item.name:
            item.add_marker(pytest.mark.slow)
