"""
Unit tests for open-edition collections and their deployment.
"""

import pytest

from collection.clock import ManualClock
from collection.core import OpenEditionCollection
from collection.events import CollectionDeployed, OpenEditionDeployed, TokensMinted
from collection.exceptions import (
    AlreadyInitializedError, MintLimitExceededError, PaymentError,
    PhaseInactiveError, TransferError, ValidationError
)
from collection.schema import CollectionVariant
from factory.manager import CollectionFactory, FactorySnapshot

from conftest import ALICE, ARTIST, BOB, PLATFORM_A, PLATFORM_FEE, START_TIME, addr


WEEK = 7 * 24 * 60 * 60


@pytest.fixture
def edition(factory):
    address = factory.deploy_open_edition(
        ARTIST, "Moments", "MOM", "ipfs://moments/", 2, ARTIST, WEEK, PLATFORM_FEE,
    )
    return factory.get_collection(address)


class TestOpenEditionDeployment:
    """Test deploying open editions through the factory."""

    def test_deploy(self, factory, edition, events, ledger):
        assert isinstance(edition, OpenEditionCollection)
        assert edition.implementation == factory.implementation(CollectionVariant.OPEN_EDITION)
        assert edition.owner() == ARTIST
        assert edition.edition_window() == (START_TIME, START_TIME + WEEK)

        event = events.events(OpenEditionDeployed)[-1]
        assert event.collection_address == edition.address
        assert (event.edition_start, event.edition_end) == (START_TIME, START_TIME + WEEK)
        assert event.mint_price == 2
        assert events.events(CollectionDeployed) == []

        assert ledger.balance_of(PLATFORM_A) == PLATFORM_FEE // 2
        record = factory.deployment_records()[-1]
        assert record.variant == CollectionVariant.OPEN_EDITION
        assert record.max_supply is None
        assert factory.get_stats()["open_edition_collections"] == 1

    def test_explicit_owner_and_limit(self, factory):
        address = factory.deploy_open_edition(
            ARTIST, "Moments", "MOM", "", 0, BOB, WEEK, PLATFORM_FEE, owner=ALICE, mint_limit=3,
        )
        edition = factory.get_collection(address)
        assert edition.owner() == ALICE
        assert edition.sale_recipient() == BOB
        assert edition.get_phase(0)[1] == 3

    def test_underpaid(self, factory):
        with pytest.raises(PaymentError):
            factory.deploy_open_edition(ARTIST, "Moments", "MOM", "", 0, ARTIST, WEEK, PLATFORM_FEE - 1)
        assert factory.deployed_collections() == []

    @pytest.mark.parametrize("duration", [0, -5])
    def test_invalid_duration(self, factory, duration):
        with pytest.raises(ValidationError):
            factory.deploy_open_edition(ARTIST, "Moments", "MOM", "", 0, ARTIST, duration, PLATFORM_FEE)
        assert factory.deployed_collections() == []

    def test_fee_failure_rolls_back(self, factory):
        poor = addr(0xDEAD)
        with pytest.raises(TransferError):
            factory.deploy_open_edition(poor, "Moments", "MOM", "", 0, poor, WEEK, PLATFORM_FEE)
        assert factory.deployed_collections() == []

    def test_regular_deploy_rejects_open_edition_variant(self, factory, collection_params):
        params = collection_params.model_dump()
        params["variant"] = "open_edition"
        with pytest.raises(ValidationError):
            factory.deploy_collection(ARTIST, params, PLATFORM_FEE)
        assert factory.deployed_collections() == []


class TestOpenEditionMinting:
    """Test the edition window and the absence of a supply cap."""

    def test_uncapped_supply(self, edition, ledger):
        edition.mint(ALICE, 0, 1, 400, quantity=200)
        edition.mint(BOB, 0, 1, 600, quantity=300)

        assert edition.total_minted() == 500
        assert edition.total_supply(1) == 500
        assert edition.max_supply() is None
        assert edition.remaining_supply() is None
        assert edition.summary()["remaining_supply"] is None
        assert ledger.balance_of(ARTIST) == 10_000 - PLATFORM_FEE + 1_000

    def test_window_closes(self, edition, clock):
        assert edition.is_open()
        assert edition.mint_price() == 2

        clock.advance(WEEK)
        assert not edition.is_open()
        with pytest.raises(PhaseInactiveError):
            edition.mint(ALICE, 0, 1, 2)
        assert edition.mint_price() == 2

    def test_exact_payment(self, edition):
        with pytest.raises(PaymentError):
            edition.mint(ALICE, 0, 1, 3)

    def test_wallet_limit(self, factory):
        edition = factory.get_collection(factory.deploy_open_edition(
            ARTIST, "Moments", "MOM", "", 0, ARTIST, WEEK, PLATFORM_FEE, mint_limit=2,
        ))
        edition.mint(ALICE, 0, 1, 0, quantity=2)
        with pytest.raises(MintLimitExceededError):
            edition.mint(ALICE, 0, 1, 0)

    def test_token_uri_served_immediately(self, edition, events):
        edition.mint(ALICE, 0, 7, 2)
        assert edition.token_uri(7) == "ipfs://moments/7"
        assert edition.royalty_percentage() == 0
        assert events.events(TokensMinted)[-1].token_id == 7

    def test_snapshot_round_trip(self, factory, edition, ledger, clock):
        edition.mint(ALICE, 0, 1, 10, quantity=5)

        snapshot = FactorySnapshot.model_validate(factory.snapshot().model_dump(mode="json"))
        resumed = CollectionFactory.from_snapshot(snapshot, ledger=ledger, clock=clock)
        restored = resumed.get_collection(edition.address)

        assert isinstance(restored, OpenEditionCollection)
        assert restored.edition_window() == edition.edition_window()
        assert restored.balance_of(ALICE, 1) == 5
        restored.mint(BOB, 0, 1, 2)
        assert restored.total_minted() == 6


class TestStandaloneOpenEdition:
    """Test the open-edition initializer directly."""

    def test_initialize_once(self):
        clock = ManualClock(1_000)
        edition = OpenEditionCollection(addr(0x77), addr(0x1111), clock=clock)
        edition.initialize("Moments", "MOM", "ipfs://m/", 1, ARTIST, 60, ARTIST)

        assert edition.edition_window() == (1_000, 1_060)
        assert edition.get_total_phases() == 1
        with pytest.raises(AlreadyInitializedError):
            edition.initialize("Again", "AGN", "", 1, ARTIST, 60, ARTIST)

    def test_rejects_collection_params(self, collection_params):
        edition = OpenEditionCollection(addr(0x77), addr(0x1111))
        with pytest.raises(ValidationError):
            edition.initialize_from_params(collection_params)
        assert not edition.initialized
