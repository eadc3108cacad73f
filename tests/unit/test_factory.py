"""
Unit tests for the collection factory.
"""

import pytest

from collection.core import MultiTokenCollection, SingleTokenCollection
from collection.events import CollectionDeployed, ImplementationUpgraded, PlatformFeeUpdated
from collection.exceptions import (
    AlreadyInitializedError, AuthorizationError, CollectionNotFoundError,
    NotInitializedError, PaymentError, TransferError, ValidationError
)
from collection.schema import CollectionSettings, CollectionVariant
from factory.manager import CollectionFactory, FactorySnapshot, FeePolicy

from conftest import (
    ALICE, ARTIST, BOB, OWNER, PLATFORM_A, PLATFORM_B, PLATFORM_FEE, addr
)


class TestFactoryInitialization:
    """Test one-time factory setup."""

    def test_initialize(self, factory):
        assert factory.initialized
        assert factory.owner() == OWNER
        assert factory.platform_fee() == PLATFORM_FEE
        assert factory.platform_addresses() == [PLATFORM_A, PLATFORM_B]
        assert factory.registry.get(factory.implementation(CollectionVariant.SINGLE)).behavior is SingleTokenCollection
        assert factory.registry.get(factory.implementation(CollectionVariant.MULTI)).behavior is MultiTokenCollection

    def test_second_initialize_fails(self, factory):
        with pytest.raises(AlreadyInitializedError):
            factory.initialize(ALICE, None, None, [PLATFORM_A], 0)
        assert factory.owner() == OWNER

    def test_uninitialized_factory(self):
        with pytest.raises(NotInitializedError):
            CollectionFactory().deploy_collection(ALICE, {}, 0)

    def test_requires_platform_address(self):
        with pytest.raises(ValidationError):
            CollectionFactory().initialize(OWNER, None, None, [], 0)

    def test_implementation_variant_must_match(self):
        launchpad = CollectionFactory()
        multi = launchpad.registry.publish(CollectionVariant.MULTI)
        with pytest.raises(ValidationError):
            launchpad.initialize(OWNER, multi.address, None, [PLATFORM_A], 0)
        assert not launchpad.initialized

    def test_failed_initialize_publishes_nothing(self):
        launchpad = CollectionFactory()
        single = launchpad.registry.publish(CollectionVariant.SINGLE)

        with pytest.raises(ValidationError):
            launchpad.initialize(OWNER, None, single.address, [PLATFORM_A], 0)
        with pytest.raises(ValidationError):
            launchpad.initialize(OWNER, None, None, [PLATFORM_A], 0,
                                 open_edition_implementation=addr(0x5151))

        assert launchpad.registry.list_implementations() == [single]
        assert not launchpad.initialized


class TestDeployment:
    """Test collection deployment."""

    def test_deploy(self, factory, collection_params, ledger, events):
        address = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)

        assert factory.deployed_collections() == [address]
        assert factory.is_deployed(address)
        target = factory.get_collection(address)
        assert isinstance(target, SingleTokenCollection)
        assert target.owner() == ARTIST
        assert target.implementation == factory.implementation(CollectionVariant.SINGLE)

        event = events.events(CollectionDeployed)[-1]
        assert event.collection_address == address
        assert event.royalty_recipients == (ARTIST, PLATFORM_A)
        assert event.fee_paid == PLATFORM_FEE

    def test_insufficient_payment_records_nothing(self, factory, collection_params, ledger, events):
        with pytest.raises(PaymentError):
            factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE - 1)

        assert factory.deployed_collections() == []
        assert events.events(CollectionDeployed) == []
        assert ledger.balance_of(ARTIST) == 10_000

    def test_invalid_params_record_nothing(self, factory, collection_params):
        params = collection_params.model_dump()
        params["royalty_shares"] = [5_000, 4_000]

        with pytest.raises(ValidationError):
            factory.deploy_collection(ARTIST, params, PLATFORM_FEE)
        assert factory.deployed_collections() == []

    def test_fee_forwarded_and_split(self, factory, collection_params, ledger):
        factory.deploy_collection(ARTIST, collection_params, 101)

        assert ledger.balance_of(PLATFORM_A) == 51
        assert ledger.balance_of(PLATFORM_B) == 50
        assert ledger.balance_of(ARTIST) == 10_000 - 101

    def test_fee_retained(self, ledger, events, clock, collection_params):
        launchpad = CollectionFactory(ledger=ledger, events=events, clock=clock)
        launchpad.initialize(OWNER, None, None, [PLATFORM_A], 50, fee_policy=FeePolicy.RETAIN)

        launchpad.deploy_collection(ARTIST, collection_params, 50)
        assert ledger.balance_of(launchpad.address) == 50
        assert ledger.balance_of(PLATFORM_A) == 0

        with pytest.raises(AuthorizationError):
            launchpad.withdraw_fees(ARTIST, ARTIST)
        assert launchpad.withdraw_fees(OWNER, PLATFORM_A) == 50
        assert ledger.balance_of(PLATFORM_A) == 50

    def test_fee_transfer_failure_rolls_back(self, factory, collection_params, ledger):
        poor = addr(0xDEAD)
        params = collection_params.model_copy(update={"owner": poor})

        with pytest.raises(TransferError):
            factory.deploy_collection(poor, params, PLATFORM_FEE)
        assert factory.deployed_collections() == []

        ledger.deposit(poor, PLATFORM_FEE)
        address = factory.deploy_collection(poor, params, PLATFORM_FEE)
        assert factory.deployed_collections() == [address]

    def test_fee_failure_keeps_deployment_made_by_hook(self, factory, collection_params, ledger, events):
        nested = []

        def hook(sender, recipient, amount):
            if nested:
                return True
            nested.append(None)
            nested[0] = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
            return False

        ledger.set_receive_hook(PLATFORM_A, hook)
        with pytest.raises(TransferError):
            factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        ledger.set_receive_hook(PLATFORM_A, None)

        assert factory.deployed_collections() == [nested[0]]
        assert [e.collection_address for e in events.events(CollectionDeployed)] == [nested[0]]
        assert ledger.balance_of(ARTIST) == 10_000 - PLATFORM_FEE

        snapshot = factory.snapshot()
        assert [c.address for c in snapshot.collections] == [nested[0]]

        later = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        assert later not in nested
        assert factory.deployed_collections() == [nested[0], later]

    def test_timestamps_are_timezone_aware(self, factory, single_collection):
        record = factory.deployment_records()[0]
        assert record.deployed_at.tzinfo is not None
        assert single_collection.state.created_at.tzinfo is not None

    def test_addresses_are_unique(self, factory, collection_params):
        first = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        second = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        assert first != second
        assert factory.deployed_collections() == [first, second]

    def test_clones_have_independent_state(self, factory, collection_params, clock):
        first = factory.get_collection(factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE))
        second = factory.get_collection(factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE))

        index = first.add_mint_phase(ARTIST, 0, 1, clock.now(), clock.now() + 60)
        first.mint(ALICE, index, 1, 0)

        assert first.total_minted() == 1
        assert second.total_minted() == 0
        assert second.get_total_phases() == 0

    def test_deploy_simple(self, factory, ledger):
        address = factory.deploy_collection_simple(
            ALICE, "Simple", "SMP", 5, 20, "ipfs://s/", ALICE, BOB, 1_000, PLATFORM_FEE,
            variant=CollectionVariant.MULTI,
        )
        target = factory.get_collection(address)

        assert isinstance(target, MultiTokenCollection)
        assert target.owner() == ALICE
        assert target.royalty_recipients(0) == BOB
        assert target.royalty_shares(0) == 10_000
        assert target.mint_price() == 5

    def test_deploy_simple_invalid(self, factory):
        with pytest.raises(ValidationError):
            factory.deploy_collection_simple(
                ALICE, "Simple", "SMP", 5, 0, "ipfs://s/", ALICE, BOB, 1_000, PLATFORM_FEE,
            )

    def test_collections_by_owner_follows_transfers(self, factory, collection_params):
        address = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        assert factory.collections_by_owner(ARTIST) == [address]

        target = factory.get_collection(address)
        target.transfer_ownership(ARTIST, BOB)
        target.accept_ownership(BOB)

        assert factory.collections_by_owner(ARTIST) == []
        assert factory.collections_by_owner(BOB) == [address]

    def test_unknown_collection(self, factory):
        with pytest.raises(CollectionNotFoundError):
            factory.get_collection(addr(0x4242))

    def test_collection_settings_applied(self, ledger, clock, collection_params):
        launchpad = CollectionFactory(ledger=ledger, clock=clock)
        launchpad.initialize(OWNER, None, None, [PLATFORM_A], 0,
                             collection_settings=CollectionSettings(reject_overlapping_phases=True))
        target = launchpad.get_collection(launchpad.deploy_collection(ARTIST, collection_params, 0))
        assert target.state.settings.reject_overlapping_phases


class TestFactoryAdministration:
    """Test owner-only factory operations."""

    def test_set_platform_fee(self, factory, events):
        factory.set_platform_fee(OWNER, 500)
        assert factory.platform_fee() == 500
        assert events.events(PlatformFeeUpdated)[-1].previous_fee == PLATFORM_FEE

        with pytest.raises(AuthorizationError):
            factory.set_platform_fee(ALICE, 0)
        with pytest.raises(ValidationError):
            factory.set_platform_fee(OWNER, -1)

    def test_upgrade_implementation(self, factory, collection_params, events):
        old = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        previous = factory.implementation(CollectionVariant.SINGLE)

        published = factory.publish_implementation(OWNER, CollectionVariant.SINGLE, "2.0.0")
        factory.upgrade_implementation(OWNER, CollectionVariant.SINGLE, published.address)
        new = factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)

        assert factory.get_collection(old).implementation == previous
        assert factory.get_collection(new).implementation == published.address
        assert events.events(ImplementationUpgraded)[-1].new_implementation == published.address

    def test_upgrade_rejects_wrong_variant(self, factory):
        multi = factory.implementation(CollectionVariant.MULTI)
        with pytest.raises(ValidationError):
            factory.upgrade_implementation(OWNER, CollectionVariant.SINGLE, multi)

    def test_upgrade_owner_only(self, factory):
        with pytest.raises(AuthorizationError):
            factory.publish_implementation(ALICE, CollectionVariant.SINGLE, "9.9.9")

    def test_two_step_ownership(self, factory):
        factory.transfer_ownership(OWNER, ALICE)
        assert factory.owner() == OWNER
        factory.accept_ownership(ALICE)
        assert factory.owner() == ALICE

        with pytest.raises(AuthorizationError):
            factory.set_platform_fee(OWNER, 1)

    def test_stats(self, factory, collection_params):
        factory.deploy_collection(ARTIST, collection_params, PLATFORM_FEE)
        stats = factory.get_stats()
        assert stats["total_collections"] == 1
        assert stats["single_collections"] == 1
        assert stats["total_fees_paid"] == PLATFORM_FEE


class TestSnapshots:
    """Test snapshot and resume."""

    def test_round_trip(self, factory, single_collection, open_phase, ledger):
        single_collection.mint(ALICE, open_phase, 3, 1)

        snapshot = FactorySnapshot.model_validate(factory.snapshot().model_dump(mode="json"))
        resumed = CollectionFactory.from_snapshot(snapshot, ledger=ledger)

        assert resumed.address == factory.address
        assert resumed.owner() == OWNER
        assert resumed.deployed_collections() == factory.deployed_collections()

        target = resumed.get_collection(single_collection.address)
        assert target.owner_of(3) == ALICE
        assert target.minted_by(open_phase, ALICE) == 1
        assert target.get_phase(open_phase) == single_collection.get_phase(open_phase)
