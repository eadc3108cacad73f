"""
Mintpad Launchpad - Collection Factory

This module provides the CollectionFactory: it holds the implementation
address of every collection variant, the platform fee policy and the
append-only registry of deployed collections, and deploys new collections as
clones (fresh private state, shared behavior) initialized with the caller's
parameters.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from collection.access import OwnershipRecord
from collection.addresses import AddressGenerator, address_check, normalize_address, normalize_addresses
from collection.clock import SystemClock
from collection.core import Collection, build_model
from collection.events import (
    EventLog, CollectionDeployed, ImplementationUpgraded, OpenEditionDeployed,
    PlatformFeeUpdated, OwnershipTransferStarted, OwnershipTransferred
)
from collection.exceptions import (
    AlreadyInitializedError, CollectionNotFoundError, NotInitializedError,
    PaymentError, TransferError, ValidationError
)
from collection.ledger import ValueLedger
from collection.schema import (
    CollectionParams, CollectionSettings, CollectionState, CollectionVariant, OpenEditionParams
)

from .implementations import ImplementationRegistry


FACTORY_DEPLOYER = "0x" + "f" * 40


class FeePolicy(str, Enum):
    """What happens to the platform fee paid with a deployment."""
    FORWARD = "forward"  # split among platform addresses immediately
    RETAIN = "retain"    # kept on the factory balance until withdrawn


class DeploymentRecord(BaseModel):
    """One entry of the deployed-collection registry."""

    address: str
    variant: CollectionVariant
    implementation: str
    owner: str
    deployer: str
    name: str
    symbol: str
    max_supply: Optional[int] = None  # None for open editions
    fee_paid: int = Field(default=0, ge=0)
    deployed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FactorySettings(BaseModel):
    """Defaults applied when a factory is created from configuration."""

    platform_fee: int = Field(default=0, ge=0)
    fee_policy: FeePolicy = Field(default=FeePolicy.FORWARD)
    collection: CollectionSettings = Field(default_factory=CollectionSettings)


class FactoryState(BaseModel):
    """Complete state record of a factory."""

    address: str
    initialized: bool = False
    ownership: Optional[OwnershipRecord] = None
    implementations: Dict[CollectionVariant, str] = Field(default_factory=dict)
    platform_addresses: List[str] = Field(default_factory=list)
    platform_fee: int = Field(default=0, ge=0)
    fee_policy: FeePolicy = Field(default=FeePolicy.FORWARD)
    collection_settings: CollectionSettings = Field(default_factory=CollectionSettings)
    deployed: List[DeploymentRecord] = Field(default_factory=list)
    nonce: int = Field(default=0, ge=0)

    @field_validator('platform_addresses')
    @classmethod
    def validate_platform_addresses(cls, v):
        """Validate platform addresses."""
        return [address_check(a) for a in v]


class ImplementationRecord(BaseModel):
    """Serializable description of a published implementation."""

    address: str
    variant: CollectionVariant
    version: str


class FactorySnapshot(BaseModel):
    """Everything needed to resume a factory and its collections."""

    factory: FactoryState
    implementations: List[ImplementationRecord] = Field(default_factory=list)
    collections: List[CollectionState] = Field(default_factory=list)


class CollectionFactory:
    """Deploys and tracks collection clones."""

    def __init__(
        self,
        address: Optional[str] = None,
        ledger: Optional[ValueLedger] = None,
        events: Optional[EventLog] = None,
        clock=None,
        registry: Optional[ImplementationRegistry] = None,
        state: Optional[FactoryState] = None,
    ):
        """
        Initialize the factory object (the one-time ``initialize`` call is separate).

        Args:
            address: Factory address; derived deterministically if omitted
            ledger: Value ledger shared with deployed collections
            events: Event log shared with deployed collections
            clock: Clock shared with deployed collections
            registry: Implementation registry; a fresh one if omitted
            state: Previously saved state to resume from
        """
        if state is None:
            if address is None:
                address = AddressGenerator().derive(FACTORY_DEPLOYER, 0, "factory")
            state = FactoryState(address=normalize_address(address))

        self._state = state
        self.ledger = ledger or ValueLedger()
        self.events = events or EventLog()
        self.clock = clock or SystemClock()
        self.registry = registry or ImplementationRegistry()
        self._collections: Dict[str, Collection] = {}
        self._generator = AddressGenerator(self._address_taken)
        self._lock = RLock()
        self.logger = logging.getLogger("mintpad.factory")

    @property
    def address(self) -> str:
        return self._state.address

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    def _address_taken(self, address: str) -> bool:
        return address in self._collections or self.registry.is_published(address)

    def _require_initialized(self) -> None:
        if not self._state.initialized:
            raise NotInitializedError("Factory is not initialized")

    def _require_owner(self, caller: str) -> None:
        self._require_initialized()
        self._state.ownership.require_owner(caller)

    # ------------------------------------------------------------------
    # Initialization and administration
    # ------------------------------------------------------------------

    def initialize(
        self,
        caller: str,
        single_implementation: Optional[str],
        multi_implementation: Optional[str],
        platform_addresses: List[str],
        platform_fee: int,
        fee_policy: FeePolicy = FeePolicy.FORWARD,
        collection_settings: Optional[CollectionSettings] = None,
        open_edition_implementation: Optional[str] = None,
    ) -> None:
        """
        One-time setup; ``caller`` becomes the factory owner.

        A ``None`` implementation address publishes the stock implementation
        of that variant.
        """
        with self._lock:
            if self._state.initialized:
                raise AlreadyInitializedError("Factory is already initialized")

            owner = normalize_address(caller)
            addresses = normalize_addresses(platform_addresses)
            if not addresses:
                raise ValidationError("At least one platform address is required")
            if not isinstance(platform_fee, int) or platform_fee < 0:
                raise ValidationError(f"Platform fee must be a non-negative integer, got {platform_fee!r}")

            requested = {
                CollectionVariant.SINGLE: single_implementation,
                CollectionVariant.MULTI: multi_implementation,
                CollectionVariant.OPEN_EDITION: open_edition_implementation,
            }
            implementations = {
                variant: self._check_implementation(variant, address)
                for variant, address in requested.items() if address is not None
            }
            for variant, address in requested.items():
                if address is None:
                    implementations[variant] = self.registry.publish(variant).address

            state = self._state
            state.ownership = OwnershipRecord(owner=owner)
            state.implementations = implementations
            state.platform_addresses = addresses
            state.platform_fee = platform_fee
            state.fee_policy = FeePolicy(fee_policy)
            state.collection_settings = collection_settings or CollectionSettings()
            state.initialized = True

        self.logger.info(
            f"Factory {self.address} initialized by {owner}: fee {platform_fee}, "
            f"policy {state.fee_policy.value}, {len(addresses)} platform address(es)"
        )

    def _check_implementation(self, variant: CollectionVariant, address: str) -> str:
        implementation = self.registry.get(normalize_address(address))
        if implementation.variant != variant:
            raise ValidationError(
                f"Implementation {implementation.address} is {implementation.variant.value}, "
                f"expected {variant.value}"
            )
        return implementation.address

    def publish_implementation(self, caller: str, variant: CollectionVariant, version: str):
        """Publish a new stock implementation of ``variant`` in the registry (owner only)."""
        with self._lock:
            self._require_owner(caller)
            return self.registry.publish(CollectionVariant(variant), version)

    def upgrade_implementation(self, caller: str, variant: CollectionVariant, address: str) -> None:
        """Point future deployments of ``variant`` at another implementation."""
        with self._lock:
            self._require_owner(caller)
            variant = CollectionVariant(variant)
            new_address = self._check_implementation(variant, address)
            previous = self._state.implementations[variant]
            self._state.implementations[variant] = new_address

            self.logger.info(f"{variant.value} implementation upgraded: {previous} -> {new_address}")
            self.events.emit(ImplementationUpgraded(
                source=self.address,
                variant=variant.value,
                previous_implementation=previous,
                new_implementation=new_address,
            ))

    def set_platform_fee(self, caller: str, fee: int) -> None:
        with self._lock:
            self._require_owner(caller)
            if not isinstance(fee, int) or fee < 0:
                raise ValidationError(f"Platform fee must be a non-negative integer, got {fee!r}")
            previous = self._state.platform_fee
            self._state.platform_fee = fee
            self.events.emit(PlatformFeeUpdated(source=self.address, previous_fee=previous, new_fee=fee))

    def set_platform_addresses(self, caller: str, addresses: List[str]) -> None:
        with self._lock:
            self._require_owner(caller)
            addresses = normalize_addresses(addresses)
            if not addresses:
                raise ValidationError("At least one platform address is required")
            self._state.platform_addresses = addresses

    def withdraw_fees(self, caller: str, recipient: str) -> int:
        """Send the factory's retained fees to ``recipient``; returns the amount."""
        with self._lock:
            self._require_owner(caller)
            recipient = normalize_address(recipient)
            amount = self.ledger.balance_of(self.address)
            result = self.ledger.transfer(self.address, recipient, amount)
            if not result.ok:
                raise TransferError(f"Fee withdrawal failed: {result.reason}")
            self.logger.info(f"Withdrew {amount} in retained fees to {recipient}")
            return amount

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._lock:
            self._require_owner(caller)
            ownership = self._state.ownership
            proposed = ownership.propose(caller, new_owner)
            if ownership.pending_owner is not None:
                self.events.emit(OwnershipTransferStarted(
                    source=self.address, previous_owner=ownership.owner, new_owner=proposed
                ))

    def accept_ownership(self, caller: str) -> None:
        with self._lock:
            self._require_initialized()
            previous = self._state.ownership.accept(caller)
            self.events.emit(OwnershipTransferred(
                source=self.address, previous_owner=previous, new_owner=self._state.ownership.owner
            ))

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def deploy_collection(self, caller: str, params: Union[CollectionParams, Dict[str, Any]],
                          payment: int) -> str:
        """
        Deploy and initialize a new collection clone.

        Args:
            caller: Deployer paying the platform fee
            params: Collection parameters (model or plain dict)
            payment: Amount attached to the call; must cover the platform fee

        Returns:
            Address of the new collection

        Raises:
            PaymentError: If ``payment`` is below the platform fee
            ValidationError: If ``params`` are malformed
            TransferError: If the fee cannot be moved; nothing is recorded
        """
        with self._lock:
            self._require_initialized()
            caller = normalize_address(caller)
            self._check_payment(payment)

            if not isinstance(params, CollectionParams):
                params = build_model(CollectionParams, **dict(params))

            collection = self._clone(caller, params.variant, params, payment, params.max_supply)
            address = collection.address

            self.logger.info(
                f"Deployed {params.variant.value} collection {address} "
                f"({params.name}/{params.symbol}) for {params.owner}"
            )
            self.events.emit(CollectionDeployed(
                source=self.address,
                collection_address=address,
                variant=params.variant.value,
                implementation=collection.implementation,
                owner=params.owner,
                name=params.name,
                symbol=params.symbol,
                max_supply=params.max_supply,
                mint_price=params.mint_price,
                base_uri=params.base_uri,
                sale_recipient=params.sale_recipient,
                royalty_recipients=tuple(collection.state.royalties.recipients),
                royalty_percentage=params.royalty_percentage,
                deployer=caller,
                fee_paid=payment,
            ))
            return address

    def deploy_collection_simple(
        self,
        caller: str,
        name: str,
        symbol: str,
        mint_price: int,
        max_supply: int,
        base_uri: str,
        recipient: str,
        royalty_recipient: str,
        royalty_percentage: int,
        payment: int,
        variant: CollectionVariant = CollectionVariant.SINGLE,
    ) -> str:
        """Deploy with one royalty recipient; the caller becomes the owner."""
        try:
            params = CollectionParams.single_recipient(
                name=name,
                symbol=symbol,
                mint_price=mint_price,
                max_supply=max_supply,
                base_uri=base_uri,
                recipient=recipient,
                royalty_recipient=royalty_recipient,
                royalty_percentage=royalty_percentage,
                owner=caller,
                variant=variant,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid CollectionParams: {e}") from e
        return self.deploy_collection(caller, params, payment)

    def deploy_open_edition(
        self,
        caller: str,
        name: str,
        symbol: str,
        base_uri: str,
        mint_price: int,
        recipient: str,
        duration: int,
        payment: int,
        owner: Optional[str] = None,
        mint_limit: Optional[int] = None,
    ) -> str:
        """
        Deploy an open edition that sells for ``duration`` seconds from now.

        The edition has no supply cap. Payment and rollback rules are those of
        :meth:`deploy_collection`.

        Returns:
            Address of the new collection
        """
        with self._lock:
            self._require_initialized()
            caller = normalize_address(caller)
            self._check_payment(payment)

            params = build_model(
                OpenEditionParams,
                name=name,
                symbol=symbol,
                base_uri=base_uri,
                mint_price=mint_price,
                sale_recipient=recipient,
                duration=duration,
                owner=owner or caller,
                mint_limit=mint_limit,
            )
            collection = self._clone(caller, CollectionVariant.OPEN_EDITION, params, payment, None)
            start, end = collection.edition_window()

            self.logger.info(
                f"Deployed open edition {collection.address} ({params.name}/{params.symbol}) "
                f"for {params.owner}, open {start}-{end}"
            )
            self.events.emit(OpenEditionDeployed(
                source=self.address,
                collection_address=collection.address,
                implementation=collection.implementation,
                owner=params.owner,
                name=params.name,
                symbol=params.symbol,
                base_uri=params.base_uri,
                mint_price=params.mint_price,
                sale_recipient=params.sale_recipient,
                edition_start=start,
                edition_end=end,
                deployer=caller,
                fee_paid=payment,
            ))
            return collection.address

    def _check_payment(self, payment: int) -> None:
        fee = self._state.platform_fee
        if not isinstance(payment, int) or payment < fee:
            raise PaymentError(f"Deployment requires a payment of at least {fee}, got {payment}")

    def _clone(self, caller: str, variant: CollectionVariant,
               params: Union[CollectionParams, OpenEditionParams], payment: int,
               max_supply: Optional[int]) -> Collection:
        """
        Create, initialize and register a clone, then move the fee.

        A failed fee transfer unregisters this clone only; deployments made
        by a receive hook during the transfer stay registered.
        """
        state = self._state
        if variant not in state.implementations:
            raise ValidationError(f"No {variant.value} implementation is configured")
        implementation = self.registry.get(state.implementations[variant])
        address, nonce = self._generator.next_free(self.address, state.nonce)

        collection = implementation.behavior(
            address,
            implementation.address,
            ledger=self.ledger,
            events=self.events,
            clock=self.clock,
            settings=state.collection_settings.model_copy(),
        )
        collection.initialize_from_params(params)

        record = DeploymentRecord(
            address=address,
            variant=variant,
            implementation=implementation.address,
            owner=params.owner,
            deployer=caller,
            name=params.name,
            symbol=params.symbol,
            max_supply=max_supply,
            fee_paid=payment,
        )
        previous_nonce = state.nonce
        state.deployed.append(record)
        state.nonce = nonce + 1
        self._collections[address] = collection

        result = self.ledger.transfer_many(caller, self._fee_payouts(payment))
        if not result.ok:
            state.deployed = [r for r in state.deployed if r.address != address]
            if state.nonce == nonce + 1:
                state.nonce = previous_nonce
            del self._collections[address]
            self.logger.warning(f"Deployment by {caller} rolled back: {result.reason}")
            raise TransferError(f"Platform fee transfer failed: {result.reason}")
        return collection

    def _fee_payouts(self, payment: int) -> List[Tuple[str, int]]:
        if self._state.fee_policy == FeePolicy.RETAIN:
            return [(self.address, payment)]

        addresses = self._state.platform_addresses
        share, remainder = divmod(payment, len(addresses))
        payouts = [(a, share) for a in addresses]
        payouts[0] = (addresses[0], share + remainder)
        return payouts

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def platform_fee(self) -> int:
        with self._lock:
            return self._state.platform_fee

    def platform_addresses(self) -> List[str]:
        with self._lock:
            return list(self._state.platform_addresses)

    def fee_policy(self) -> FeePolicy:
        return self._state.fee_policy

    def owner(self) -> str:
        with self._lock:
            self._require_initialized()
            return self._state.ownership.owner

    def implementation(self, variant: CollectionVariant) -> str:
        with self._lock:
            self._require_initialized()
            return self._state.implementations[CollectionVariant(variant)]

    def deployed_collections(self) -> List[str]:
        """Addresses of every deployed collection, in deployment order."""
        with self._lock:
            return [record.address for record in self._state.deployed]

    def deployment_records(self) -> List[DeploymentRecord]:
        with self._lock:
            return [record.model_copy() for record in self._state.deployed]

    def is_deployed(self, address: str) -> bool:
        with self._lock:
            return address.lower() in self._collections

    def get_collection(self, address: str) -> Collection:
        with self._lock:
            collection = self._collections.get(address.lower())
        if collection is None:
            raise CollectionNotFoundError(f"No collection deployed at {address}")
        return collection

    def collections_by_owner(self, owner: str) -> List[str]:
        """Addresses of collections currently owned by ``owner``."""
        owner = owner.lower()
        return [
            address for address in self.deployed_collections()
            if self.get_collection(address).owner() == owner
        ]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            records = self._state.deployed
            return {
                "address": self.address,
                "initialized": self._state.initialized,
                "platform_fee": self._state.platform_fee,
                "fee_policy": self._state.fee_policy.value,
                "total_collections": len(records),
                "single_collections": len([r for r in records if r.variant == CollectionVariant.SINGLE]),
                "multi_collections": len([r for r in records if r.variant == CollectionVariant.MULTI]),
                "open_edition_collections": len(
                    [r for r in records if r.variant == CollectionVariant.OPEN_EDITION]
                ),
                "total_fees_paid": sum(r.fee_paid for r in records),
                "retained_fees": self.ledger.balance_of(self.address),
            }

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> FactorySnapshot:
        """Copy of the factory, its implementations and every collection state."""
        with self._lock:
            return FactorySnapshot(
                factory=self._state.model_copy(deep=True),
                implementations=[
                    ImplementationRecord(address=i.address, variant=i.variant, version=i.version)
                    for i in self.registry.list_implementations()
                ],
                collections=[self._collections[r.address].state for r in self._state.deployed],
            )

    @classmethod
    def from_snapshot(cls, snapshot: FactorySnapshot, ledger: Optional[ValueLedger] = None,
                      events: Optional[EventLog] = None, clock=None) -> "CollectionFactory":
        """Resume a factory and its collections from a snapshot."""
        registry = ImplementationRegistry()
        for record in snapshot.implementations:
            registry.publish(record.variant, record.version, address=record.address)

        factory = cls(ledger=ledger, events=events, clock=clock, registry=registry,
                      state=snapshot.factory.model_copy(deep=True))

        for state in snapshot.collections:
            behavior = registry.get(state.implementation).behavior
            factory._collections[state.address] = behavior.from_state(
                state.model_copy(deep=True), ledger=factory.ledger,
                events=factory.events, clock=factory.clock,
            )

        missing = set(factory.deployed_collections()) - set(factory._collections)
        if missing:
            raise ValidationError(f"Snapshot is missing collection state for {sorted(missing)}")
        return factory
