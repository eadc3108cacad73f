"""
Mintpad Collection Core

This module provides the behavior shared by every collection clone: one-time
initialization, phase administration, whitelist and royalty access, ownership,
and issuance. A Collection object is a thin behavior wrapper around a private
CollectionState record; the factory builds one per deployment.

Every public mutating operation runs under the instance lock, so the checks of
an operation and its state changes form one indivisible step relative to any
other caller of the same instance.

Three variants are provided:
- SingleTokenCollection: each mint issues one caller-picked, unassigned token id
- MultiTokenCollection: a mint issues ``quantity`` units of a (reusable) token id
- OpenEditionCollection: uncapped editions sold through one window opened at
  initialization
"""

import logging
from functools import wraps
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from .access import OwnershipRecord
from .addresses import normalize_address
from .clock import SystemClock
from .events import (
    EventLog, TokensMinted, PhaseAdded, PhaseUpdated, WhitelistUpdated,
    Revealed, SaleRecipientUpdated, OwnershipTransferStarted, OwnershipTransferred
)
from .exceptions import (
    AlreadyInitializedError, NotInitializedError, NotWhitelistedError,
    PaymentError, SupplyExceededError, TokenAlreadyMintedError,
    TokenNotFoundError, TransferError, ValidationError
)
from .ledger import ValueLedger
from .phases import Phase
from .royalties import RoyaltySplitLedger, SHARE_DENOMINATOR
from .schema import (
    CollectionParams, CollectionSettings, CollectionState, CollectionVariant,
    MintReceipt, OpenEditionParams
)


def build_model(model_cls, **kwargs):
    """Construct a pydantic model, surfacing failures as ValidationError."""
    try:
        return model_cls(**kwargs)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e


def locked(initialized: bool = True, owner: bool = False):
    """
    Run a Collection method under the instance lock.

    Args:
        initialized: Require the instance to be initialized
        owner: Require the first argument (caller) to be the owner
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            with self._lock:
                if initialized:
                    self._require_initialized()
                if owner:
                    caller = args[0] if args else kwargs.get("caller")
                    self._state.ownership.require_owner(caller)
                return func(self, *args, **kwargs)
        return wrapper
    return decorator


class Collection:
    """Behavior shared by all collection variants."""

    variant: CollectionVariant = None

    def __init__(
        self,
        address: str,
        implementation: str,
        ledger: Optional[ValueLedger] = None,
        events: Optional[EventLog] = None,
        clock=None,
        settings: Optional[CollectionSettings] = None,
        state: Optional[CollectionState] = None,
    ):
        """
        Create an uninitialized clone, or wrap an existing state record.

        Args:
            address: Address of this instance
            implementation: Address of the implementation it was cloned from
            ledger: Value ledger used to forward mint proceeds
            events: Event log receiving notifications
            clock: Object with ``now() -> int``
            settings: Runtime settings; ignored when ``state`` is given
            state: Previously saved state to resume from
        """
        if state is None:
            state = CollectionState(
                address=normalize_address(address),
                implementation=normalize_address(implementation),
                variant=self.variant,
                settings=settings or CollectionSettings(),
            )
        elif state.variant != self.variant:
            raise ValidationError(
                f"State of a {state.variant.value} collection cannot back a "
                f"{self.variant.value} collection"
            )

        self._state = state
        self._ledger = ledger or ValueLedger()
        self._events = events or EventLog()
        self._clock = clock or SystemClock()
        self._lock = RLock()
        self.logger = logging.getLogger(f"mintpad.collection.{self.variant.value}")

    @classmethod
    def from_state(cls, state: CollectionState, ledger: Optional[ValueLedger] = None,
                   events: Optional[EventLog] = None, clock=None) -> "Collection":
        """Resume a collection from a saved state record."""
        return cls(state.address, state.implementation, ledger=ledger,
                   events=events, clock=clock, state=state)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    @locked(initialized=False)
    def initialize(
        self,
        name: str,
        symbol: str,
        max_supply: int,
        base_uri: str,
        pre_reveal_uri: str,
        owner: str,
        sale_recipient: str,
        royalty_recipients: List[str],
        royalty_shares: List[int],
        royalty_percentage: int,
        default_mint_price: int = 0,
    ) -> None:
        """
        One-time initializer.

        Raises:
            AlreadyInitializedError: If called a second time
            ValidationError: If any parameter is malformed
        """
        if self._state.initialized:
            raise AlreadyInitializedError(f"Collection {self.address} is already initialized")

        params = build_model(
            CollectionParams,
            name=name,
            symbol=symbol,
            max_supply=max_supply,
            base_uri=base_uri,
            pre_reveal_uri=pre_reveal_uri,
            owner=owner,
            sale_recipient=sale_recipient,
            royalty_recipients=list(royalty_recipients),
            royalty_shares=list(royalty_shares),
            royalty_percentage=royalty_percentage,
            mint_price=default_mint_price,
            variant=self.variant,
        )
        royalties = build_model(
            RoyaltySplitLedger,
            recipients=params.royalty_recipients,
            shares=params.royalty_shares,
            percentage=params.royalty_percentage,
        )

        state = self._state
        state.name = params.name
        state.symbol = params.symbol
        state.max_supply = params.max_supply
        state.total_minted = 0
        state.base_uri = params.base_uri
        state.pre_reveal_uri = params.pre_reveal_uri
        state.default_mint_price = params.mint_price
        state.sale_recipient = params.sale_recipient
        state.ownership = OwnershipRecord(owner=params.owner)
        state.royalties = royalties
        state.initialized = True

        self.logger.info(
            f"Initialized {self.address} ({params.name}/{params.symbol}, "
            f"max supply {params.max_supply}, owner {params.owner})"
        )

    def initialize_from_params(self, params: CollectionParams) -> None:
        """Initialize from a validated parameter record."""
        if params.variant != self.variant:
            raise ValidationError(
                f"Parameters for a {params.variant.value} collection given to a "
                f"{self.variant.value} collection"
            )
        self.initialize(
            params.name, params.symbol, params.max_supply, params.base_uri,
            params.pre_reveal_uri, params.owner, params.sale_recipient,
            params.royalty_recipients, params.royalty_shares,
            params.royalty_percentage, default_mint_price=params.mint_price,
        )

    def _require_initialized(self) -> None:
        if not self._state.initialized:
            raise NotInitializedError(f"Collection {self.address} is not initialized")

    # ------------------------------------------------------------------
    # Identity and state reads
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._state.address

    @property
    def implementation(self) -> str:
        return self._state.implementation

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    @property
    def state(self) -> CollectionState:
        """Deep copy of the state record, safe to persist or inspect."""
        with self._lock:
            return self._state.model_copy(deep=True)

    @locked()
    def name(self) -> str:
        return self._state.name

    @locked()
    def symbol(self) -> str:
        return self._state.symbol

    @locked()
    def max_supply(self) -> Optional[int]:
        return self._state.max_supply

    @locked()
    def total_minted(self) -> int:
        return self._state.total_minted

    @locked()
    def remaining_supply(self) -> Optional[int]:
        """Units left before the cap, or None when the collection is uncapped."""
        return self._remaining()

    def _remaining(self) -> Optional[int]:
        if self._state.max_supply is None:
            return None
        return self._state.max_supply - self._state.total_minted

    @locked()
    def owner(self) -> str:
        return self._state.ownership.owner

    @locked()
    def pending_owner(self) -> Optional[str]:
        return self._state.ownership.pending_owner

    @locked()
    def sale_recipient(self) -> str:
        return self._state.sale_recipient

    @locked()
    def is_revealed(self) -> bool:
        return self._state.revealed

    # ------------------------------------------------------------------
    # Phase schedule
    # ------------------------------------------------------------------

    @locked(owner=True)
    def add_mint_phase(self, caller: str, price: int, limit: int, start: int, end: int,
                       whitelist_enabled: bool = False, supply: Optional[int] = None) -> int:
        """
        Append a sale phase.

        ``supply`` caps the collection's total minted while this phase sells;
        it defaults to the collection's max supply.

        Returns:
            Index of the new phase
        """
        phase = build_model(
            Phase,
            mint_price=price,
            mint_limit=limit,
            mint_start_time=start,
            mint_end_time=end,
            supply=self._state.max_supply if supply is None else supply,
            whitelist_enabled=whitelist_enabled,
        )
        index = self._state.phases.add_phase(
            phase, reject_overlap=self._state.settings.reject_overlapping_phases
        )

        self._events.emit(PhaseAdded(
            source=self.address,
            phase_index=index,
            mint_price=phase.mint_price,
            mint_limit=phase.mint_limit,
            mint_start_time=phase.mint_start_time,
            mint_end_time=phase.mint_end_time,
            supply=phase.supply,
            whitelist_enabled=phase.whitelist_enabled,
        ))
        return index

    @locked(owner=True)
    def set_mint_phase(self, caller: str, start: int, end: int, phase_index: int,
                       supply: int, price: int, limit: int) -> Phase:
        """Rewrite the window, supply, price and limit of an existing phase."""
        return self._update_phase(phase_index, {
            "mint_start_time": start,
            "mint_end_time": end,
            "supply": supply,
            "mint_price": price,
            "mint_limit": limit,
        })

    @locked(owner=True)
    def set_mint_phase_settings(
        self,
        caller: str,
        phase_index: int,
        mint_price: Optional[int] = None,
        mint_limit: Optional[int] = None,
        mint_start_time: Optional[int] = None,
        mint_end_time: Optional[int] = None,
        supply: Optional[int] = None,
        whitelist_enabled: Optional[bool] = None,
    ) -> Phase:
        """Update any subset of a phase's fields; omitted fields are kept."""
        changes = {
            "mint_price": mint_price,
            "mint_limit": mint_limit,
            "mint_start_time": mint_start_time,
            "mint_end_time": mint_end_time,
            "supply": supply,
            "whitelist_enabled": whitelist_enabled,
        }
        return self._update_phase(phase_index, {k: v for k, v in changes.items() if v is not None})

    def _update_phase(self, phase_index: int, changes: Dict[str, Any]) -> Phase:
        try:
            phase = self._state.phases.update_phase(
                phase_index, changes,
                reject_overlap=self._state.settings.reject_overlapping_phases,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid phase update: {e}") from e

        self._events.emit(PhaseUpdated(
            source=self.address,
            phase_index=phase_index,
            changes=tuple(sorted(changes.items())),
        ))
        return phase

    @locked()
    def get_phase(self, index: int) -> Tuple[int, int, int, int, int, bool]:
        """(price, limit, start, end, supply, whitelist_enabled) of a phase."""
        return self._state.phases.get_phase(index).as_tuple()

    @locked()
    def get_total_phases(self) -> int:
        return self._state.phases.total_phases()

    @locked()
    def active_phase_indices(self, now: Optional[int] = None) -> List[int]:
        """Indices of phases active at ``now`` (defaults to the clock's time)."""
        return self._state.phases.active_indices(self._clock.now() if now is None else now)

    @locked()
    def mint_price(self) -> int:
        """Price of the first active phase, or the default price if none is active."""
        active = self._state.phases.active_indices(self._clock.now())
        if active:
            return self._state.phases.get_phase(active[0]).mint_price
        return self._state.default_mint_price

    @locked()
    def minted_by(self, phase_index: int, wallet: str) -> int:
        """Units ``wallet`` minted in phase ``phase_index``."""
        self._state.phases.get_phase(phase_index)
        return self._state.phases.minted_by(phase_index, wallet.lower())

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------

    @locked(owner=True)
    def set_whitelist(self, caller: str, addresses: List[str], value: bool) -> List[str]:
        """Set membership of every listed address to ``value``."""
        updated = self._state.whitelist.set_whitelist(addresses, bool(value))
        self.logger.info(f"Whitelist of {self.address}: {len(updated)} address(es) set to {bool(value)}")
        self._events.emit(WhitelistUpdated(
            source=self.address, addresses=tuple(updated), value=bool(value)
        ))
        return updated

    @locked()
    def is_whitelisted(self, address: str) -> bool:
        return self._state.whitelist.is_whitelisted(address)

    @locked()
    def whitelist_members(self) -> List[str]:
        return self._state.whitelist.list_members()

    # ------------------------------------------------------------------
    # Royalties
    # ------------------------------------------------------------------

    @locked()
    def royalty_recipients(self, index: int) -> str:
        return self._state.royalties.royalty_recipient(index)

    @locked()
    def royalty_shares(self, index: int) -> int:
        return self._state.royalties.royalty_share(index)

    @locked()
    def royalty_percentage(self) -> int:
        return self._state.royalties.percentage

    @locked()
    def royalty_info(self, token_id: int, sale_price: int) -> Tuple[str, int]:
        """(receiver, amount) owed on a secondary sale of ``token_id``."""
        return self._state.royalties.royalty_info(sale_price)

    @locked()
    def royalty_distribution(self, sale_price: int) -> List[Tuple[str, int]]:
        return self._state.royalties.royalty_distribution(sale_price)

    # ------------------------------------------------------------------
    # Ownership and administration
    # ------------------------------------------------------------------

    @locked(owner=True)
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Propose a new owner; takes effect when they accept."""
        ownership = self._state.ownership
        proposed = ownership.propose(caller, new_owner)
        if ownership.pending_owner is not None:
            self._events.emit(OwnershipTransferStarted(
                source=self.address, previous_owner=ownership.owner, new_owner=proposed
            ))

    @locked()
    def accept_ownership(self, caller: str) -> None:
        previous = self._state.ownership.accept(caller)
        self.logger.info(f"Ownership of {self.address} moved from {previous} to {self._state.ownership.owner}")
        self._events.emit(OwnershipTransferred(
            source=self.address, previous_owner=previous, new_owner=self._state.ownership.owner
        ))

    @locked(owner=True)
    def reveal(self, caller: str, base_uri: Optional[str] = None) -> None:
        """Switch token URIs from the pre-reveal URI to ``base_uri + id``."""
        if base_uri is not None:
            self._state.base_uri = base_uri
        self._state.revealed = True
        self._events.emit(Revealed(source=self.address, base_uri=self._state.base_uri))

    @locked(owner=True)
    def set_sale_recipient(self, caller: str, recipient: str) -> None:
        self._state.sale_recipient = normalize_address(recipient)
        self._events.emit(SaleRecipientUpdated(
            source=self.address, sale_recipient=self._state.sale_recipient
        ))

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    @locked()
    def mint(self, caller: str, phase_index: int, token_id: int, payment: int,
             quantity: int = 1) -> MintReceipt:
        """
        Mint against an explicitly named phase.

        Checks, in order: the phase exists and is active, whitelist membership
        when the phase requires it, exact payment, the caller's per-phase
        limit, and the phase-local and global supply caps. Counters are
        updated before the payment is forwarded to the sale recipient; if the
        transfer fails, this mint's own changes are undone and TransferError
        is raised. Mints completed by a receive hook in the meantime stand.
        """
        caller = normalize_address(caller)
        self._check_request(token_id, quantity)

        state = self._state
        now = self._clock.now()

        phase = state.phases.require_active(phase_index, now)

        if phase.whitelist_enabled and not state.whitelist.is_whitelisted(caller):
            raise NotWhitelistedError(f"{caller} is not whitelisted for phase {phase_index}")

        if not isinstance(payment, int) or payment < 0:
            raise PaymentError(f"Payment must be a non-negative integer, got {payment!r}")
        required = phase.mint_price * quantity
        if payment != required:
            raise PaymentError(f"Payment must be exactly {required}, got {payment}")

        state.phases.check_wallet_limit(phase_index, caller, quantity)

        new_total = state.total_minted + quantity
        if phase.supply is not None and new_total > phase.supply:
            raise SupplyExceededError(
                f"Phase {phase_index} supply of {phase.supply} would be exceeded "
                f"({state.total_minted} minted, {quantity} requested)"
            )
        if state.max_supply is not None and new_total > state.max_supply:
            raise SupplyExceededError(
                f"Max supply of {state.max_supply} would be exceeded "
                f"({state.total_minted} minted, {quantity} requested)"
            )

        self._check_token_available(token_id)

        state.total_minted = new_total
        wallet_count = state.phases.record_mint(phase_index, caller, quantity)
        self._assign_tokens(caller, token_id, quantity)

        result = self._ledger.transfer(caller, state.sale_recipient, payment)
        if not result.ok:
            state.total_minted -= quantity
            state.phases.revert_mint(phase_index, caller, quantity)
            self._release_tokens(caller, token_id, quantity)
            self.logger.warning(f"Mint on {self.address} rolled back: {result.reason}")
            raise TransferError(f"Payment forwarding failed: {result.reason}")

        self.logger.info(
            f"{caller} minted {quantity} of token {token_id} in phase {phase_index} "
            f"(total minted {new_total})"
        )
        self._events.emit(TokensMinted(
            source=self.address,
            minter=caller,
            phase_index=phase_index,
            token_id=token_id,
            quantity=quantity,
            payment=payment,
        ))

        return MintReceipt(
            collection=self.address,
            minter=caller,
            phase_index=phase_index,
            token_id=token_id,
            quantity=quantity,
            payment=payment,
            total_minted=new_total,
            wallet_phase_count=wallet_count,
        )

    def _check_request(self, token_id: int, quantity: int) -> None:
        if not isinstance(token_id, int) or token_id < 0:
            raise ValidationError(f"Token id must be a non-negative integer, got {token_id!r}")
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")

    def _check_token_available(self, token_id: int) -> None:
        pass

    def _assign_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        raise NotImplementedError

    def _release_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        raise NotImplementedError

    def _require_token(self, token_id: int) -> None:
        pass

    @locked()
    def token_uri(self, token_id: int) -> str:
        """Pre-reveal URI until revealed, then base URI followed by the id."""
        self._require_token(token_id)
        if not self._state.revealed:
            return self._state.pre_reveal_uri
        return f"{self._state.base_uri}{token_id}"

    @locked()
    def summary(self) -> Dict[str, Any]:
        """Overview of the collection for reporting."""
        state = self._state
        return {
            "address": state.address,
            "variant": state.variant.value,
            "implementation": state.implementation,
            "name": state.name,
            "symbol": state.symbol,
            "owner": state.ownership.owner,
            "sale_recipient": state.sale_recipient,
            "max_supply": state.max_supply,
            "total_minted": state.total_minted,
            "remaining_supply": self._remaining(),
            "revealed": state.revealed,
            "phases": state.phases.total_phases(),
            "whitelisted": state.whitelist.count(),
            "royalty_percentage": state.royalties.percentage,
        }


class SingleTokenCollection(Collection):
    """Each token id has exactly one owner; ids are picked by the minter."""

    variant = CollectionVariant.SINGLE

    def _check_request(self, token_id: int, quantity: int) -> None:
        super()._check_request(token_id, quantity)
        if quantity != 1:
            raise ValidationError("Single-token collections mint exactly one token per call")

    def _check_token_available(self, token_id: int) -> None:
        if token_id in self._state.token_owners:
            raise TokenAlreadyMintedError(f"Token {token_id} is already minted")

    def _assign_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        self._state.token_owners[token_id] = minter

    def _release_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        self._state.token_owners.pop(token_id, None)

    def _require_token(self, token_id: int) -> None:
        if token_id not in self._state.token_owners:
            raise TokenNotFoundError(f"Token {token_id} does not exist")

    @locked()
    def owner_of(self, token_id: int) -> str:
        self._require_token(token_id)
        return self._state.token_owners[token_id]

    @locked()
    def balance_of(self, holder: str) -> int:
        holder = holder.lower()
        return sum(1 for owner in self._state.token_owners.values() if owner == holder)

    @locked()
    def exists(self, token_id: int) -> bool:
        return token_id in self._state.token_owners


class MultiTokenCollection(Collection):
    """Token ids are editions; each mint issues ``quantity`` units of one id."""

    variant = CollectionVariant.MULTI

    def _assign_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        holders = self._state.balances.setdefault(token_id, {})
        holders[minter] = holders.get(minter, 0) + quantity
        self._state.token_supply[token_id] = self._state.token_supply.get(token_id, 0) + quantity

    def _release_tokens(self, minter: str, token_id: int, quantity: int) -> None:
        holders = self._state.balances[token_id]
        holders[minter] -= quantity
        if not holders[minter]:
            del holders[minter]
        if not holders:
            del self._state.balances[token_id]
        self._state.token_supply[token_id] -= quantity
        if not self._state.token_supply[token_id]:
            del self._state.token_supply[token_id]

    @locked()
    def balance_of(self, holder: str, token_id: int) -> int:
        return self._state.balances.get(token_id, {}).get(holder.lower(), 0)

    @locked()
    def total_supply(self, token_id: int) -> int:
        """Units issued of one token id."""
        return self._state.token_supply.get(token_id, 0)

    def uri(self, token_id: int) -> str:
        return self.token_uri(token_id)


class OpenEditionCollection(MultiTokenCollection):
    """
    Time-boxed open edition.

    Initialization opens a single sale phase (index 0) running from the
    current time for ``duration`` seconds at a fixed price. There is no
    supply cap; the optional per-wallet limit applies to that phase. Token
    URIs are served from the base URI straight away.
    """

    variant = CollectionVariant.OPEN_EDITION

    @locked(initialized=False)
    def initialize(
        self,
        name: str,
        symbol: str,
        base_uri: str,
        mint_price: int,
        sale_recipient: str,
        duration: int,
        owner: str,
        mint_limit: Optional[int] = None,
    ) -> None:
        """
        One-time initializer; opens the edition window.

        Raises:
            AlreadyInitializedError: If called a second time
            ValidationError: If any parameter is malformed
        """
        if self._state.initialized:
            raise AlreadyInitializedError(f"Collection {self.address} is already initialized")

        params = build_model(
            OpenEditionParams,
            name=name,
            symbol=symbol,
            base_uri=base_uri,
            mint_price=mint_price,
            sale_recipient=sale_recipient,
            duration=duration,
            owner=owner,
            mint_limit=mint_limit,
        )
        start = self._clock.now()
        window = build_model(
            Phase,
            mint_price=params.mint_price,
            mint_limit=params.mint_limit,
            mint_start_time=start,
            mint_end_time=start + params.duration,
            supply=None,
        )

        state = self._state
        state.name = params.name
        state.symbol = params.symbol
        state.max_supply = None
        state.total_minted = 0
        state.base_uri = params.base_uri
        state.pre_reveal_uri = params.base_uri
        state.revealed = True
        state.default_mint_price = params.mint_price
        state.sale_recipient = params.sale_recipient
        state.ownership = OwnershipRecord(owner=params.owner)
        state.royalties = RoyaltySplitLedger(
            recipients=[params.sale_recipient], shares=[SHARE_DENOMINATOR], percentage=0
        )
        state.phases.add_phase(window)
        state.initialized = True

        self.logger.info(
            f"Initialized open edition {self.address} ({params.name}/{params.symbol}), "
            f"open until {window.mint_end_time}"
        )

    def initialize_from_params(self, params: OpenEditionParams) -> None:
        if not isinstance(params, OpenEditionParams):
            raise ValidationError("Open editions are initialized from OpenEditionParams")
        self.initialize(
            params.name, params.symbol, params.base_uri, params.mint_price,
            params.sale_recipient, params.duration, params.owner,
            mint_limit=params.mint_limit,
        )

    @locked()
    def edition_window(self) -> Tuple[int, int]:
        """(start, end) of the edition sale."""
        window = self._state.phases.get_phase(0)
        return window.mint_start_time, window.mint_end_time

    @locked()
    def is_open(self) -> bool:
        return self._state.phases.get_phase(0).is_active(self._clock.now())
