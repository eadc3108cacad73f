"""
Phase Schedule - Sale Phase State Machine

This module implements the ordered list of sale phases of a collection, the
per-wallet mint counters of each phase, and the rule deciding whether a named
phase can serve a mint at a given instant.

Callers always name the phase they mint against. Overlapping windows are
permitted unless the collection is configured to reject them.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from .exceptions import (
    PhaseInactiveError, PhaseNotFoundError, PhaseOverlapError,
    MintLimitExceededError
)


logger = logging.getLogger("mintpad.phases")


class Phase(BaseModel):
    """A time-windowed sale configuration."""

    mint_price: int = Field(..., ge=0, description="Price per unit in the smallest currency unit")
    mint_limit: Optional[int] = Field(..., ge=1, description="Maximum units per wallet in this phase; None is unlimited")
    mint_start_time: int = Field(..., ge=0, description="Window start (epoch seconds, inclusive)")
    mint_end_time: int = Field(..., ge=0, description="Window end (epoch seconds, exclusive)")
    supply: Optional[int] = Field(..., ge=0, description="Cap on total minted while this phase sells; None is uncapped")
    whitelist_enabled: bool = Field(default=False)

    @model_validator(mode='after')
    def validate_window(self):
        """Start must precede end."""
        if self.mint_start_time >= self.mint_end_time:
            raise ValueError(
                f'Phase start ({self.mint_start_time}) must be before '
                f'end ({self.mint_end_time})'
            )
        return self

    def is_active(self, now: int) -> bool:
        """Check if the phase window contains ``now``."""
        return self.mint_start_time <= now < self.mint_end_time

    def overlaps(self, other: "Phase") -> bool:
        """Check if two half-open windows intersect."""
        return (self.mint_start_time < other.mint_end_time and
                other.mint_start_time < self.mint_end_time)

    def as_tuple(self) -> Tuple[int, Optional[int], int, int, Optional[int], bool]:
        """(price, limit, start, end, supply, whitelist_enabled)."""
        return (
            self.mint_price,
            self.mint_limit,
            self.mint_start_time,
            self.mint_end_time,
            self.supply,
            self.whitelist_enabled,
        )


class PhaseSchedule(BaseModel):
    """Ordered phases and per-(phase, wallet) mint counters."""

    phases: List[Phase] = Field(default_factory=list)
    wallet_mints: Dict[int, Dict[str, int]] = Field(
        default_factory=dict,
        description="phase index -> wallet -> units minted in that phase"
    )

    def add_phase(self, phase: Phase, reject_overlap: bool = False) -> int:
        """
        Append a phase.

        Args:
            phase: Validated phase record
            reject_overlap: Fail if the window intersects an existing phase

        Returns:
            Index of the new phase
        """
        if reject_overlap:
            self._check_overlap(phase)

        self.phases.append(phase)
        index = len(self.phases) - 1
        logger.debug(f"Added phase {index}: {phase.as_tuple()}")
        return index

    def update_phase(self, index: int, changes: Dict[str, Any],
                     reject_overlap: bool = False) -> Phase:
        """
        Replace fields of an existing phase.

        The updated record is validated as a whole before it replaces the
        old one, so a rejected update leaves the phase untouched.
        """
        current = self.get_phase(index)
        updated = Phase(**{**current.model_dump(), **changes})

        if reject_overlap:
            self._check_overlap(updated, skip_index=index)

        self.phases[index] = updated
        logger.debug(f"Updated phase {index}: {updated.as_tuple()}")
        return updated

    def get_phase(self, index: int) -> Phase:
        """Get a phase by index."""
        if not isinstance(index, int) or index < 0 or index >= len(self.phases):
            raise PhaseNotFoundError(f"Phase {index} does not exist")
        return self.phases[index]

    def total_phases(self) -> int:
        """Number of phases in the schedule."""
        return len(self.phases)

    def active_indices(self, now: int) -> List[int]:
        """Indices of phases whose window contains ``now``."""
        return [i for i, phase in enumerate(self.phases) if phase.is_active(now)]

    def require_active(self, index: int, now: int) -> Phase:
        """Get the named phase, failing unless it is active at ``now``."""
        phase = self.get_phase(index)
        if not phase.is_active(now):
            if now < phase.mint_start_time:
                raise PhaseInactiveError(
                    f"Phase {index} has not started (starts at {phase.mint_start_time})"
                )
            raise PhaseInactiveError(
                f"Phase {index} has ended (ended at {phase.mint_end_time})"
            )
        return phase

    def minted_by(self, index: int, wallet: str) -> int:
        """Units ``wallet`` has minted in phase ``index``."""
        return self.wallet_mints.get(index, {}).get(wallet, 0)

    def check_wallet_limit(self, index: int, wallet: str, quantity: int) -> None:
        """Fail if minting ``quantity`` more would exceed the phase limit."""
        phase = self.get_phase(index)
        if phase.mint_limit is None:
            return
        already = self.minted_by(index, wallet)
        if already + quantity > phase.mint_limit:
            raise MintLimitExceededError(
                f"Wallet {wallet} would mint {already + quantity} in phase {index}, "
                f"limit is {phase.mint_limit}"
            )

    def record_mint(self, index: int, wallet: str, quantity: int) -> int:
        """Add ``quantity`` to the wallet's counter for phase ``index``."""
        counters = self.wallet_mints.setdefault(index, {})
        counters[wallet] = counters.get(wallet, 0) + quantity
        return counters[wallet]

    def revert_mint(self, index: int, wallet: str, quantity: int) -> None:
        """Take back ``quantity`` recorded by :meth:`record_mint`."""
        counters = self.wallet_mints.get(index, {})
        remaining = counters.get(wallet, 0) - quantity
        if remaining > 0:
            counters[wallet] = remaining
        else:
            counters.pop(wallet, None)
            if not counters:
                self.wallet_mints.pop(index, None)

    def _check_overlap(self, phase: Phase, skip_index: Optional[int] = None) -> None:
        for i, existing in enumerate(self.phases):
            if i != skip_index and existing.overlaps(phase):
                raise PhaseOverlapError(
                    f"Phase window [{phase.mint_start_time}, {phase.mint_end_time}) "
                    f"overlaps phase {i}"
                )
