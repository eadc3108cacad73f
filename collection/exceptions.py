"""
Launchpad Exceptions

This module defines the error taxonomy shared by collections and the factory.
Every error aborts the operation that raised it; nothing is partially applied.
"""


class LaunchpadError(Exception):
    """Base exception for all launchpad errors."""
    pass


class ValidationError(LaunchpadError):
    """Raised when parameters are malformed or violate an invariant."""
    pass


class PhaseOverlapError(ValidationError):
    """Raised when a phase window overlaps another and overlaps are rejected."""
    pass


class TokenAlreadyMintedError(ValidationError):
    """Raised when a single-token collection is asked to mint an assigned id."""
    pass


class AuthorizationError(LaunchpadError):
    """Raised when a non-owner calls an owner-gated operation."""
    pass


class PhaseStateError(LaunchpadError):
    """Raised when a phase cannot serve the requested mint."""
    pass


class PhaseNotFoundError(PhaseStateError):
    """Raised when a phase index does not exist."""
    pass


class PhaseInactiveError(PhaseStateError):
    """Raised when the named phase is outside its time window."""
    pass


class MintLimitExceededError(PhaseStateError):
    """Raised when a wallet would exceed the phase's per-wallet limit."""
    pass


class AccessError(LaunchpadError):
    """Raised when the caller is not allowed to mint in a phase."""
    pass


class NotWhitelistedError(AccessError):
    """Raised when a whitelist phase is minted by a non-member."""
    pass


class PaymentError(LaunchpadError):
    """Raised when the attached payment is not the exact amount required."""
    pass


class SupplyExceededError(LaunchpadError):
    """Raised when a phase-local or global supply cap would be exceeded."""
    pass


class AlreadyInitializedError(LaunchpadError):
    """Raised when a one-time initializer is called twice."""
    pass


class NotInitializedError(LaunchpadError):
    """Raised when an instance is used before initialization."""
    pass


class TokenNotFoundError(LaunchpadError):
    """Raised when querying a token id that was never minted."""
    pass


class TransferError(LaunchpadError):
    """Raised when a value transfer fails and the operation is rolled back."""
    pass


class CollectionNotFoundError(LaunchpadError):
    """Raised when a collection address is unknown to the factory."""
    pass
