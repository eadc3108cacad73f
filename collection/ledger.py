"""
Value Ledger

In-process model of the native currency: integer balances per address and
all-or-nothing transfers. Transfers report failure through a TransferResult
instead of raising, so callers can roll back their own state before surfacing
the error.
"""

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Dict, List, Optional, Set, Tuple

from .addresses import normalize_address


logger = logging.getLogger("mintpad.ledger")

# Called with (sender, recipient, amount) before a credit lands.
# Returning False (or raising) rejects the transfer.
ReceiveHook = Callable[[str, str, int], bool]


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a ledger transfer."""
    ok: bool
    reason: str = ""

    @classmethod
    def success(cls) -> "TransferResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "TransferResult":
        return cls(ok=False, reason=reason)


class ValueLedger:
    """Thread-safe balances with optional receive hooks."""

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._lock = RLock()
        self._balances: Dict[str, int] = {}
        self._rejecting: Set[str] = set()
        self._hooks: Dict[str, ReceiveHook] = {}

        for address, amount in (balances or {}).items():
            self.deposit(address, amount)

    def deposit(self, address: str, amount: int) -> int:
        """Credit ``amount`` out of thin air; used to fund accounts."""
        if amount < 0:
            raise ValueError("Deposit amount must be non-negative")

        address = normalize_address(address, allow_zero=True)
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount
            return self._balances[address]

    def balance_of(self, address: str) -> int:
        """Current balance of ``address``."""
        with self._lock:
            return self._balances.get(address.lower(), 0)

    def balances(self) -> Dict[str, int]:
        """Copy of all non-zero balances."""
        with self._lock:
            return {a: b for a, b in self._balances.items() if b}

    def reject_incoming(self, address: str, reject: bool = True) -> None:
        """Make ``address`` refuse (or accept again) incoming value."""
        address = address.lower()
        with self._lock:
            if reject:
                self._rejecting.add(address)
            else:
                self._rejecting.discard(address)

    def set_receive_hook(self, address: str, hook: Optional[ReceiveHook]) -> None:
        """Install or clear the hook run before ``address`` receives value."""
        address = address.lower()
        with self._lock:
            if hook is None:
                self._hooks.pop(address, None)
            else:
                self._hooks[address] = hook

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferResult:
        """Move ``amount`` from sender to recipient."""
        return self.transfer_many(sender, [(recipient, amount)])

    def transfer_many(self, sender: str, payouts: List[Tuple[str, int]]) -> TransferResult:
        """
        Move value from one sender to several recipients, all or nothing.

        Receive hooks run before anything is debited and outside the ledger
        lock, so a hook may call back into collections and the ledger.
        """
        sender = sender.lower()
        payouts = [(r.lower(), a) for r, a in payouts if a]

        if any(a < 0 for _, a in payouts):
            return TransferResult.failure("Negative transfer amount")
        if not payouts:
            return TransferResult.success()

        total = sum(a for _, a in payouts)

        with self._lock:
            if self._balances.get(sender, 0) < total:
                logger.warning(f"Transfer of {total} from {sender} failed: insufficient balance")
                return TransferResult.failure(
                    f"Insufficient balance: {sender} has {self._balances.get(sender, 0)}, needs {total}"
                )
            for recipient, _ in payouts:
                if recipient in self._rejecting:
                    logger.warning(f"Transfer to {recipient} rejected by recipient")
                    return TransferResult.failure(f"Recipient {recipient} rejected the transfer")
            hooks = [(r, a, self._hooks[r]) for r, a in payouts if r in self._hooks]

        for recipient, amount, hook in hooks:
            try:
                accepted = hook(sender, recipient, amount)
            except Exception as e:
                logger.warning(f"Receive hook of {recipient} raised: {e}")
                return TransferResult.failure(f"Recipient {recipient} hook failed: {e}")
            if accepted is False:
                return TransferResult.failure(f"Recipient {recipient} hook rejected the transfer")

        with self._lock:
            # Hooks may have spent from the sender in the meantime.
            if self._balances.get(sender, 0) < total:
                return TransferResult.failure(
                    f"Insufficient balance: {sender} has {self._balances.get(sender, 0)}, needs {total}"
                )
            self._balances[sender] -= total
            for recipient, amount in payouts:
                self._balances[recipient] = self._balances.get(recipient, 0) + amount

        logger.debug(f"Transferred {total} from {sender} to {len(payouts)} recipient(s)")
        return TransferResult.success()
