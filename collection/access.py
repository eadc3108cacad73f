"""
Single-owner access control with two-step ownership transfer.

Both collections and the factory hold one OwnershipRecord and call
``require_owner`` at the entry of every owner-gated operation.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .addresses import address_check, normalize_address
from .exceptions import AuthorizationError, ValidationError


class OwnershipRecord(BaseModel):
    """Stored owner identity plus an optional pending successor."""

    owner: str = Field(..., description="Current owner address")
    pending_owner: Optional[str] = Field(None, description="Proposed owner awaiting acceptance")

    @field_validator('owner')
    @classmethod
    def validate_owner(cls, v):
        """Validate owner address."""
        return address_check(v)

    def is_owner(self, caller: str) -> bool:
        """Check if ``caller`` is the current owner."""
        return isinstance(caller, str) and caller.lower() == self.owner

    def require_owner(self, caller: str) -> None:
        """Fail unless ``caller`` is the current owner."""
        if not self.is_owner(caller):
            raise AuthorizationError(f"Caller {caller} is not the owner")

    def propose(self, caller: str, new_owner: str) -> str:
        """
        Start an ownership transfer.

        Proposing again replaces the pending owner; proposing the current
        owner cancels the pending transfer.
        """
        self.require_owner(caller)
        new_owner = normalize_address(new_owner)

        if new_owner == self.owner:
            self.pending_owner = None
        else:
            self.pending_owner = new_owner
        return new_owner

    def accept(self, caller: str) -> str:
        """Complete a pending transfer; only the pending owner may accept."""
        if self.pending_owner is None:
            raise ValidationError("No ownership transfer is pending")
        if not isinstance(caller, str) or caller.lower() != self.pending_owner:
            raise AuthorizationError(f"Caller {caller} is not the pending owner")

        previous = self.owner
        self.owner = self.pending_owner
        self.pending_owner = None
        return previous
