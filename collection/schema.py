"""
Mintpad Launchpad - Collection Schema Models

This module defines the Pydantic models for collection initialization
parameters, runtime settings, the per-instance state record every clone owns,
and the receipts returned by issuance.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .access import OwnershipRecord
from .addresses import address_check
from .phases import PhaseSchedule
from .royalties import RoyaltySplitLedger, SHARE_DENOMINATOR
from .whitelist import WhitelistRegistry


class CollectionVariant(str, Enum):
    """Collection implementation variants."""
    SINGLE = "single"              # one owner per token id, caller-picked ids
    MULTI = "multi"                # many holders per token id, quantities per mint
    OPEN_EDITION = "open_edition"  # uncapped editions sold during one time window


class CollectionSettings(BaseModel):
    """Runtime behaviour switches of a collection."""

    reject_overlapping_phases: bool = Field(
        default=False,
        description="Refuse phases whose windows intersect an existing phase"
    )


class CollectionParams(BaseModel):
    """Parameters forwarded by the factory to a collection's initializer."""

    name: str = Field(..., min_length=1, max_length=100, description="Collection name")
    symbol: str = Field(..., min_length=1, max_length=32, description="Collection symbol")
    max_supply: int = Field(..., gt=0, description="Upper bound on total issued units")
    base_uri: str = Field(default="", description="Base URI used after reveal")
    pre_reveal_uri: str = Field(default="", description="URI served for every token until reveal")
    owner: str = Field(..., description="Owner address")
    sale_recipient: str = Field(..., description="Address receiving mint proceeds")
    royalty_recipients: List[str] = Field(..., min_length=1)
    royalty_shares: List[int] = Field(..., min_length=1)
    royalty_percentage: int = Field(default=0, ge=0, le=SHARE_DENOMINATOR)
    mint_price: int = Field(default=0, ge=0, description="Default price reported when no phase is active")
    variant: CollectionVariant = Field(default=CollectionVariant.SINGLE)

    @field_validator('name', 'symbol')
    @classmethod
    def validate_identity(cls, v):
        """Identity strings must not be blank."""
        if not v.strip():
            raise ValueError('Name and symbol must not be blank')
        return v

    @field_validator('owner', 'sale_recipient')
    @classmethod
    def validate_address(cls, v):
        """Validate account addresses."""
        return address_check(v)

    @field_validator('variant')
    @classmethod
    def validate_variant(cls, v):
        """Open editions are deployed from OpenEditionParams."""
        if v == CollectionVariant.OPEN_EDITION:
            raise ValueError('Open editions take OpenEditionParams')
        return v

    @model_validator(mode='after')
    def validate_royalties(self):
        """Royalty table must be well formed."""
        RoyaltySplitLedger(
            recipients=self.royalty_recipients,
            shares=self.royalty_shares,
            percentage=self.royalty_percentage,
        )
        return self

    @classmethod
    def single_recipient(
        cls,
        name: str,
        symbol: str,
        mint_price: int,
        max_supply: int,
        base_uri: str,
        recipient: str,
        royalty_recipient: str,
        royalty_percentage: int,
        owner: str,
        variant: CollectionVariant = CollectionVariant.SINGLE,
        pre_reveal_uri: Optional[str] = None,
    ) -> "CollectionParams":
        """Build params with one royalty recipient holding the whole split."""
        return cls(
            name=name,
            symbol=symbol,
            max_supply=max_supply,
            base_uri=base_uri,
            pre_reveal_uri=base_uri if pre_reveal_uri is None else pre_reveal_uri,
            owner=owner,
            sale_recipient=recipient,
            royalty_recipients=[royalty_recipient],
            royalty_shares=[SHARE_DENOMINATOR],
            royalty_percentage=royalty_percentage,
            mint_price=mint_price,
            variant=variant,
        )


class OpenEditionParams(BaseModel):
    """Parameters of a time-boxed, uncapped open edition."""

    name: str = Field(..., min_length=1, max_length=100)
    symbol: str = Field(..., min_length=1, max_length=32)
    base_uri: str = Field(default="")
    mint_price: int = Field(default=0, ge=0, description="Price per edition")
    sale_recipient: str = Field(..., description="Address receiving mint proceeds")
    duration: int = Field(..., gt=0, description="Seconds the edition stays open after deployment")
    owner: str = Field(..., description="Owner address")
    mint_limit: Optional[int] = Field(default=None, ge=1, description="Editions per wallet; None is unlimited")

    @field_validator('name', 'symbol')
    @classmethod
    def validate_identity(cls, v):
        if not v.strip():
            raise ValueError('Name and symbol must not be blank')
        return v

    @field_validator('owner', 'sale_recipient')
    @classmethod
    def validate_address(cls, v):
        return address_check(v)


class CollectionState(BaseModel):
    """
    Complete private state of one collection instance.

    Fields other than ``address``, ``implementation`` and ``variant`` are only
    meaningful once ``initialized`` is True.
    """

    address: str
    implementation: str
    variant: CollectionVariant
    initialized: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    name: str = ""
    symbol: str = ""
    max_supply: Optional[int] = 0  # None for uncapped open editions
    total_minted: int = Field(default=0, ge=0)
    base_uri: str = ""
    pre_reveal_uri: str = ""
    revealed: bool = False
    default_mint_price: int = 0
    sale_recipient: Optional[str] = None

    ownership: Optional[OwnershipRecord] = None
    phases: PhaseSchedule = Field(default_factory=PhaseSchedule)
    whitelist: WhitelistRegistry = Field(default_factory=WhitelistRegistry)
    royalties: Optional[RoyaltySplitLedger] = None
    settings: CollectionSettings = Field(default_factory=CollectionSettings)

    # single variant
    token_owners: Dict[int, str] = Field(default_factory=dict)
    # multi variant
    balances: Dict[int, Dict[str, int]] = Field(default_factory=dict)
    token_supply: Dict[int, int] = Field(default_factory=dict)

    @model_validator(mode='after')
    def validate_supply(self):
        """Minted units never exceed the cap."""
        if self.initialized and self.max_supply is not None and self.total_minted > self.max_supply:
            raise ValueError(
                f'Total minted ({self.total_minted}) exceeds max supply ({self.max_supply})'
            )
        return self


class MintReceipt(BaseModel):
    """Result of a successful mint."""

    collection: str
    minter: str
    phase_index: int
    token_id: int
    quantity: int
    payment: int
    total_minted: int
    wallet_phase_count: int

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
