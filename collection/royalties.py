"""
Royalty Split Ledger

Holds the royalty rate of a collection and the table distributing royalties
among recipients. Shares are expressed in basis points of SHARE_DENOMINATOR and
must sum to it exactly. The ledger is immutable after initialization; it only
answers queries made by marketplaces.
"""

from typing import List, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from .addresses import address_check


SHARE_DENOMINATOR = 10_000


class RoyaltySplitLedger(BaseModel):
    """Ordered (recipient, share) table plus a single royalty rate."""

    recipients: List[str] = Field(..., min_length=1, description="Royalty recipients")
    shares: List[int] = Field(..., min_length=1, description="Shares in basis points")
    percentage: int = Field(
        default=0, ge=0, le=SHARE_DENOMINATOR,
        description="Royalty rate in basis points of the sale price"
    )

    model_config = {"frozen": True}

    @field_validator('recipients')
    @classmethod
    def validate_recipients(cls, v):
        """Validate every recipient address."""
        return [address_check(a) for a in v]

    @field_validator('shares')
    @classmethod
    def validate_shares(cls, v):
        """Shares must be positive."""
        if any(s <= 0 for s in v):
            raise ValueError('Royalty shares must be positive')
        return v

    @model_validator(mode='after')
    def validate_split(self):
        """Recipients and shares must pair up and sum to the denominator."""
        if len(self.recipients) != len(self.shares):
            raise ValueError(
                f'Royalty recipients ({len(self.recipients)}) and shares '
                f'({len(self.shares)}) must have the same length'
            )

        total = sum(self.shares)
        if total != SHARE_DENOMINATOR:
            raise ValueError(
                f'Royalty shares must sum to {SHARE_DENOMINATOR}, got {total}'
            )

        return self

    def royalty_recipient(self, index: int) -> str:
        """Recipient at position ``index``."""
        return self.recipients[index]

    def royalty_share(self, index: int) -> int:
        """Share at position ``index``."""
        return self.shares[index]

    def royalty_info(self, sale_price: int) -> Tuple[str, int]:
        """
        Royalty owed on a sale, in the (receiver, amount) shape marketplaces use.

        The receiver is the first recipient; distribution among the others is
        described by ``royalty_distribution``.
        """
        if sale_price < 0:
            raise ValueError("Sale price must be non-negative")
        return self.recipients[0], sale_price * self.percentage // SHARE_DENOMINATOR

    def royalty_distribution(self, sale_price: int) -> List[Tuple[str, int]]:
        """
        Split the royalty on a sale among all recipients.

        Rounding dust goes to the first recipient so amounts always sum to
        the royalty.
        """
        _, royalty = self.royalty_info(sale_price)
        amounts = [royalty * share // SHARE_DENOMINATOR for share in self.shares]
        amounts[0] += royalty - sum(amounts)
        return list(zip(self.recipients, amounts))
