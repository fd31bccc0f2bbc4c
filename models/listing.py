"""
Listing data model: a rentable item with a finite number of interchangeable units.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from utils.clock import utc_now
from utils.money import HUNDRED

from .base import RentalModel
from .enums import DepositType, ListingStatus, UnitType

MAX_TOTAL_QUANTITY = 1000


class Listing(RentalModel):
    """
    A host's rentable item. ``base_price`` is charged per unit per ``unit_type``
    interval; ``deposit_value`` is a percentage of the subtotal or a flat amount
    per unit depending on ``deposit_type``.
    """

    listing_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = "other"
    location: str = ""
    unit_type: UnitType = UnitType.DAY
    base_price: Decimal = Field(ge=0)
    deposit_type: DepositType = DepositType.PERCENT
    deposit_value: Decimal = Field(default=Decimal("20"), ge=0)
    total_quantity: int = Field(default=1, ge=1, le=MAX_TOTAL_QUANTITY)
    status: ListingStatus = ListingStatus.PUBLISHED
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("base_price", "deposit_value", mode="before")
    @classmethod
    def _float_to_decimal(cls, value):
        # Decimal(0.1) would carry binary noise; go through str instead.
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @model_validator(mode="after")
    def _check_deposit(self) -> "Listing":
        if self.deposit_type == DepositType.PERCENT and self.deposit_value > HUNDRED:
            raise ValueError("Percent deposit cannot exceed 100")
        return self

    def can_be_booked(self) -> bool:
        """Only published, active listings accept new reservations."""
        return self.status == ListingStatus.PUBLISHED and self.is_active
