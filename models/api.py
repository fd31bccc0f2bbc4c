"""
Request and response models for the HTTP layer.
"""

from decimal import Decimal
from typing import Any

from pydantic import Field

from .base import RentalModel
from .enums import (
    DepositType,
    DisputeResolution,
    ListingStatus,
    OrderStatus,
    PaymentOption,
    UnitType,
)
from .order import OrderLineRequest


class ApiResponse(RentalModel):
    """Single response envelope for every endpoint."""

    success: bool = True
    data: Any = None
    message: str = ""


class CreateListingRequest(RentalModel):
    title: str
    description: str = ""
    category: str = "other"
    location: str = ""
    unit_type: UnitType = UnitType.DAY
    base_price: Decimal = Field(ge=0)
    deposit_type: DepositType = DepositType.PERCENT
    deposit_value: Decimal = Field(default=Decimal("20"), ge=0)
    total_quantity: int = Field(default=1, ge=1)
    status: ListingStatus = ListingStatus.PUBLISHED


class UpdateListingRequest(RentalModel):
    """Partial host edit; only the fields sent are changed."""

    title: str | None = None
    description: str | None = None
    category: str | None = None
    location: str | None = None
    unit_type: UnitType | None = None
    base_price: Decimal | None = Field(default=None, ge=0)
    deposit_type: DepositType | None = None
    deposit_value: Decimal | None = Field(default=None, ge=0)
    total_quantity: int | None = Field(default=None, ge=1)
    status: ListingStatus | None = None
    is_active: bool | None = None


class CreateOrderRequest(RentalModel):
    lines: list[OrderLineRequest] = Field(min_length=1)
    payment_option: PaymentOption = PaymentOption.DEPOSIT


class UpdateStatusRequest(RentalModel):
    status: OrderStatus
    notes: str | None = None


class CancelOrderRequest(RentalModel):
    reason: str | None = None


class ResolveDisputeRequest(RentalModel):
    resolution: DisputeResolution
    refund_amount: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
