"""
Order data models: an order owns one line per booked listing, and each line
owns the reservation that holds its capacity.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field

from utils.clock import utc_now
from utils.money import ZERO

from .base import RentalModel
from .enums import OrderStatus, PaymentOption, PaymentStatus
from .reservation import TimeWindow

MAX_TIMELINE_ENTRIES = 20


class OrderLineRequest(TimeWindow):
    """What a renter asks for: ``qty`` units of one listing for ``[start, end)``."""

    listing_id: str
    qty: int = Field(ge=1)


class OrderLine(OrderLineRequest):
    """A priced, reserved order line."""

    unit_price: Decimal
    duration_units: int
    line_total: Decimal
    deposit: Decimal
    reservation_id: str | None = None


class TimelineEntry(RentalModel):
    status: str
    timestamp: datetime = Field(default_factory=utc_now)
    actor: str | None = None
    notes: str = ""


class Order(RentalModel):
    """A renter's booking of one or more listings from a single host."""

    order_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    renter_id: str
    host_id: str
    lines: list[OrderLine]
    subtotal: Decimal = ZERO
    deposit_amount: Decimal = ZERO
    platform_commission: Decimal = ZERO
    total_amount: Decimal = ZERO  # due at checkout
    remaining_amount: Decimal = ZERO
    refund_amount: Decimal = ZERO
    payment_option: PaymentOption = PaymentOption.DEPOSIT
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.QUOTE
    timeline: list[TimelineEntry] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def order_number(self) -> str:
        return f"ORD-{self.order_id.replace('-', '')[-8:].upper()}"

    @property
    def start_date(self) -> datetime | None:
        return min((line.start for line in self.lines), default=None)

    @property
    def end_date(self) -> datetime | None:
        return max((line.end for line in self.lines), default=None)

    @property
    def listing_ids(self) -> list[str]:
        return sorted({line.listing_id for line in self.lines})

    @property
    def reservation_ids(self) -> list[str]:
        return [line.reservation_id for line in self.lines if line.reservation_id]

    def add_timeline_entry(self, status: str, actor: str | None = None, notes: str = "") -> None:
        """Append to the timeline, keeping only the most recent entries."""
        self.timeline.append(TimelineEntry(status=status, actor=actor, notes=notes))
        if len(self.timeline) > MAX_TIMELINE_ENTRIES:
            self.timeline = self.timeline[-MAX_TIMELINE_ENTRIES:]
        self.updated_at = utc_now()

    def update_status(self, new_status: OrderStatus, actor: str | None = None, notes: str = "") -> None:
        """Update order status with tracking. Transition rules live in the orchestrator."""
        old_status = self.order_status
        self.order_status = new_status
        self.add_timeline_entry(
            f"status_change_{old_status.value}_to_{new_status.value}", actor, notes
        )
