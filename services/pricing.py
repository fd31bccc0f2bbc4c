"""
Pricing calculator for rental order lines.

Billing policy: a rental is charged per started unit. The duration is divided
by the listing's unit length and rounded up, so 25 hours of a daily listing
bills 2 days.
"""

from datetime import datetime
from decimal import Decimal

from models.enums import DepositType, PaymentOption, UnitType
from models.listing import Listing
from models.pricing import PriceQuote
from utils.clock import ensure_utc
from utils.errors import InvalidArgument
from utils.money import ZERO, percent_of, to_decimal


def duration_units(start: datetime, end: datetime, unit_type: UnitType) -> int:
    """Number of billable units in ``[start, end)``, rounded up to whole units."""
    start, end = ensure_utc(start), ensure_utc(end)
    if start >= end:
        raise InvalidArgument("start must be before end")
    unit = UnitType(unit_type).duration
    # timedelta // timedelta is exact integer division; negate twice for ceiling.
    return -((start - end) // unit)


class PricingCalculator:
    """Pure price computation; the commission rate is a deployment setting, not per listing."""

    def __init__(self, commission_percent: Decimal | int | str = Decimal("10")):
        self.commission_percent = to_decimal(commission_percent)
        if not ZERO <= self.commission_percent <= Decimal("100"):
            raise InvalidArgument("Commission percent must be between 0 and 100")

    def deposit_for(self, listing: Listing, subtotal: Decimal, qty: int) -> Decimal:
        if listing.deposit_type == DepositType.PERCENT:
            return percent_of(subtotal, listing.deposit_value)
        return listing.deposit_value * qty

    def compute_price(
        self,
        listing: Listing,
        qty: int,
        start: datetime,
        end: datetime,
        payment_option: PaymentOption | str = PaymentOption.DEPOSIT,
    ) -> PriceQuote:
        """Price ``qty`` units of ``listing`` for ``[start, end)``."""
        if qty < 1:
            raise InvalidArgument("Quantity must be at least 1")
        try:
            payment_option = PaymentOption(payment_option)
        except ValueError:
            raise InvalidArgument(f"Unknown payment option: {payment_option!r}") from None

        units = duration_units(start, end, listing.unit_type)
        subtotal = listing.base_price * units * qty
        deposit = self.deposit_for(listing, subtotal, qty)
        commission = percent_of(subtotal, self.commission_percent)

        if payment_option == PaymentOption.FULL:
            due_now, remaining = subtotal, ZERO
        else:
            due_now, remaining = deposit, max(ZERO, subtotal - deposit)

        return PriceQuote(
            duration_units=units,
            qty=qty,
            unit_price=listing.base_price,
            subtotal=subtotal,
            deposit=deposit,
            platform_commission=commission,
            payment_option=payment_option,
            total_due_now=due_now,
            remaining_amount=remaining,
        )
