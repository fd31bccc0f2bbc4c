"""
Pricing data model for a single order line.
"""

from decimal import Decimal

from utils.money import quantize_money

from .base import RentalModel
from .enums import PaymentOption


class PriceQuote(RentalModel):
    """
    Price breakdown for renting ``qty`` units of a listing over a date range.
    Amounts are unrounded; call ``rounded()`` before showing or storing them.
    """

    duration_units: int
    qty: int
    unit_price: Decimal
    subtotal: Decimal
    deposit: Decimal
    platform_commission: Decimal
    payment_option: PaymentOption
    total_due_now: Decimal
    remaining_amount: Decimal

    def rounded(self) -> "PriceQuote":
        return self.model_copy(
            update={
                name: quantize_money(getattr(self, name))
                for name in (
                    "subtotal",
                    "deposit",
                    "platform_commission",
                    "total_due_now",
                    "remaining_amount",
                )
            }
        )
