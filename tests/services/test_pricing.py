from datetime import timedelta
from decimal import Decimal

import pytest

from factories import day, make_listing
from models.enums import DepositType, PaymentOption, UnitType
from services.pricing import PricingCalculator, duration_units
from utils.errors import InvalidArgument


@pytest.mark.parametrize(
    "span, unit_type, expected",
    [
        (timedelta(days=2), UnitType.DAY, 2),
        (timedelta(days=1, hours=1), UnitType.DAY, 2),
        (timedelta(minutes=1), UnitType.DAY, 1),
        (timedelta(hours=3), UnitType.HOUR, 3),
        (timedelta(hours=2, minutes=1), UnitType.HOUR, 3),
        (timedelta(days=7), UnitType.WEEK, 1),
        (timedelta(days=8), UnitType.WEEK, 2),
        (timedelta(days=30), UnitType.MONTH, 1),
        (timedelta(days=31), UnitType.MONTH, 2),
    ],
)
def test_duration_units_rounds_up(span, unit_type, expected):
    assert duration_units(day(1), day(1) + span, unit_type) == expected


def test_duration_units_rejects_empty_range():
    with pytest.raises(InvalidArgument):
        duration_units(day(2), day(2), UnitType.DAY)


def test_percent_deposit_quote():
    listing = make_listing(base_price=Decimal("50"), deposit_type=DepositType.PERCENT, deposit_value=Decimal("20"))
    quote = PricingCalculator().compute_price(listing, 1, day(1), day(3))

    assert quote.duration_units == 2
    assert quote.subtotal == Decimal("100")
    assert quote.deposit == Decimal("20")
    assert quote.platform_commission == Decimal("10")
    assert quote.total_due_now == Decimal("20")
    assert quote.remaining_amount == Decimal("80")


def test_full_payment_quote():
    listing = make_listing(base_price=Decimal("50"))
    quote = PricingCalculator().compute_price(listing, 2, day(1), day(3), PaymentOption.FULL)

    assert quote.subtotal == Decimal("200")
    assert quote.deposit == Decimal("40")
    assert quote.total_due_now == Decimal("200")
    assert quote.remaining_amount == Decimal("0")


def test_flat_deposit_is_per_unit():
    listing = make_listing(base_price=Decimal("30"), deposit_type=DepositType.FLAT, deposit_value=Decimal("100"))
    quote = PricingCalculator().compute_price(listing, 2, day(1), day(2))

    assert quote.subtotal == Decimal("60")
    assert quote.deposit == Decimal("200")
    # Deposit larger than the subtotal leaves nothing to pay later
    assert quote.remaining_amount == Decimal("0")


def test_monthly_listing_and_custom_commission():
    listing = make_listing(base_price=Decimal("900"), unit_type=UnitType.MONTH)
    quote = PricingCalculator(commission_percent="12.5").compute_price(listing, 1, day(1), day(46))

    assert quote.duration_units == 2
    assert quote.subtotal == Decimal("1800")
    assert quote.platform_commission == Decimal("225")


def test_rounding_happens_on_display():
    listing = make_listing(base_price=Decimal("9.99"), deposit_value=Decimal("15"))
    quote = PricingCalculator(commission_percent="7").compute_price(listing, 1, day(1), day(2))

    assert quote.deposit == Decimal("1.4985")
    rounded = quote.rounded()
    assert rounded.deposit == Decimal("1.50")
    assert rounded.platform_commission == Decimal("0.70")
    assert rounded.remaining_amount == Decimal("8.49")


def test_pricing_is_deterministic():
    listing = make_listing()
    calculator = PricingCalculator()
    assert calculator.compute_price(listing, 1, day(1), day(4)) == calculator.compute_price(listing, 1, day(1), day(4))


@pytest.mark.parametrize(
    "qty, start, end, option",
    [
        (0, day(1), day(2), "deposit"),
        (1, day(2), day(1), "deposit"),
        (1, day(1), day(2), "installments"),
    ],
)
def test_invalid_pricing_requests(qty, start, end, option):
    with pytest.raises(InvalidArgument):
        PricingCalculator().compute_price(make_listing(), qty, start, end, option)


def test_commission_out_of_range():
    with pytest.raises(InvalidArgument):
        PricingCalculator(commission_percent=Decimal("150"))
