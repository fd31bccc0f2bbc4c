from datetime import datetime, timedelta, timezone
from decimal import Decimal

from models.enums import OrderStatus, PaymentOption
from models.order import MAX_TIMELINE_ENTRIES, Order, OrderLine

START = datetime(2030, 2, 1, tzinfo=timezone.utc)


def _line(listing_id: str, start_offset: int, days: int, reservation_id: str | None = None) -> OrderLine:
    start = START + timedelta(days=start_offset)
    return OrderLine(
        listing_id=listing_id,
        qty=1,
        start=start,
        end=start + timedelta(days=days),
        unit_price=Decimal("10"),
        duration_units=days,
        line_total=Decimal("10") * days,
        deposit=Decimal("2") * days,
        reservation_id=reservation_id,
    )


def _order(**overrides) -> Order:
    data = {
        "order_id": "0f9e8d7c-6b5a-4321-8765-abcdef123456",
        "renter_id": "renter-1",
        "host_id": "host-1",
        "lines": [_line("listing-b", 2, 3, "res-1"), _line("listing-a", 0, 2, "res-2"), _line("listing-b", 5, 1)],
    }
    data.update(overrides)
    return Order(**data)


def test_order_defaults():
    order = _order()
    assert order.order_status == OrderStatus.QUOTE
    assert order.payment_option == PaymentOption.DEPOSIT
    assert order.refund_amount == Decimal("0")
    assert order.timeline == []


def test_order_number_from_id():
    assert _order().order_number == "ORD-EF123456"


def test_order_date_span_and_ids():
    order = _order()
    assert order.start_date == START
    assert order.end_date == START + timedelta(days=6)
    assert order.listing_ids == ["listing-a", "listing-b"]
    assert order.reservation_ids == ["res-1", "res-2"]


def test_update_status_records_timeline():
    order = _order()
    order.update_status(OrderStatus.CONFIRMED, "renter-1", "paid")

    assert order.order_status == OrderStatus.CONFIRMED
    entry = order.timeline[-1]
    assert entry.status == "status_change_quote_to_confirmed"
    assert entry.actor == "renter-1"
    assert entry.notes == "paid"


def test_timeline_keeps_most_recent_entries():
    order = _order()
    for i in range(MAX_TIMELINE_ENTRIES + 5):
        order.add_timeline_entry(f"note_{i}")
    assert len(order.timeline) == MAX_TIMELINE_ENTRIES
    assert order.timeline[0].status == "note_5"
    assert order.timeline[-1].status == f"note_{MAX_TIMELINE_ENTRIES + 4}"


def test_order_wire_format():
    wire = _order(subtotal=Decimal("60.00")).to_wire()
    assert wire["orderStatus"] == "quote"
    assert wire["renterId"] == "renter-1"
    assert wire["lines"][0]["listingId"] == "listing-b"
    assert wire["subtotal"] == "60.00"
