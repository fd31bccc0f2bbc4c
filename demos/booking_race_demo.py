"""
Demonstration of two renters racing for the last unit of a listing.

Both orders are submitted concurrently; exactly one gets the unit and the
other is told the listing is no longer available, with suggested windows.

Run with: python -m demos.booking_race_demo
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

from config.config import MarketplaceConfig
from connectors.listing_catalog import ListingCatalog
from connectors.order_book import OrderBook
from connectors.reservation_ledger import ReservationLedger
from models.events import RentalEvent
from models.listing import Listing
from services.availability import InventoryAvailabilityChecker
from services.orchestrator import OrderOrchestrator
from services.pricing import PricingCalculator
from utils.clock import utc_now
from utils.errors import InsufficientAvailability
from utils.event_bus import EventBus
from utils.logger import get_logger

logger = get_logger("booking-race-demo")


async def log_event(event: RentalEvent) -> None:
    logger.info(f"[event] {event.event_type}: {event.payload}")


async def run_booking_race():
    logger.info("--- Starting Booking Race Simulation ---")
    config = MarketplaceConfig()
    event_bus = EventBus()
    event_bus.subscribe("*", log_event)

    catalog = ListingCatalog()
    ledger = ReservationLedger(lock_timeout=config.lock_timeout_seconds)
    orders = OrderBook()
    availability = InventoryAvailabilityChecker(catalog, ledger, config, event_bus=event_bus)
    orchestrator = OrderOrchestrator(
        catalog, ledger, orders, availability, PricingCalculator(config.platform_commission_percent), config, event_bus
    )

    tent = catalog.add(
        Listing(owner_id="host-1", title="Two-person tent", base_price=Decimal("50"), total_quantity=1)
    )
    start = (utc_now() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=2)
    line = {"listing_id": tent.listing_id, "qty": 1, "start": start, "end": end}

    before = await availability.check_availability(tent.listing_id, start, end)
    logger.info(f"Before the race: {before.available_qty} of {before.total_qty} unit(s) free")

    results = await asyncio.gather(
        orchestrator.create_order("renter-alice", [line]),
        orchestrator.create_order("renter-bob", [line]),
        return_exceptions=True,
    )

    for renter, outcome in zip(("renter-alice", "renter-bob"), results):
        if isinstance(outcome, InsufficientAvailability):
            suggestions = [
                f"{w.start:%Y-%m-%d %H:%M} - {w.end:%Y-%m-%d %H:%M}"
                for conflict in outcome.conflicts
                for w in conflict.next_available
            ]
            logger.info(f"{renter}: rejected ({outcome.message}); try {suggestions or 'other dates'}")
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            logger.info(
                f"{renter}: order {outcome.order_number} in status {outcome.order_status.value}, "
                f"subtotal {outcome.subtotal}, deposit due {outcome.total_amount}"
            )

    after = await availability.check_availability(tent.listing_id, start, end)
    logger.info(f"After the race: {after.available_qty} of {after.total_qty} unit(s) free, {len(orders)} order(s) stored")
    logger.info("--- Booking Race Simulation Complete ---")


if __name__ == "__main__":
    asyncio.run(run_booking_race())
