"""
Inventory availability checker.

A listing has ``total_quantity`` interchangeable units. A request for ``qty``
units over ``[start, end)`` fits when the units held by confirmed or active
reservations overlapping that range leave at least ``qty`` free. Reserved
quantities of all overlapping reservations are summed, without looking at
peak concurrency inside the range.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from config.config import MarketplaceConfig
from connectors.listing_catalog import ListingCatalog
from connectors.reservation_ledger import LedgerTransaction, ReservationLedger
from models.availability import AvailabilityResult, ListingAvailability, SuggestedWindow
from models.enums import ServiceType
from models.listing import Listing
from models.reservation import Reservation
from utils.cache import AvailabilityCache
from utils.clock import ensure_utc, utc_now
from utils.errors import InvalidArgument

from .base import BaseService

logger = logging.getLogger(__name__)

NOT_BOOKABLE_REASON = "Listing is not available for booking"


class InventoryAvailabilityChecker(BaseService):
    """Read-only capacity checks against the reservation ledger."""

    def __init__(
        self,
        catalog: ListingCatalog,
        ledger: ReservationLedger,
        config: MarketplaceConfig | None = None,
        cache: AvailabilityCache | None = None,
        clock: Callable[[], datetime] = utc_now,
        event_bus=None,
    ):
        super().__init__(ServiceType.AVAILABILITY, event_bus)
        self.catalog = catalog
        self.ledger = ledger
        self.config = config or MarketplaceConfig()
        self.cache = cache if cache is not None else AvailabilityCache(self.config.availability_cache_ttl_seconds)
        self.clock = clock
        ledger.add_listener(self.invalidate)

    def validate_request(self, start: datetime, end: datetime, qty: int) -> tuple[datetime, datetime]:
        """Check dates and quantity; returns the dates normalised to UTC."""
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise InvalidArgument("Start date must be before end date")
        if qty < 1:
            raise InvalidArgument("Quantity must be at least 1")
        earliest = self.clock() + self.config.min_lead_time
        if start < earliest:
            if self.config.min_lead_time:
                raise InvalidArgument(f"Start date must be on or after {earliest.isoformat()}")
            raise InvalidArgument("Start date cannot be in the past")
        return start, end

    async def check_availability(
        self,
        listing_id: str,
        start: datetime,
        end: datetime,
        qty: int = 1,
        exclude_order_id: str | None = None,
        txn: LedgerTransaction | None = None,
    ) -> AvailabilityResult:
        """
        Check whether ``qty`` units of a listing are free for ``[start, end)``.

        Without ``txn`` this is an advisory read, served from the cache when
        possible. With ``txn`` the read goes through the caller's locked
        transaction (staged writes included) and is never cached.
        """
        start, end = self.validate_request(start, end, qty)
        listing = await self.catalog.get(listing_id)

        # updated_at in the key retires entries when the host edits the listing
        cache_key = (start, end, qty, exclude_order_id, listing.updated_at)
        if txn is None:
            cached = self.cache.get(listing_id, cache_key)
            if cached is not None:
                return cached

        if not listing.can_be_booked():
            result = AvailabilityResult(
                listing_id=listing_id,
                start=start,
                end=end,
                available=False,
                available_qty=0,
                requested_qty=qty,
                total_qty=listing.total_quantity,
                reason=NOT_BOOKABLE_REASON,
            )
        else:
            overlapping = await self._overlapping(listing_id, start, end, txn)
            reserved = _reserved_qty(overlapping, start, end, exclude_order_id)
            available_qty = max(0, listing.total_quantity - reserved)
            available = available_qty >= qty

            suggestions: list[SuggestedWindow] = []
            if not available:
                suggestions = await self.suggest_windows(listing, start, end, qty, exclude_order_id, txn)

            result = AvailabilityResult(
                listing_id=listing_id,
                start=start,
                end=end,
                available=available,
                available_qty=available_qty,
                requested_qty=qty,
                total_qty=listing.total_quantity,
                reserved_qty=reserved,
                next_available=suggestions,
                reason=None if available else f"Only {available_qty} of {qty} requested units are free",
            )

        if txn is None:
            self.cache.set(listing_id, cache_key, result)
        logger.debug(
            f"Availability {listing_id} [{start.isoformat()}, {end.isoformat()}) qty={qty}: "
            f"available={result.available} free={result.available_qty}"
        )
        return result

    async def suggest_windows(
        self,
        listing: Listing,
        start: datetime,
        end: datetime,
        qty: int,
        exclude_order_id: str | None = None,
        txn: LedgerTransaction | None = None,
    ) -> list[SuggestedWindow]:
        """
        Propose later windows of the same length that pass the same capacity rule.

        Capacity only frees up when a reservation ends, so the candidate starts
        are the requested end and every reservation end after the requested
        start, up to the configured horizon. Best effort: a concurrent booking
        may still take a suggested window.
        """
        limit = self.config.suggestion_limit
        if limit <= 0:
            return []
        duration = end - start
        horizon_end = start + timedelta(days=self.config.suggestion_horizon_days)
        pool = await self._overlapping(listing.listing_id, start, horizon_end + duration, txn)

        candidates = {end} | {r.end for r in pool if r.end > start}
        suggestions = []
        for candidate in sorted(c for c in candidates if c <= horizon_end):
            window_end = candidate + duration
            free = listing.total_quantity - _reserved_qty(pool, candidate, window_end, exclude_order_id)
            if free >= qty:
                suggestions.append(SuggestedWindow(start=candidate, end=window_end, available_qty=free))
                if len(suggestions) >= limit:
                    break
        return suggestions

    async def search(
        self,
        category: str | None = None,
        location: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        qty: int = 1,
        available_only: bool = False,
    ) -> list[ListingAvailability]:
        """Catalog search, annotated with free capacity when a date range is given."""
        listings = await self.catalog.search(category, location, min_price, max_price)
        dated = start is not None and end is not None
        if dated:
            start, end = self.validate_request(start, end, qty)

        results = []
        for listing in listings:
            free = listing.total_quantity
            if dated:
                overlapping = await self.ledger.query_overlapping(listing.listing_id, start, end)
                free = max(0, free - _reserved_qty(overlapping, start, end))
            hit = ListingAvailability(listing=listing, available_qty=free, is_available=free >= qty)
            if available_only and not hit.is_available:
                continue
            results.append(hit)
        return results

    def invalidate(self, listing_id: str) -> None:
        """Forget cached advisory answers for a listing after its reservations change."""
        self.cache.invalidate(listing_id)

    async def _overlapping(
        self, listing_id: str, start: datetime, end: datetime, txn: LedgerTransaction | None
    ) -> list[Reservation]:
        if txn is not None:
            return txn.query_overlapping(listing_id, start, end)
        return await self.ledger.query_overlapping(listing_id, start, end)


def _reserved_qty(
    reservations: list[Reservation],
    start: datetime,
    end: datetime,
    exclude_order_id: str | None = None,
) -> int:
    return sum(
        r.qty
        for r in reservations
        if r.holds_capacity() and r.overlaps(start, end) and (exclude_order_id is None or r.order_id != exclude_order_id)
    )
