"""
Module: connectors.listing_catalog

In-memory catalog of rentable listings.
"""

import logging
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from models.enums import ListingStatus
from models.listing import Listing
from utils.clock import utc_now
from utils.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

# Fields a host may not rewrite through update()
_IMMUTABLE_FIELDS = {"listing_id", "owner_id", "created_at"}


class ListingCatalog:
    """
    Listings keyed by id. Listings are never physically removed; ``disable`` is
    the soft delete that keeps existing reservations pointing at something.
    """

    def __init__(self, listings: list[Listing] | None = None):
        self._listings: dict[str, Listing] = {}
        for listing in listings or []:
            self.add(listing)

    def add(self, listing: Listing) -> Listing:
        if listing.listing_id in self._listings:
            raise InvalidArgument(f"Listing {listing.listing_id} already exists")
        self._listings[listing.listing_id] = listing
        logger.info(f"Listing {listing.listing_id} added: '{listing.title}' x{listing.total_quantity}")
        return listing

    async def get(self, listing_id: str) -> Listing:
        """Get a listing by id, raising NotFound for unknown ids."""
        listing = self._listings.get(listing_id)
        if listing is None:
            raise NotFound(f"Listing {listing_id} not found")
        return listing

    async def update(self, listing_id: str, **changes: Any) -> Listing:
        """Apply host edits (price, quantity, deposit policy...) and re-validate."""
        current = await self.get(listing_id)
        forbidden = _IMMUTABLE_FIELDS.intersection(changes)
        if forbidden:
            raise InvalidArgument(f"Cannot change {', '.join(sorted(forbidden))}")
        data = current.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        try:
            updated = Listing.model_validate(data)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid listing update: {e.errors()[0]['msg']}") from e
        self._listings[listing_id] = updated
        return updated

    async def disable(self, listing_id: str) -> Listing:
        return await self.update(listing_id, status=ListingStatus.DISABLED, is_active=False)

    async def search(
        self,
        category: str | None = None,
        location: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
    ) -> list[Listing]:
        """Bookable listings matching the filters, newest first. Location is a case-insensitive substring."""
        results = []
        for listing in self._listings.values():
            if not listing.can_be_booked():
                continue
            if category and listing.category != category:
                continue
            if location and location.lower() not in listing.location.lower():
                continue
            if min_price is not None and listing.base_price < min_price:
                continue
            if max_price is not None and listing.base_price > max_price:
                continue
            results.append(listing)
        results.sort(key=lambda listing: listing.created_at, reverse=True)
        return results

    def __len__(self) -> int:
        return len(self._listings)
