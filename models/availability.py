"""
Results of availability checks.
"""

from datetime import datetime

from pydantic import Field

from .base import RentalModel
from .listing import Listing
from .reservation import TimeWindow


class SuggestedWindow(TimeWindow):
    """An alternative booking window and the capacity free during it."""

    available_qty: int


class AvailabilityResult(RentalModel):
    """Outcome of checking one listing for one date range and quantity."""

    listing_id: str
    start: datetime
    end: datetime
    available: bool
    available_qty: int
    requested_qty: int
    total_qty: int
    reserved_qty: int = 0
    next_available: list[SuggestedWindow] = Field(default_factory=list)
    reason: str | None = None


class LineConflict(RentalModel):
    """An order line that could not be satisfied."""

    line_index: int
    listing_id: str
    requested_qty: int
    available_qty: int
    start: datetime
    end: datetime
    next_available: list[SuggestedWindow] = Field(default_factory=list)
    reason: str | None = None


class ListingAvailability(RentalModel):
    """A search hit annotated with free capacity for the searched range."""

    listing: Listing
    available_qty: int
    is_available: bool
