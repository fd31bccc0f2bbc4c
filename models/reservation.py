"""
Reservation and time window models.
"""

import uuid
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from utils.clock import ensure_utc, utc_now

from .base import RentalModel
from .enums import CAPACITY_HOLDING_STATUSES, ReservationStatus


class TimeWindow(RentalModel):
    """Half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self):
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching intervals do not overlap."""
        return self.start < end and self.end > start

    @property
    def duration(self):
        return self.end - self.start


class Reservation(TimeWindow):
    """A quantity of a listing committed to one order for ``[start, end)``."""

    reservation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    listing_id: str
    order_id: str
    qty: int = Field(ge=1)
    status: ReservationStatus = ReservationStatus.CONFIRMED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def holds_capacity(self) -> bool:
        return self.status in CAPACITY_HOLDING_STATUSES
