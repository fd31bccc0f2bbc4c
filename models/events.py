"""
Data models for events published by the rental core.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from utils.clock import utc_now

from .enums import ServiceType


class RentalEvent(BaseModel):
    """Base event for rental system interactions."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str  # e.g. "order.created", "availability.invalidated"
    payload: dict[str, Any]
    source: ServiceType
    timestamp: datetime = Field(default_factory=utc_now)
