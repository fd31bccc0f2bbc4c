"""
Centralized Enum definitions for the rental core.
"""

from datetime import timedelta
from enum import Enum


class ServiceType(str, Enum):
    """Components that publish events on the bus"""

    AVAILABILITY = "availability"
    PRICING = "pricing"
    ORDERS = "orders"
    LEDGER = "ledger"
    API = "api"
    SYSTEM = "system"


class UnitType(str, Enum):
    """Billing interval of a listing's base price"""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def duration(self) -> timedelta:
        """Length of one billable unit. A month is a flat 30 days."""
        return _UNIT_DURATIONS[self]


_UNIT_DURATIONS = {
    UnitType.HOUR: timedelta(hours=1),
    UnitType.DAY: timedelta(days=1),
    UnitType.WEEK: timedelta(days=7),
    UnitType.MONTH: timedelta(days=30),
}


class DepositType(str, Enum):
    """How a listing's deposit value is interpreted"""

    PERCENT = "percent"  # percentage of the line subtotal
    FLAT = "flat"  # absolute amount per unit


class PaymentOption(str, Enum):
    """What the renter pays at checkout"""

    DEPOSIT = "deposit"
    FULL = "full"


class ListingStatus(str, Enum):
    """Publication state of a listing"""

    DRAFT = "draft"
    PUBLISHED = "published"
    DISABLED = "disabled"


class ReservationStatus(str, Enum):
    """Possible reservation statuses"""

    CONFIRMED = "confirmed"
    ACTIVE = "active"
    RETURNED = "returned"
    CANCELLED = "cancelled"


# Only these statuses count against a listing's capacity.
CAPACITY_HOLDING_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE})


class OrderStatus(str, Enum):
    """Possible states of a rental order"""

    QUOTE = "quote"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatus(str, Enum):
    """Payment state of an order"""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class DisputeResolution(str, Enum):
    """Admin decisions that close a disputed order"""

    FAVOR_CUSTOMER = "favor_customer"
    FAVOR_HOST = "favor_host"
    SPLIT_DECISION = "split_decision"


class UserRole(str, Enum):
    """Side of an order a user is looking from"""

    RENTER = "renter"
    HOST = "host"
