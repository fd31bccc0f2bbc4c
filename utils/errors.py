"""
Error taxonomy for the rental core.

Each error carries the HTTP status the API layer should answer with, so the
boundary can map them without branching on type.
"""

from typing import Any


class RentalError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.details}


class InvalidArgument(RentalError):
    """Malformed dates, quantities or amounts."""

    status_code = 400


class NotFound(RentalError):
    """Unknown listing, order or reservation."""

    status_code = 404


class InvalidState(RentalError):
    """The requested order status transition is not allowed."""

    status_code = 409


class ConcurrencyConflict(RentalError):
    """A ledger transaction could not get its locks in time."""

    status_code = 409


class InsufficientAvailability(RentalError):
    """
    One or more order lines cannot be satisfied. ``conflicts`` lists every failing
    line with its free capacity and suggested alternative windows.
    """

    status_code = 409

    def __init__(self, message: str, conflicts: list | None = None):
        self.conflicts = conflicts or []
        super().__init__(
            message,
            {"conflicts": [conflict.to_wire() for conflict in self.conflicts]},
        )


class PermissionDenied(RentalError):
    """The caller is not a party to the order or listing."""

    status_code = 403
