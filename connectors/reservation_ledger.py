"""
Module: connectors.reservation_ledger

In-memory reservation ledger: the record of quantity commitments per listing
and time range.

Reservations of a listing are kept in a list sorted by ``(start, end, id)``,
the same shape as the ``{listingId: 1, start: 1, end: 1}`` index of the
persisted schema, so an overlap query only walks entries that start before
the queried end.

The ledger does not enforce listing capacity. Callers that must keep the
capacity invariant do their read-check-write inside ``transaction()``, which
holds one lock per listing and applies the staged writes in a single step.
"""

import asyncio
import bisect
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from contextlib import asynccontextmanager
from datetime import datetime

from pydantic import ValidationError

from models.enums import CAPACITY_HOLDING_STATUSES, ReservationStatus
from models.reservation import Reservation
from utils.clock import ensure_utc, utc_now
from utils.errors import ConcurrencyConflict, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

IndexEntry = tuple[datetime, datetime, str]


class LedgerTransaction:
    """
    Writes staged against a set of locked listings. Nothing is visible to other
    readers until the owning ``ReservationLedger.transaction()`` block exits cleanly.
    """

    def __init__(self, ledger: "ReservationLedger", listing_ids: Iterable[str]):
        self._ledger = ledger
        self.listing_ids = frozenset(listing_ids)
        self._created: dict[str, Reservation] = {}
        self._status_changes: dict[str, ReservationStatus] = {}
        self._after_commit: list[Callable[[], None]] = []
        self.closed = False

    def _check_scope(self, listing_id: str) -> None:
        if self.closed:
            raise RuntimeError("Ledger transaction is already closed")
        if listing_id not in self.listing_ids:
            raise InvalidArgument(f"Listing {listing_id} is not locked by this transaction")

    def query_overlapping(
        self,
        listing_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[ReservationStatus] | None = None,
    ) -> list[Reservation]:
        """Committed and staged reservations of a listing overlapping ``[start, end)``."""
        self._check_scope(listing_id)
        start, end = ensure_utc(start), ensure_utc(end)
        wanted = _status_set(statuses)

        results = []
        for reservation in self._ledger._overlapping(listing_id, start, end):
            pending = self._status_changes.get(reservation.reservation_id)
            if pending is not None and pending != reservation.status:
                reservation = reservation.model_copy(update={"status": pending})
            if reservation.status in wanted:
                results.append(reservation)
        results.extend(
            reservation
            for reservation in self._created.values()
            if reservation.listing_id == listing_id
            and reservation.status in wanted
            and reservation.overlaps(start, end)
        )
        return results

    def create(self, listing_id: str, order_id: str, qty: int, start: datetime, end: datetime) -> str:
        """Stage a confirmed reservation and return its id."""
        self._check_scope(listing_id)
        try:
            reservation = Reservation(
                listing_id=listing_id, order_id=order_id, qty=qty, start=start, end=end
            )
        except ValidationError as e:
            raise InvalidArgument(f"Invalid reservation: {e.errors()[0]['msg']}") from e
        self._created[reservation.reservation_id] = reservation
        return reservation.reservation_id

    def get(self, reservation_id: str) -> Reservation:
        if reservation_id in self._created:
            return self._created[reservation_id]
        reservation = self._ledger._reservations.get(reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        pending = self._status_changes.get(reservation_id)
        if pending is not None and pending != reservation.status:
            return reservation.model_copy(update={"status": pending})
        return reservation

    def set_status(self, reservation_id: str, status: ReservationStatus) -> None:
        status = ReservationStatus(status)
        staged = self._created.get(reservation_id)
        if staged is not None:
            staged.status = status
            return
        reservation = self._ledger._reservations.get(reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        self._check_scope(reservation.listing_id)
        self._status_changes[reservation_id] = status

    def cancel(self, reservation_id: str) -> bool:
        """Stage a cancellation. Returns False if the reservation was already cancelled."""
        if self.get(reservation_id).status == ReservationStatus.CANCELLED:
            return False
        self.set_status(reservation_id, ReservationStatus.CANCELLED)
        return True

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` in the same step that makes the staged writes visible."""
        self._after_commit.append(callback)


class ReservationLedger:
    """Dumb store of reservations, queryable by listing and date-range overlap."""

    def __init__(self, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self._reservations: dict[str, Reservation] = {}
        self._index: dict[str, list[IndexEntry]] = {}
        self._by_order: dict[str, list[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Callable[[str], None]] = []

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Call ``callback(listing_id)`` for every listing whose reservations a commit changed."""
        self._listeners.append(callback)

    # --- Transactions --- #

    @asynccontextmanager
    async def transaction(
        self, listing_ids: Iterable[str], timeout: float | None = None
    ) -> AsyncIterator[LedgerTransaction]:
        """
        Lock every listing in ``listing_ids`` (in sorted order, so overlapping
        transactions cannot deadlock), yield a ``LedgerTransaction``, and apply its
        staged writes if the block exits without an exception.

        Raises ConcurrencyConflict if a lock is not acquired within the timeout.
        """
        ids = sorted(set(listing_ids))
        if not ids:
            raise InvalidArgument("A ledger transaction needs at least one listing")
        wait = self.lock_timeout if timeout is None else timeout

        acquired: list[asyncio.Lock] = []
        try:
            for listing_id in ids:
                lock = self._locks.setdefault(listing_id, asyncio.Lock())
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=wait)
                except asyncio.TimeoutError:
                    logger.warning(f"Timed out after {wait}s waiting for ledger lock on listing {listing_id}")
                    raise ConcurrencyConflict(
                        f"Listing {listing_id} is busy, try again",
                        {"listing_id": listing_id},
                    ) from None
                acquired.append(lock)

            txn = LedgerTransaction(self, ids)
            try:
                yield txn
                self._apply(txn)
            finally:
                txn.closed = True
        finally:
            for lock in reversed(acquired):
                lock.release()

    def _apply(self, txn: LedgerTransaction) -> None:
        now = utc_now()
        for reservation_id, status in txn._status_changes.items():
            reservation = self._reservations[reservation_id]
            reservation.status = status
            reservation.updated_at = now
        for reservation in txn._created.values():
            self._insert(reservation)
        touched = {self._reservations[rid].listing_id for rid in txn._status_changes}
        touched.update(reservation.listing_id for reservation in txn._created.values())
        for listing_id in sorted(touched):
            for listener in self._listeners:
                listener(listing_id)
        for callback in txn._after_commit:
            callback()
        if txn._created or txn._status_changes:
            logger.debug(
                f"Ledger commit: {len(txn._created)} created, "
                f"{len(txn._status_changes)} status changes on {sorted(txn.listing_ids)}"
            )

    def _insert(self, reservation: Reservation) -> None:
        self._reservations[reservation.reservation_id] = reservation
        bisect.insort(
            self._index.setdefault(reservation.listing_id, []),
            (reservation.start, reservation.end, reservation.reservation_id),
        )
        self._by_order.setdefault(reservation.order_id, []).append(reservation.reservation_id)

    def _overlapping(self, listing_id: str, start: datetime, end: datetime) -> Iterator[Reservation]:
        """Committed reservations of any status overlapping ``[start, end)``."""
        index = self._index.get(listing_id, [])
        # (end,) sorts before any entry starting at `end`, so everything left of it starts earlier.
        upper = bisect.bisect_left(index, (end,))
        for _res_start, res_end, reservation_id in index[:upper]:
            if res_end > start:
                yield self._reservations[reservation_id]

    # --- Reads --- #

    async def query_overlapping(
        self,
        listing_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[ReservationStatus] | None = None,
    ) -> list[Reservation]:
        """Lock-free read of reservations overlapping ``[start, end)``.

        Defaults to the statuses that hold capacity (confirmed, active).
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise InvalidArgument("start must be before end")
        wanted = _status_set(statuses)
        return [r for r in self._overlapping(listing_id, start, end) if r.status in wanted]

    async def get(self, reservation_id: str) -> Reservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    async def for_order(self, order_id: str) -> list[Reservation]:
        return [self._reservations[rid] for rid in self._by_order.get(order_id, [])]

    # --- Writes outside an order flow --- #

    async def cancel(self, reservation_id: str) -> Reservation:
        """Cancel a reservation. Cancelling twice is a no-op."""
        reservation = await self.get(reservation_id)
        async with self.transaction([reservation.listing_id]) as txn:
            changed = txn.cancel(reservation_id)
        if changed:
            logger.info(f"Reservation {reservation_id} cancelled, released {reservation.qty} of listing {reservation.listing_id}")
        return reservation

    async def set_status(self, reservation_id: str, status: ReservationStatus) -> Reservation:
        reservation = await self.get(reservation_id)
        async with self.transaction([reservation.listing_id]) as txn:
            txn.set_status(reservation_id, status)
        return reservation

    def __len__(self) -> int:
        return len(self._reservations)


def _status_set(statuses: Iterable[ReservationStatus | str] | None) -> frozenset[ReservationStatus]:
    if statuses is None:
        return CAPACITY_HOLDING_STATUSES
    return frozenset(ReservationStatus(status) for status in statuses)
