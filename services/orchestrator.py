"""
Order orchestrator: turns booking requests into priced orders with reserved
capacity, and drives orders through their status lifecycle.

Order status transitions::

    quote -> confirmed -> in_progress -> completed
    quote, confirmed          -> cancelled
    confirmed, in_progress    -> disputed
    disputed                  -> completed | cancelled

Every write that touches reservations runs inside one ledger transaction over
the listings involved, so an order and its reservations become visible
together or not at all.
"""

import logging
import uuid
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from config.config import MarketplaceConfig
from connectors.listing_catalog import ListingCatalog
from connectors.order_book import OrderBook
from connectors.reservation_ledger import ReservationLedger
from models.availability import LineConflict
from models.enums import (
    DisputeResolution,
    OrderStatus,
    PaymentOption,
    PaymentStatus,
    ReservationStatus,
    ServiceType,
    UserRole,
)
from models.order import Order, OrderLine, OrderLineRequest
from utils.clock import utc_now
from utils.errors import ConcurrencyConflict, InsufficientAvailability, InvalidArgument, InvalidState
from utils.event_bus import EventBus
from utils.money import ZERO, percent_of, quantize_money, to_decimal

from .availability import InventoryAvailabilityChecker
from .base import BaseService
from .pricing import PricingCalculator

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.QUOTE: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED, OrderStatus.DISPUTED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.DISPUTED}),
    OrderStatus.DISPUTED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Reservation status that follows an order into each state
RESERVATION_STATUS_FOR_ORDER = {
    OrderStatus.IN_PROGRESS: ReservationStatus.ACTIVE,
    OrderStatus.COMPLETED: ReservationStatus.RETURNED,
    OrderStatus.CANCELLED: ReservationStatus.CANCELLED,
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.QUOTE, OrderStatus.CONFIRMED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class OrderOrchestrator(BaseService):
    """Validates, prices and atomically commits rental orders."""

    def __init__(
        self,
        catalog: ListingCatalog,
        ledger: ReservationLedger,
        orders: OrderBook,
        availability: InventoryAvailabilityChecker,
        pricing: PricingCalculator,
        config: MarketplaceConfig | None = None,
        event_bus: EventBus | None = None,
    ):
        super().__init__(ServiceType.ORDERS, event_bus)
        self.catalog = catalog
        self.ledger = ledger
        self.orders = orders
        self.availability = availability
        self.pricing = pricing
        self.config = config or MarketplaceConfig()
        self.clock = availability.clock

    # --- Order creation --- #

    async def create_order(
        self,
        renter_id: str,
        lines: Iterable[OrderLineRequest | dict[str, Any]],
        payment_option: PaymentOption | str = PaymentOption.DEPOSIT,
    ) -> Order:
        """
        Reserve and price every line, all or nothing, and store the order in
        ``quote`` state.

        Raises InsufficientAvailability listing every line that does not fit.
        Lock timeouts are retried ``max_commit_attempts`` times and then also
        reported as InsufficientAvailability.
        """
        requests = self._parse_lines(lines)
        try:
            payment_option = PaymentOption(payment_option)
        except ValueError:
            raise InvalidArgument(f"Unknown payment option: {payment_option!r}") from None
        for request in requests:
            self.availability.validate_request(request.start, request.end, request.qty)

        hosts = {(await self.catalog.get(request.listing_id)).owner_id for request in requests}
        if len(hosts) > 1:
            raise InvalidArgument("All items in an order must be from the same host")
        host_id = hosts.pop()

        attempts = self.config.max_commit_attempts
        last_conflict: ConcurrencyConflict | None = None
        for attempt in range(1, attempts + 1):
            try:
                order = await self._commit_order(renter_id, host_id, requests, payment_option)
                break
            except ConcurrencyConflict as e:
                last_conflict = e
                logger.warning(f"Commit attempt {attempt}/{attempts} for renter {renter_id} hit a busy listing: {e.message}")
        else:
            raise InsufficientAvailability(
                "Could not reserve the requested items, please try different dates or quantities"
            ) from last_conflict

        logger.info(
            f"Order {order.order_id} created for renter {renter_id}: {len(order.lines)} line(s), "
            f"subtotal {order.subtotal}, due now {order.total_amount}"
        )
        await self._after_reservation_change(order, "order_created")
        await self.publish_event(
            "order.created",
            {
                "order_id": order.order_id,
                "renter_id": renter_id,
                "host_id": host_id,
                "listing_ids": order.listing_ids,
                "total_amount": str(order.total_amount),
            },
        )
        return order

    async def _commit_order(
        self,
        renter_id: str,
        host_id: str,
        requests: list[OrderLineRequest],
        payment_option: PaymentOption,
    ) -> Order:
        order_id = str(uuid.uuid4())
        listing_ids = {request.listing_id for request in requests}

        async with self.ledger.transaction(listing_ids) as txn:
            conflicts: list[LineConflict] = []
            lines: list[OrderLine] = []
            subtotal = deposit = ZERO

            for index, request in enumerate(requests):
                listing = await self.catalog.get(request.listing_id)
                check = await self.availability.check_availability(
                    request.listing_id, request.start, request.end, request.qty, txn=txn
                )
                if not check.available:
                    conflicts.append(
                        LineConflict(
                            line_index=index,
                            listing_id=request.listing_id,
                            requested_qty=request.qty,
                            available_qty=check.available_qty,
                            start=request.start,
                            end=request.end,
                            next_available=check.next_available,
                            reason=check.reason,
                        )
                    )
                    continue

                quote = self.pricing.compute_price(listing, request.qty, request.start, request.end, payment_option)
                # Staged now so later lines on the same listing see this one.
                reservation_id = txn.create(listing.listing_id, order_id, request.qty, request.start, request.end)
                subtotal += quote.subtotal
                deposit += quote.deposit
                lines.append(
                    OrderLine(
                        listing_id=listing.listing_id,
                        qty=request.qty,
                        start=request.start,
                        end=request.end,
                        unit_price=listing.base_price,
                        duration_units=quote.duration_units,
                        line_total=quantize_money(quote.subtotal),
                        deposit=quantize_money(quote.deposit),
                        reservation_id=reservation_id,
                    )
                )

            if conflicts:
                logger.warning(
                    f"Order for renter {renter_id} rejected: {len(conflicts)} line(s) without capacity "
                    f"({', '.join(c.listing_id for c in conflicts)})"
                )
                raise InsufficientAvailability(
                    f"Insufficient availability for {len(conflicts)} of {len(requests)} line(s)",
                    conflicts,
                )

            order = self._build_order(order_id, renter_id, host_id, lines, subtotal, deposit, payment_option)
            txn.after_commit(lambda: self.orders.put(order))
        return order

    def _build_order(
        self,
        order_id: str,
        renter_id: str,
        host_id: str,
        lines: list[OrderLine],
        subtotal: Decimal,
        deposit: Decimal,
        payment_option: PaymentOption,
    ) -> Order:
        if payment_option == PaymentOption.FULL:
            due_now, remaining = subtotal, ZERO
        else:
            due_now, remaining = deposit, max(ZERO, subtotal - deposit)
        order = Order(
            order_id=order_id,
            renter_id=renter_id,
            host_id=host_id,
            lines=lines,
            subtotal=quantize_money(subtotal),
            deposit_amount=quantize_money(deposit),
            platform_commission=quantize_money(percent_of(subtotal, self.pricing.commission_percent)),
            total_amount=quantize_money(due_now),
            remaining_amount=quantize_money(remaining),
            payment_option=payment_option,
        )
        order.add_timeline_entry("order_created", renter_id, "Order created")
        return order

    @staticmethod
    def _parse_lines(lines: Iterable[OrderLineRequest | dict[str, Any]]) -> list[OrderLineRequest]:
        parsed = []
        try:
            for line in lines:
                parsed.append(line if isinstance(line, OrderLineRequest) else OrderLineRequest.model_validate(line))
        except ValidationError as e:
            raise InvalidArgument(f"Invalid order line: {e.errors()[0]['msg']}") from e
        if not parsed:
            raise InvalidArgument("Order lines are required")
        return parsed

    # --- Lifecycle --- #

    async def get_order(self, order_id: str) -> Order:
        return await self.orders.get(order_id)

    async def list_orders(
        self,
        user_id: str,
        role: UserRole | str = UserRole.RENTER,
        status: OrderStatus | str | None = None,
        limit: int = 50,
    ) -> list[Order]:
        try:
            role = UserRole(role)
            status = OrderStatus(status) if status is not None else None
        except ValueError as e:
            raise InvalidArgument(str(e)) from None
        return await self.orders.list_for_user(user_id, role, status, limit)

    async def cancel_order(self, order_id: str, actor_id: str | None = None, reason: str | None = None) -> Order:
        """Cancel a quote or confirmed order and release its capacity. Repeat calls are no-ops."""
        order = await self.orders.get(order_id)
        if order.order_status == OrderStatus.CANCELLED:
            logger.debug(f"Order {order_id} already cancelled")
            return order
        if order.order_status not in CANCELLABLE_STATUSES:
            raise InvalidState(f"Cannot cancel order with status {order.order_status.value}")
        window = self.config.cancellation_window
        if window and order.start_date is not None and order.start_date - self.clock() <= window:
            raise InvalidState(f"Order {order_id} starts within the {window} cancellation window")

        changed = await self._transition(
            order,
            OrderStatus.CANCELLED,
            actor_id,
            notes=reason or "Order cancelled",
            metadata={
                "cancellation_reason": reason,
                "cancelled_by": actor_id,
                "cancelled_at": utc_now().isoformat(),
            },
            idempotent=True,
        )
        if changed:
            logger.info(f"Cancelled order {order_id} (reason: {reason})")
            await self.publish_event(
                "order.cancelled",
                {"order_id": order_id, "actor_id": actor_id, "reason": reason},
            )
        return order

    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Move an order along the status diagram. Illegal transitions raise InvalidState."""
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise InvalidArgument(f"Unknown order status: {new_status!r}") from None
        order = await self.orders.get(order_id)
        previous = order.order_status

        metadata = None
        if notes:
            metadata = {
                "status_notes": notes,
                "last_updated_by": actor_id,
                "last_updated_at": utc_now().isoformat(),
            }
        await self._transition(order, new_status, actor_id, notes=notes or "", metadata=metadata)

        logger.info(f"Updated order {order_id} status {previous.value} -> {new_status.value}")
        await self.publish_event(
            "order.status_changed",
            {
                "order_id": order_id,
                "previous_status": previous.value,
                "status": new_status.value,
                "actor_id": actor_id,
            },
        )
        return order

    async def confirm_payment(self, order_id: str, actor_id: str | None = None) -> Order:
        """Record a successful payment: ``quote`` becomes ``confirmed``."""
        order = await self.orders.get(order_id)
        if order.order_status == OrderStatus.CONFIRMED and order.payment_status == PaymentStatus.PAID:
            return order
        if order.order_status != OrderStatus.QUOTE:
            raise InvalidState(f"Order is not awaiting payment (status {order.order_status.value})")

        changed = await self._transition(
            order,
            OrderStatus.CONFIRMED,
            actor_id,
            notes="Payment confirmed",
            payment_status=PaymentStatus.PAID,
            idempotent=True,
        )
        if changed:
            logger.info(f"Payment confirmed for order {order_id}, amount {order.total_amount}")
            await self.publish_event(
                "order.payment_confirmed",
                {"order_id": order_id, "amount": str(order.total_amount)},
            )
        return order

    async def resolve_dispute(
        self,
        order_id: str,
        resolution: DisputeResolution | str,
        refund_amount: Decimal | int | str | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> Order:
        """
        Close a disputed order.

        - ``favor_host``: completed, nothing refunded.
        - ``favor_customer``: cancelled, the collected amount (or ``refund_amount``
          if given) refunded, reservations released.
        - ``split_decision``: completed with a partial refund, which must be more
          than zero and less than the collected amount.
        """
        try:
            resolution = DisputeResolution(resolution)
        except ValueError:
            raise InvalidArgument(f"Unknown dispute resolution: {resolution!r}") from None
        order = await self.orders.get(order_id)
        if order.order_status != OrderStatus.DISPUTED:
            raise InvalidState("Order is not in disputed status")

        collected = order.total_amount if order.payment_status == PaymentStatus.PAID else ZERO
        refund = quantize_money(to_decimal(refund_amount)) if refund_amount is not None else None
        if refund is not None and refund < ZERO:
            raise InvalidArgument("Refund amount cannot be negative")

        if resolution == DisputeResolution.FAVOR_HOST:
            if refund:
                raise InvalidArgument("A favor_host resolution cannot refund the customer")
            target, refund = OrderStatus.COMPLETED, ZERO
        elif resolution == DisputeResolution.FAVOR_CUSTOMER:
            target = OrderStatus.CANCELLED
            refund = collected if refund is None else refund
            if refund > collected:
                raise InvalidArgument(f"Refund {refund} exceeds collected amount {collected}")
        else:
            target = OrderStatus.COMPLETED
            if refund is None or not ZERO < refund < collected:
                raise InvalidArgument(f"A split decision needs a refund between 0 and {collected}")

        payment_status = order.payment_status
        if refund and refund == collected:
            payment_status = PaymentStatus.REFUNDED
        elif refund:
            payment_status = PaymentStatus.PARTIALLY_REFUNDED

        await self._transition(
            order,
            target,
            actor_id,
            notes=notes or f"Dispute resolved: {resolution.value}",
            metadata={
                "dispute_resolution": resolution.value,
                "dispute_notes": notes,
                "dispute_resolved_by": actor_id,
                "dispute_resolved_at": utc_now().isoformat(),
            },
            payment_status=payment_status,
            refund_amount=refund,
        )
        logger.info(f"Resolved dispute for order {order_id}: {resolution.value}, refund {refund}")
        await self.publish_event(
            "order.dispute_resolved",
            {
                "order_id": order_id,
                "resolution": resolution.value,
                "status": target.value,
                "refund_amount": str(refund),
            },
        )
        return order

    async def _transition(
        self,
        order: Order,
        new_status: OrderStatus,
        actor_id: str | None,
        notes: str = "",
        metadata: dict[str, Any] | None = None,
        payment_status: PaymentStatus | None = None,
        refund_amount: Decimal | None = None,
        idempotent: bool = False,
    ) -> bool:
        """
        Apply a status change and the matching reservation updates in one ledger
        transaction. The transition is re-validated under the listing locks, so
        two racing callers cannot both act on the same starting state.
        """
        reservation_status = RESERVATION_STATUS_FOR_ORDER.get(new_status)
        async with self.ledger.transaction(order.listing_ids) as txn:
            if idempotent and order.order_status == new_status and (
                payment_status is None or order.payment_status == payment_status
            ):
                return False
            if not can_transition(order.order_status, new_status):
                raise InvalidState(
                    f"Invalid status transition from {order.order_status.value} to {new_status.value}"
                )
            if reservation_status is not None:
                for reservation_id in order.reservation_ids:
                    if reservation_status == ReservationStatus.CANCELLED:
                        txn.cancel(reservation_id)
                    else:
                        txn.set_status(reservation_id, reservation_status)

            def apply() -> None:
                order.update_status(new_status, actor_id, notes)
                if metadata:
                    order.metadata.update(metadata)
                if payment_status is not None:
                    order.payment_status = payment_status
                if refund_amount is not None:
                    order.refund_amount = refund_amount
                self.orders.put(order)

            txn.after_commit(apply)

        if reservation_status is not None:
            await self._after_reservation_change(order, f"order_{new_status.value}")
        return True

    async def _after_reservation_change(self, order: Order, reason: str) -> None:
        """Tell other processes that the order's listings changed. The local cache is cleared by the ledger."""
        for listing_id in order.listing_ids:
            await self.publish_event(
                "availability.invalidated",
                {"listing_id": listing_id, "order_id": order.order_id, "reason": reason},
            )
