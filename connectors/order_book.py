"""
Module: connectors.order_book

In-memory order store.
"""

import logging

from models.enums import OrderStatus, UserRole
from models.order import Order
from utils.errors import NotFound

logger = logging.getLogger(__name__)


class OrderBook:
    """Orders keyed by id. Writes are synchronous so they can run inside a ledger commit."""

    def __init__(self):
        self._orders: dict[str, Order] = {}

    def put(self, order: Order) -> None:
        self._orders[order.order_id] = order

    async def get(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    async def list_for_user(
        self,
        user_id: str,
        role: UserRole = UserRole.RENTER,
        status: OrderStatus | None = None,
        limit: int = 50,
    ) -> list[Order]:
        """Orders where the user is the renter (or host), newest first."""
        role = UserRole(role)
        attr = "renter_id" if role == UserRole.RENTER else "host_id"
        orders = [
            order
            for order in self._orders.values()
            if getattr(order, attr) == user_id and (status is None or order.order_status == OrderStatus(status))
        ]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders[:limit]

    def __len__(self) -> int:
        return len(self._orders)
