"""
Memory implementation of OrderRepository.
"""

import logging
from typing import List, Optional

from storefront.domain import Order, OrderStatus
from storefront.repositories import OrderRepository
from storefront.repos.memory.base import MemoryRepositoryMixin, new_id

logger = logging.getLogger(__name__)


class MemoryOrderRepository(OrderRepository, MemoryRepositoryMixin[Order]):
    """Orders keyed by order_id."""

    def __init__(self) -> None:
        self._init_storage("Order")

    async def generate_order_id(self) -> str:
        return new_id("ord")

    async def save_order(self, order: Order) -> Order:
        async with self.lock:
            existing = self.get_entity(order.order_id)
            if existing is not None:
                logger.debug(
                    "Order already stored, keeping existing record",
                    extra={"order_id": order.order_id},
                )
                return existing
            return self.put_entity(order.order_id, order)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return self.get_entity(order_id)

    async def list_orders(
        self, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        orders = [
            o.model_copy(deep=True)
            for o in self.storage_dict.values()
            if status is None or o.status is status
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def list_orders_for_user(self, user_id: str) -> List[Order]:
        orders = [
            o.model_copy(deep=True)
            for o in self.storage_dict.values()
            if o.user_id == user_id
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def update_order(
        self, order: Order, expected_status: OrderStatus
    ) -> Optional[Order]:
        async with self.lock:
            current = self.storage_dict.get(order.order_id)
            if current is None or current.status is not expected_status:
                return None
            return self.put_entity(order.order_id, order)
