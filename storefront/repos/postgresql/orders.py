"""
PostgreSQL implementation of OrderRepository.
"""

import logging
import uuid
from typing import List, Optional

from asyncpg import Pool

from storefront.domain import Order, OrderStatus
from storefront.repositories import OrderRepository

logger = logging.getLogger(__name__)


class PostgreSQLOrderRepository(OrderRepository):
    """
    PostgreSQL implementation of OrderRepository.
    Status changes are conditional UPDATEs on the expected status.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLOrderRepository")

    async def generate_order_id(self) -> str:
        return f"ord_{uuid.uuid4().hex}"

    async def save_order(self, order: Order) -> Order:
        async with self.pool.acquire() as conn:
            query = """
                INSERT INTO orders (
                    order_id, user_id, status, created_at, order_data
                ) VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (order_id) DO NOTHING
                RETURNING order_data
            """
            row = await conn.fetchrow(
                query,
                order.order_id,
                order.user_id,
                order.status.value,
                order.created_at,
                order.model_dump_json(),
            )
            if row is None:
                logger.debug(
                    "Order already stored, keeping existing record",
                    extra={"order_id": order.order_id},
                )
                row = await conn.fetchrow(
                    "SELECT order_data FROM orders WHERE order_id = $1",
                    order.order_id,
                )
        return Order.model_validate_json(row["order_data"])

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT order_data FROM orders WHERE order_id = $1",
                order_id,
            )
        if row is None:
            return None
        return Order.model_validate_json(row["order_data"])

    async def list_orders(
        self, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        async with self.pool.acquire() as conn:
            query = """
                SELECT order_data
                FROM orders
                WHERE $1::text IS NULL OR status = $1
                ORDER BY created_at DESC
            """
            rows = await conn.fetch(query, status.value if status else None)
        return [Order.model_validate_json(r["order_data"]) for r in rows]

    async def list_orders_for_user(self, user_id: str) -> List[Order]:
        async with self.pool.acquire() as conn:
            query = """
                SELECT order_data
                FROM orders
                WHERE user_id = $1
                ORDER BY created_at DESC
            """
            rows = await conn.fetch(query, user_id)
        return [Order.model_validate_json(r["order_data"]) for r in rows]

    async def update_order(
        self, order: Order, expected_status: OrderStatus
    ) -> Optional[Order]:
        async with self.pool.acquire() as conn:
            query = """
                UPDATE orders
                SET status = $2, order_data = $3
                WHERE order_id = $1 AND status = $4
                RETURNING order_data
            """
            row = await conn.fetchrow(
                query,
                order.order_id,
                order.status.value,
                order.model_dump_json(),
                expected_status.value,
            )
        if row is None:
            logger.debug(
                "Conditional order update matched no row",
                extra={
                    "order_id": order.order_id,
                    "expected_status": expected_status.value,
                },
            )
            return None
        return Order.model_validate_json(row["order_data"])
