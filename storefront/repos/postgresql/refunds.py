"""
PostgreSQL implementation of RefundRepository.
"""

import logging
import uuid
from typing import List, Optional

from asyncpg import Pool

from storefront.domain import Refund, RefundStatus
from storefront.repositories import RefundRepository

logger = logging.getLogger(__name__)


class PostgreSQLRefundRepository(RefundRepository):
    """Refunds with a unique request_id; `claim` is INSERT ... DO NOTHING."""

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLRefundRepository")

    async def generate_refund_id(self) -> str:
        return f"rfd_{uuid.uuid4().hex}"

    async def claim(self, refund: Refund) -> Optional[Refund]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO refunds (
                    refund_id, request_id, order_id, status, initiated_at,
                    refund_data
                ) VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (request_id) DO NOTHING
                RETURNING refund_data
                """,
                refund.refund_id,
                refund.request_id,
                refund.order_id,
                refund.status.value,
                refund.initiated_at,
                refund.model_dump_json(),
            )
        if row is None:
            return None
        return Refund.model_validate_json(row["refund_data"])

    async def get_by_request(self, request_id: str) -> Optional[Refund]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT refund_data FROM refunds WHERE request_id = $1",
                request_id,
            )
        if row is None:
            return None
        return Refund.model_validate_json(row["refund_data"])

    async def get_by_order(self, order_id: str) -> Optional[Refund]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT refund_data FROM refunds
                WHERE order_id = $1
                ORDER BY initiated_at DESC
                LIMIT 1
                """,
                order_id,
            )
        if row is None:
            return None
        return Refund.model_validate_json(row["refund_data"])

    async def list_refunds(
        self, status: Optional[RefundStatus] = None
    ) -> List[Refund]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT refund_data FROM refunds
                WHERE $1::text IS NULL OR status = $1
                ORDER BY initiated_at DESC
                """,
                status.value if status else None,
            )
        return [Refund.model_validate_json(r["refund_data"]) for r in rows]

    async def update_refund(
        self, refund: Refund, expected_status: RefundStatus
    ) -> Optional[Refund]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE refunds
                SET status = $2, refund_data = $3
                WHERE refund_id = $1 AND status = $4
                RETURNING refund_data
                """,
                refund.refund_id,
                refund.status.value,
                refund.model_dump_json(),
                expected_status.value,
            )
        if row is None:
            return None
        return Refund.model_validate_json(row["refund_data"])

    async def update_dispatching(
        self, refund: Refund, expected_attempts: int
    ) -> Optional[Refund]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE refunds
                SET status = $2, refund_data = $3
                WHERE refund_id = $1
                  AND status = 'DISPATCHING'
                  AND (refund_data->>'attempts')::int = $4
                RETURNING refund_data
                """,
                refund.refund_id,
                refund.status.value,
                refund.model_dump_json(),
                expected_attempts,
            )
        if row is None:
            return None
        return Refund.model_validate_json(row["refund_data"])
