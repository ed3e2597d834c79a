"""
PostgreSQL implementation of CancellationRequestRepository.

The partial unique index `cancellation_requests_one_pending` makes a second
PENDING insert for the same order a no-op.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from asyncpg import Pool

from storefront.domain import CancellationRequest, CancellationStatus
from storefront.repositories import CancellationRequestRepository

logger = logging.getLogger(__name__)


class PostgreSQLCancellationRequestRepository(CancellationRequestRepository):
    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLCancellationRequestRepository")

    async def generate_request_id(self) -> str:
        return f"req_{uuid.uuid4().hex}"

    async def insert_pending(
        self, request: CancellationRequest
    ) -> Optional[CancellationRequest]:
        async with self.pool.acquire() as conn:
            query = """
                INSERT INTO cancellation_requests (
                    request_id, order_id, user_id, status, created_at,
                    request_data
                ) VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT DO NOTHING
                RETURNING request_data
            """
            row = await conn.fetchrow(
                query,
                request.request_id,
                request.order_id,
                request.user_id,
                request.status.value,
                request.created_at,
                request.model_dump_json(),
            )
        if row is None:
            return None
        return CancellationRequest.model_validate_json(row["request_data"])

    async def get_request(
        self, request_id: str
    ) -> Optional[CancellationRequest]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT request_data FROM cancellation_requests
                WHERE request_id = $1
                """,
                request_id,
            )
        if row is None:
            return None
        return CancellationRequest.model_validate_json(row["request_data"])

    async def get_latest_for_order(
        self, order_id: str
    ) -> Optional[CancellationRequest]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT request_data FROM cancellation_requests
                WHERE order_id = $1
                ORDER BY created_at DESC
                LIMIT 1
                """,
                order_id,
            )
        if row is None:
            return None
        return CancellationRequest.model_validate_json(row["request_data"])

    async def list_requests(
        self, status: Optional[CancellationStatus] = None
    ) -> List[CancellationRequest]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT request_data FROM cancellation_requests
                WHERE $1::text IS NULL OR status = $1
                ORDER BY created_at DESC
                """,
                status.value if status else None,
            )
        return [
            CancellationRequest.model_validate_json(r["request_data"])
            for r in rows
        ]

    async def resolve(
        self,
        request_id: str,
        decision: CancellationStatus,
        actor: str,
        resolved_at: datetime,
    ) -> Optional[CancellationRequest]:
        current = await self.get_request(request_id)
        if current is None or current.status is not CancellationStatus.PENDING:
            return None
        resolved = current.model_copy(
            update={
                "status": decision,
                "resolved_by": actor,
                "resolved_at": resolved_at,
                "updated_at": resolved_at,
            }
        )
        return await self._replace_pending(resolved)

    async def attach_video(
        self, request_id: str, video_url: str, uploaded_at: datetime
    ) -> Optional[CancellationRequest]:
        current = await self.get_request(request_id)
        if current is None or current.status is not CancellationStatus.PENDING:
            return None
        updated = current.model_copy(
            update={
                "video_url": video_url,
                "video_uploaded_at": uploaded_at,
                "updated_at": uploaded_at,
            }
        )
        return await self._replace_pending(updated)

    async def _replace_pending(
        self, request: CancellationRequest
    ) -> Optional[CancellationRequest]:
        """Write `request` only if the stored row is still PENDING."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE cancellation_requests
                SET status = $2, request_data = $3
                WHERE request_id = $1 AND status = 'PENDING'
                RETURNING request_data
                """,
                request.request_id,
                request.status.value,
                request.model_dump_json(),
            )
        if row is None:
            logger.debug(
                "Request left PENDING before the write",
                extra={"request_id": request.request_id},
            )
            return None
        return CancellationRequest.model_validate_json(row["request_data"])
