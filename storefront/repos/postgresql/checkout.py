"""
PostgreSQL implementation of CheckoutSessionRepository.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from asyncpg import Pool, UniqueViolationError

from storefront.domain import CheckoutSession, CheckoutStatus
from storefront.repositories import CheckoutSessionRepository

logger = logging.getLogger(__name__)


class PostgreSQLCheckoutSessionRepository(CheckoutSessionRepository):
    """Sessions keyed by reference, payment_reference unique once set."""

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLCheckoutSessionRepository")

    async def generate_reference(self) -> str:
        return f"chk_{uuid.uuid4().hex}"

    async def save_session(self, session: CheckoutSession) -> CheckoutSession:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO checkout_sessions (
                    reference, user_id, status, payment_reference,
                    created_at, session_data
                ) VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (reference) DO NOTHING
                """,
                session.reference,
                session.user_id,
                session.status.value,
                session.payment_reference,
                session.created_at,
                session.model_dump_json(),
            )
        return session

    async def get_session(self, reference: str) -> Optional[CheckoutSession]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT session_data FROM checkout_sessions
                WHERE reference = $1
                """,
                reference,
            )
        if row is None:
            return None
        return CheckoutSession.model_validate_json(row["session_data"])

    async def claim_commit(
        self,
        reference: str,
        payment_reference: str,
        order_id: str,
        committed_at: datetime,
    ) -> Optional[CheckoutSession]:
        current = await self.get_session(reference)
        if current is None or current.status is not CheckoutStatus.OPEN:
            return None
        committed = current.model_copy(
            update={
                "status": CheckoutStatus.COMMITTED,
                "payment_reference": payment_reference,
                "order_id": order_id,
                "updated_at": committed_at,
            }
        )
        try:
            return await self._transition(committed, payment_reference)
        except UniqueViolationError:
            logger.warning(
                "Payment reference already committed to another checkout",
                extra={
                    "reference": reference,
                    "payment_reference": payment_reference,
                },
            )
            return None

    async def abandon(
        self, reference: str, abandoned_at: datetime
    ) -> Optional[CheckoutSession]:
        current = await self.get_session(reference)
        if current is None or current.status is not CheckoutStatus.OPEN:
            return None
        abandoned = current.model_copy(
            update={
                "status": CheckoutStatus.ABANDONED,
                "updated_at": abandoned_at,
            }
        )
        return await self._transition(abandoned, None)

    async def _transition(
        self, session: CheckoutSession, payment_reference: Optional[str]
    ) -> Optional[CheckoutSession]:
        """Write `session` only if the stored row is still OPEN."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE checkout_sessions
                SET status = $2,
                    payment_reference = COALESCE($3, payment_reference),
                    session_data = $4
                WHERE reference = $1 AND status = 'OPEN'
                RETURNING session_data
                """,
                session.reference,
                session.status.value,
                payment_reference,
                session.model_dump_json(),
            )
        if row is None:
            return None
        return CheckoutSession.model_validate_json(row["session_data"])
