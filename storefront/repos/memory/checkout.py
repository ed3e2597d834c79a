"""
Memory implementation of CheckoutSessionRepository.
"""

from datetime import datetime
from typing import Dict, Optional

from storefront.domain import CheckoutSession, CheckoutStatus
from storefront.repositories import CheckoutSessionRepository
from storefront.repos.memory.base import MemoryRepositoryMixin, new_id


class MemoryCheckoutSessionRepository(
    CheckoutSessionRepository, MemoryRepositoryMixin[CheckoutSession]
):
    """Sessions keyed by reference; a payment reference commits one only."""

    def __init__(self) -> None:
        self._init_storage("CheckoutSession")
        self.by_payment: Dict[str, str] = {}

    async def generate_reference(self) -> str:
        return new_id("chk")

    async def save_session(self, session: CheckoutSession) -> CheckoutSession:
        async with self.lock:
            return self.put_entity(session.reference, session)

    async def get_session(self, reference: str) -> Optional[CheckoutSession]:
        return self.get_entity(reference)

    async def claim_commit(
        self,
        reference: str,
        payment_reference: str,
        order_id: str,
        committed_at: datetime,
    ) -> Optional[CheckoutSession]:
        async with self.lock:
            current = self.storage_dict.get(reference)
            if current is None or current.status is not CheckoutStatus.OPEN:
                return None
            if payment_reference in self.by_payment:
                return None
            self.by_payment[payment_reference] = reference
            committed = current.model_copy(
                update={
                    "status": CheckoutStatus.COMMITTED,
                    "payment_reference": payment_reference,
                    "order_id": order_id,
                    "updated_at": committed_at,
                }
            )
            return self.put_entity(reference, committed)

    async def abandon(
        self, reference: str, abandoned_at: datetime
    ) -> Optional[CheckoutSession]:
        async with self.lock:
            current = self.storage_dict.get(reference)
            if current is None or current.status is not CheckoutStatus.OPEN:
                return None
            abandoned = current.model_copy(
                update={
                    "status": CheckoutStatus.ABANDONED,
                    "updated_at": abandoned_at,
                }
            )
            return self.put_entity(reference, abandoned)
