"""
Memory implementation of RefundRepository.
"""

from typing import Dict, List, Optional

from storefront.domain import Refund, RefundStatus
from storefront.repositories import RefundRepository
from storefront.repos.memory.base import MemoryRepositoryMixin, new_id


class MemoryRefundRepository(RefundRepository, MemoryRepositoryMixin[Refund]):
    """Refunds keyed by refund_id, with a request_id index."""

    def __init__(self) -> None:
        self._init_storage("Refund")
        self.by_request: Dict[str, str] = {}

    async def generate_refund_id(self) -> str:
        return new_id("rfd")

    async def claim(self, refund: Refund) -> Optional[Refund]:
        async with self.lock:
            if refund.request_id in self.by_request:
                return None
            self.by_request[refund.request_id] = refund.refund_id
            return self.put_entity(refund.refund_id, refund)

    async def get_by_request(self, request_id: str) -> Optional[Refund]:
        refund_id = self.by_request.get(request_id)
        if refund_id is None:
            return None
        return self.get_entity(refund_id)

    async def get_by_order(self, order_id: str) -> Optional[Refund]:
        matches = [
            r for r in self.storage_dict.values() if r.order_id == order_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: r.initiated_at).model_copy(deep=True)

    async def list_refunds(
        self, status: Optional[RefundStatus] = None
    ) -> List[Refund]:
        refunds = [
            r.model_copy(deep=True)
            for r in self.storage_dict.values()
            if status is None or r.status is status
        ]
        return sorted(refunds, key=lambda r: r.initiated_at, reverse=True)

    async def update_refund(
        self, refund: Refund, expected_status: RefundStatus
    ) -> Optional[Refund]:
        async with self.lock:
            current = self.storage_dict.get(refund.refund_id)
            if current is None or current.status is not expected_status:
                return None
            return self.put_entity(refund.refund_id, refund)

    async def update_dispatching(
        self, refund: Refund, expected_attempts: int
    ) -> Optional[Refund]:
        async with self.lock:
            current = self.storage_dict.get(refund.refund_id)
            if (
                current is None
                or current.status is not RefundStatus.DISPATCHING
                or current.attempts != expected_attempts
            ):
                return None
            return self.put_entity(refund.refund_id, refund)
