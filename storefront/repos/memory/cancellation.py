"""
Memory implementation of CancellationRequestRepository.
"""

import logging
from datetime import datetime
from typing import List, Optional

from storefront.domain import CancellationRequest, CancellationStatus
from storefront.repositories import CancellationRequestRepository
from storefront.repos.memory.base import MemoryRepositoryMixin, new_id

logger = logging.getLogger(__name__)


class MemoryCancellationRequestRepository(
    CancellationRequestRepository, MemoryRepositoryMixin[CancellationRequest]
):
    """Requests keyed by request_id.

    The PENDING-per-order check and the insert happen under one lock, the
    in-memory counterpart of the partial unique index.
    """

    def __init__(self) -> None:
        self._init_storage("CancellationRequest")

    async def generate_request_id(self) -> str:
        return new_id("req")

    async def insert_pending(
        self, request: CancellationRequest
    ) -> Optional[CancellationRequest]:
        async with self.lock:
            for existing in self.storage_dict.values():
                if (
                    existing.order_id == request.order_id
                    and existing.status is CancellationStatus.PENDING
                ):
                    logger.debug(
                        "Order already has a pending request",
                        extra={
                            "order_id": request.order_id,
                            "existing_request_id": existing.request_id,
                        },
                    )
                    return None
            return self.put_entity(request.request_id, request)

    async def get_request(
        self, request_id: str
    ) -> Optional[CancellationRequest]:
        return self.get_entity(request_id)

    async def get_latest_for_order(
        self, order_id: str
    ) -> Optional[CancellationRequest]:
        matches = [
            r for r in self.storage_dict.values() if r.order_id == order_id
        ]
        if not matches:
            return None
        latest = max(matches, key=lambda r: r.created_at)
        return latest.model_copy(deep=True)

    async def list_requests(
        self, status: Optional[CancellationStatus] = None
    ) -> List[CancellationRequest]:
        requests = [
            r.model_copy(deep=True)
            for r in self.storage_dict.values()
            if status is None or r.status is status
        ]
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    async def resolve(
        self,
        request_id: str,
        decision: CancellationStatus,
        actor: str,
        resolved_at: datetime,
    ) -> Optional[CancellationRequest]:
        async with self.lock:
            current = self.storage_dict.get(request_id)
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
            return self.put_entity(request_id, resolved)

    async def attach_video(
        self, request_id: str, video_url: str, uploaded_at: datetime
    ) -> Optional[CancellationRequest]:
        async with self.lock:
            current = self.storage_dict.get(request_id)
            if current is None or current.status is not CancellationStatus.PENDING:
                return None
            updated = current.model_copy(
                update={
                    "video_url": video_url,
                    "video_uploaded_at": uploaded_at,
                    "updated_at": uploaded_at,
                }
            )
            return self.put_entity(request_id, updated)
