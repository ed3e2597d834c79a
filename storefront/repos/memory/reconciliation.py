"""
Memory implementation of ReconciliationRepository.
"""

from datetime import datetime
from typing import List, Optional

from storefront.domain import (
    ReconciliationAction,
    ReconciliationCase,
    ReconciliationKind,
)
from storefront.repositories import ReconciliationRepository
from storefront.repos.memory.base import MemoryRepositoryMixin, new_id


class MemoryReconciliationRepository(
    ReconciliationRepository, MemoryRepositoryMixin[ReconciliationCase]
):
    def __init__(self) -> None:
        self._init_storage("ReconciliationCase")

    async def generate_case_id(self) -> str:
        return new_id("case")

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase:
        async with self.lock:
            existing = self._open_case(case.reference, case.kind)
            if existing is not None:
                return existing.model_copy(deep=True)
            return self.put_entity(case.case_id, case)

    async def get_case(self, case_id: str) -> Optional[ReconciliationCase]:
        return self.get_entity(case_id)

    async def find_open_case(
        self, reference: str, kind: ReconciliationKind
    ) -> Optional[ReconciliationCase]:
        existing = self._open_case(reference, kind)
        return existing.model_copy(deep=True) if existing else None

    def _open_case(
        self, reference: str, kind: ReconciliationKind
    ) -> Optional[ReconciliationCase]:
        for case in self.storage_dict.values():
            if (
                case.reference == reference
                and case.kind is kind
                and not case.resolved
            ):
                return case
        return None

    async def list_cases(
        self, resolved: Optional[bool] = None
    ) -> List[ReconciliationCase]:
        cases = [
            c.model_copy(deep=True)
            for c in self.storage_dict.values()
            if resolved is None or c.resolved is resolved
        ]
        return sorted(cases, key=lambda c: c.created_at)

    async def resolve_case(
        self,
        case_id: str,
        action: ReconciliationAction,
        actor: str,
        note: Optional[str],
        resolved_at: datetime,
    ) -> Optional[ReconciliationCase]:
        async with self.lock:
            current = self.storage_dict.get(case_id)
            if current is None or current.resolved:
                return None
            closed = current.model_copy(
                update={
                    "resolved": True,
                    "resolution": action,
                    "resolved_by": actor,
                    "resolution_note": note,
                    "resolved_at": resolved_at,
                }
            )
            return self.put_entity(case_id, closed)
