"""
PostgreSQL implementation of ReconciliationRepository.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from asyncpg import Pool

from storefront.domain import (
    ReconciliationAction,
    ReconciliationCase,
    ReconciliationKind,
)
from storefront.repositories import ReconciliationRepository

logger = logging.getLogger(__name__)


class PostgreSQLReconciliationRepository(ReconciliationRepository):
    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLReconciliationRepository")

    async def generate_case_id(self) -> str:
        return f"case_{uuid.uuid4().hex}"

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO reconciliation_cases (
                    case_id, reference, kind, resolved, created_at, case_data
                ) VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT DO NOTHING
                RETURNING case_data
                """,
                case.case_id,
                case.reference,
                case.kind.value,
                case.resolved,
                case.created_at,
                case.model_dump_json(),
            )
        if row is not None:
            return ReconciliationCase.model_validate_json(row["case_data"])

        existing = await self.find_open_case(case.reference, case.kind)
        if existing is None:
            existing = await self.get_case(case.case_id)
        if existing is None:
            # The open case closed between the insert and the read.
            return await self.open_case(case)
        logger.debug(
            "Reconciliation case already open",
            extra={"case_id": existing.case_id, "reference": case.reference},
        )
        return existing

    async def find_open_case(
        self, reference: str, kind: ReconciliationKind
    ) -> Optional[ReconciliationCase]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT case_data FROM reconciliation_cases
                WHERE reference = $1 AND kind = $2 AND NOT resolved
                """,
                reference,
                kind.value,
            )
        if row is None:
            return None
        return ReconciliationCase.model_validate_json(row["case_data"])

    async def get_case(self, case_id: str) -> Optional[ReconciliationCase]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT case_data FROM reconciliation_cases WHERE case_id = $1",
                case_id,
            )
        if row is None:
            return None
        return ReconciliationCase.model_validate_json(row["case_data"])

    async def list_cases(
        self, resolved: Optional[bool] = None
    ) -> List[ReconciliationCase]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT case_data FROM reconciliation_cases
                WHERE $1::boolean IS NULL OR resolved = $1
                ORDER BY created_at
                """,
                resolved,
            )
        return [
            ReconciliationCase.model_validate_json(r["case_data"]) for r in rows
        ]

    async def resolve_case(
        self,
        case_id: str,
        action: ReconciliationAction,
        actor: str,
        note: Optional[str],
        resolved_at: datetime,
    ) -> Optional[ReconciliationCase]:
        current = await self.get_case(case_id)
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
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE reconciliation_cases
                SET resolved = TRUE, case_data = $2
                WHERE case_id = $1 AND resolved = FALSE
                RETURNING case_data
                """,
                case_id,
                closed.model_dump_json(),
            )
        if row is None:
            return None
        return ReconciliationCase.model_validate_json(row["case_data"])
