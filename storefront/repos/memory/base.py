"""
Shared plumbing for the in-memory repositories.

Every repository keeps its records in a dict and serialises
check-and-write sequences behind one asyncio.Lock, which gives the same
atomicity the PostgreSQL constraints give in production. Records are
copied on the way in and out so callers can never mutate stored state.
"""

import asyncio
import logging
import uuid
from typing import Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class MemoryRepositoryMixin(Generic[T]):
    """Dict storage plus a lock for compare-and-swap style writes."""

    entity_name: str
    storage_dict: Dict[str, T]
    lock: asyncio.Lock

    def _init_storage(self, entity_name: str) -> None:
        self.entity_name = entity_name
        self.storage_dict = {}
        self.lock = asyncio.Lock()
        logger.debug(
            "Initializing memory repository",
            extra={"entity_name": entity_name},
        )

    def get_entity(self, entity_id: str) -> Optional[T]:
        entity = self.storage_dict.get(entity_id)
        if entity is None:
            logger.debug(
                f"{self.entity_name} not found",
                extra={"entity_id": entity_id},
            )
            return None
        return entity.model_copy(deep=True)

    def put_entity(self, entity_id: str, entity: T) -> T:
        self.storage_dict[entity_id] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)
