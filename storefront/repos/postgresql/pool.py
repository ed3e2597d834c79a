"""
Connection pool and schema setup for the PostgreSQL repositories.
"""

import logging
from pathlib import Path
from typing import Optional

import asyncpg
from asyncpg import Pool

from storefront.config import database_url

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


async def create_pool(
    dsn: Optional[str] = None, min_size: int = 1, max_size: int = 10
) -> Pool:
    """Open an asyncpg pool against DATABASE_URL (or `dsn`)."""
    pool = await asyncpg.create_pool(
        dsn or database_url(), min_size=min_size, max_size=max_size
    )
    logger.info(
        "PostgreSQL pool created",
        extra={"min_size": min_size, "max_size": max_size},
    )
    return pool


async def apply_schema(pool: Pool) -> None:
    """Create tables and indexes if they do not exist yet."""
    schema = SCHEMA_PATH.read_text()
    async with pool.acquire() as conn:
        await conn.execute(schema)
    logger.info("PostgreSQL schema applied")
