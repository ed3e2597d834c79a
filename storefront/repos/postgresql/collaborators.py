"""
Read access to the catalog and address book tables, and cart clearing.
"""

import logging
from typing import Optional

from asyncpg import Pool

from storefront.domain import Address, ProductPricing
from storefront.repositories import (
    AddressRepository,
    CartRepository,
    CatalogRepository,
)

logger = logging.getLogger(__name__)


class PostgreSQLCatalogRepository(CatalogRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def get_product(self, product_id: str) -> Optional[ProductPricing]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT product_id, price, discount_percent, tax_rate
                FROM products
                WHERE product_id = $1
                """,
                product_id,
            )
        if row is None:
            return None
        return ProductPricing(**dict(row))


class PostgreSQLAddressRepository(AddressRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def get_address(self, address_id: str) -> Optional[Address]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT address_id, user_id, name, phone, line, city, pincode
                FROM addresses
                WHERE address_id = $1
                """,
                address_id,
            )
        if row is None:
            return None
        return Address(**dict(row))


class PostgreSQLCartRepository(CartRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def clear_cart(self, user_id: str) -> None:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM cart_items WHERE user_id = $1", user_id
            )
        logger.debug(
            "Cart cleared", extra={"user_id": user_id, "result": result}
        )
