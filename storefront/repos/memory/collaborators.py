"""
In-memory stand-ins for the catalog, address book and cart services.

Those services are owned by other parts of the storefront; these versions
back the API in `memory` mode and the tests.
"""

import logging
from typing import Dict, List, Optional

from storefront.domain import Address, ProductPricing
from storefront.repositories import (
    AddressRepository,
    CartRepository,
    CatalogRepository,
)

logger = logging.getLogger(__name__)


class MemoryCatalogRepository(CatalogRepository):
    def __init__(self) -> None:
        self.products: Dict[str, ProductPricing] = {}

    def add(self, product: ProductPricing) -> None:
        self.products[product.product_id] = product

    async def get_product(self, product_id: str) -> Optional[ProductPricing]:
        return self.products.get(product_id)


class MemoryAddressRepository(AddressRepository):
    def __init__(self) -> None:
        self.addresses: Dict[str, Address] = {}

    def add(self, address: Address) -> None:
        self.addresses[address.address_id] = address

    async def get_address(self, address_id: str) -> Optional[Address]:
        return self.addresses.get(address_id)


class MemoryCartRepository(CartRepository):
    """Records which carts were cleared."""

    def __init__(self) -> None:
        self.cleared: List[str] = []
        self.fail_clears = False

    async def clear_cart(self, user_id: str) -> None:
        if self.fail_clears:
            raise RuntimeError("Cart service unavailable")
        self.cleared.append(user_id)
        logger.debug("Cart cleared", extra={"user_id": user_id})
