"""
Product and variant data access used by the inventory ledger.
"""

import re
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recycletrade.core.logging import get_logger
from recycletrade.database.models.product import Product, ProductVariant

logger = get_logger(__name__)


def default_variant_sku(product_name: str) -> str:
    """SKU for the bucket that absorbs restocks of unmatched variants."""
    prefix = re.sub(r"\s+", "", product_name or "").upper()[:10]
    return f"{prefix or 'PRODUCT'}-DEFAULT"


class ProductRepository:
    """
    Repository for product stock access.

    Stock changes always start from ``get_product_for_update`` so that the
    product row lock serialises concurrent adjustments of its variants.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product_for_update(self, product_id: uuid.UUID) -> Optional[Product]:
        """Load a product and its variants, locking the product row."""
        result = await self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_default_variant(self, product: Product) -> ProductVariant:
        """Attach an empty default variant bucket to a product."""
        variant = ProductVariant(
            product_id=product.id,
            sku=default_variant_sku(product.name),
            price=product.price if product.price is not None else Decimal("0.00"),
            stock=0,
            specs={},
            is_default=True,
        )
        product.variants.append(variant)
        await self.session.flush()

        logger.info(
            "Default variant created",
            product_id=str(product.id),
            variant_id=str(variant.id),
            sku=variant.sku,
        )
        return variant

    async def flush(self) -> None:
        await self.session.flush()

    def savepoint(self) -> Any:
        """Open a SAVEPOINT scoped to a single stock adjustment."""
        return self.session.begin_nested()
