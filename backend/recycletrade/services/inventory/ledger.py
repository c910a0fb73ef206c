"""
Inventory ledger for product variant stock counters.

Stock is only ever decremented with a floor at zero and incremented without
an upper bound. Adjustments are best-effort per order line: a missing
product or variant is logged and skipped, and a failing line is rolled back
to its own savepoint so that the order status transition it belongs to still
goes through.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from recycletrade.core.logging import get_logger
from recycletrade.database.models.order import OrderItem
from recycletrade.services.inventory.repository import ProductRepository

logger = get_logger(__name__)


def clamp_decrement(stock: int, quantity: int) -> int:
    """Stock left after removing ``quantity`` units, never below zero."""
    return max(0, stock - quantity)


@dataclass
class StockAdjustment:
    """Result of a single reserve or release call."""

    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    quantity: int
    applied: bool
    stock_after: Optional[int] = None
    skipped_reason: Optional[str] = None


class InventoryLedger:
    """
    Owner of variant stock mutations.

    Products without variants are not stock tracked: reserving against them
    is a successful no-op.
    """

    def __init__(self, products: ProductRepository):
        self.products = products

    async def reserve(
        self,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int,
    ) -> StockAdjustment:
        """
        Decrement a variant's stock, clamping at zero.

        Args:
            product_id: Product owning the variant
            variant_id: Variant to decrement; None for untracked products
            quantity: Units ordered

        Returns:
            StockAdjustment, with applied=False when the line was skipped
        """
        product = await self.products.get_product_for_update(product_id)
        if product is None:
            logger.warning(
                "Product not found while reserving stock",
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
            )
            return StockAdjustment(product_id, variant_id, quantity, False, skipped_reason="product_not_found")

        if not product.variants or variant_id is None:
            logger.debug("Product is not stock tracked", product_id=str(product_id))
            return StockAdjustment(product_id, variant_id, quantity, False, skipped_reason="untracked")

        variant = product.find_variant(variant_id)
        if variant is None:
            logger.warning(
                "Variant not found while reserving stock",
                product_id=str(product_id),
                variant_id=str(variant_id),
            )
            return StockAdjustment(product_id, variant_id, quantity, False, skipped_reason="variant_not_found")

        previous = variant.stock
        variant.stock = clamp_decrement(previous, quantity)
        await self.products.flush()

        if previous < quantity:
            logger.warning(
                "Stock clamped at zero",
                product_id=str(product_id),
                variant_id=str(variant_id),
                requested=quantity,
                available=previous,
            )

        logger.info(
            "Stock reserved",
            product_id=str(product_id),
            variant_id=str(variant_id),
            quantity=quantity,
            stock_before=previous,
            stock_after=variant.stock,
        )
        return StockAdjustment(product_id, variant_id, quantity, True, stock_after=variant.stock)

    async def release(
        self,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int,
    ) -> StockAdjustment:
        """
        Return units to stock.

        When the recorded variant no longer exists the units go to the
        product's default bucket (or its first variant), created on first use.
        """
        product = await self.products.get_product_for_update(product_id)
        if product is None:
            logger.warning(
                "Product not found while releasing stock",
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
            )
            return StockAdjustment(product_id, variant_id, quantity, False, skipped_reason="product_not_found")

        variant = product.find_variant(variant_id)
        if variant is None:
            variant = next((v for v in product.variants if v.is_default), None)
            if variant is None and product.variants:
                variant = product.variants[0]
            if variant is None:
                variant = await self.products.add_default_variant(product)
            logger.warning(
                "Restocking into default variant bucket",
                product_id=str(product_id),
                requested_variant_id=str(variant_id) if variant_id else None,
                default_variant_id=str(variant.id),
            )

        variant.stock = variant.stock + quantity
        await self.products.flush()

        logger.info(
            "Stock released",
            product_id=str(product_id),
            variant_id=str(variant.id),
            quantity=quantity,
            stock_after=variant.stock,
        )
        return StockAdjustment(product_id, variant.id, quantity, True, stock_after=variant.stock)

    async def reserve_items(self, items: Sequence[OrderItem]) -> list[StockAdjustment]:
        """
        Reserve stock for every order line that has not been reserved yet.

        Lines that were decremented are flagged ``inventory_reserved`` so that
        a repeated confirmation never takes stock for them twice.
        """
        adjustments = []
        for item in items:
            if item.inventory_reserved:
                continue
            adjustment = await self._adjust_line(item, self.reserve)
            if adjustment is not None:
                adjustments.append(adjustment)
                if adjustment.applied:
                    item.inventory_reserved = True
        return adjustments

    async def release_items(self, items: Sequence[OrderItem]) -> list[StockAdjustment]:
        """
        Restock every order line by its ordered quantity.

        Lines whose product has lost the ordered variant, or never had
        variants, land in the default bucket so that no returned unit is
        dropped.
        """
        adjustments = []
        for item in items:
            adjustment = await self._adjust_line(item, self.release)
            if adjustment is not None:
                adjustments.append(adjustment)
                if adjustment.applied:
                    item.inventory_reserved = False
        return adjustments

    async def _adjust_line(self, item: OrderItem, operation) -> Optional[StockAdjustment]:
        try:
            async with self.products.savepoint():
                return await operation(item.product_id, item.variant_id, item.quantity)
        except Exception as e:
            logger.error(
                "Stock adjustment failed, line skipped",
                operation=operation.__name__,
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                quantity=item.quantity,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None


def get_inventory_ledger(products: ProductRepository) -> InventoryLedger:
    """Factory function to create an inventory ledger."""
    return InventoryLedger(products)
