"""
Shopping cart service for the checkout side effects on carts.

Carts are owned by the storefront; the order lifecycle only ever empties a
customer's cart once their order is committed (payment confirmed for card
orders, placement for pickup orders).
"""

import uuid
from typing import Optional

from recycletrade.core.logging import get_logger
from recycletrade.services.cart.repository import CartRepository

logger = get_logger(__name__)


class CartService:
    """
    Cart operations used while committing an order.
    """

    def __init__(self, repository: CartRepository):
        self.repository = repository

    async def clear_after_checkout(self, user_id: Optional[uuid.UUID]) -> bool:
        """
        Empty a customer's cart inside its own savepoint.

        Guest orders have no cart. A failure is logged and rolled back to the
        savepoint so that the surrounding order transition still commits.

        Returns:
            True if the cart was cleared (or there was nothing to clear)
        """
        if user_id is None:
            return True

        try:
            async with self.repository.savepoint():
                await self.repository.clear_user_cart(user_id)
            return True
        except Exception as e:
            logger.error(
                "Failed to clear cart after checkout",
                user_id=str(user_id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return False


def get_cart_service(repository: CartRepository) -> CartService:
    """Factory function to create a cart service."""
    return CartService(repository)
