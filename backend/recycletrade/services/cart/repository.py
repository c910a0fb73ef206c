"""
Cart repository for the checkout side effects on shopping carts.
"""

import uuid
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from recycletrade.core.logging import get_logger
from recycletrade.database.models.cart import Cart

logger = get_logger(__name__)


class CartRepository:
    """
    Repository for cart data access operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def clear_user_cart(self, user_id: uuid.UUID) -> int:
        """
        Delete a user's cart and its items.

        Args:
            user_id: Owner of the cart

        Returns:
            Number of carts removed (0 if the user had none)
        """
        result = await self.session.execute(
            delete(Cart)
            .where(Cart.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount or 0

        logger.info("User cart cleared", user_id=str(user_id), carts_removed=removed)
        return removed

    def savepoint(self) -> Any:
        return self.session.begin_nested()
