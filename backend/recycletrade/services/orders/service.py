"""
Order query service for customers, sellers and administrators.

Read-side operations over orders plus the administrative purge. Seller
listings only show the seller's own lines of a multi-seller order, and the
public tracking lookup never returns payment processor references.
"""

import uuid
from typing import Optional, Sequence

from recycletrade.core.logging import get_logger
from recycletrade.database.models.order import Order
from recycletrade.database.models.user import User
from recycletrade.schemas.orders import OrderItemResponse, OrderResponse, TrackedOrderResponse
from recycletrade.services.orders.enums import FulfillmentStatus, PaymentStatus
from recycletrade.services.orders.repository import OrderNotFoundError, OrderRepository

logger = get_logger(__name__)


class OrderQueryService:
    """
    Order lookups and listings.

    Attributes:
        repository: Order repository for data access
    """

    def __init__(self, repository: OrderRepository):
        self.repository = repository

    async def track_order(self, identifier: str) -> TrackedOrderResponse:
        """
        Look up an order by id, then by tracking number.

        Args:
            identifier: Order UUID or carrier tracking number

        Returns:
            Sanitized order view

        Raises:
            OrderNotFoundError: If nothing matches
        """
        identifier = identifier.strip()
        order: Optional[Order] = None

        try:
            order = await self.repository.get_order_by_id(uuid.UUID(identifier))
        except ValueError:
            pass

        if order is None and identifier:
            order = await self.repository.get_order_by_tracking_number(identifier)

        if order is None:
            logger.info("Tracking lookup found no order", identifier=identifier)
            raise OrderNotFoundError("Order not found", identifier=identifier)

        return TrackedOrderResponse.model_validate(order)

    async def list_user_orders(self, user: User) -> Sequence[Order]:
        return await self.repository.get_user_orders(user.id)

    async def list_seller_orders(self, seller: User) -> list[OrderResponse]:
        """List orders containing the seller's items, showing only those items."""
        orders = await self.repository.get_seller_orders(seller.id)

        views = []
        for order in orders:
            view = OrderResponse.model_validate(order)
            view.items = [
                OrderItemResponse.model_validate(item)
                for item in order.items
                if item.seller_id == seller.id
            ]
            views.append(view)
        return views

    async def list_all_orders(
        self,
        payment_status: Optional[PaymentStatus] = None,
        fulfillment_status: Optional[FulfillmentStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[Order], int]:
        """Administrative listing with optional status filters."""
        return await self.repository.get_all_orders(
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
            skip=skip,
            limit=limit,
        )

    async def purge_processed_orders(self, order_ids: Sequence[uuid.UUID]) -> int:
        """
        Delete processed orders in bulk.

        Orders in any other fulfillment state are left untouched.

        Returns:
            Number of orders deleted
        """
        deleted = await self.repository.delete_processed_orders(order_ids)
        await self.repository.commit()
        return deleted


def get_order_query_service(repository: OrderRepository) -> OrderQueryService:
    """Factory function to create an order query service."""
    return OrderQueryService(repository)
