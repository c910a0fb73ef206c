"""
Order data access repository with guarded status transitions.

This module implements the OrderRepository class: order creation with
seller snapshots, lookups, listings for customers, sellers and
administrators, and the optimistic status updates that keep concurrent
webhook deliveries and sweeps from overwriting each other. Every status
change is issued as ``UPDATE ... WHERE status = <expected>`` and reports
whether it won.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, delete, func, select, true, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from recycletrade.core.logging import get_logger
from recycletrade.database.models.order import Order, OrderItem
from recycletrade.database.models.outlet import Outlet
from recycletrade.database.models.product import Product
from recycletrade.database.models.user import User
from recycletrade.services.orders.enums import (
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when order is not found."""

    pass


class OrderCreationError(OrderRepositoryError):
    """Raised when order creation fails."""

    pass


class OrderUpdateError(OrderRepositoryError):
    """Raised when order update fails."""

    pass


@dataclass
class LineItemDraft:
    """Line item as submitted at checkout."""

    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    variant_id: Optional[uuid.UUID] = None


@dataclass
class OrderDraft:
    """Everything needed to persist a new pending order."""

    items: list[LineItemDraft]
    total_amount: Decimal
    payment_method: PaymentMethod
    delivery_method: DeliveryMethod
    user_id: Optional[uuid.UUID] = None
    guest_info: Optional[dict[str, Any]] = None
    outlet_id: Optional[uuid.UUID] = None

    def validate(self) -> None:
        """
        Check the structural invariants of a new order.

        Raises:
            OrderCreationError: If the draft cannot become a valid order
        """
        if not self.items:
            raise OrderCreationError("Order must contain at least one item")
        if (self.user_id is None) == (self.guest_info is None):
            raise OrderCreationError(
                "Order must reference exactly one of a user or a guest contact",
                has_user=self.user_id is not None,
                has_guest=self.guest_info is not None,
            )
        if self.delivery_method == DeliveryMethod.PICKUP and self.outlet_id is None:
            raise OrderCreationError("Pickup orders require an outlet")
        for item in self.items:
            if item.quantity < 1:
                raise OrderCreationError(
                    "Item quantity must be at least 1",
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                )


class OrderRepository:
    """
    Repository for order data access operations.

    The repository flushes but never commits on its own; services decide
    where a unit of work ends through ``commit``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order(self, draft: OrderDraft) -> Order:
        """
        Persist a new order in pending/pending state.

        Each line item's seller is copied from the current product record so
        that later catalog changes do not alter who may fulfil the order.

        Raises:
            OrderCreationError: If the draft is invalid or the insert fails
        """
        draft.validate()

        try:
            product_ids = {item.product_id for item in draft.items}
            result = await self.session.execute(
                select(Product.id, Product.seller_id, Product.name).where(
                    Product.id.in_(product_ids)
                )
            )
            snapshots = {row.id: row for row in result.all()}

            order = Order(
                user_id=draft.user_id,
                guest_info=draft.guest_info if draft.user_id is None else None,
                outlet_id=draft.outlet_id if draft.delivery_method == DeliveryMethod.PICKUP else None,
                payment_method=draft.payment_method,
                delivery_method=draft.delivery_method,
                payment_status=PaymentStatus.PENDING,
                fulfillment_status=FulfillmentStatus.PENDING,
                total_amount=draft.total_amount,
            )

            for position, item in enumerate(draft.items):
                snapshot = snapshots.get(item.product_id)
                if snapshot is None:
                    logger.warning(
                        "Ordered product not found, seller snapshot left empty",
                        product_id=str(item.product_id),
                    )
                order.items.append(
                    OrderItem(
                        position=position,
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        seller_id=snapshot.seller_id if snapshot else None,
                        product_name=snapshot.name if snapshot else None,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        inventory_reserved=False,
                    )
                )

            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order created",
                order_id=str(order.id),
                payment_method=draft.payment_method.value,
                delivery_method=draft.delivery_method.value,
                item_count=len(order.items),
                total_amount=str(draft.total_amount),
            )

            return order

        except IntegrityError as e:
            await self.session.rollback()
            logger.error("Order creation failed - integrity error", error=str(e))
            raise OrderCreationError(
                "Order creation failed due to data integrity violation",
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Order creation failed - database error", error=str(e))
            raise OrderCreationError(
                "Order creation failed due to database error",
                error=str(e),
            ) from e

    async def get_order_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get order by ID with its items.

        Raises:
            OrderRepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_order_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        """Get the most recent order carrying a tracking number."""
        try:
            result = await self.session.execute(
                select(Order)
                .where(Order.tracking_number == tracking_number)
                .order_by(Order.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch order by tracking number",
                tracking_number=tracking_number,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to fetch order by tracking number",
                tracking_number=tracking_number,
                error=str(e),
            ) from e

    async def get_user_orders(self, user_id: uuid.UUID) -> Sequence[Order]:
        """Get a customer's orders, newest first."""
        result = await self.session.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
        )
        return result.scalars().all()

    async def get_seller_orders(self, seller_id: uuid.UUID) -> Sequence[Order]:
        """Get orders containing at least one item sold by the seller."""
        result = await self.session.execute(
            select(Order)
            .where(Order.items.any(OrderItem.seller_id == seller_id))
            .order_by(Order.created_at.desc())
        )
        return result.scalars().all()

    async def get_all_orders(
        self,
        payment_status: Optional[PaymentStatus] = None,
        fulfillment_status: Optional[FulfillmentStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[Order], int]:
        """
        Get orders for administrative views with pagination.

        Returns:
            Tuple of (orders, total_count)
        """
        conditions = []
        if payment_status:
            conditions.append(Order.payment_status == payment_status)
        if fulfillment_status:
            conditions.append(Order.fulfillment_status == fulfillment_status)
        where = and_(*conditions) if conditions else true()

        stmt = (
            select(Order)
            .where(where)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(Order).where(where)

        orders = (await self.session.execute(stmt)).scalars().all()
        total_count = (await self.session.execute(count_stmt)).scalar_one()

        return orders, total_count

    async def find_abandoned_candidates(
        self,
        cutoff: datetime,
        limit: int = 100,
    ) -> Sequence[Order]:
        """
        Find unpaid card orders created before the cutoff.

        Args:
            cutoff: Orders created at or after this instant are left alone
            limit: Maximum number of orders to return, oldest first
        """
        result = await self.session.execute(
            select(Order)
            .where(
                Order.payment_method == PaymentMethod.CARD,
                Order.payment_status == PaymentStatus.PENDING,
                Order.fulfillment_status == FulfillmentStatus.PENDING,
                Order.created_at < cutoff,
            )
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        return result.scalars().all()

    async def transition_payment_status(
        self,
        order: Order,
        expected: PaymentStatus,
        target: PaymentStatus,
        **values: Any,
    ) -> bool:
        """
        Move payment status from ``expected`` to ``target`` if nobody beat us to it.

        Returns:
            True if this call applied the transition
        """
        return await self._guarded_update(
            order,
            guards={"payment_status": expected},
            values={"payment_status": target, **values},
        )

    async def transition_fulfillment_status(
        self,
        order: Order,
        expected: FulfillmentStatus,
        target: FulfillmentStatus,
        **values: Any,
    ) -> bool:
        """
        Move fulfillment status from ``expected`` to ``target`` if still current.

        Returns:
            True if this call applied the transition
        """
        return await self._guarded_update(
            order,
            guards={"fulfillment_status": expected},
            values={"fulfillment_status": target, **values},
        )

    async def transition_to_cancelled(
        self,
        order: Order,
        payment_status: PaymentStatus,
        **values: Any,
    ) -> bool:
        """
        Cancel a pending order, guarding on both status columns.

        Args:
            order: Order to cancel
            payment_status: Payment status to record alongside the cancellation
            **values: Cancellation metadata (cancelled_at, cancellation_reason)
        """
        return await self._guarded_update(
            order,
            guards={
                "fulfillment_status": FulfillmentStatus.PENDING,
                "payment_status": order.payment_status,
            },
            values={
                "fulfillment_status": FulfillmentStatus.CANCELLED,
                "payment_status": payment_status,
                **values,
            },
        )

    async def set_tracking_number(self, order: Order, tracking_number: Optional[str]) -> None:
        """Amend the tracking number of an order."""
        order.tracking_number = tracking_number
        await self.session.flush()

    async def set_stripe_session(self, order: Order, session_id: str) -> None:
        """Record the checkout session created for an order."""
        order.stripe_session_id = session_id
        await self.session.flush()

    async def delete_processed_orders(self, order_ids: Sequence[uuid.UUID]) -> int:
        """
        Delete the given orders if they are processing.

        Returns:
            Number of orders deleted
        """
        if not order_ids:
            return 0
        result = await self.session.execute(
            delete(Order)
            .where(
                Order.id.in_(order_ids),
                Order.fulfillment_status == FulfillmentStatus.PROCESSING,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Processed orders purged",
            requested=len(order_ids),
            deleted=result.rowcount,
        )
        return result.rowcount

    async def get_outlet(self, outlet_id: Optional[uuid.UUID]) -> Optional[Outlet]:
        if outlet_id is None:
            return None
        return await self.session.get(Outlet, outlet_id)

    async def get_user(self, user_id: Optional[uuid.UUID]) -> Optional[User]:
        if user_id is None:
            return None
        return await self.session.get(User, user_id)

    async def get_products(self, product_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        result = await self.session.execute(select(Product).where(Product.id.in_(set(product_ids))))
        return {product.id: product for product in result.scalars().all()}

    async def get_users(self, user_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, User]:
        if not user_ids:
            return {}
        result = await self.session.execute(select(User).where(User.id.in_(set(user_ids))))
        return {user.id: user for user in result.scalars().all()}

    async def commit(self) -> None:
        """
        Commit the current unit of work.

        Raises:
            OrderUpdateError: If the commit fails
        """
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Order commit failed", error=str(e))
            raise OrderUpdateError("Failed to persist order changes", error=str(e)) from e

    async def rollback(self) -> None:
        await self.session.rollback()

    async def _guarded_update(
        self,
        order: Order,
        guards: dict[str, Any],
        values: dict[str, Any],
    ) -> bool:
        conditions = [Order.id == order.id]
        conditions.extend(getattr(Order, column) == value for column, value in guards.items())

        try:
            result = await self.session.execute(
                update(Order)
                .where(*conditions)
                .values(**values)
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            )
            applied = result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Guarded order update failed",
                order_id=str(order.id),
                values=list(values),
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to update order status",
                order_id=str(order.id),
                error=str(e),
            ) from e

        if not applied:
            logger.info(
                "Guarded order update lost",
                order_id=str(order.id),
                guards={k: getattr(v, "value", v) for k, v in guards.items()},
            )
            return False

        for column, value in values.items():
            set_committed_value(order, column, value)

        return True


def get_order_repository(session: AsyncSession) -> OrderRepository:
    """Factory function to create an order repository."""
    return OrderRepository(session)
