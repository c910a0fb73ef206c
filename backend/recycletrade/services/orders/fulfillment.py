"""
Fulfillment state machine service.

Moves orders from pending to processing when a seller ships or readies them
for pickup, amends tracking numbers, and cancels orders that never completed
payment. Each operation commits its own unit of work and notifies the
customer afterwards on a best-effort basis.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from recycletrade.core.logging import bind_order_id, get_logger
from recycletrade.database.models.order import Order
from recycletrade.database.models.user import User
from recycletrade.services.inventory.ledger import InventoryLedger
from recycletrade.services.notifications.gateway import StatusLabel
from recycletrade.services.orders.enums import CancellationReason, FulfillmentStatus
from recycletrade.services.orders.notifier import OrderNotifier
from recycletrade.services.orders.repository import OrderNotFoundError, OrderRepository
from recycletrade.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
    can_process,
    get_order_state_machine,
)

logger = get_logger(__name__)


class FulfillmentError(Exception):
    """Base exception for fulfillment errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class FulfillmentAuthorizationError(FulfillmentError):
    """Raised when the actor is not involved in the order."""

    pass


class InvalidStatusTransitionError(FulfillmentError):
    """Raised when the order is not in a state that allows the operation."""

    pass


class FulfillmentService:
    """
    Fulfillment operations on a single order.

    Attributes:
        repository: Order repository, owner of the unit of work
        ledger: Inventory ledger for cancellation restocks
        notifier: Best-effort order notifications
        state_machine: Transition table and guards
    """

    def __init__(
        self,
        repository: OrderRepository,
        ledger: InventoryLedger,
        notifier: OrderNotifier,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.repository = repository
        self.ledger = ledger
        self.notifier = notifier
        self.state_machine = state_machine or get_order_state_machine()

    async def process_order(
        self,
        order_id: uuid.UUID,
        actor: User,
        tracking_number: Optional[str] = None,
        is_pickup: bool = False,
    ) -> Order:
        """
        Move an order to processing and tell the customer.

        Args:
            order_id: Order to process
            actor: Seller of record, administrator or company account
            tracking_number: Carrier reference, stored for delivery orders only
            is_pickup: Send "ready for pickup" instead of "shipped"

        Returns:
            The processed order

        Raises:
            OrderNotFoundError: If the order does not exist
            FulfillmentAuthorizationError: If the actor may not process it
            InvalidStatusTransitionError: If the order is not pending
        """
        order = await self._get_order(order_id)

        if not can_process(actor, order):
            logger.warning(
                "Unauthorized fulfillment attempt",
                order_id=str(order_id),
                actor_id=str(actor.id),
                actor_role=getattr(actor.role, "value", actor.role),
            )
            raise FulfillmentAuthorizationError(
                "Not authorized to process this order",
                order_id=str(order_id),
                actor_id=str(actor.id),
            )

        self._validate(order, FulfillmentStatus.PROCESSING)

        values: dict[str, Any] = {"processed_at": datetime.now(timezone.utc)}
        if tracking_number and not order.is_pickup:
            values["tracking_number"] = tracking_number

        applied = await self.repository.transition_fulfillment_status(
            order,
            FulfillmentStatus.PENDING,
            FulfillmentStatus.PROCESSING,
            **values,
        )
        if not applied:
            raise InvalidStatusTransitionError(
                "Order was modified concurrently and is no longer pending",
                order_id=str(order_id),
            )

        await self.repository.commit()

        logger.info(
            "Order processing started",
            order_id=str(order_id),
            actor_id=str(actor.id),
            is_pickup=is_pickup,
            has_tracking=bool(order.tracking_number),
        )

        if is_pickup:
            await self.notifier.send_status_update(order, StatusLabel.READY_FOR_PICKUP)
        else:
            await self.notifier.send_status_update(
                order,
                StatusLabel.SHIPPED,
                tracking_number=order.tracking_number,
            )

        return order

    async def update_tracking(
        self,
        order_id: uuid.UUID,
        tracking_number: str,
        actor: User,
    ) -> Order:
        """
        Set or amend the tracking number of a delivery order.

        A pending order is moved to processing and the customer is told it
        shipped. A processing order only has its tracking number replaced.

        Raises:
            OrderNotFoundError: If the order does not exist
            FulfillmentError: If the order is collected at an outlet
            InvalidStatusTransitionError: If the order is cancelled
        """
        order = await self._get_order(order_id)

        if order.is_pickup:
            raise FulfillmentError(
                "Tracking numbers apply to delivery orders only",
                order_id=str(order_id),
            )

        if order.fulfillment_status == FulfillmentStatus.PENDING:
            return await self.process_order(order_id, actor, tracking_number=tracking_number)

        if order.fulfillment_status != FulfillmentStatus.PROCESSING:
            raise InvalidStatusTransitionError(
                f"Cannot set tracking on a {order.fulfillment_status.value} order",
                order_id=str(order_id),
                current_status=order.fulfillment_status.value,
            )

        previous = order.tracking_number
        await self.repository.set_tracking_number(order, tracking_number)
        await self.repository.commit()

        logger.info(
            "Tracking number amended",
            order_id=str(order_id),
            actor_id=str(actor.id),
            previous_tracking_number=previous,
            tracking_number=tracking_number,
        )
        return order

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        reason: CancellationReason,
    ) -> bool:
        """
        Cancel a pending order and restock its lines.

        Args:
            order_id: Order to cancel
            reason: Reason code stamped on the order

        Returns:
            True if this call cancelled the order, False if it was already
            cancelled or a concurrent update won

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStatusTransitionError: If the order is being fulfilled
        """
        order = await self._get_order(order_id)

        if order.fulfillment_status == FulfillmentStatus.CANCELLED:
            logger.info("Order already cancelled", order_id=str(order_id))
            return False

        if not self.state_machine.can_cancel(order):
            raise InvalidStatusTransitionError(
                f"Cannot cancel a {order.fulfillment_status.value} order",
                order_id=str(order_id),
                current_status=order.fulfillment_status.value,
            )

        payment_status = self.state_machine.cancelled_payment_status(order)
        applied = await self.repository.transition_to_cancelled(
            order,
            payment_status,
            cancelled_at=datetime.now(timezone.utc),
            cancellation_reason=reason,
        )
        if not applied:
            logger.info(
                "Cancellation lost to a concurrent update",
                order_id=str(order_id),
                reason=reason.value,
            )
            return False

        adjustments = await self.ledger.release_items(order.items)
        await self.repository.commit()

        logger.info(
            "Order cancelled",
            order_id=str(order_id),
            reason=reason.value,
            payment_status=payment_status.value,
            lines_released=sum(1 for a in adjustments if a.applied),
        )

        await self.notifier.send_cancellation(order)
        return True

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        bind_order_id(order_id)
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    def _validate(self, order: Order, target: FulfillmentStatus) -> None:
        try:
            self.state_machine.validate_fulfillment_transition(order, target)
        except StateTransitionError as e:
            raise InvalidStatusTransitionError(
                str(e),
                order_id=str(order.id),
                current_status=e.current_state.value,
                target_status=e.target_state.value,
                **e.context,
            ) from e


def get_fulfillment_service(
    repository: OrderRepository,
    ledger: InventoryLedger,
    notifier: OrderNotifier,
) -> FulfillmentService:
    """Factory function to create a fulfillment service."""
    return FulfillmentService(repository, ledger, notifier)
