"""Order state machine with transition validation and fulfillment guards.

This module implements the OrderStateMachine class. It holds no database
state: it only decides whether a payment or fulfillment transition is legal
for an order and whether an actor may drive it. Persisting a transition is
the job of the guarded updates in ``OrderRepository``.
"""

from typing import Any, Callable, Dict, Tuple

from recycletrade.core.logging import get_logger
from recycletrade.database.models.user import UserRole
from recycletrade.services.orders.enums import (
    FulfillmentStatus,
    PaymentStatus,
    get_allowed_fulfillment_transitions,
    get_allowed_payment_transitions,
    validate_fulfillment_status_transition,
    validate_payment_status_transition,
)

logger = get_logger(__name__)


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: Any,
        target_state: Any,
        **context: Any
    ):
        super().__init__(message)
        self.current_state = current_state
        self.target_state = target_state
        self.context = context


def can_process(actor: Any, order: Any) -> bool:
    """Check whether an actor may move an order into processing.

    Staff roles may process any order. Sellers may process an order as soon
    as at least one of its line items is theirs, even when the order also
    contains other sellers' items.

    Args:
        actor: Authenticated user
        order: Order with loaded items

    Returns:
        True if the actor is authorized
    """
    if actor is None:
        return False

    role = actor.role if isinstance(actor.role, UserRole) else UserRole.from_string(actor.role)
    if role.is_staff:
        return True

    return any(item.seller_id == actor.id for item in order.items)


class OrderStateMachine:
    """State machine for the two order status columns.

    Payment and fulfillment move independently, each along its own
    transition table. Guards add order-level preconditions on top of the
    tables.
    """

    def __init__(self):
        self._fulfillment_guards: Dict[
            Tuple[FulfillmentStatus, FulfillmentStatus],
            Callable[[Any], bool]
        ] = {
            (FulfillmentStatus.PENDING, FulfillmentStatus.PROCESSING): (
                self._guard_processing
            ),
        }

    def validate_payment_transition(self, order: Any, target: PaymentStatus) -> bool:
        """Validate a payment status transition.

        Raises:
            StateTransitionError: If the transition table forbids it
        """
        current = order.payment_status
        if not validate_payment_status_transition(current, target):
            raise StateTransitionError(
                f"Invalid payment transition from {current.value} to {target.value}",
                current_state=current,
                target_state=target,
                allowed_transitions=sorted(s.value for s in get_allowed_payment_transitions(current)),
            )
        return True

    def validate_fulfillment_transition(
        self,
        order: Any,
        target: FulfillmentStatus,
    ) -> bool:
        """Validate a fulfillment status transition, including its guard.

        Args:
            order: Order instance to validate
            target: Desired fulfillment status

        Returns:
            True if transition is valid

        Raises:
            StateTransitionError: If transition is invalid
        """
        current = order.fulfillment_status

        logger.debug(
            "Validating fulfillment transition",
            order_id=str(order.id),
            current_status=current.value,
            target_status=target.value,
        )

        if not validate_fulfillment_status_transition(current, target):
            raise StateTransitionError(
                f"Invalid fulfillment transition from {current.value} to {target.value}",
                current_state=current,
                target_state=target,
                allowed_transitions=sorted(s.value for s in get_allowed_fulfillment_transitions(current)),
            )

        guard = self._fulfillment_guards.get((current, target))
        if guard is not None and not guard(order):
            raise StateTransitionError(
                f"Transition guard failed for {current.value} -> {target.value}",
                current_state=current,
                target_state=target,
                guard_failed=True,
            )

        return True

    def can_cancel(self, order: Any) -> bool:
        """Check if order can be cancelled from its current fulfillment status."""
        return order.fulfillment_status.can_cancel()

    def cancelled_payment_status(self, order: Any) -> PaymentStatus:
        """Payment status to record when an order is cancelled.

        Pending payments are cancelled; paid and failed payments are terminal
        and keep their value.
        """
        if order.payment_status == PaymentStatus.PENDING:
            return PaymentStatus.CANCELLED
        return order.payment_status

    def _guard_processing(self, order: Any) -> bool:
        """An order with no lines has nothing to fulfil."""
        return bool(order.items)


def get_order_state_machine() -> OrderStateMachine:
    """Factory function to create OrderStateMachine instance."""
    return OrderStateMachine()
