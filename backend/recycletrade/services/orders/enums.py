"""Order status enums and forward-only transition rules.

This module defines the payment and fulfillment status enums carried by every
order, the payment/delivery method discriminators, the cancellation reason
codes, and the transition tables the order services validate against.

Delivered/completed is not a stored fulfillment state: once an order is
processing, delivery progress is tracked externally through its tracking
number.
"""

from enum import Enum
from typing import Dict, Set


class PaymentStatus(str, Enum):
    """Payment status of an order.

    Valid transitions:
    - PENDING -> PAID, FAILED, CANCELLED
    - PAID -> (terminal state, reached at most once)
    - FAILED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FulfillmentStatus(str, Enum):
    """Fulfillment status of an order.

    Valid transitions:
    - PENDING -> PROCESSING, CANCELLED
    - PROCESSING -> (no modeled transition; delivery is tracked externally)
    - CANCELLED -> (terminal state)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    CANCELLED = "cancelled"

    def can_cancel(self) -> bool:
        """Check if fulfillment can still be cancelled."""
        return self is FulfillmentStatus.PENDING


class PaymentMethod(str, Enum):
    """How the customer pays for an order."""

    CARD = "card"
    PICKUP = "pickup"


class DeliveryMethod(str, Enum):
    """How the order reaches the customer."""

    DELIVERY = "delivery"
    PICKUP = "pickup"


class CancellationReason(str, Enum):
    """Reason codes stamped on an order when it is cancelled."""

    ABANDONED = "abandoned"
    USER_CANCELLED = "user_cancelled"
    PAYMENT_FAILED = "payment_failed"
    STRIPE_CANCELLED = "stripe_cancelled"


PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PAID: set(),  # Terminal
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.CANCELLED: set(),  # Terminal
}

FULFILLMENT_STATUS_TRANSITIONS: Dict[FulfillmentStatus, Set[FulfillmentStatus]] = {
    FulfillmentStatus.PENDING: {
        FulfillmentStatus.PROCESSING,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.PROCESSING: set(),
    FulfillmentStatus.CANCELLED: set(),  # Terminal
}


def validate_payment_status_transition(
    current: PaymentStatus,
    new: PaymentStatus,
) -> bool:
    """Validate if payment status transition is allowed.

    Args:
        current: Current payment status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in PAYMENT_STATUS_TRANSITIONS.get(current, set())


def validate_fulfillment_status_transition(
    current: FulfillmentStatus,
    new: FulfillmentStatus,
) -> bool:
    """Validate if fulfillment status transition is allowed.

    Args:
        current: Current fulfillment status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in FULFILLMENT_STATUS_TRANSITIONS.get(current, set())


def get_allowed_payment_transitions(current: PaymentStatus) -> Set[PaymentStatus]:
    """Get all allowed transitions from current payment status."""
    return PAYMENT_STATUS_TRANSITIONS.get(current, set()).copy()


def get_allowed_fulfillment_transitions(
    current: FulfillmentStatus,
) -> Set[FulfillmentStatus]:
    """Get all allowed transitions from current fulfillment status."""
    return FULFILLMENT_STATUS_TRANSITIONS.get(current, set()).copy()
