"""
Notification gateway contract shared by the order services.

Order services only ever call ``notify(kind, payload)`` and inspect the
returned ``NotificationResult``; how messages are rendered and delivered is
decided by the single gateway implementation selected at startup.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from recycletrade.core.logging import get_logger

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    """Customer message types emitted by the order lifecycle."""

    ORDER_CONFIRMATION = "order_confirmation"
    STATUS_UPDATE = "status_update"
    ORDER_CANCELLED = "order_cancelled"

    @property
    def template_name(self) -> str:
        return self.value


class StatusLabel(str, Enum):
    """Status shown to the customer in a status update."""

    SHIPPED = "shipped"
    READY_FOR_PICKUP = "ready_for_pickup"
    DELIVERED = "delivered"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass
class CustomerContact:
    """Resolved customer identity for a single order."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @property
    def has_email(self) -> bool:
        return bool(self.email)


@dataclass
class NotificationLine:
    """Order line as presented in customer messages."""

    product_name: str
    quantity: int
    unit_price: Decimal
    variant_label: Optional[str] = None
    seller_name: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class NotificationPayload:
    """
    Snapshot of an order handed to the notification gateway.

    Attributes:
        order_id: Full order id
        order_reference: Short customer facing reference
        customer: Resolved contact details
        items: Order lines
        total_amount: Order total as stored at creation
        payment_method: card or pickup
        delivery_method: delivery or pickup
        created_at: When the order was placed
        status_label: Status shown in a status update
        tracking_number: Carrier tracking number for shipped orders
        outlet: Pickup outlet contact details
        cancellation_reason: Reason code for cancelled orders
    """

    order_id: str
    order_reference: str
    customer: CustomerContact
    items: list[NotificationLine] = field(default_factory=list)
    total_amount: Decimal = Decimal("0.00")
    payment_method: Optional[str] = None
    delivery_method: Optional[str] = None
    created_at: Optional[datetime] = None
    status_label: Optional[StatusLabel] = None
    tracking_number: Optional[str] = None
    outlet: Optional[dict[str, Any]] = None
    cancellation_reason: Optional[str] = None

    def template_context(self, **extra: Any) -> dict[str, Any]:
        """Flatten the payload into a template context."""
        context = {
            "order_id": self.order_id,
            "order_reference": self.order_reference,
            "customer": asdict(self.customer),
            "items": [
                {**asdict(item), "line_total": item.line_total} for item in self.items
            ],
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "delivery_method": self.delivery_method,
            "is_pickup": self.delivery_method == "pickup",
            "created_at": self.created_at,
            "status_label": self.status_label.value if self.status_label else None,
            "status_display": self.status_label.display_name if self.status_label else None,
            "tracking_number": self.tracking_number,
            "outlet": self.outlet,
            "cancellation_reason": self.cancellation_reason,
        }
        context.update(extra)
        return context


@dataclass
class NotificationResult:
    """Outcome of a notify call; per-channel detail lives in ``channels``."""

    success: bool
    channels: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def skipped(cls, reason: str) -> "NotificationResult":
        return cls(success=False, channels={}, error=reason)


@runtime_checkable
class NotificationGateway(Protocol):
    """Capability the order services depend on."""

    async def notify(
        self, kind: NotificationKind, payload: NotificationPayload
    ) -> NotificationResult:
        ...


class LoggingNotificationGateway:
    """
    Gateway that records messages in the log instead of delivering them.

    Used in development and in deployments without a mail transport.
    """

    async def notify(
        self, kind: NotificationKind, payload: NotificationPayload
    ) -> NotificationResult:
        logger.info(
            "Notification logged (no transport configured)",
            kind=kind.value,
            order_id=payload.order_id,
            to_email=payload.customer.email,
            to_phone=payload.customer.phone,
            status_label=payload.status_label.value if payload.status_label else None,
            tracking_number=payload.tracking_number,
        )
        return NotificationResult(success=True, channels={"log": {"status": "logged"}})
