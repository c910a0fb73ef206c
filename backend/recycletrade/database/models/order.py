"""
Order and order item models.

An order belongs either to a registered user or to a guest whose contact
record is embedded on the order, never both. Line items snapshot the unit
price and the seller at creation time so that later catalog edits do not
rewrite order history. Status columns only move forward; the services in
``recycletrade.services.orders`` apply every transition through guarded
updates against these columns.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recycletrade.database.base import BaseModel
from recycletrade.services.orders.enums import (
    CancellationReason,
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)


def _enum_column(enum_cls, name: str) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )


class Order(BaseModel):
    """
    Customer order and its payment and fulfillment state.

    Attributes:
        id: Unique order identifier (UUID)
        user_id: Registered customer, mutually exclusive with guest_info
        guest_info: Embedded guest contact {name, email, phone, address}
        outlet_id: Pickup outlet, required for pickup delivery
        payment_method: card or pickup
        delivery_method: delivery or pickup
        payment_status: pending, paid, failed or cancelled
        fulfillment_status: pending, processing or cancelled
        total_amount: Total computed once at creation
        stripe_session_id: Checkout session used to reconcile card payments
        tracking_number: Carrier tracking number for shipped orders
        cancelled_at: When the order was cancelled
        cancellation_reason: Why the order was cancelled
        paid_at: When payment was confirmed
        processed_at: When fulfillment started
        items: Ordered line items
    """

    __tablename__ = "orders"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Registered customer who placed the order",
    )

    guest_info: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Guest contact details for anonymous checkout",
    )

    outlet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("outlets.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Pickup outlet",
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        _enum_column(PaymentMethod, "payment_method"),
        nullable=False,
        comment="How the order is paid",
    )

    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        _enum_column(DeliveryMethod, "delivery_method"),
        nullable=False,
        default=DeliveryMethod.DELIVERY,
        comment="How the order reaches the customer",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        comment="Current payment status",
    )

    fulfillment_status: Mapped[FulfillmentStatus] = mapped_column(
        _enum_column(FulfillmentStatus, "fulfillment_status"),
        nullable=False,
        default=FulfillmentStatus.PENDING,
        comment="Current fulfillment status",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Order total computed at creation",
    )

    stripe_session_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="Stripe Checkout Session id",
    )

    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Carrier tracking number",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When payment was confirmed",
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When fulfillment moved to processing",
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the order was cancelled",
    )

    cancellation_reason: Mapped[Optional[CancellationReason]] = mapped_column(
        _enum_column(CancellationReason, "cancellation_reason"),
        nullable=True,
        comment="Reason code recorded on cancellation",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.position",
    )

    __table_args__ = (
        Index(
            "ix_orders_abandoned_sweep",
            "payment_method",
            "payment_status",
            "fulfillment_status",
            "created_at",
        ),
        Index("ix_orders_created_at", "created_at"),
        CheckConstraint(
            "(user_id IS NULL) <> (guest_info IS NULL)",
            name="ck_orders_single_customer_reference",
        ),
        CheckConstraint(
            "delivery_method <> 'pickup' OR outlet_id IS NOT NULL",
            name="ck_orders_pickup_requires_outlet",
        ),
        CheckConstraint(
            "total_amount >= 0",
            name="ck_orders_total_amount_non_negative",
        ),
        CheckConstraint(
            "(fulfillment_status = 'cancelled') = (cancelled_at IS NOT NULL)",
            name="ck_orders_cancellation_stamped",
        ),
        {"comment": "Customer orders with payment and fulfillment status"},
    )

    @property
    def short_id(self) -> str:
        """Customer facing order reference."""
        return str(self.id)[-8:].upper()

    @property
    def is_pickup(self) -> bool:
        return self.delivery_method == DeliveryMethod.PICKUP

    @property
    def seller_ids(self) -> set[uuid.UUID]:
        return {item.seller_id for item in self.items if item.seller_id is not None}


class OrderItem(BaseModel):
    """
    Line item of an order.

    Attributes:
        order_id: Parent order
        position: Zero based position within the order
        product_id: Ordered product
        variant_id: Ordered variant, if the product has variants
        seller_id: Seller of the product when the order was placed
        product_name: Product name when the order was placed
        quantity: Units ordered, at least one
        unit_price: Unit price when the order was placed
        inventory_reserved: Whether stock was decremented for this line
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Parent order",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Position within the order",
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Ordered product",
    )

    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Ordered variant",
    )

    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
        comment="Seller snapshot taken at order creation",
    )

    product_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Product name snapshot",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Units ordered",
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Unit price snapshot",
    )

    inventory_reserved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether stock was decremented for this line",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_position", "order_id", "position"),
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
        {"comment": "Order line items with price and seller snapshots"},
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity
