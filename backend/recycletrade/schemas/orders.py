"""
Order Pydantic schemas for API request/response validation.

This module defines the checkout requests for card and pickup orders, the
fulfillment and administrative requests, and the order responses returned to
customers, sellers and administrators. The public tracking response is a
sanitized view that never exposes payment processor references or guest
contact details.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from recycletrade.services.orders.enums import (
    CancellationReason,
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)


class GuestAddressRequest(BaseModel):
    """Shipping address supplied by a guest customer."""

    model_config = ConfigDict(str_strip_whitespace=True)

    street: Optional[str] = Field(None, max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=2)


class GuestInfoRequest(BaseModel):
    """Contact details for an anonymous checkout."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    first_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Guest first name",
    )
    last_name: Optional[str] = Field(
        None,
        max_length=100,
        description="Guest last name",
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=255,
        description="Guest email address",
    )
    phone: Optional[str] = Field(
        None,
        max_length=20,
        description="Guest phone number",
    )
    address: Optional[GuestAddressRequest] = Field(
        None,
        description="Shipping address for delivery orders",
    )

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        """Validate email format."""
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email format")
        return v.lower()


class CheckoutItemRequest(BaseModel):
    """Line item submitted at checkout."""

    model_config = ConfigDict(validate_assignment=True)

    product_id: UUID = Field(..., description="Product identifier")
    variant_id: Optional[UUID] = Field(None, description="Variant identifier")
    quantity: int = Field(..., ge=1, le=100, description="Units ordered")
    price: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Unit price as displayed to the customer",
    )
    name: Optional[str] = Field(
        None,
        max_length=255,
        description="Product name shown on the payment page",
    )


class CardCheckoutRequest(BaseModel):
    """Request to start a hosted card checkout."""

    model_config = ConfigDict(validate_assignment=True)

    items: list[CheckoutItemRequest] = Field(
        ...,
        min_length=1,
        description="Items to purchase",
    )
    delivery_method: DeliveryMethod = Field(
        DeliveryMethod.DELIVERY,
        description="Delivery or outlet pickup",
    )
    outlet_id: Optional[UUID] = Field(
        None,
        description="Pickup outlet, required for pickup delivery",
    )
    guest_info: Optional[GuestInfoRequest] = Field(
        None,
        description="Contact details, required when not signed in",
    )

    @property
    def computed_total(self) -> Decimal:
        return sum((item.price * item.quantity for item in self.items), Decimal("0.00"))


class PickupOrderRequest(BaseModel):
    """Request to reserve items for payment at an outlet."""

    model_config = ConfigDict(validate_assignment=True)

    items: list[CheckoutItemRequest] = Field(
        ...,
        min_length=1,
        description="Items to reserve",
    )
    outlet_id: Optional[UUID] = Field(
        None,
        description="Outlet where the customer will pay and collect",
    )
    total_amount: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Order total as displayed to the customer",
    )
    guest_info: Optional[GuestInfoRequest] = Field(
        None,
        description="Contact details, required when not signed in",
    )


class ProcessOrderRequest(BaseModel):
    """Request to move an order into processing."""

    model_config = ConfigDict(str_strip_whitespace=True)

    tracking_number: Optional[str] = Field(
        None,
        max_length=100,
        description="Carrier tracking number for delivery orders",
    )
    is_pickup: bool = Field(
        False,
        description="Order is ready for collection at the outlet",
    )

    @field_validator("tracking_number")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class TrackingUpdateRequest(BaseModel):
    """Administrative tracking number update."""

    model_config = ConfigDict(str_strip_whitespace=True)

    tracking_number: str = Field(..., min_length=1, max_length=100)


class PurgeProcessedRequest(BaseModel):
    """Bulk deletion of processed orders."""

    order_ids: list[UUID] = Field(..., min_length=1, max_length=500)


class OrderItemResponse(BaseModel):
    """Order item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    seller_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    """Complete order response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    short_id: str
    user_id: Optional[UUID] = None
    guest_info: Optional[dict] = None
    outlet_id: Optional[UUID] = None
    payment_method: PaymentMethod
    delivery_method: DeliveryMethod
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    total_amount: Decimal
    tracking_number: Optional[str] = None
    stripe_session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[CancellationReason] = None
    items: list[OrderItemResponse]
    created_at: datetime
    updated_at: datetime


class TrackedOrderResponse(BaseModel):
    """Public tracking view of an order."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    short_id: str
    delivery_method: DeliveryMethod
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    total_amount: Decimal
    tracking_number: Optional[str] = None
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: list[OrderItemResponse]
    created_at: datetime


class OrderListResponse(BaseModel):
    """Paginated order listing."""

    orders: list[OrderResponse]
    total: int
    skip: int = 0
    limit: int = 50


class CardCheckoutResponse(BaseModel):
    """Hosted checkout redirect details."""

    url: str
    session_id: str
    order_id: UUID


class SweepReportResponse(BaseModel):
    """Outcome of an abandoned order sweep."""

    model_config = ConfigDict(from_attributes=True)

    found: int
    cancelled: int
    reconciled: int
    failed: int
    skipped: int


class PurgeProcessedResponse(BaseModel):
    deleted: int


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool = True
    event_type: Optional[str] = None
    status: str
