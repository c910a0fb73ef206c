"""
Checkout orchestration for card and pickup orders.

Card checkout persists a pending order and hands the customer to a hosted
Stripe Checkout Session; stock and cart are left untouched until payment is
confirmed. Pickup checkout commits the order immediately: stock is reserved
and the cart is cleared in the same transaction that creates the order, and
the customer pays at the outlet.

Order totals are computed from the prices the storefront submitted. The
amount Stripe actually charges is the sum of the same line items, so the two
only diverge if a client tampers with its request.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from recycletrade.core.config import Settings, get_settings
from recycletrade.core.logging import bind_order_id, get_logger
from recycletrade.database.models.order import Order
from recycletrade.database.models.user import User
from recycletrade.schemas.orders import (
    CardCheckoutRequest,
    CheckoutItemRequest,
    GuestInfoRequest,
    PickupOrderRequest,
)
from recycletrade.services.cart.service import CartService
from recycletrade.services.inventory.ledger import InventoryLedger
from recycletrade.services.orders.enums import DeliveryMethod, PaymentMethod
from recycletrade.services.orders.notifier import OrderNotifier
from recycletrade.services.orders.repository import (
    LineItemDraft,
    OrderDraft,
    OrderRepository,
)
from recycletrade.services.payments.stripe_client import StripeClient, StripeClientError

logger = get_logger(__name__)


class CheckoutError(Exception):
    """Base exception for checkout errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class CheckoutValidationError(CheckoutError):
    """Raised when a checkout request is incomplete or inconsistent."""

    pass


class CheckoutConfigurationError(CheckoutError):
    """Raised when the service is not configured to take card payments."""

    pass


class PaymentSessionError(CheckoutError):
    """Raised when the hosted payment session cannot be created."""

    pass


@dataclass
class CardCheckoutResult:
    """Redirect details for a started card checkout."""

    url: str
    session_id: str
    order_id: str


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to cents, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _guest_payload(guest_info: Optional[GuestInfoRequest]) -> Optional[dict[str, Any]]:
    if guest_info is None:
        return None
    return guest_info.model_dump(mode="json", exclude_none=True)


def _line_drafts(items: list[CheckoutItemRequest]) -> list[LineItemDraft]:
    return [
        LineItemDraft(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price=item.price,
        )
        for item in items
    ]


class CheckoutService:
    """
    Checkout orchestrator for both payment paths.

    Attributes:
        repository: Order repository, owner of the unit of work
        ledger: Inventory ledger for pickup reservations
        carts: Cart service for post-checkout clearing
        notifier: Best-effort order notifications
        stripe_client: Stripe API wrapper
    """

    def __init__(
        self,
        repository: OrderRepository,
        ledger: InventoryLedger,
        carts: CartService,
        notifier: OrderNotifier,
        stripe_client: StripeClient,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.ledger = ledger
        self.carts = carts
        self.notifier = notifier
        self.stripe_client = stripe_client
        self.settings = settings or get_settings()

    async def start_card_checkout(
        self,
        request: CardCheckoutRequest,
        user: Optional[User] = None,
    ) -> CardCheckoutResult:
        """
        Create a pending card order and its hosted payment session.

        The order is committed before the session is requested so that the
        session metadata can reference it; if session creation then fails,
        the pending order is left for the abandonment sweeper.

        Args:
            request: Items, delivery choice and optional guest contact
            user: Signed-in customer, if any

        Returns:
            CardCheckoutResult with the redirect URL

        Raises:
            CheckoutConfigurationError: If no valid storefront URL is configured
            CheckoutValidationError: If the request is incomplete
            PaymentSessionError: If Stripe rejects or times out
        """
        if not self.settings.has_valid_frontend_url:
            logger.error(
                "Card checkout attempted without a valid storefront URL",
                frontend_url=self.settings.frontend_url,
            )
            raise CheckoutConfigurationError(
                "Card checkout is not available: storefront URL is not configured"
            )

        await self._validate_customer_and_outlet(
            user,
            request.guest_info,
            request.delivery_method,
            request.outlet_id,
        )

        total = request.computed_total
        logger.info(
            "Starting card checkout",
            user_id=str(user.id) if user else None,
            guest=user is None,
            item_count=len(request.items),
            total_amount=str(total),
            price_source="client",
        )

        order = await self.repository.create_order(
            OrderDraft(
                items=_line_drafts(request.items),
                total_amount=total,
                payment_method=PaymentMethod.CARD,
                delivery_method=request.delivery_method,
                user_id=user.id if user else None,
                guest_info=None if user else _guest_payload(request.guest_info),
                outlet_id=request.outlet_id,
            )
        )
        await self.repository.commit()
        bind_order_id(order.id)

        frontend = self.settings.frontend_url
        names = {item.product_id: item.name for item in request.items}
        line_items = [
            {
                "price_data": {
                    "currency": self.settings.currency,
                    "product_data": {
                        "name": item.product_name or names.get(item.product_id) or "Item",
                    },
                    "unit_amount": to_minor_units(item.unit_price),
                },
                "quantity": item.quantity,
            }
            for item in order.items
        ]

        try:
            session = await self.stripe_client.create_checkout_session(
                line_items=line_items,
                order_id=str(order.id),
                success_url=f"{frontend}/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{frontend}/cancel",
                customer_email=user.email if user else request.guest_info.email,
            )
        except StripeClientError as e:
            logger.error(
                "Checkout session creation failed",
                order_id=str(order.id),
                error=str(e),
                code=e.code,
            )
            raise PaymentSessionError(
                "Payment session could not be created",
                order_id=str(order.id),
                code=e.code,
            ) from e

        await self.repository.set_stripe_session(order, session.id)
        await self.repository.commit()

        logger.info(
            "Card checkout started",
            order_id=str(order.id),
            session_id=session.id,
        )

        return CardCheckoutResult(url=session.url, session_id=session.id, order_id=str(order.id))

    async def place_pickup_order(
        self,
        request: PickupOrderRequest,
        user: Optional[User] = None,
    ) -> Order:
        """
        Place an order to be paid and collected at an outlet.

        Stock for every line is reserved and the customer's cart cleared in
        the order's own transaction. The confirmation is sent after commit.

        Raises:
            CheckoutValidationError: If the outlet or customer is missing
        """
        await self._validate_customer_and_outlet(
            user,
            request.guest_info,
            DeliveryMethod.PICKUP,
            request.outlet_id,
        )

        total = request.total_amount
        if total is None:
            total = sum((item.price * item.quantity for item in request.items), Decimal("0.00"))

        order = await self.repository.create_order(
            OrderDraft(
                items=_line_drafts(request.items),
                total_amount=total,
                payment_method=PaymentMethod.PICKUP,
                delivery_method=DeliveryMethod.PICKUP,
                user_id=user.id if user else None,
                guest_info=None if user else _guest_payload(request.guest_info),
                outlet_id=request.outlet_id,
            )
        )
        bind_order_id(order.id)

        adjustments = await self.ledger.reserve_items(order.items)
        await self.carts.clear_after_checkout(order.user_id)
        await self.repository.commit()

        logger.info(
            "Pickup order placed",
            order_id=str(order.id),
            outlet_id=str(request.outlet_id),
            total_amount=str(total),
            lines_reserved=sum(1 for a in adjustments if a.applied),
        )

        await self.notifier.send_confirmation(order)
        return order

    async def _validate_customer_and_outlet(
        self,
        user: Optional[User],
        guest_info: Optional[GuestInfoRequest],
        delivery_method: DeliveryMethod,
        outlet_id: Any,
    ) -> None:
        if user is None and guest_info is None:
            raise CheckoutValidationError("Guest contact details are required when not signed in")

        if delivery_method == DeliveryMethod.PICKUP:
            if outlet_id is None:
                raise CheckoutValidationError("An outlet is required for pickup orders")
            outlet = await self.repository.get_outlet(outlet_id)
            if outlet is None or not outlet.is_active:
                raise CheckoutValidationError(
                    "Outlet not found",
                    outlet_id=str(outlet_id),
                )


def get_checkout_service(
    repository: OrderRepository,
    ledger: InventoryLedger,
    carts: CartService,
    notifier: OrderNotifier,
    stripe_client: StripeClient,
) -> CheckoutService:
    """Factory function to create a checkout service."""
    return CheckoutService(repository, ledger, carts, notifier, stripe_client)
