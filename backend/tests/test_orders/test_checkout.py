"""
Tests for card and pickup checkout.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from recycletrade.core.config import Settings
from recycletrade.schemas.orders import (
    CardCheckoutRequest,
    CheckoutItemRequest,
    GuestInfoRequest,
    PickupOrderRequest,
)
from recycletrade.services.notifications.gateway import NotificationKind
from recycletrade.services.orders.checkout import (
    CheckoutConfigurationError,
    CheckoutService,
    CheckoutValidationError,
    PaymentSessionError,
    to_minor_units,
)
from recycletrade.services.orders.enums import (
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from recycletrade.services.payments.stripe_client import StripeConnectionError
from tests.factories import make_outlet, make_product, make_user

# ============================================================================
# Helpers
# ============================================================================


def guest() -> GuestInfoRequest:
    return GuestInfoRequest(first_name="Grace", last_name="Hopper", email="Grace@Example.com")


def item_for(product, quantity: int = 1, price: str = "19.99") -> CheckoutItemRequest:
    return CheckoutItemRequest(
        product_id=product.id,
        variant_id=product.variants[0].id if product.variants else None,
        quantity=quantity,
        price=Decimal(price),
        name=product.name,
    )


# ============================================================================
# Card Checkout
# ============================================================================


class TestCardCheckout:
    async def test_creates_pending_order_and_session(
        self, services, order_repository, products, stripe_client
    ):
        product = products.add(make_product(stocks=(4,)))
        user = order_repository.add_user(make_user())
        request = CardCheckoutRequest(items=[item_for(product, quantity=2)])

        result = await services.checkout.start_card_checkout(request, user)

        order = order_repository.orders[next(iter(order_repository.orders))]
        assert result.order_id == str(order.id)
        assert result.session_id == "cs_test_1"
        assert result.url.startswith("https://checkout.stripe.com/")
        assert order.payment_method is PaymentMethod.CARD
        assert order.payment_status is PaymentStatus.PENDING
        assert order.fulfillment_status is FulfillmentStatus.PENDING
        assert order.stripe_session_id == "cs_test_1"
        assert order.total_amount == Decimal("39.98")
        assert order_repository.commits == 2

    async def test_stock_and_cart_untouched_until_payment(
        self, services, order_repository, products, carts, gateway
    ):
        product = products.add(make_product(stocks=(4,)))
        user = order_repository.add_user(make_user())

        await services.checkout.start_card_checkout(
            CardCheckoutRequest(items=[item_for(product, quantity=2)]), user
        )

        assert product.variants[0].stock == 4
        assert carts.cleared == []
        assert gateway.sent == []

    async def test_session_request_carries_order_reference_and_cents(
        self, services, order_repository, products, stripe_client, settings
    ):
        product = products.add(make_product(stocks=(4,)))
        request = CardCheckoutRequest(items=[item_for(product, price="10.50")], guest_info=guest())

        result = await services.checkout.start_card_checkout(request)

        created = stripe_client.created[0]
        assert created["order_id"] == result.order_id
        assert created["customer_email"] == "grace@example.com"
        assert created["success_url"] == (
            f"{settings.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}"
        )
        assert created["cancel_url"] == f"{settings.frontend_url}/cancel"
        line = created["line_items"][0]
        assert line["price_data"]["currency"] == settings.currency
        assert line["price_data"]["product_data"]["name"] == product.name
        assert line["price_data"]["unit_amount"] == 1050
        assert line["quantity"] == 1

    async def test_guest_checkout_embeds_contact(self, services, order_repository, products):
        product = products.add(make_product())

        result = await services.checkout.start_card_checkout(
            CardCheckoutRequest(items=[item_for(product)], guest_info=guest())
        )

        order = order_repository.orders[next(iter(order_repository.orders))]
        assert str(order.id) == result.order_id
        assert order.user_id is None
        assert order.guest_info["email"] == "grace@example.com"
        assert order.guest_info["first_name"] == "Grace"

    async def test_signed_in_checkout_ignores_guest_contact(self, services, order_repository, products):
        product = products.add(make_product())
        user = order_repository.add_user(make_user())

        await services.checkout.start_card_checkout(
            CardCheckoutRequest(items=[item_for(product)], guest_info=guest()), user
        )

        order = next(iter(order_repository.orders.values()))
        assert order.user_id == user.id
        assert order.guest_info is None

    async def test_anonymous_checkout_without_contact_is_rejected(self, services, products):
        product = products.add(make_product())

        with pytest.raises(CheckoutValidationError):
            await services.checkout.start_card_checkout(
                CardCheckoutRequest(items=[item_for(product)])
            )

    async def test_pickup_delivery_requires_known_outlet(self, services, products, order_repository):
        product = products.add(make_product())
        user = order_repository.add_user(make_user())

        with pytest.raises(CheckoutValidationError, match="Outlet not found"):
            await services.checkout.start_card_checkout(
                CardCheckoutRequest(
                    items=[item_for(product)],
                    delivery_method=DeliveryMethod.PICKUP,
                    outlet_id=uuid4(),
                ),
                user,
            )
        assert order_repository.orders == {}

    async def test_session_failure_leaves_pending_order_for_sweeper(
        self, services, order_repository, products, stripe_client
    ):
        product = products.add(make_product())
        stripe_client.create_error = StripeConnectionError("Connection error", code="api_connection_error")

        with pytest.raises(PaymentSessionError) as exc_info:
            await services.checkout.start_card_checkout(
                CardCheckoutRequest(items=[item_for(product)], guest_info=guest())
            )

        order = next(iter(order_repository.orders.values()))
        assert exc_info.value.context["order_id"] == str(order.id)
        assert order.payment_status is PaymentStatus.PENDING
        assert order.stripe_session_id is None

    @pytest.mark.parametrize("frontend_url", ["", "shop.recycletrade.example", "ftp://files"])
    async def test_missing_or_relative_storefront_url_is_a_configuration_error(
        self, order_repository, products, stripe_client, frontend_url
    ):
        services_settings = Settings(frontend_url=frontend_url)
        checkout = CheckoutService(
            order_repository, None, None, None, stripe_client, settings=services_settings
        )
        product = products.add(make_product())

        with pytest.raises(CheckoutConfigurationError):
            await checkout.start_card_checkout(
                CardCheckoutRequest(items=[item_for(product)], guest_info=guest())
            )
        assert order_repository.orders == {}
        assert stripe_client.created == []


class TestMinorUnits:
    @pytest.mark.parametrize(
        "amount,cents",
        [("19.99", 1999), ("0.00", 0), ("10.005", 1001), ("1200", 120000)],
    )
    def test_rounds_half_up(self, amount, cents):
        assert to_minor_units(Decimal(amount)) == cents


# ============================================================================
# Pickup Checkout
# ============================================================================


class TestPickupCheckout:
    async def test_reserves_stock_clears_cart_and_confirms(
        self, services, order_repository, products, carts, gateway
    ):
        outlet = order_repository.add_outlet(make_outlet())
        product = products.add(make_product(stocks=(3,)))
        user = order_repository.add_user(make_user())
        carts.carts.add(user.id)

        order = await services.checkout.place_pickup_order(
            PickupOrderRequest(items=[item_for(product, quantity=2)], outlet_id=outlet.id),
            user,
        )

        assert order.payment_method is PaymentMethod.PICKUP
        assert order.delivery_method is DeliveryMethod.PICKUP
        assert order.payment_status is PaymentStatus.PENDING
        assert order.outlet_id == outlet.id
        assert product.variants[0].stock == 1
        assert order.items[0].inventory_reserved
        assert carts.cleared == [user.id]
        assert order_repository.commits == 1
        assert gateway.kinds() == [NotificationKind.ORDER_CONFIRMATION]
        assert gateway.sent[0][1].outlet["name"] == outlet.name

    async def test_submitted_total_is_kept(self, services, order_repository, products):
        outlet = order_repository.add_outlet(make_outlet())
        product = products.add(make_product())

        order = await services.checkout.place_pickup_order(
            PickupOrderRequest(
                items=[item_for(product, price="50.00")],
                outlet_id=outlet.id,
                total_amount=Decimal("45.00"),
                guest_info=guest(),
            )
        )

        assert order.total_amount == Decimal("45.00")

    async def test_total_computed_when_not_submitted(self, services, order_repository, products):
        outlet = order_repository.add_outlet(make_outlet())
        product = products.add(make_product())

        order = await services.checkout.place_pickup_order(
            PickupOrderRequest(
                items=[item_for(product, quantity=3, price="2.50")],
                outlet_id=outlet.id,
                guest_info=guest(),
            )
        )

        assert order.total_amount == Decimal("7.50")

    async def test_guest_pickup_has_no_cart_to_clear(self, services, order_repository, products, carts):
        outlet = order_repository.add_outlet(make_outlet())
        product = products.add(make_product())

        await services.checkout.place_pickup_order(
            PickupOrderRequest(items=[item_for(product)], outlet_id=outlet.id, guest_info=guest())
        )

        assert carts.cleared == []

    async def test_missing_outlet_is_rejected(self, services, products, order_repository):
        product = products.add(make_product())

        with pytest.raises(CheckoutValidationError, match="outlet is required"):
            await services.checkout.place_pickup_order(
                PickupOrderRequest(items=[item_for(product)], guest_info=guest())
            )

    async def test_inactive_outlet_is_rejected(self, services, products, order_repository):
        outlet = order_repository.add_outlet(make_outlet(is_active=False))
        product = products.add(make_product())

        with pytest.raises(CheckoutValidationError):
            await services.checkout.place_pickup_order(
                PickupOrderRequest(items=[item_for(product)], outlet_id=outlet.id, guest_info=guest())
            )
        assert order_repository.orders == {}

    async def test_cart_failure_does_not_block_order(
        self, services, order_repository, products, carts
    ):
        outlet = order_repository.add_outlet(make_outlet())
        product = products.add(make_product(stocks=(2,)))
        user = order_repository.add_user(make_user())
        carts.fail = True

        order = await services.checkout.place_pickup_order(
            PickupOrderRequest(items=[item_for(product)], outlet_id=outlet.id), user
        )

        assert order_repository.commits == 1
        assert product.variants[0].stock == 1
