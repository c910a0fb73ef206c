"""
Tests for Stripe webhook handling and idempotent payment confirmation.
"""

from uuid import uuid4

import pytest

from recycletrade.services.notifications.gateway import NotificationKind
from recycletrade.services.orders.enums import (
    CancellationReason,
    FulfillmentStatus,
    PaymentStatus,
)
from recycletrade.services.orders.repository import OrderNotFoundError
from recycletrade.services.payments.confirmation import (
    PaymentConfirmationError,
    WebhookPayloadError,
    WebhookVerificationError,
    extract_order_id,
)
from recycletrade.services.payments.stripe_client import StripeClient, StripeClientError
from tests.factories import (
    build_services,
    checkout_event,
    make_item,
    make_order,
    make_product,
    make_user,
    sign_webhook,
)


@pytest.fixture
def paid_setup(order_repository, products, carts):
    """A pending card order by a signed-in buyer with a tracked product."""
    product = products.add(make_product(stocks=(5,)))
    user = order_repository.add_user(make_user())
    carts.carts.add(user.id)
    order = order_repository.add_order(
        make_order(
            items=[make_item(product, product.variants[0], quantity=2)],
            user=user,
            stripe_session_id="cs_test_paid",
        )
    )
    return order, product, user


# ============================================================================
# Order Reference Extraction
# ============================================================================


class TestExtractOrderId:
    def test_metadata_takes_precedence(self):
        metadata_id, reference_id = uuid4(), uuid4()
        session = {"metadata": {"orderId": str(metadata_id)}, "client_reference_id": str(reference_id)}

        assert extract_order_id(session) == metadata_id

    def test_falls_back_to_client_reference(self):
        reference_id = uuid4()

        assert extract_order_id({"metadata": {}, "client_reference_id": str(reference_id)}) == reference_id

    def test_missing_reference_is_a_payload_error(self):
        with pytest.raises(WebhookPayloadError):
            extract_order_id({"id": "cs_test_1", "metadata": None})

    def test_malformed_reference_is_a_payload_error(self):
        with pytest.raises(WebhookPayloadError) as exc_info:
            extract_order_id({"id": "cs_test_1", "metadata": {"orderId": "order-42"}})

        assert exc_info.value.context["order_id"] == "order-42"


# ============================================================================
# Confirmation
# ============================================================================


class TestConfirmOrderPayment:
    async def test_marks_paid_reserves_stock_and_clears_cart(
        self, services, order_repository, carts, gateway, paid_setup
    ):
        order, product, user = paid_setup

        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "confirmed"
        assert result.lines_reserved == 1
        assert order.payment_status is PaymentStatus.PAID
        assert order.paid_at is not None
        assert order.fulfillment_status is FulfillmentStatus.PENDING
        assert product.variants[0].stock == 3
        assert order.items[0].inventory_reserved
        assert carts.cleared == [user.id]
        assert order_repository.commits == 1
        assert gateway.kinds() == [NotificationKind.ORDER_CONFIRMATION]

    async def test_second_confirmation_is_a_no_op(
        self, services, order_repository, carts, gateway, paid_setup
    ):
        order, product, _ = paid_setup

        await services.confirmation.confirm_order_payment(order.id)
        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "already_processed"
        assert result.already_processed
        assert product.variants[0].stock == 3
        assert len(carts.cleared) == 1
        assert len(gateway.sent) == 1
        assert order_repository.commits == 1

    async def test_lost_race_rolls_back_without_side_effects(
        self, services, order_repository, carts, gateway, paid_setup
    ):
        order, product, _ = paid_setup
        order_repository.lose_next_transition = True

        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "already_processed"
        assert order_repository.rollbacks == 1
        assert product.variants[0].stock == 5
        assert carts.cleared == []
        assert gateway.sent == []

    async def test_payment_for_cancelled_order_is_reported_not_pending(
        self, services, order_repository, paid_setup
    ):
        order, product, _ = paid_setup
        order.payment_status = PaymentStatus.CANCELLED
        order.fulfillment_status = FulfillmentStatus.CANCELLED

        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "not_pending"
        assert order.payment_status is PaymentStatus.CANCELLED
        assert product.variants[0].stock == 5

    async def test_unknown_order_raises_not_found(self, services):
        with pytest.raises(OrderNotFoundError):
            await services.confirmation.confirm_order_payment(uuid4())

    async def test_commit_failure_surfaces_as_confirmation_error(
        self, services, order_repository, paid_setup
    ):
        order, _, _ = paid_setup
        order_repository.fail_commit = True

        with pytest.raises(PaymentConfirmationError):
            await services.confirmation.confirm_order_payment(order.id)

    async def test_guest_order_confirms_without_cart(self, services, order_repository, carts, products):
        product = products.add(make_product(stocks=(1,)))
        order = order_repository.add_order(make_order(items=[make_item(product, product.variants[0])]))

        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "confirmed"
        assert carts.cleared == []

    async def test_notification_failure_does_not_undo_payment(
        self, services, gateway, paid_setup
    ):
        order, _, _ = paid_setup
        gateway.fail = True

        result = await services.confirmation.confirm_order_payment(order.id)

        assert result.status == "confirmed"
        assert order.payment_status is PaymentStatus.PAID


# ============================================================================
# Webhook Dispatch
# ============================================================================


class TestHandleWebhook:
    @pytest.mark.parametrize(
        "event_type",
        ["checkout.session.completed", "checkout.session.async_payment_succeeded"],
    )
    async def test_completed_session_confirms_order(self, services, paid_setup, event_type):
        order, _, _ = paid_setup

        outcome = await services.confirmation.handle_webhook(
            checkout_event(event_type, order.id), "t=1,v1=abc"
        )

        assert outcome.event_type == event_type
        assert outcome.status == "confirmed"
        assert outcome.order_id == str(order.id)
        assert order.payment_status is PaymentStatus.PAID

    async def test_duplicate_delivery_is_acknowledged(self, services, paid_setup):
        order, product, _ = paid_setup
        payload = checkout_event("checkout.session.completed", order.id)

        await services.confirmation.handle_webhook(payload, "t=1,v1=abc")
        outcome = await services.confirmation.handle_webhook(payload, "t=1,v1=abc")

        assert outcome.status == "already_processed"
        assert product.variants[0].stock == 3

    async def test_client_reference_is_used_without_metadata(self, services, paid_setup):
        order, _, _ = paid_setup
        payload = checkout_event(
            "checkout.session.completed",
            metadata={},
            client_reference_id=str(order.id),
        )

        outcome = await services.confirmation.handle_webhook(payload, "t=1,v1=abc")

        assert outcome.status == "confirmed"

    async def test_expired_session_cancels_pending_order(self, services, gateway, paid_setup):
        order, product, _ = paid_setup

        outcome = await services.confirmation.handle_webhook(
            checkout_event("checkout.session.expired", order.id), "t=1,v1=abc"
        )

        assert outcome.status == "cancelled"
        assert order.fulfillment_status is FulfillmentStatus.CANCELLED
        assert order.payment_status is PaymentStatus.CANCELLED
        assert order.cancellation_reason is CancellationReason.STRIPE_CANCELLED
        assert product.variants[0].stock == 7
        assert gateway.kinds() == [NotificationKind.ORDER_CANCELLED]

    async def test_expired_session_for_paid_order_is_ignored(self, services, paid_setup):
        order, _, _ = paid_setup
        await services.confirmation.confirm_order_payment(order.id)

        outcome = await services.confirmation.handle_webhook(
            checkout_event("checkout.session.expired", order.id), "t=1,v1=abc"
        )

        assert outcome.status == "ignored"
        assert order.fulfillment_status is FulfillmentStatus.PENDING
        assert order.payment_status is PaymentStatus.PAID

    async def test_expired_session_for_unknown_order_is_ignored(self, services):
        outcome = await services.confirmation.handle_webhook(
            checkout_event("checkout.session.expired", uuid4()), "t=1,v1=abc"
        )

        assert outcome.status == "ignored"

    async def test_other_event_types_are_ignored(self, services):
        outcome = await services.confirmation.handle_webhook(
            checkout_event("payment_intent.created", uuid4()), "t=1,v1=abc"
        )

        assert outcome.status == "ignored"
        assert outcome.order_id is None

    async def test_missing_signature_fails_verification(self, services, paid_setup):
        order, _, _ = paid_setup

        with pytest.raises(WebhookVerificationError) as exc_info:
            await services.confirmation.handle_webhook(
                checkout_event("checkout.session.completed", order.id), None
            )

        assert exc_info.value.context["code"] == "MISSING_SIGNATURE"
        assert order.payment_status is PaymentStatus.PENDING

    async def test_bad_signature_fails_verification(self, services, stripe_client, paid_setup):
        order, _, _ = paid_setup
        stripe_client.verify_error = StripeClientError(
            "Webhook signature verification failed", code="INVALID_SIGNATURE"
        )

        with pytest.raises(WebhookVerificationError):
            await services.confirmation.handle_webhook(
                checkout_event("checkout.session.completed", order.id), "t=1,v1=forged"
            )

        assert order.payment_status is PaymentStatus.PENDING

    async def test_completed_event_without_order_reference_is_rejected(self, services):
        with pytest.raises(WebhookPayloadError):
            await services.confirmation.handle_webhook(
                checkout_event("checkout.session.completed"), "t=1,v1=abc"
            )


# ============================================================================
# Signed Webhooks Through the Stripe SDK
# ============================================================================


WEBHOOK_SECRET = "whsec_confirmation_test"


@pytest.fixture
def signed_services(order_repository, products, carts, gateway):
    """Order services verifying webhooks with the real Stripe client."""
    client = StripeClient(api_key="sk_test_unit", webhook_secret=WEBHOOK_SECRET, initial_backoff=0)
    return build_services(order_repository, products, carts, gateway, client)


class TestSignedWebhooks:
    async def test_signed_completed_event_confirms_order(self, signed_services, gateway, paid_setup):
        order, product, _ = paid_setup
        payload = checkout_event("checkout.session.completed", order.id)

        outcome = await signed_services.confirmation.handle_webhook(
            payload, sign_webhook(payload, WEBHOOK_SECRET)
        )

        assert outcome.status == "confirmed"
        assert outcome.order_id == str(order.id)
        assert order.payment_status is PaymentStatus.PAID
        assert product.variants[0].stock == 3
        assert gateway.kinds() == [NotificationKind.ORDER_CONFIRMATION]

    async def test_signed_event_with_client_reference_only(self, signed_services, paid_setup):
        order, _, _ = paid_setup
        payload = checkout_event(
            "checkout.session.completed",
            metadata={},
            client_reference_id=str(order.id),
        )

        outcome = await signed_services.confirmation.handle_webhook(
            payload, sign_webhook(payload, WEBHOOK_SECRET)
        )

        assert outcome.status == "confirmed"

    async def test_signed_expired_event_cancels_order(self, signed_services, paid_setup):
        order, _, _ = paid_setup
        payload = checkout_event("checkout.session.expired", order.id)

        outcome = await signed_services.confirmation.handle_webhook(
            payload, sign_webhook(payload, WEBHOOK_SECRET)
        )

        assert outcome.status == "cancelled"
        assert order.cancellation_reason is CancellationReason.STRIPE_CANCELLED

    async def test_foreign_signature_is_rejected(self, signed_services, paid_setup):
        order, _, _ = paid_setup
        payload = checkout_event("checkout.session.completed", order.id)

        with pytest.raises(WebhookVerificationError) as exc_info:
            await signed_services.confirmation.handle_webhook(
                payload, sign_webhook(payload, "whsec_someone_else")
            )

        assert exc_info.value.context["code"] == "INVALID_SIGNATURE"
        assert order.payment_status is PaymentStatus.PENDING
