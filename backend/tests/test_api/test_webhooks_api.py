"""
API tests for the Stripe webhook endpoint.
"""

from uuid import uuid4

from recycletrade.services.orders.enums import PaymentStatus
from tests.factories import checkout_event, make_item, make_order, make_product

WEBHOOK = "/api/v1/webhooks/stripe"


class TestStripeWebhook:
    async def test_completed_checkout_marks_order_paid(self, async_client, order_repository, products):
        product = products.add(make_product(stocks=(2,)))
        order = order_repository.add_order(make_order(items=[make_item(product, product.variants[0])]))

        response = await async_client.post(
            WEBHOOK,
            content=checkout_event("checkout.session.completed", order.id),
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "event_type": "checkout.session.completed",
            "status": "confirmed",
        }
        assert order.payment_status is PaymentStatus.PAID
        assert product.variants[0].stock == 1

    async def test_redelivery_is_acknowledged(self, async_client, order_repository):
        order = order_repository.add_order(make_order())
        payload = checkout_event("checkout.session.completed", order.id)
        headers = {"stripe-signature": "t=1,v1=abc"}

        await async_client.post(WEBHOOK, content=payload, headers=headers)
        response = await async_client.post(WEBHOOK, content=payload, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "already_processed"

    async def test_missing_signature_is_rejected(self, async_client, order_repository):
        order = order_repository.add_order(make_order())

        response = await async_client.post(
            WEBHOOK, content=checkout_event("checkout.session.completed", order.id)
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "MISSING_SIGNATURE"
        assert order.payment_status is PaymentStatus.PENDING

    async def test_event_without_order_reference_is_rejected(self, async_client):
        response = await async_client.post(
            WEBHOOK,
            content=checkout_event("checkout.session.completed"),
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 400

    async def test_unknown_order_is_not_found(self, async_client):
        response = await async_client.post(
            WEBHOOK,
            content=checkout_event("checkout.session.completed", uuid4()),
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 404

    async def test_storage_failure_asks_for_redelivery(self, async_client, order_repository):
        order = order_repository.add_order(make_order())
        order_repository.fail_commit = True

        response = await async_client.post(
            WEBHOOK,
            content=checkout_event("checkout.session.completed", order.id),
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 500

    async def test_unrelated_events_are_acknowledged(self, async_client):
        response = await async_client.post(
            WEBHOOK,
            content=checkout_event("customer.created"),
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
