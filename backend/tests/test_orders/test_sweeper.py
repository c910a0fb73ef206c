"""
Tests for the abandoned card order sweeper.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from recycletrade.core.config import Settings
from recycletrade.services.orders.enums import (
    CancellationReason,
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from recycletrade.services.orders.sweeper import SweepReport
from recycletrade.services.payments.stripe_client import StripeConnectionError
from tests.factories import build_services, make_item, make_order, make_outlet, make_product, utcnow


def abandoned(minutes: int = 30, **kwargs):
    return make_order(created_at=utcnow() - timedelta(minutes=minutes), **kwargs)


class TestSweep:
    async def test_cancels_old_unpaid_card_orders(self, services, order_repository, products, gateway):
        product = products.add(make_product(stocks=(2,)))
        order = order_repository.add_order(
            abandoned(items=[make_item(product, product.variants[0])], stripe_session_id="cs_test_old")
        )

        report = await services.sweeper.sweep()

        assert report.found == 1
        assert report.cancelled == 1
        assert order.fulfillment_status is FulfillmentStatus.CANCELLED
        assert order.payment_status is PaymentStatus.CANCELLED
        assert order.cancellation_reason is CancellationReason.ABANDONED
        assert product.variants[0].stock == 3
        assert len(gateway.sent) == 1

    async def test_cancelled_lines_of_products_without_variants_land_in_default_bucket(
        self, services, order_repository, products
    ):
        tracked = products.add(make_product(stocks=(5,)))
        legacy = products.add(make_product(name="Brass Floor Lamp", stocks=()))
        order = order_repository.add_order(
            abandoned(
                items=[
                    make_item(tracked, tracked.variants[0], quantity=2),
                    make_item(legacy, quantity=1),
                ],
            )
        )

        report = await services.sweeper.sweep()

        assert report.cancelled == 1
        assert order.cancellation_reason is CancellationReason.ABANDONED
        assert tracked.variants[0].stock == 7
        [bucket] = legacy.variants
        assert bucket.is_default
        assert bucket.sku == "BRASSFLOOR-DEFAULT"
        assert bucket.stock == 1

    async def test_order_without_session_is_cancelled(self, services, order_repository):
        order = order_repository.add_order(abandoned())

        report = await services.sweeper.sweep()

        assert report.cancelled == 1
        assert order.fulfillment_status is FulfillmentStatus.CANCELLED

    async def test_recent_orders_are_left_alone(self, services, order_repository):
        order = order_repository.add_order(abandoned(minutes=1))

        report = await services.sweeper.sweep()

        assert report.found == 0
        assert order.fulfillment_status is FulfillmentStatus.PENDING

    async def test_pickup_and_paid_orders_are_not_candidates(self, services, order_repository):
        outlet = order_repository.add_outlet(make_outlet())
        pickup = order_repository.add_order(
            abandoned(
                payment_method=PaymentMethod.PICKUP,
                delivery_method=DeliveryMethod.PICKUP,
                outlet=outlet,
            )
        )
        paid = order_repository.add_order(abandoned(payment_status=PaymentStatus.PAID))

        report = await services.sweeper.sweep()

        assert report.found == 0
        assert pickup.fulfillment_status is FulfillmentStatus.PENDING
        assert paid.fulfillment_status is FulfillmentStatus.PENDING

    async def test_paid_session_is_reconciled_instead_of_cancelled(
        self, services, order_repository, products, stripe_client, gateway
    ):
        product = products.add(make_product(stocks=(3,)))
        order = order_repository.add_order(
            abandoned(items=[make_item(product, product.variants[0])], stripe_session_id="cs_test_paid")
        )
        stripe_client.sessions["cs_test_paid"] = SimpleNamespace(id="cs_test_paid", payment_status="paid")

        report = await services.sweeper.sweep()

        assert report.reconciled == 1
        assert report.cancelled == 0
        assert order.payment_status is PaymentStatus.PAID
        assert order.fulfillment_status is FulfillmentStatus.PENDING
        assert product.variants[0].stock == 2
        assert [k.value for k in gateway.kinds()] == ["order_confirmation"]

    async def test_unreachable_stripe_means_cancel(self, services, order_repository, stripe_client):
        order = order_repository.add_order(abandoned(stripe_session_id="cs_test_gone"))
        stripe_client.retrieve_error = StripeConnectionError("Connection error", code="api_connection_error")

        report = await services.sweeper.sweep()

        assert report.cancelled == 1
        assert order.fulfillment_status is FulfillmentStatus.CANCELLED

    async def test_lost_race_is_counted_as_skipped(self, services, order_repository):
        order_repository.add_order(abandoned())
        order_repository.lose_next_transition = True

        report = await services.sweeper.sweep()

        assert report.skipped == 1
        assert report.cancelled == 0

    async def test_failure_on_one_order_does_not_stop_the_sweep(
        self, services, order_repository, monkeypatch
    ):
        broken = order_repository.add_order(abandoned(minutes=60))
        healthy = order_repository.add_order(abandoned(minutes=30))
        cancel_order = services.fulfillment.cancel_order

        async def flaky_cancel(order_id, reason):
            if order_id == broken.id:
                raise RuntimeError("connection reset by peer")
            return await cancel_order(order_id, reason)

        monkeypatch.setattr(services.fulfillment, "cancel_order", flaky_cancel)

        report = await services.sweeper.sweep()

        assert report.found == 2
        assert report.failed == 1
        assert report.cancelled == 1
        assert order_repository.rollbacks == 1
        assert broken.fulfillment_status is FulfillmentStatus.PENDING
        assert healthy.fulfillment_status is FulfillmentStatus.CANCELLED

    async def test_commit_failures_are_counted(self, services, order_repository):
        order_repository.add_order(abandoned())
        order_repository.add_order(abandoned())
        order_repository.fail_commit = True

        report = await services.sweeper.sweep()

        assert report.failed == 2
        assert order_repository.rollbacks == 2

    async def test_batch_size_limits_candidates(
        self, order_repository, products, carts, gateway, stripe_client
    ):
        services = build_services(
            order_repository,
            products,
            carts,
            gateway,
            stripe_client,
            settings=Settings(abandoned_sweep_batch_size=2),
        )
        oldest = [order_repository.add_order(abandoned(minutes=90 - i)) for i in range(3)]

        report = await services.sweeper.sweep()

        assert report.found == 2
        assert [o.fulfillment_status for o in oldest] == [
            FulfillmentStatus.CANCELLED,
            FulfillmentStatus.CANCELLED,
            FulfillmentStatus.PENDING,
        ]

    @pytest.mark.parametrize("minutes,expected", [(4, 0), (6, 1)])
    async def test_grace_period_boundary(self, services, order_repository, minutes, expected):
        order_repository.add_order(abandoned(minutes=minutes))

        report = await services.sweeper.sweep()

        assert report.found == expected

    def test_report_serializes_counters(self):
        assert SweepReport(found=3, cancelled=2, failed=1).to_dict() == {
            "found": 3,
            "cancelled": 2,
            "reconciled": 0,
            "failed": 1,
            "skipped": 0,
        }
