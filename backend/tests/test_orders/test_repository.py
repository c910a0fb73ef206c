"""
Tests for OrderRepository against a mocked AsyncSession.
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from recycletrade.services.orders.enums import (
    CancellationReason,
    DeliveryMethod,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from recycletrade.services.orders.repository import (
    LineItemDraft,
    OrderCreationError,
    OrderDraft,
    OrderRepository,
    OrderUpdateError,
)
from tests.factories import GUEST_INFO, make_order


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.get = AsyncMock()
    return session


@pytest.fixture
def repository(mock_session) -> OrderRepository:
    return OrderRepository(mock_session)


def returning(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def draft(**overrides) -> OrderDraft:
    values = {
        "items": [LineItemDraft(product_id=uuid4(), quantity=1, unit_price=Decimal("25.00"))],
        "total_amount": Decimal("25.00"),
        "payment_method": PaymentMethod.CARD,
        "delivery_method": DeliveryMethod.DELIVERY,
        "guest_info": dict(GUEST_INFO),
    }
    values.update(overrides)
    return OrderDraft(**values)


# ============================================================================
# Draft Validation
# ============================================================================


class TestOrderDraft:
    def test_valid_guest_draft(self):
        draft().validate()

    def test_empty_order_is_rejected(self):
        with pytest.raises(OrderCreationError, match="at least one item"):
            draft(items=[]).validate()

    def test_neither_user_nor_guest_is_rejected(self):
        with pytest.raises(OrderCreationError) as exc_info:
            draft(guest_info=None).validate()

        assert exc_info.value.context == {"has_user": False, "has_guest": False}

    def test_both_user_and_guest_is_rejected(self):
        with pytest.raises(OrderCreationError):
            draft(user_id=uuid4()).validate()

    def test_pickup_requires_outlet(self):
        with pytest.raises(OrderCreationError, match="outlet"):
            draft(delivery_method=DeliveryMethod.PICKUP).validate()

    def test_zero_quantity_is_rejected(self):
        items = [LineItemDraft(product_id=uuid4(), quantity=0, unit_price=Decimal("1.00"))]

        with pytest.raises(OrderCreationError) as exc_info:
            draft(items=items).validate()

        assert exc_info.value.context["quantity"] == 0


# ============================================================================
# Creation
# ============================================================================


class TestCreateOrder:
    async def test_snapshots_seller_and_name(self, repository, mock_session):
        seller_id = uuid4()
        order_draft = draft()
        product_id = order_draft.items[0].product_id
        rows = MagicMock()
        rows.all.return_value = [SimpleNamespace(id=product_id, seller_id=seller_id, name="Road Bike")]
        mock_session.execute.return_value = rows

        order = await repository.create_order(order_draft)

        assert order.payment_status is PaymentStatus.PENDING
        assert order.fulfillment_status is FulfillmentStatus.PENDING
        assert order.guest_info == GUEST_INFO
        item = order.items[0]
        assert item.seller_id == seller_id
        assert item.product_name == "Road Bike"
        assert item.inventory_reserved is False
        mock_session.add.assert_called_once_with(order)
        mock_session.flush.assert_awaited_once()

    async def test_unknown_product_leaves_snapshot_empty(self, repository, mock_session):
        rows = MagicMock()
        rows.all.return_value = []
        mock_session.execute.return_value = rows

        order = await repository.create_order(draft())

        assert order.items[0].seller_id is None
        assert order.items[0].product_name is None

    async def test_outlet_dropped_for_delivery_orders(self, repository, mock_session):
        rows = MagicMock()
        rows.all.return_value = []
        mock_session.execute.return_value = rows

        order = await repository.create_order(draft(outlet_id=uuid4()))

        assert order.outlet_id is None

    async def test_integrity_error_is_wrapped(self, repository, mock_session):
        rows = MagicMock()
        rows.all.return_value = []
        mock_session.execute.return_value = rows
        mock_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("violates check"))

        with pytest.raises(OrderCreationError, match="integrity"):
            await repository.create_order(draft())

        mock_session.rollback.assert_awaited_once()

    async def test_invalid_draft_never_touches_session(self, repository, mock_session):
        with pytest.raises(OrderCreationError):
            await repository.create_order(draft(items=[]))

        mock_session.execute.assert_not_awaited()


# ============================================================================
# Guarded Transitions
# ============================================================================


class TestGuardedTransitions:
    async def test_applied_transition_updates_instance(self, repository, mock_session):
        order = make_order()
        mock_session.execute.return_value = returning(order.id)

        applied = await repository.transition_payment_status(
            order, PaymentStatus.PENDING, PaymentStatus.PAID
        )

        assert applied
        assert order.payment_status is PaymentStatus.PAID

    async def test_lost_transition_leaves_instance_alone(self, repository, mock_session):
        order = make_order()
        mock_session.execute.return_value = returning(None)

        applied = await repository.transition_fulfillment_status(
            order, FulfillmentStatus.PENDING, FulfillmentStatus.PROCESSING
        )

        assert not applied
        assert order.fulfillment_status is FulfillmentStatus.PENDING

    async def test_cancellation_sets_both_statuses(self, repository, mock_session):
        order = make_order()
        mock_session.execute.return_value = returning(order.id)

        applied = await repository.transition_to_cancelled(
            order,
            PaymentStatus.CANCELLED,
            cancellation_reason=CancellationReason.ABANDONED,
        )

        assert applied
        assert order.fulfillment_status is FulfillmentStatus.CANCELLED
        assert order.payment_status is PaymentStatus.CANCELLED
        assert order.cancellation_reason is CancellationReason.ABANDONED

    async def test_database_error_is_wrapped(self, repository, mock_session):
        order = make_order()
        mock_session.execute.side_effect = OperationalError("UPDATE", {}, Exception("server closed"))

        with pytest.raises(OrderUpdateError):
            await repository.transition_payment_status(order, PaymentStatus.PENDING, PaymentStatus.PAID)

        mock_session.rollback.assert_awaited_once()


class TestCommit:
    async def test_commit_failure_rolls_back(self, repository, mock_session):
        mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))

        with pytest.raises(OrderUpdateError):
            await repository.commit()

        mock_session.rollback.assert_awaited_once()

    async def test_purge_with_no_ids_skips_query(self, repository, mock_session):
        assert await repository.delete_processed_orders([]) == 0
        mock_session.execute.assert_not_awaited()
