"""
Test suite for order status enums and the OrderStateMachine.

Covers the transition tables, the processing guard, cancellation rules and
the actor authorization used by fulfillment.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from recycletrade.database.models.user import UserRole
from recycletrade.services.orders.enums import (
    FulfillmentStatus,
    PaymentStatus,
    get_allowed_payment_transitions,
    validate_fulfillment_status_transition,
    validate_payment_status_transition,
)
from recycletrade.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
    can_process,
    get_order_state_machine,
)
from tests.factories import make_item, make_order, make_user


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def state_machine() -> OrderStateMachine:
    return get_order_state_machine()


# ============================================================================
# Transition Table Tests
# ============================================================================


class TestTransitionTables:
    """Forward-only transition tables."""

    @pytest.mark.parametrize(
        "target",
        [PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED],
    )
    def test_pending_payment_moves_to_any_terminal_state(self, target):
        assert validate_payment_status_transition(PaymentStatus.PENDING, target)

    @pytest.mark.parametrize(
        "current",
        [PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED],
    )
    def test_terminal_payment_states_have_no_exits(self, current):
        assert get_allowed_payment_transitions(current) == set()

    def test_paid_cannot_return_to_pending(self):
        assert not validate_payment_status_transition(PaymentStatus.PAID, PaymentStatus.PENDING)

    def test_fulfillment_only_moves_forward(self):
        assert validate_fulfillment_status_transition(
            FulfillmentStatus.PENDING, FulfillmentStatus.PROCESSING
        )
        assert validate_fulfillment_status_transition(
            FulfillmentStatus.PENDING, FulfillmentStatus.CANCELLED
        )
        assert not validate_fulfillment_status_transition(
            FulfillmentStatus.PROCESSING, FulfillmentStatus.PENDING
        )
        assert not validate_fulfillment_status_transition(
            FulfillmentStatus.CANCELLED, FulfillmentStatus.PROCESSING
        )

    def test_processing_is_not_cancellable(self):
        assert FulfillmentStatus.PENDING.can_cancel()
        assert not FulfillmentStatus.PROCESSING.can_cancel()
        assert not FulfillmentStatus.CANCELLED.can_cancel()


# ============================================================================
# State Machine Tests
# ============================================================================


class TestOrderStateMachine:
    """Validation on top of the tables."""

    def test_pending_order_with_items_may_start_processing(self, state_machine):
        order = make_order()

        assert state_machine.validate_fulfillment_transition(order, FulfillmentStatus.PROCESSING)

    def test_order_without_items_fails_processing_guard(self, state_machine):
        order = make_order(items=[])

        with pytest.raises(StateTransitionError) as exc_info:
            state_machine.validate_fulfillment_transition(order, FulfillmentStatus.PROCESSING)

        assert exc_info.value.context["guard_failed"] is True
        assert exc_info.value.current_state is FulfillmentStatus.PENDING

    def test_processing_order_cannot_be_processed_again(self, state_machine):
        order = make_order(fulfillment_status=FulfillmentStatus.PROCESSING)

        with pytest.raises(StateTransitionError) as exc_info:
            state_machine.validate_fulfillment_transition(order, FulfillmentStatus.PROCESSING)

        assert exc_info.value.target_state is FulfillmentStatus.PROCESSING
        assert exc_info.value.context["allowed_transitions"] == []

    def test_paid_order_rejects_second_payment(self, state_machine):
        order = make_order(payment_status=PaymentStatus.PAID)

        with pytest.raises(StateTransitionError):
            state_machine.validate_payment_transition(order, PaymentStatus.PAID)

    def test_rejected_transition_lists_what_is_allowed(self, state_machine):
        order = make_order(payment_status=PaymentStatus.FAILED)

        with pytest.raises(StateTransitionError) as exc_info:
            state_machine.validate_payment_transition(order, PaymentStatus.PAID)

        assert exc_info.value.current_state is PaymentStatus.FAILED
        assert exc_info.value.context["allowed_transitions"] == []

    def test_cancelling_pending_payment_records_cancelled(self, state_machine):
        order = make_order()

        assert state_machine.cancelled_payment_status(order) is PaymentStatus.CANCELLED

    @pytest.mark.parametrize("status", [PaymentStatus.PAID, PaymentStatus.FAILED])
    def test_cancelling_keeps_terminal_payment_status(self, state_machine, status):
        order = make_order(payment_status=status)

        assert state_machine.cancelled_payment_status(order) is status


# ============================================================================
# Authorization Tests
# ============================================================================


class TestCanProcess:
    """Who may move an order into processing."""

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.COMPANY])
    def test_staff_may_process_any_order(self, role):
        assert can_process(make_user(role=role), make_order())

    def test_seller_of_any_line_may_process_mixed_order(self):
        seller = make_user(role=UserRole.SELLER)
        order = make_order(items=[make_item(seller_id=uuid4()), make_item(seller_id=seller.id)])

        assert can_process(seller, order)

    def test_uninvolved_seller_may_not_process(self):
        seller = make_user(role=UserRole.SELLER)
        order = make_order(items=[make_item(seller_id=uuid4())])

        assert not can_process(seller, order)

    def test_buyer_may_not_process_own_order(self):
        buyer = make_user()
        order = make_order(user=buyer)

        assert not can_process(buyer, order)

    def test_role_given_as_string_is_accepted(self):
        actor = SimpleNamespace(id=uuid4(), role="admin")

        assert can_process(actor, make_order())

    def test_missing_actor_is_rejected(self):
        assert not can_process(None, make_order())
