"""
Stripe payment confirmation handling.

This module verifies and dispatches Stripe webhook events and implements the
idempotent pending to paid transition shared by the webhook and by the
abandonment sweeper's reconciliation path. Stripe delivers events at least
once and the sweeper may reconcile an order at the same moment, so the
transition is guarded in the database: whichever caller wins commits stock
and clears the cart, every other caller sees a no-op.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from recycletrade.core.logging import bind_order_id, get_logger
from recycletrade.services.cart.service import CartService
from recycletrade.services.inventory.ledger import InventoryLedger
from recycletrade.services.orders.enums import CancellationReason, PaymentStatus
from recycletrade.services.orders.fulfillment import (
    FulfillmentService,
    InvalidStatusTransitionError,
)
from recycletrade.services.orders.notifier import OrderNotifier
from recycletrade.services.orders.repository import (
    OrderNotFoundError,
    OrderRepository,
    OrderRepositoryError,
)
from recycletrade.services.orders.state_machine import StateTransitionError
from recycletrade.services.payments.stripe_client import StripeClient, StripeClientError

logger = get_logger(__name__)

SESSION_COMPLETED_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)
SESSION_EXPIRED_EVENT = "checkout.session.expired"


class PaymentConfirmationError(Exception):
    """Base exception for payment confirmation errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class WebhookVerificationError(PaymentConfirmationError):
    """Raised when a webhook payload or signature cannot be verified."""

    pass


class WebhookPayloadError(PaymentConfirmationError):
    """Raised when a verified event does not reference an order."""

    pass


@dataclass
class ConfirmationResult:
    """Outcome of a confirmation attempt."""

    order_id: str
    status: str
    lines_reserved: int = 0

    @property
    def already_processed(self) -> bool:
        return self.status == "already_processed"


@dataclass
class WebhookOutcome:
    """What the webhook did with an event."""

    event_type: str
    status: str
    order_id: Optional[str] = None


def extract_order_id(session: Any) -> uuid.UUID:
    """
    Resolve the order referenced by a checkout session.

    ``metadata.orderId`` is authoritative; ``client_reference_id`` is used
    when metadata is missing.

    Raises:
        WebhookPayloadError: If neither field holds an order id
    """
    metadata = session.get("metadata") or {}
    raw = metadata.get("orderId") or session.get("client_reference_id")
    if not raw:
        raise WebhookPayloadError(
            "Checkout session does not reference an order",
            session_id=session.get("id"),
        )
    try:
        return uuid.UUID(str(raw))
    except ValueError as e:
        raise WebhookPayloadError(
            "Checkout session references a malformed order id",
            session_id=session.get("id"),
            order_id=str(raw),
        ) from e


class PaymentConfirmationHandler:
    """
    Webhook receiver and idempotent payment confirmation.

    Attributes:
        repository: Order repository, owner of the unit of work
        ledger: Inventory ledger reserving stock on payment
        carts: Cart service clearing the buyer's cart on payment
        notifier: Best-effort order notifications
        stripe_client: Stripe API wrapper for signature verification
        fulfillment: Cancellation path for expired sessions
    """

    def __init__(
        self,
        repository: OrderRepository,
        ledger: InventoryLedger,
        carts: CartService,
        notifier: OrderNotifier,
        stripe_client: StripeClient,
        fulfillment: FulfillmentService,
    ):
        self.repository = repository
        self.ledger = ledger
        self.carts = carts
        self.notifier = notifier
        self.stripe_client = stripe_client
        self.fulfillment = fulfillment

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Verify a Stripe webhook and apply it.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the ``Stripe-Signature`` header

        Returns:
            WebhookOutcome describing what was done

        Raises:
            WebhookVerificationError: If the signature or payload is invalid
            WebhookPayloadError: If the event does not reference an order
            OrderNotFoundError: If the referenced order does not exist
            PaymentConfirmationError: If applying the event failed
        """
        try:
            event = self.stripe_client.construct_webhook_event(payload, signature)
        except StripeClientError as e:
            raise WebhookVerificationError(
                "Webhook verification failed",
                code=e.code,
            ) from e

        event_type = event["type"]
        session = event["data"]["object"]

        logger.info(
            "Stripe webhook received",
            event_id=event.get("id"),
            event_type=event_type,
        )

        if event_type in SESSION_COMPLETED_EVENTS:
            order_id = extract_order_id(session)
            result = await self.confirm_order_payment(order_id)
            return WebhookOutcome(event_type, result.status, result.order_id)

        if event_type == SESSION_EXPIRED_EVENT:
            order_id = extract_order_id(session)
            return await self._handle_expired(event_type, order_id)

        logger.debug("Unhandled webhook event type ignored", event_type=event_type)
        return WebhookOutcome(event_type, "ignored")

    async def confirm_order_payment(self, order_id: uuid.UUID) -> ConfirmationResult:
        """
        Mark an order paid, reserve its stock and clear the buyer's cart.

        Safe to call any number of times for the same order: only the call
        that moves payment from pending to paid has side effects.

        Raises:
            OrderNotFoundError: If the order does not exist
            PaymentConfirmationError: If the transition could not be persisted
        """
        bind_order_id(order_id)

        try:
            order = await self.repository.get_order_by_id(order_id)
        except OrderRepositoryError as e:
            raise PaymentConfirmationError(
                "Failed to load order for payment confirmation",
                order_id=str(order_id),
            ) from e

        if order is None:
            logger.warning("Payment confirmation for unknown order", order_id=str(order_id))
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if order.payment_status == PaymentStatus.PAID:
            logger.info("Payment already confirmed, nothing to do", order_id=str(order_id))
            return ConfirmationResult(str(order_id), "already_processed")

        try:
            self.fulfillment.state_machine.validate_payment_transition(order, PaymentStatus.PAID)
        except StateTransitionError as e:
            # Charged after the order was cancelled; needs a manual refund
            logger.warning(
                "Payment confirmed for an order that is no longer pending",
                order_id=str(order_id),
                payment_status=order.payment_status.value,
                fulfillment_status=order.fulfillment_status.value,
                allowed_transitions=e.context.get("allowed_transitions"),
            )
            return ConfirmationResult(str(order_id), "not_pending")

        try:
            applied = await self.repository.transition_payment_status(
                order,
                PaymentStatus.PENDING,
                PaymentStatus.PAID,
                paid_at=datetime.now(timezone.utc),
            )
            if not applied:
                await self.repository.rollback()
                return ConfirmationResult(str(order_id), "already_processed")

            adjustments = await self.ledger.reserve_items(order.items)
            await self.carts.clear_after_checkout(order.user_id)
            await self.repository.commit()

        except OrderRepositoryError as e:
            logger.error(
                "Payment confirmation failed",
                order_id=str(order_id),
                error=str(e),
                exc_info=True,
            )
            raise PaymentConfirmationError(
                "Failed to persist payment confirmation",
                order_id=str(order_id),
            ) from e

        lines_reserved = sum(1 for a in adjustments if a.applied)
        logger.info(
            "Payment confirmed",
            order_id=str(order_id),
            total_amount=str(order.total_amount),
            lines_reserved=lines_reserved,
        )

        await self.notifier.send_confirmation(order)
        return ConfirmationResult(str(order_id), "confirmed", lines_reserved)

    async def _handle_expired(self, event_type: str, order_id: uuid.UUID) -> WebhookOutcome:
        try:
            order = await self.repository.get_order_by_id(order_id)
            if order is None or order.payment_status != PaymentStatus.PENDING:
                logger.info(
                    "Expired session ignored",
                    order_id=str(order_id),
                    found=order is not None,
                )
                return WebhookOutcome(event_type, "ignored", str(order_id))

            cancelled = await self.fulfillment.cancel_order(
                order_id,
                CancellationReason.STRIPE_CANCELLED,
            )
        except InvalidStatusTransitionError:
            logger.info("Expired session for an order in fulfillment ignored", order_id=str(order_id))
            return WebhookOutcome(event_type, "ignored", str(order_id))
        except OrderRepositoryError as e:
            raise PaymentConfirmationError(
                "Failed to cancel order for expired session",
                order_id=str(order_id),
            ) from e

        return WebhookOutcome(
            event_type,
            "cancelled" if cancelled else "already_processed",
            str(order_id),
        )


def get_payment_confirmation_handler(
    repository: OrderRepository,
    ledger: InventoryLedger,
    carts: CartService,
    notifier: OrderNotifier,
    stripe_client: StripeClient,
    fulfillment: FulfillmentService,
) -> PaymentConfirmationHandler:
    """Factory function to create a payment confirmation handler."""
    return PaymentConfirmationHandler(repository, ledger, carts, notifier, stripe_client, fulfillment)
