"""
Construction of the order services around a single database session.

Every order service that takes part in one request, task run or sweep shares
one session, so that a status transition, the stock it moves and the cart it
clears commit or roll back together.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from recycletrade.services.cart.repository import CartRepository
from recycletrade.services.cart.service import get_cart_service
from recycletrade.services.inventory.ledger import InventoryLedger, get_inventory_ledger
from recycletrade.services.inventory.repository import ProductRepository
from recycletrade.services.notifications.gateway import NotificationGateway
from recycletrade.services.orders.checkout import CheckoutService, get_checkout_service
from recycletrade.services.orders.fulfillment import FulfillmentService, get_fulfillment_service
from recycletrade.services.orders.notifier import get_order_notifier
from recycletrade.services.orders.repository import OrderRepository, get_order_repository
from recycletrade.services.orders.service import OrderQueryService, get_order_query_service
from recycletrade.services.orders.sweeper import AbandonmentSweeper, get_abandonment_sweeper
from recycletrade.services.payments.confirmation import (
    PaymentConfirmationHandler,
    get_payment_confirmation_handler,
)
from recycletrade.services.payments.stripe_client import StripeClient, get_stripe_client


@dataclass
class OrderServices:
    """Order services bound to one session."""

    repository: OrderRepository
    ledger: InventoryLedger
    checkout: CheckoutService
    confirmation: PaymentConfirmationHandler
    fulfillment: FulfillmentService
    sweeper: AbandonmentSweeper
    queries: OrderQueryService


def build_order_services(
    session: AsyncSession,
    gateway: NotificationGateway,
    stripe_client: Optional[StripeClient] = None,
) -> OrderServices:
    """
    Wire the order services for one unit of work.

    Args:
        session: Database session shared by all services
        gateway: Notification gateway selected at startup
        stripe_client: Stripe client (defaults to a configured instance)
    """
    stripe_client = stripe_client or get_stripe_client()

    repository = get_order_repository(session)
    ledger = get_inventory_ledger(ProductRepository(session))
    carts = get_cart_service(CartRepository(session))
    notifier = get_order_notifier(repository, gateway)

    fulfillment = get_fulfillment_service(repository, ledger, notifier)
    confirmation = get_payment_confirmation_handler(
        repository, ledger, carts, notifier, stripe_client, fulfillment
    )

    return OrderServices(
        repository=repository,
        ledger=ledger,
        checkout=get_checkout_service(repository, ledger, carts, notifier, stripe_client),
        confirmation=confirmation,
        fulfillment=fulfillment,
        sweeper=get_abandonment_sweeper(repository, fulfillment, confirmation, stripe_client),
        queries=get_order_query_service(repository),
    )
