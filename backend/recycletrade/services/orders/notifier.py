"""
Best-effort customer notifications for order lifecycle events.

The notifier turns a committed order into a ``NotificationPayload`` and hands
it to the configured gateway. It never raises: a notification that cannot be
built or delivered is logged and reported in the returned result, and the
status change that triggered it stands.
"""

from typing import Optional

from recycletrade.core.logging import get_logger
from recycletrade.database.models.order import Order
from recycletrade.services.notifications.contacts import resolve_customer_contact
from recycletrade.services.notifications.gateway import (
    NotificationGateway,
    NotificationKind,
    NotificationLine,
    NotificationPayload,
    NotificationResult,
    StatusLabel,
)
from recycletrade.services.orders.repository import OrderRepository

logger = get_logger(__name__)


def _variant_label(product, variant_id) -> Optional[str]:
    if product is None or variant_id is None:
        return None
    variant = product.find_variant(variant_id)
    if variant is None:
        return None
    if variant.specs:
        return ", ".join(f"{key}: {value}" for key, value in variant.specs.items())
    return variant.sku


class OrderNotifier:
    """Builds notification payloads for orders and dispatches them."""

    def __init__(self, repository: OrderRepository, gateway: NotificationGateway):
        self.repository = repository
        self.gateway = gateway

    async def build_payload(
        self,
        order: Order,
        status_label: Optional[StatusLabel] = None,
        tracking_number: Optional[str] = None,
    ) -> NotificationPayload:
        """
        Snapshot an order for the notification gateway.

        Product images, variant labels and seller names are looked up
        best-effort; a missing product still yields a line using the name
        captured at checkout.
        """
        user = await self.repository.get_user(order.user_id)
        customer = resolve_customer_contact(user=user, guest_info=order.guest_info)

        products = await self.repository.get_products([item.product_id for item in order.items])
        sellers = await self.repository.get_users(list(order.seller_ids))

        lines = []
        for item in order.items:
            product = products.get(item.product_id)
            seller = sellers.get(item.seller_id) if item.seller_id else None
            lines.append(
                NotificationLine(
                    product_name=(product.name if product else None) or item.product_name or "Item",
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    variant_label=_variant_label(product, item.variant_id),
                    seller_name=seller.full_name if seller else None,
                    image_url=product.image_url if product else None,
                )
            )

        outlet = None
        if order.is_pickup:
            outlet_record = await self.repository.get_outlet(order.outlet_id)
            if outlet_record is not None:
                outlet = outlet_record.to_contact_dict()

        return NotificationPayload(
            order_id=str(order.id),
            order_reference=order.short_id,
            customer=customer,
            items=lines,
            total_amount=order.total_amount,
            payment_method=order.payment_method.value,
            delivery_method=order.delivery_method.value,
            created_at=order.created_at,
            status_label=status_label,
            tracking_number=tracking_number,
            outlet=outlet,
            cancellation_reason=(
                order.cancellation_reason.value if order.cancellation_reason else None
            ),
        )

    async def send_confirmation(self, order: Order) -> NotificationResult:
        return await self._send(NotificationKind.ORDER_CONFIRMATION, order)

    async def send_status_update(
        self,
        order: Order,
        status_label: StatusLabel,
        tracking_number: Optional[str] = None,
    ) -> NotificationResult:
        return await self._send(
            NotificationKind.STATUS_UPDATE,
            order,
            status_label=status_label,
            tracking_number=tracking_number,
        )

    async def send_cancellation(self, order: Order) -> NotificationResult:
        return await self._send(NotificationKind.ORDER_CANCELLED, order)

    async def _send(
        self,
        kind: NotificationKind,
        order: Order,
        status_label: Optional[StatusLabel] = None,
        tracking_number: Optional[str] = None,
    ) -> NotificationResult:
        try:
            payload = await self.build_payload(order, status_label, tracking_number)

            if not payload.customer.has_email:
                logger.info(
                    "No contact email for order, notification skipped",
                    kind=kind.value,
                    order_id=str(order.id),
                )
                return NotificationResult.skipped("no_contact_email")

            result = await self.gateway.notify(kind, payload)

            if not result.success:
                logger.warning(
                    "Notification not delivered",
                    kind=kind.value,
                    order_id=str(order.id),
                    error=result.error,
                )
            return result

        except Exception as e:
            logger.error(
                "Notification failed",
                kind=kind.value,
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return NotificationResult(success=False, error=str(e))


def get_order_notifier(
    repository: OrderRepository,
    gateway: NotificationGateway,
) -> OrderNotifier:
    """Factory function to create an order notifier."""
    return OrderNotifier(repository, gateway)
