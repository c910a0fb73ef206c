"""
Stripe webhook endpoint.

Stripe retries any delivery that does not get a 2xx answer, so status codes
are chosen deliberately: verification and payload problems are 400 (retrying
will not help), an unknown order is 404, and storage failures are 500 so the
event is redelivered. Duplicate deliveries are acknowledged with 200.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from recycletrade.api.deps import Services
from recycletrade.core.logging import get_logger
from recycletrade.schemas.orders import WebhookResponse
from recycletrade.services.orders.repository import OrderNotFoundError
from recycletrade.services.payments.confirmation import (
    PaymentConfirmationError,
    WebhookPayloadError,
    WebhookVerificationError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhook",
    description="Verify and apply Stripe Checkout events",
)
async def handle_stripe_webhook(
    request: Request,
    services: Services,
    stripe_signature: Annotated[Optional[str], Header(alias="stripe-signature")] = None,
) -> WebhookResponse:
    """
    Handle a Stripe webhook event.

    Args:
        request: FastAPI request object, read as raw bytes for verification
        services: Order services
        stripe_signature: Stripe signature header

    Returns:
        WebhookResponse acknowledging the event

    Raises:
        HTTPException: 400 for invalid signature or payload, 404 for an
            unknown order, 500 for processing errors
    """
    payload = await request.body()

    try:
        outcome = await services.confirmation.handle_webhook(payload, stripe_signature)

    except (WebhookVerificationError, WebhookPayloadError) as e:
        logger.warning("Stripe webhook rejected", error=str(e), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(e),
                "code": e.context.get("code") or "INVALID_WEBHOOK_PAYLOAD",
            },
        ) from e

    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "Order not found",
                "code": "ORDER_NOT_FOUND",
            },
        ) from e

    except PaymentConfirmationError as e:
        logger.error("Stripe webhook processing failed", error=str(e), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": "Webhook processing failed",
                "code": "PROCESSING_FAILED",
            },
        ) from e

    logger.info(
        "Stripe webhook processed",
        event_type=outcome.event_type,
        status=outcome.status,
        order_id=outcome.order_id,
    )

    return WebhookResponse(event_type=outcome.event_type, status=outcome.status)
