"""
Order API endpoints for RecycleTrade.

This module implements the FastAPI router for the order lifecycle: card and
pickup checkout, customer, seller and administrator listings, public order
tracking, fulfillment transitions, and the administrative sweep and purge
operations.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from recycletrade.api.deps import (
    CurrentSeller,
    CurrentStaff,
    CurrentUser,
    OptionalUser,
    Services,
)
from recycletrade.core.logging import get_logger
from recycletrade.schemas.orders import (
    CardCheckoutRequest,
    CardCheckoutResponse,
    OrderListResponse,
    OrderResponse,
    PickupOrderRequest,
    ProcessOrderRequest,
    PurgeProcessedRequest,
    PurgeProcessedResponse,
    SweepReportResponse,
    TrackedOrderResponse,
    TrackingUpdateRequest,
)
from recycletrade.services.orders.checkout import (
    CheckoutConfigurationError,
    CheckoutValidationError,
    PaymentSessionError,
)
from recycletrade.services.orders.enums import FulfillmentStatus, PaymentStatus
from recycletrade.services.orders.fulfillment import (
    FulfillmentAuthorizationError,
    FulfillmentError,
    InvalidStatusTransitionError,
)
from recycletrade.services.orders.repository import (
    OrderCreationError,
    OrderNotFoundError,
    OrderRepositoryError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _repository_failure(e: OrderRepositoryError, operation: str) -> HTTPException:
    logger.error(
        "Order storage failure",
        operation=operation,
        error=str(e),
        context=e.context,
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "message": "Failed to process order",
            "code": "ORDER_STORAGE_ERROR",
        },
    )


@router.post(
    "/checkout/card",
    response_model=CardCheckoutResponse,
    summary="Start card checkout",
    description="Create a pending order and a hosted Stripe Checkout Session",
)
async def start_card_checkout(
    request: CardCheckoutRequest,
    current_user: OptionalUser,
    services: Services,
) -> CardCheckoutResponse:
    """
    Start a hosted card checkout for a signed-in customer or a guest.

    Raises:
        HTTPException: 400 if the request is incomplete, 500 if card payments
            are not configured, 502 if Stripe is unavailable
    """
    try:
        result = await services.checkout.start_card_checkout(request, current_user)
        return CardCheckoutResponse(
            url=result.url,
            session_id=result.session_id,
            order_id=UUID(result.order_id),
        )

    except (CheckoutValidationError, OrderCreationError) as e:
        logger.warning("Card checkout rejected", error=str(e), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(e),
                "code": "CHECKOUT_INVALID",
            },
        ) from e

    except CheckoutConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(e),
                "code": "CHECKOUT_NOT_CONFIGURED",
            },
        ) from e

    except PaymentSessionError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": "Payment provider unavailable, please try again",
                "code": "PAYMENT_PROVIDER_UNAVAILABLE",
            },
        ) from e

    except OrderRepositoryError as e:
        raise _repository_failure(e, "start_card_checkout") from e


@router.post(
    "/checkout/pickup",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place pickup order",
    description="Reserve items for payment and collection at an outlet",
)
async def place_pickup_order(
    request: PickupOrderRequest,
    current_user: OptionalUser,
    services: Services,
) -> OrderResponse:
    try:
        order = await services.checkout.place_pickup_order(request, current_user)
        return OrderResponse.model_validate(order)

    except (CheckoutValidationError, OrderCreationError) as e:
        logger.warning("Pickup order rejected", error=str(e), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(e),
                "code": "CHECKOUT_INVALID",
            },
        ) from e

    except OrderRepositoryError as e:
        raise _repository_failure(e, "place_pickup_order") from e


@router.get(
    "/me",
    response_model=list[OrderResponse],
    summary="List my orders",
)
async def list_my_orders(
    current_user: CurrentUser,
    services: Services,
) -> list[OrderResponse]:
    orders = await services.queries.list_user_orders(current_user)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/seller",
    response_model=list[OrderResponse],
    summary="List orders containing my items",
    description="Orders with at least one of the seller's items; other sellers' items are omitted",
)
async def list_seller_orders(
    current_user: CurrentSeller,
    services: Services,
) -> list[OrderResponse]:
    return await services.queries.list_seller_orders(current_user)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Administrative order listing with status filters",
)
async def list_all_orders(
    current_user: CurrentStaff,
    services: Services,
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    fulfillment_status: Optional[FulfillmentStatus] = Query(None, description="Filter by fulfillment status"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of records to return"),
) -> OrderListResponse:
    orders, total = await services.queries.list_all_orders(
        payment_status=payment_status,
        fulfillment_status=fulfillment_status,
        skip=skip,
        limit=limit,
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/track/{identifier}",
    response_model=TrackedOrderResponse,
    summary="Track an order",
    description="Public lookup by order id or carrier tracking number",
)
async def track_order(
    identifier: str,
    services: Services,
) -> TrackedOrderResponse:
    try:
        return await services.queries.track_order(identifier)
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "Order not found",
                "code": "ORDER_NOT_FOUND",
            },
        ) from e


@router.post(
    "/sweep-abandoned",
    response_model=SweepReportResponse,
    summary="Sweep abandoned card orders",
    description="Run the abandoned order sweep immediately",
)
async def sweep_abandoned_orders(
    current_user: CurrentStaff,
    services: Services,
) -> SweepReportResponse:
    logger.info("Manual abandoned order sweep requested", user_id=str(current_user.id))
    report = await services.sweeper.sweep()
    return SweepReportResponse.model_validate(report)


@router.delete(
    "/processed",
    response_model=PurgeProcessedResponse,
    summary="Purge processed orders",
    description="Delete the given orders if their fulfillment is processing",
)
async def purge_processed_orders(
    request: PurgeProcessedRequest,
    current_user: CurrentStaff,
    services: Services,
) -> PurgeProcessedResponse:
    try:
        deleted = await services.queries.purge_processed_orders(request.order_ids)
    except OrderRepositoryError as e:
        raise _repository_failure(e, "purge_processed_orders") from e

    logger.info(
        "Processed orders purged",
        user_id=str(current_user.id),
        requested=len(request.order_ids),
        deleted=deleted,
    )
    return PurgeProcessedResponse(deleted=deleted)


@router.post(
    "/{order_id}/process",
    response_model=OrderResponse,
    summary="Process order",
    description="Mark an order shipped or ready for pickup",
)
async def process_order(
    order_id: UUID,
    request: ProcessOrderRequest,
    current_user: CurrentUser,
    services: Services,
) -> OrderResponse:
    """
    Move an order into processing.

    Any seller with at least one item in the order may process it, as may
    administrators and company accounts.

    Raises:
        HTTPException: 404 if not found, 403 if not involved, 409 if the
            order is not pending
    """
    try:
        order = await services.fulfillment.process_order(
            order_id,
            current_user,
            tracking_number=request.tracking_number,
            is_pickup=request.is_pickup,
        )
        return OrderResponse.model_validate(order)

    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "Order not found",
                "code": "ORDER_NOT_FOUND",
            },
        ) from e

    except FulfillmentAuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": str(e),
                "code": "NOT_ORDER_SELLER",
            },
        ) from e

    except InvalidStatusTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "code": "INVALID_STATUS_TRANSITION",
            },
        ) from e

    except OrderRepositoryError as e:
        raise _repository_failure(e, "process_order") from e


@router.put(
    "/{order_id}/tracking",
    response_model=OrderResponse,
    summary="Set tracking number",
)
async def update_tracking(
    order_id: UUID,
    request: TrackingUpdateRequest,
    current_user: CurrentStaff,
    services: Services,
) -> OrderResponse:
    try:
        order = await services.fulfillment.update_tracking(
            order_id,
            request.tracking_number,
            current_user,
        )
        return OrderResponse.model_validate(order)

    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "Order not found",
                "code": "ORDER_NOT_FOUND",
            },
        ) from e

    except InvalidStatusTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "code": "INVALID_STATUS_TRANSITION",
            },
        ) from e

    except FulfillmentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(e),
                "code": "FULFILLMENT_ERROR",
            },
        ) from e

    except OrderRepositoryError as e:
        raise _repository_failure(e, "update_tracking") from e
