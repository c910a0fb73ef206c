"""
Stripe API client wrapper with error handling, timeouts and retry logic.

This module wraps the Stripe Checkout Session and webhook APIs used by the
order lifecycle. The Stripe SDK is synchronous, so every network call runs in
a worker thread bounded by ``asyncio.wait_for``; connection and rate limit
failures are retried with exponential backoff, everything else is mapped to
a ``StripeClientError`` subclass and raised immediately.
"""

import asyncio
from typing import Any, Callable, Optional

import stripe

from recycletrade.core.config import get_settings
from recycletrade.core.logging import get_logger

logger = get_logger(__name__)


class StripeClientError(Exception):
    """Base exception for Stripe client errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stripe_error: Optional[Exception] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.code = code
        self.stripe_error = stripe_error
        self.context = context


class StripePaymentError(StripeClientError):
    """Exception for payment processing errors."""

    pass


class StripeAuthenticationError(StripeClientError):
    """Exception for authentication errors."""

    pass


class StripeRateLimitError(StripeClientError):
    """Exception for rate limit errors."""

    pass


class StripeConnectionError(StripeClientError):
    """Exception for connection errors."""

    pass


class StripeTimeoutError(StripeClientError):
    """Exception for calls that exceeded the external call timeout."""

    pass


class StripeClient:
    """
    Stripe API client for checkout sessions and webhook verification.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        initial_backoff: float = 0.5,
        max_backoff: float = 4.0,
        backoff_multiplier: float = 2.0,
    ):
        """
        Initialize Stripe client with configuration.

        Args:
            api_key: Stripe secret API key (defaults to settings)
            webhook_secret: Stripe webhook signing secret (defaults to settings)
            max_retries: Maximum number of retry attempts (defaults to settings)
            timeout: Per-attempt timeout in seconds (defaults to settings)
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds
            backoff_multiplier: Backoff multiplier for exponential backoff
        """
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.max_retries = settings.stripe_max_retries if max_retries is None else max_retries
        self.timeout = timeout or settings.external_call_timeout_seconds
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier

        # Retries are handled here, with the backoff below
        stripe.max_network_retries = 0

        logger.info(
            "Stripe client initialized",
            max_retries=self.max_retries,
            timeout_seconds=self.timeout,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    async def _execute_with_retry(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Execute a Stripe API call in a worker thread with retry and timeout.

        Raises:
            StripeClientError: If the operation fails after all retries
        """
        kwargs.setdefault("api_key", self.api_key)

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Executing Stripe operation",
                    operation=operation,
                    attempt=attempt,
                )

                result = await asyncio.wait_for(
                    asyncio.to_thread(func, *args, **kwargs),
                    timeout=self.timeout,
                )

                if attempt > 0:
                    logger.info(
                        "Stripe operation succeeded after retry",
                        operation=operation,
                        attempt=attempt,
                    )

                return result

            except asyncio.TimeoutError as e:
                logger.error(
                    "Stripe operation timed out",
                    operation=operation,
                    timeout_seconds=self.timeout,
                )
                raise StripeTimeoutError(
                    f"Stripe {operation} timed out after {self.timeout}s",
                    code="TIMEOUT",
                ) from e

            except stripe.AuthenticationError as e:
                logger.error(
                    "Stripe authentication error",
                    operation=operation,
                    error=str(e),
                    code=e.code,
                )
                raise StripeAuthenticationError(
                    f"Authentication failed: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                ) from e

            except stripe.CardError as e:
                logger.warning(
                    "Stripe card error",
                    operation=operation,
                    error=str(e),
                    code=e.code,
                )
                raise StripePaymentError(
                    f"Card error: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                ) from e

            except stripe.InvalidRequestError as e:
                logger.error(
                    "Stripe invalid request",
                    operation=operation,
                    error=str(e),
                    code=e.code,
                    param=e.param,
                )
                raise StripeClientError(
                    f"Invalid request: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                    param=e.param,
                ) from e

            except stripe.RateLimitError as e:
                if attempt >= self.max_retries:
                    logger.error(
                        "Stripe rate limit exceeded",
                        operation=operation,
                        attempt=attempt,
                    )
                    raise StripeRateLimitError(
                        f"Rate limit exceeded: {e.user_message or str(e)}",
                        code=e.code,
                        stripe_error=e,
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Rate limit hit, retrying",
                    operation=operation,
                    attempt=attempt,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)

            except stripe.APIConnectionError as e:
                if attempt >= self.max_retries:
                    logger.error(
                        "Stripe connection error",
                        operation=operation,
                        error=str(e),
                        attempt=attempt,
                    )
                    raise StripeConnectionError(
                        f"Connection error: {e.user_message or str(e)}",
                        code=e.code,
                        stripe_error=e,
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Connection error, retrying",
                    operation=operation,
                    attempt=attempt,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)

            except stripe.StripeError as e:
                logger.error(
                    "Unexpected Stripe error",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StripeClientError(
                    f"Stripe error: {e.user_message or str(e)}",
                    code=getattr(e, "code", None),
                    stripe_error=e,
                ) from e

        raise StripeClientError(f"Operation failed after {self.max_retries} retries")

    async def create_checkout_session(
        self,
        line_items: list[dict[str, Any]],
        order_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Any:
        """
        Create a hosted Checkout Session in payment mode.

        The order id is written both to ``metadata.orderId`` and to
        ``client_reference_id`` so that webhooks can resolve the order from
        either field.

        Args:
            line_items: Stripe ``line_items`` entries with price_data
            order_id: Local order id
            success_url: Redirect after payment
            cancel_url: Redirect when the customer abandons checkout
            customer_email: Prefilled customer email

        Returns:
            Stripe checkout Session object

        Raises:
            StripeClientError: If session creation fails
        """
        logger.info(
            "Creating checkout session",
            order_id=order_id,
            line_item_count=len(line_items),
        )

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": order_id,
            "metadata": {"orderId": order_id},
            "idempotency_key": f"checkout-{order_id}",
        }
        if customer_email:
            params["customer_email"] = customer_email

        session = await self._execute_with_retry(
            "create_checkout_session",
            stripe.checkout.Session.create,
            **params,
        )

        logger.info(
            "Checkout session created",
            order_id=order_id,
            session_id=session.id,
        )

        return session

    async def retrieve_checkout_session(self, session_id: str) -> Any:
        """
        Retrieve a Checkout Session by ID.

        Raises:
            StripeClientError: If retrieval fails
        """
        logger.debug("Retrieving checkout session", session_id=session_id)

        session = await self._execute_with_retry(
            "retrieve_checkout_session",
            stripe.checkout.Session.retrieve,
            session_id,
        )

        logger.debug(
            "Checkout session retrieved",
            session_id=session_id,
            payment_status=session.payment_status,
            status=getattr(session, "status", None),
        )

        return session

    def construct_webhook_event(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> dict[str, Any]:
        """
        Construct and verify a webhook event from Stripe.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe signature header value

        Returns:
            Verified event as a plain dict, nested objects included

        Raises:
            StripeClientError: If webhook verification fails
        """
        if not signature:
            raise StripeClientError(
                "Missing Stripe signature header",
                code="MISSING_SIGNATURE",
            )

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
            )

            logger.info(
                "Webhook event verified successfully",
                event_id=event.id,
                event_type=event.type,
            )

            return event.to_dict()

        except ValueError as e:
            logger.error("Invalid webhook payload", error=str(e))
            raise StripeClientError(
                "Invalid webhook payload",
                code="INVALID_PAYLOAD",
            ) from e

        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed", error=str(e))
            raise StripeClientError(
                "Webhook signature verification failed",
                code="INVALID_SIGNATURE",
                stripe_error=e,
            ) from e


def get_stripe_client() -> StripeClient:
    """
    Get configured Stripe client instance.

    Returns:
        Configured StripeClient instance
    """
    return StripeClient()
