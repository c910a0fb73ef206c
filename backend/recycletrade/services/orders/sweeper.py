"""
Abandoned card order sweeper.

Card orders whose customers never finished the hosted checkout stay pending
forever unless something cancels them. The sweeper selects card orders that
have been pending longer than a grace period, asks Stripe for the live state
of each order's session, and either cancels the order or, when Stripe says
it was paid and the webhook simply has not arrived yet, confirms it.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from recycletrade.core.config import Settings, get_settings
from recycletrade.core.logging import bind_order_id, get_logger, log_performance
from recycletrade.services.orders.enums import CancellationReason
from recycletrade.services.orders.fulfillment import FulfillmentService
from recycletrade.services.orders.repository import OrderRepository
from recycletrade.services.payments.confirmation import PaymentConfirmationHandler
from recycletrade.services.payments.stripe_client import StripeClient, StripeClientError

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Counters for one sweep run."""

    found: int = 0
    cancelled: int = 0
    reconciled: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class AbandonmentSweeper:
    """
    Periodic cancellation of unpaid card orders.

    Every candidate is handled in isolation: a failure is logged, rolled
    back and counted, and the sweep moves on to the next order.
    """

    def __init__(
        self,
        repository: OrderRepository,
        fulfillment: FulfillmentService,
        confirmation: PaymentConfirmationHandler,
        stripe_client: StripeClient,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.fulfillment = fulfillment
        self.confirmation = confirmation
        self.stripe_client = stripe_client
        self.settings = settings or get_settings()

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one sweep over abandoned card orders.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            SweepReport with per-outcome counters
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self.settings.abandoned_order_grace_minutes)
        report = SweepReport()

        with log_performance(logger, "abandoned_order_sweep"):
            candidates = await self.repository.find_abandoned_candidates(
                cutoff,
                limit=self.settings.abandoned_sweep_batch_size,
            )
            # Rollbacks expire loaded instances, so work from plain values
            pending = [(order.id, order.stripe_session_id) for order in candidates]
            report.found = len(pending)

            for order_id, session_id in pending:
                try:
                    outcome = await self._sweep_order(order_id, session_id)
                except Exception as e:
                    report.failed += 1
                    logger.error(
                        "Failed to sweep order",
                        order_id=str(order_id),
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
                    await self.repository.rollback()
                    continue

                if outcome == "cancelled":
                    report.cancelled += 1
                elif outcome == "reconciled":
                    report.reconciled += 1
                else:
                    report.skipped += 1

        bind_order_id(None)
        if report.found:
            logger.info("Abandoned order sweep finished", cutoff=cutoff.isoformat(), **report.to_dict())
        else:
            logger.debug("Abandoned order sweep found nothing", cutoff=cutoff.isoformat())

        return report

    async def _sweep_order(self, order_id: uuid.UUID, session_id: Optional[str]) -> str:
        bind_order_id(order_id)

        if session_id and await self._session_is_paid(order_id, session_id):
            result = await self.confirmation.confirm_order_payment(order_id)
            if result.status == "confirmed":
                logger.info(
                    "Abandoned order reconciled as paid",
                    order_id=str(order_id),
                    session_id=session_id,
                )
                return "reconciled"
            return "skipped"

        cancelled = await self.fulfillment.cancel_order(order_id, CancellationReason.ABANDONED)
        return "cancelled" if cancelled else "skipped"

    async def _session_is_paid(self, order_id: uuid.UUID, session_id: str) -> bool:
        try:
            session = await self.stripe_client.retrieve_checkout_session(session_id)
        except StripeClientError as e:
            logger.warning(
                "Could not retrieve checkout session, treating as unpaid",
                order_id=str(order_id),
                session_id=session_id,
                error=str(e),
                code=e.code,
            )
            return False

        return session.payment_status == "paid"


def get_abandonment_sweeper(
    repository: OrderRepository,
    fulfillment: FulfillmentService,
    confirmation: PaymentConfirmationHandler,
    stripe_client: StripeClient,
) -> AbandonmentSweeper:
    """Factory function to create an abandonment sweeper."""
    return AbandonmentSweeper(repository, fulfillment, confirmation, stripe_client)
