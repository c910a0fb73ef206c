"""
Celery tasks for background order processing.

The abandoned order sweep runs on the beat schedule defined in
``recycletrade.worker``; the same sweep is also available in-process and
through the administrative API.
"""

import asyncio
from functools import lru_cache
from typing import Any

from celery import Task, shared_task

from recycletrade.core.logging import get_logger
from recycletrade.database.connection import close_database_connections, get_session
from recycletrade.services.notifications.gateway import NotificationGateway
from recycletrade.services.notifications.service import create_notification_gateway
from recycletrade.services.orders.factory import build_order_services

logger = get_logger(__name__)


@lru_cache
def get_worker_gateway() -> NotificationGateway:
    """Notification gateway shared by every task in this worker process."""
    return create_notification_gateway()


class OrderTask(Task):
    """
    Base task class for order maintenance tasks.

    Sweeps are not retried: the next scheduled run picks up whatever this
    one left behind.
    """

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Order task failed",
            task_id=task_id,
            task_name=self.name,
            exception=str(exc),
            exc_info=einfo,
        )

    def on_success(
        self,
        retval: Any,
        task_id: str,
        args: tuple,
        kwargs: dict,
    ) -> None:
        logger.info(
            "Order task completed successfully",
            task_id=task_id,
            task_name=self.name,
            result=retval,
        )


async def run_abandoned_order_sweep() -> dict[str, int]:
    """Run one sweep in a fresh session.

    Each task run owns its event loop, so the engine is disposed before the
    loop closes.
    """
    try:
        async with get_session() as session:
            services = build_order_services(session, get_worker_gateway())
            report = await services.sweeper.sweep()
            return report.to_dict()
    finally:
        await close_database_connections()


@shared_task(
    bind=True,
    base=OrderTask,
    name="orders.sweep_abandoned_orders",
    time_limit=300,
    soft_time_limit=240,
    ignore_result=False,
)
def sweep_abandoned_orders_task(self: Task) -> dict[str, int]:
    """
    Cancel card orders whose checkout was abandoned.

    Returns:
        Sweep report counters
    """
    logger.info("Processing abandoned order sweep task", task_id=self.request.id)
    return asyncio.run(run_abandoned_order_sweep())
