"""
API v1 package initialization.

This module exposes the v1 routers for the RecycleTrade order service.
"""

from recycletrade.api.v1.orders import router as orders_router
from recycletrade.api.v1.webhooks import router as webhooks_router

__all__ = ["orders_router", "webhooks_router"]
