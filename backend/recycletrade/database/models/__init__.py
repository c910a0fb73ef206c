"""
Database models package initialization.

Models are imported here to ensure they are registered with the Base metadata
for Alembic auto-generation and relationship resolution.
"""

from recycletrade.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from recycletrade.database.models.cart import Cart, CartItem
from recycletrade.database.models.order import Order, OrderItem
from recycletrade.database.models.outlet import Outlet
from recycletrade.database.models.product import Product, ProductVariant
from recycletrade.database.models.user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Outlet",
    "Product",
    "ProductVariant",
    "User",
    "UserRole",
]
