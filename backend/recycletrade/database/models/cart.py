"""
Shopping cart database models.

Carts are owned by the storefront's cart service. Order checkout only reads
them indirectly and removes a user's cart wholesale once an order is paid or
placed for pickup.
"""

import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recycletrade.database.base import BaseModel


class Cart(BaseModel):
    """
    Per-user shopping cart.

    Attributes:
        id: Unique cart identifier (UUID)
        user_id: Owning user; one cart per user
        items: Cart lines
    """

    __tablename__ = "carts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Owning user",
    )

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = ({"comment": "Per-user shopping carts"},)


class CartItem(BaseModel):
    """
    Cart line referencing a product and optionally one of its variants.
    """

    __tablename__ = "cart_items"

    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        comment="Parent cart",
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        comment="Product in the cart",
    )

    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("product_variants.id", ondelete="SET NULL"),
        nullable=True,
        comment="Selected variant",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
        comment="Number of units",
    )

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")

    __table_args__ = (
        Index("ix_cart_items_cart_id", "cart_id"),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        {"comment": "Shopping cart lines"},
    )
