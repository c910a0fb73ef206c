"""
Product and product variant models.

Products are maintained by the catalog service. Orders read them to snapshot
the seller and product details, and the inventory ledger mutates the
per-variant stock counter.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recycletrade.database.base import BaseModel


class Product(BaseModel):
    """
    Catalog product listed by a seller.

    Attributes:
        id: Unique product identifier (UUID)
        name: Display name
        price: Base price used when a default variant bucket is created
        seller_id: Account that listed the product
        image_url: Primary image shown in notifications
        is_active: Whether the product is listed
        variants: Priced variants carrying stock counters
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product name",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Base product price",
    )

    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Seller who listed the product",
    )

    image_url: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        comment="Primary product image URL",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the product is listed",
    )

    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductVariant.created_at",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        {"comment": "Catalog products"},
    )

    def find_variant(self, variant_id: Optional[uuid.UUID]) -> Optional["ProductVariant"]:
        """Return the variant with the given id, if the product has it."""
        if variant_id is None:
            return None
        return next((v for v in self.variants if v.id == variant_id), None)


class ProductVariant(BaseModel):
    """
    Sellable configuration of a product with its own price and stock.

    Stock is never negative: decrements clamp at zero and the database
    enforces the floor with a check constraint.
    """

    __tablename__ = "product_variants"

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning product",
    )

    sku: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Stock keeping unit",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Variant unit price",
    )

    stock: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units available for sale",
    )

    specs: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Variant specification attributes",
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Bucket synthesized to absorb restocks without a matching variant",
    )

    product: Mapped["Product"] = relationship(
        "Product",
        back_populates="variants",
    )

    __table_args__ = (
        Index("ix_product_variants_product_sku", "product_id", "sku"),
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_product_variants_price_non_negative"),
        {"comment": "Priced product variants with stock counters"},
    )
