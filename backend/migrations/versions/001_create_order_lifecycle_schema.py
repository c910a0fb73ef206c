"""
Alembic migration: Create order lifecycle schema.

Creates the user, outlet, catalog, cart and order tables read and written by
the order service, with enum types for the order status columns, the
single-customer and pickup-outlet check constraints, and the composite index
used by the abandoned order sweep.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLE = postgresql.ENUM(
    'buyer', 'seller', 'seller_candidate', 'admin', 'company',
    name='user_role',
    create_type=False,
)
PAYMENT_METHOD = postgresql.ENUM('card', 'pickup', name='payment_method', create_type=False)
DELIVERY_METHOD = postgresql.ENUM('delivery', 'pickup', name='delivery_method', create_type=False)
PAYMENT_STATUS = postgresql.ENUM(
    'pending', 'paid', 'failed', 'cancelled',
    name='payment_status',
    create_type=False,
)
FULFILLMENT_STATUS = postgresql.ENUM(
    'pending', 'processing', 'cancelled',
    name='fulfillment_status',
    create_type=False,
)
CANCELLATION_REASON = postgresql.ENUM(
    'abandoned', 'user_cancelled', 'payment_failed', 'stripe_cancelled',
    name='cancellation_reason',
    create_type=False,
)

ENUM_TYPES = (
    USER_ROLE,
    PAYMENT_METHOD,
    DELIVERY_METHOD,
    PAYMENT_STATUS,
    FULFILLMENT_STATUS,
    CANCELLATION_REASON,
)


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Create the order lifecycle tables.

    Tables are created parent first so foreign keys resolve: users, outlets,
    products, product_variants, carts, cart_items, orders, order_items.
    """
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(length=255), nullable=False, comment='User email address'),
        sa.Column('first_name', sa.String(length=100), nullable=True, comment='User first name'),
        sa.Column('last_name', sa.String(length=100), nullable=True, comment='User last name'),
        sa.Column('phone', sa.String(length=32), nullable=True, comment='User phone number'),
        sa.Column('role', USER_ROLE, nullable=False, comment='User role for access control'),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment='Whether the account is active'),
        *_timestamp_columns(),
        sa.UniqueConstraint('email', name='uq_users_email'),
        comment='Marketplace user accounts',
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'outlets',
        _id_column(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamp_columns(),
    )

    op.create_table(
        'products',
        _id_column(),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Product name'),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, comment='Base product price'),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Seller who listed the product'),
        sa.Column('image_url', sa.String(length=1024), nullable=True, comment='Primary product image URL'),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment='Whether the product is listed'),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], ondelete='SET NULL'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        comment='Catalog products',
    )
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])

    op.create_table(
        'product_variants',
        _id_column(),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Owning product'),
        sa.Column('sku', sa.String(length=64), nullable=False, comment='Stock keeping unit'),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, comment='Variant unit price'),
        sa.Column('stock', sa.Integer(), nullable=False, comment='Units available for sale'),
        sa.Column(
            'specs',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
            comment='Variant specification attributes',
        ),
        sa.Column(
            'is_default',
            sa.Boolean(),
            nullable=False,
            server_default=sa.text('false'),
            comment='Bucket synthesized to absorb restocks without a matching variant',
        ),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_product_variants_price_non_negative'),
        comment='Priced product variants with stock counters',
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])
    op.create_index('ix_product_variants_product_sku', 'product_variants', ['product_id', 'sku'])

    op.create_table(
        'carts',
        _id_column(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Owning user'),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', name='uq_carts_user_id'),
        comment='Per-user shopping carts',
    )

    op.create_table(
        'cart_items',
        _id_column(),
        sa.Column('cart_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Parent cart'),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Product in the cart'),
        sa.Column('variant_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Selected variant'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1', comment='Number of units'),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ondelete='SET NULL'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        comment='Shopping cart lines',
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])

    op.create_table(
        'orders',
        _id_column(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Registered customer who placed the order'),
        sa.Column(
            'guest_info',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment='Guest contact details for anonymous checkout',
        ),
        sa.Column('outlet_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Pickup outlet'),
        sa.Column('payment_method', PAYMENT_METHOD, nullable=False, comment='How the order is paid'),
        sa.Column('delivery_method', DELIVERY_METHOD, nullable=False, comment='How the order reaches the customer'),
        sa.Column('payment_status', PAYMENT_STATUS, nullable=False, comment='Current payment status'),
        sa.Column('fulfillment_status', FULFILLMENT_STATUS, nullable=False, comment='Current fulfillment status'),
        sa.Column(
            'total_amount',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            comment='Order total computed at creation',
        ),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True, comment='Stripe Checkout Session id'),
        sa.Column('tracking_number', sa.String(length=100), nullable=True, comment='Carrier tracking number'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='When payment was confirmed'),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            nullable=True,
            comment='When fulfillment moved to processing',
        ),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='When the order was cancelled'),
        sa.Column(
            'cancellation_reason',
            CANCELLATION_REASON,
            nullable=True,
            comment='Reason code recorded on cancellation',
        ),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('stripe_session_id', name='uq_orders_stripe_session_id'),
        sa.CheckConstraint(
            '(user_id IS NULL) <> (guest_info IS NULL)',
            name='ck_orders_single_customer_reference',
        ),
        sa.CheckConstraint(
            "delivery_method <> 'pickup' OR outlet_id IS NOT NULL",
            name='ck_orders_pickup_requires_outlet',
        ),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
        sa.CheckConstraint(
            "(fulfillment_status = 'cancelled') = (cancelled_at IS NOT NULL)",
            name='ck_orders_cancellation_stamped',
        ),
        comment='Customer orders with payment and fulfillment status',
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_outlet_id', 'orders', ['outlet_id'])
    op.create_index('ix_orders_tracking_number', 'orders', ['tracking_number'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index(
        'ix_orders_abandoned_sweep',
        'orders',
        ['payment_method', 'payment_status', 'fulfillment_status', 'created_at'],
    )

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Parent order'),
        sa.Column('position', sa.Integer(), nullable=False, comment='Position within the order'),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Ordered product'),
        sa.Column('variant_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Ordered variant'),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Seller snapshot taken at order creation'),
        sa.Column('product_name', sa.String(length=255), nullable=True, comment='Product name snapshot'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='Units ordered'),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False, comment='Unit price snapshot'),
        sa.Column(
            'inventory_reserved',
            sa.Boolean(),
            nullable=False,
            server_default=sa.text('false'),
            comment='Whether stock was decremented for this line',
        ),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_order_items_unit_price_non_negative'),
        comment='Order line items with price and seller snapshots',
    )
    op.create_index('ix_order_items_order_position', 'order_items', ['order_id', 'position'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_seller_id', 'order_items', ['seller_id'])


def downgrade() -> None:
    """Drop the order lifecycle tables and enum types."""
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('outlets')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
