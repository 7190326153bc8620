"""
Alembic migration: initial storefront order schema.

Creates users, products, coupons and orders. Order lines, addresses,
payment details, tracking and the timeline are JSONB snapshots on the
order row.

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:12:40.118204
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

user_role = postgresql.ENUM('customer', 'admin', name='user_role', create_type=False)
discount_type = postgresql.ENUM('percentage', 'fixed', name='discount_type', create_type=False)
order_status = postgresql.ENUM(
    'pending', 'confirmed', 'processing', 'shipped', 'delivered', 'cancelled', 'refunded',
    name='order_status',
    create_type=False,
)
payment_status = postgresql.ENUM(
    'pending', 'paid', 'failed', 'refunded',
    name='payment_status',
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
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


def _jsonb(name: str, default: str, comment: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        nullable=False,
        server_default=sa.text(f"'{default}'::jsonb"),
        comment=comment,
    )


def upgrade() -> None:
    """
    Create enum types, tables and indexes.
    """
    bind = op.get_bind()
    for enum_type in (user_role, discount_type, order_status, payment_status):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', user_role, nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(200), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        _jsonb('images', '[]', 'Image URLs or {url} objects'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('track_inventory', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )
    op.create_index('ix_products_slug', 'products', ['slug'], unique=True)

    op.create_table(
        'coupons',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('discount_type', discount_type, nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('per_user_limit', sa.Integer(), nullable=True, server_default='1'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('discount_value >= 0', name='ck_coupons_discount_value_non_negative'),
        sa.CheckConstraint('used_count >= 0', name='ck_coupons_used_count_non_negative'),
        sa.CheckConstraint(
            'per_user_limit IS NULL OR per_user_limit >= 1',
            name='ck_coupons_per_user_limit_positive',
        ),
        comment='Promotional coupons for order discounts',
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column(
            'user_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        _jsonb('items', '[]', 'Line item snapshots'),
        _jsonb('shipping_address', '{}', 'Delivery address snapshot'),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('coupon_code', sa.String(20), nullable=True),
        sa.Column('status', order_status, nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('payment_status', payment_status, nullable=False, server_default='pending'),
        _jsonb('payment_details', '{}', 'Gateway ids, signature, method, paid_at'),
        sa.Column('gateway_order_id', sa.String(64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True),
        _jsonb('tracking', '{}', 'Carrier and tracking details'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        _jsonb('timeline', '[]', 'Append-only status timeline'),
        *_timestamps(),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_orders_discount_non_negative'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
        comment='Customer orders with embedded line and timeline snapshots',
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_gateway_order_id', 'orders', ['gateway_order_id'])
    op.create_index('ix_orders_gateway_payment_id', 'orders', ['gateway_payment_id'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])


def downgrade() -> None:
    """
    Drop tables and enum types in reverse dependency order.
    """
    op.drop_table('orders')
    op.drop_table('coupons')
    op.drop_table('products')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_status, order_status, discount_type, user_role):
        enum_type.drop(bind, checkfirst=True)
