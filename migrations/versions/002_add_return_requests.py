"""
Alembic migration: return requests.

Adds the return_requests table for post-delivery returns. Returned lines
and the status timeline are JSONB snapshots on the row.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 14:31:07.552913
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

return_status = postgresql.ENUM(
    'pending', 'approved', 'rejected', 'picked_up', 'received', 'refunded',
    name='return_status',
    create_type=False,
)
refund_method = postgresql.ENUM(
    'original', 'store_credit',
    name='refund_method',
    create_type=False,
)


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
    Create enum types, the return_requests table and its indexes.
    """
    bind = op.get_bind()
    for enum_type in (return_status, refund_method):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'return_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('return_number', sa.String(50), nullable=False),
        sa.Column(
            'order_id',
            sa.Uuid(),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'user_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        _jsonb('items', '[]', 'Returned line snapshots'),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('refund_method', refund_method, nullable=False, server_default='original'),
        sa.Column('status', return_status, nullable=False, server_default='pending'),
        _jsonb('images', '[]', 'Evidence image URLs'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        _jsonb('timeline', '[]', 'Append-only return status timeline'),
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
        sa.CheckConstraint(
            'refund_amount >= 0',
            name='ck_return_requests_refund_amount_non_negative',
        ),
        comment='Customer return requests for delivered orders',
    )
    op.create_index('ix_return_requests_return_number', 'return_requests', ['return_number'], unique=True)
    op.create_index('ix_return_requests_order_id', 'return_requests', ['order_id'])
    op.create_index('ix_return_requests_user_id', 'return_requests', ['user_id'])
    op.create_index('ix_return_requests_status', 'return_requests', ['status'])
    op.create_index('ix_return_requests_user_created', 'return_requests', ['user_id', 'created_at'])


def downgrade() -> None:
    """
    Drop the return_requests table and its enum types.
    """
    op.drop_table('return_requests')

    bind = op.get_bind()
    for enum_type in (refund_method, return_status):
        enum_type.drop(bind, checkfirst=True)
