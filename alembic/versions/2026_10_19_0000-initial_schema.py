"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts, chat_turns and orders."""

    # ========================================================================
    # Create accounts table
    # ========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('unlocked_models', ARRAY(sa.String(50)), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_credits_non_negative'),
        sa.UniqueConstraint('email', name='uq_accounts_email'),
    )

    # ========================================================================
    # Create chat_turns table
    # ========================================================================
    op.create_table(
        'chat_turns',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('session_id', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint("role IN ('user', 'assistant')", name='ck_chat_turn_role'),
    )

    op.create_index('idx_chat_turns_owner_timestamp', 'chat_turns', ['owner', 'timestamp'])
    op.create_index('idx_chat_turns_owner_session', 'chat_turns', ['owner', 'session_id', 'timestamp'])

    # ========================================================================
    # Create orders table
    # ========================================================================
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('external_order_id', sa.String(100), nullable=False),
        sa.Column('external_payment_id', sa.String(100), nullable=True),
        sa.Column('external_signature', sa.String(256), nullable=True),
        sa.Column('package_id', sa.String(50), nullable=True),
        sa.Column('credits_granted', sa.Integer(), nullable=True),
        sa.Column('model', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('amount > 0', name='ck_order_amount_positive'),
        sa.CheckConstraint("status IN ('pending', 'success', 'failed')", name='ck_order_status'),
        sa.CheckConstraint("kind IN ('credit_purchase', 'model_unlock')", name='ck_order_kind'),
        sa.UniqueConstraint('external_order_id', name='uq_orders_external_order_id'),
    )

    op.create_index('idx_orders_owner_created_at', 'orders', ['owner', 'created_at'])
    op.create_index(
        'idx_orders_pending_created_at',
        'orders',
        ['created_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_orders_pending_created_at', table_name='orders')
    op.drop_index('idx_orders_owner_created_at', table_name='orders')
    op.drop_table('orders')
    op.drop_index('idx_chat_turns_owner_session', table_name='chat_turns')
    op.drop_index('idx_chat_turns_owner_timestamp', table_name='chat_turns')
    op.drop_table('chat_turns')
    op.drop_table('accounts')
