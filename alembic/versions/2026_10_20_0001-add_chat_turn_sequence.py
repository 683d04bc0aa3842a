"""Add insertion sequence to chat_turns.

Turns written in the same request can share a timestamp; seq orders them.

Revision ID: 2026_10_20_0001
Revises: 2026_10_19_0000
Create Date: 2026-10-20

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "2026_10_20_0001"
down_revision = "2026_10_19_0000"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add identity-backed seq column to chat_turns (existing rows are numbered)."""
    op.add_column(
        "chat_turns",
        sa.Column("seq", sa.BigInteger(), sa.Identity(always=False), nullable=False),
    )
    op.drop_index("idx_chat_turns_owner_session", table_name="chat_turns")
    op.create_index(
        "idx_chat_turns_owner_session",
        "chat_turns",
        ["owner", "session_id", "timestamp", "seq"],
    )


def downgrade() -> None:
    """Remove seq column from chat_turns."""
    op.drop_index("idx_chat_turns_owner_session", table_name="chat_turns")
    op.create_index(
        "idx_chat_turns_owner_session",
        "chat_turns",
        ["owner", "session_id", "timestamp"],
    )
    op.drop_column("chat_turns", "seq")
