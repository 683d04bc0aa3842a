"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    BigInteger,
    CheckConstraint,
    DateTime,
    Identity,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Stores credit balance and the set of unlocked chat models per user.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity (session email)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Entitlements
    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    unlocked_models: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)), nullable=False, default=list
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_credits_non_negative"),
        UniqueConstraint("email", name="uq_accounts_email"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Account(id={self.id}, email={self.email}, credits={self.credits})>"


class ChatTurn(Base):
    """
    ORM model for chat_turns table.

    Append-only conversation log. Sessions are derived by grouping on session_id.
    """

    __tablename__ = "chat_turns"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Insertion order; breaks timestamp ties between turns of one request
    seq: Mapped[int] = mapped_column(BigInteger, Identity(always=False), nullable=False)

    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    session_id: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_chat_turn_role"),
        Index("idx_chat_turns_owner_timestamp", "owner", "timestamp"),
        Index("idx_chat_turns_owner_session", "owner", "session_id", "timestamp", "seq"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ChatTurn(id={self.id}, session_id={self.session_id}, "
            f"role={self.role}, model={self.model})>"
        )


class Order(Base):
    """
    ORM model for orders table.

    Payment ledger. Status moves pending -> success | failed exactly once.
    """

    __tablename__ = "orders"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)

    # Amount in major currency units (e.g. rupees)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Gateway identifiers
    external_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    external_payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_signature: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # Item payload (explicit columns, no JSON)
    package_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    credits_granted: Mapped[int | None] = mapped_column(Integer, nullable=True)
    model: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_order_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="ck_order_status"
        ),
        CheckConstraint(
            "kind IN ('credit_purchase', 'model_unlock')", name="ck_order_kind"
        ),
        UniqueConstraint("external_order_id", name="uq_orders_external_order_id"),
        Index("idx_orders_owner_created_at", "owner", "created_at"),
        Index(
            "idx_orders_pending_created_at",
            "created_at",
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Order(id={self.id}, external_order_id={self.external_order_id}, "
            f"kind={self.kind}, status={self.status})>"
        )
