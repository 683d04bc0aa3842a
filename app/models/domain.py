"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime

from app.models.api import ChatRole, OrderKind, OrderStatus


@dataclass(frozen=True)
class AccountData:
    """Immutable account entitlement snapshot."""

    email: str
    display_name: str | None
    credits: int
    unlocked_models: tuple[str, ...]
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate entitlement constraints."""
        if self.credits < 0:
            raise ValueError(f"Credits cannot be negative: {self.credits}")
        if not self.email:
            raise ValueError("email cannot be empty")

    def has_unlocked(self, model: str) -> bool:
        """Whether the account may use the given model."""
        return model in self.unlocked_models


@dataclass(frozen=True)
class ChatMessage:
    """One message of conversation context sent to a provider."""

    role: ChatRole
    content: str


@dataclass(frozen=True)
class ChatTurnData:
    """Immutable stored chat turn."""

    owner: str
    session_id: str
    role: ChatRole
    model: str
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class SessionSummary:
    """Chat session derived from its turns."""

    session_id: str
    title: str
    preview: str
    message_count: int
    last_activity: datetime


@dataclass(frozen=True)
class ProviderReply:
    """A provider's display text for one fan-out call (may be an error string)."""

    model: str
    response: str


@dataclass(frozen=True)
class ChatOutcome:
    """Result of a settled chat request."""

    responses: list[ProviderReply]
    session_id: str
    account: AccountData


@dataclass(frozen=True)
class OrderIntent:
    """Order before persistence - immutable intent."""

    owner: str
    kind: OrderKind
    amount: int
    currency: str
    external_order_id: str
    package_id: str | None = None
    credits_granted: int | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        """Validate order constraints."""
        if self.amount <= 0:
            raise ValueError(f"Order amount must be positive: {self.amount}")
        if not self.external_order_id:
            raise ValueError("external_order_id cannot be empty")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")
        if self.kind == OrderKind.CREDIT_PURCHASE and not self.credits_granted:
            raise ValueError("Credit purchase must grant credits")
        if self.kind == OrderKind.MODEL_UNLOCK and not self.model:
            raise ValueError("Model unlock must name a model")


@dataclass(frozen=True)
class OrderData:
    """Immutable order data after persistence."""

    owner: str
    kind: OrderKind
    amount: int
    currency: str
    status: OrderStatus
    external_order_id: str
    external_payment_id: str | None
    external_signature: str | None
    package_id: str | None
    credits_granted: int | None
    model: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_pending(self) -> bool:
        """Whether the order can still transition."""
        return self.status == OrderStatus.PENDING


@dataclass(frozen=True)
class OrderCreated:
    """Hosted order details handed to the client checkout."""

    external_order_id: str
    amount_minor: int
    currency: str
    public_key: str


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of a settled purchase."""

    account: AccountData
    message: str
