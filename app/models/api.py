"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ModelId(str, Enum):
    """Chat model catalog identifiers (display names double as ids)."""

    CHATGPT = "ChatGPT"
    DEEPSEEK = "DeepSeek"
    GEMINI = "Gemini"
    CLAUDE = "Claude"
    PERPLEXITY = "Perplexity"
    GROK = "Grok"


class ChatRole(str, Enum):
    """Chat turn author."""

    USER = "user"
    ASSISTANT = "assistant"


class OrderKind(str, Enum):
    """What a payment order buys."""

    CREDIT_PURCHASE = "credit_purchase"
    MODEL_UNLOCK = "model_unlock"


class OrderStatus(str, Enum):
    """Order lifecycle status. SUCCESS and FAILED are terminal."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# ============================================================================
# Account Models
# ============================================================================


class UserResponse(BaseModel):
    """GET /v1/user response."""

    email: str
    display_name: str | None = None
    credits: int
    unlocked_models: list[str]


# ============================================================================
# Chat Models
# ============================================================================


class ChatRequest(BaseModel):
    """POST /v1/chat request body."""

    prompt: str = Field(..., min_length=1, max_length=32_000)
    models: list[str] = Field(..., min_length=1, max_length=len(ModelId))
    session_id: str | None = Field(None, min_length=1, max_length=100)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Reject whitespace-only prompts."""
        if not v.strip():
            raise ValueError("prompt cannot be blank")
        return v


class ModelResponse(BaseModel):
    """One provider's answer in a fan-out."""

    model: str
    response: str


class ChatResponse(BaseModel):
    """POST /v1/chat response."""

    responses: list[ModelResponse]
    session_id: str
    credits: int
    unlocked_models: list[str]


class ChatTurnItem(BaseModel):
    """A single stored chat turn."""

    session_id: str
    role: ChatRole
    model: str
    content: str
    timestamp: str


class HistoryResponse(BaseModel):
    """GET /v1/history response."""

    turns: list[ChatTurnItem]


class SessionItem(BaseModel):
    """Derived chat session summary."""

    session_id: str
    title: str
    preview: str
    message_count: int
    last_activity: str


class SessionsResponse(BaseModel):
    """GET /v1/sessions response."""

    sessions: list[SessionItem]


class DeleteSessionRequest(BaseModel):
    """DELETE /v1/sessions request body."""

    session_id: str = Field(..., min_length=1, max_length=100)


class DeleteSessionResponse(BaseModel):
    """DELETE /v1/sessions response."""

    success: bool
    message: str
    deleted_turns: int


# ============================================================================
# Purchase Models
# ============================================================================


class PurchaseItem(BaseModel):
    """
    Item being purchased.

    Catalog membership is validated by the purchase service so unknown items
    are reported as 400 rather than schema errors.
    """

    kind: OrderKind
    package: str | None = Field(None, max_length=50, description="Credit package id")
    model: str | None = Field(None, max_length=50, description="Premium model to unlock")


class CreateOrderRequest(BaseModel):
    """POST /v1/purchase/order request body."""

    item: PurchaseItem


class CreateOrderResponse(BaseModel):
    """POST /v1/purchase/order response. Never carries the key secret."""

    external_order_id: str
    amount: int = Field(..., description="Amount in minor currency units")
    currency: str
    public_key: str


class VerifyPaymentRequest(BaseModel):
    """POST /v1/purchase/verify request body."""

    external_order_id: str = Field(..., min_length=1, max_length=100)
    external_payment_id: str = Field(..., min_length=1, max_length=100)
    signature: str = Field(..., min_length=1, max_length=256)
    item: PurchaseItem | None = None


class VerifyPaymentResponse(BaseModel):
    """POST /v1/purchase/verify response."""

    success: bool = True
    credits: int
    unlocked_models: list[str]
    message: str


class PaymentItem(BaseModel):
    """Payment history entry."""

    external_order_id: str
    kind: OrderKind
    status: OrderStatus
    amount: int = Field(..., description="Amount in major currency units")
    currency: str
    package: str | None = None
    credits_granted: int | None = None
    model: str | None = None
    created_at: str
    updated_at: str


class PaymentHistoryResponse(BaseModel):
    """GET /v1/purchase/history response."""

    payments: list[PaymentItem]


class WebhookAckResponse(BaseModel):
    """POST /v1/purchase/webhook response."""

    status: str
    event: str


# ============================================================================
# Catalog Models
# ============================================================================


class CatalogModelItem(BaseModel):
    """Chat model with its unlock price."""

    model: str
    free: bool
    unlock_price: int = Field(..., description="Price in major currency units (0 if free)")


class CreditPackageItem(BaseModel):
    """Credit package offered for purchase."""

    package: str
    credits: int
    price: int = Field(..., description="Price in major currency units")


class CatalogResponse(BaseModel):
    """GET /v1/catalog response."""

    currency: str
    models: list[CatalogModelItem]
    packages: list[CreditPackageItem]


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str


class ErrorDetail(BaseModel):
    """Error detail body for entitlement rejections."""

    error: str
    needs_credits: bool = False
    needs_unlock: bool = False
    locked_models: list[str] = Field(default_factory=list)
