"""
API Routes - FastAPI endpoints for chat, history and purchases.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import (
    get_current_identity,
    get_payment_provider,
    get_provider_gateway,
)
from app.config import settings
from app.db.session import get_read_db, get_write_db
from app.exceptions import (
    AccountNotFoundError,
    AlreadyOwnedError,
    DataIntegrityError,
    GatewayMisconfiguredError,
    InsufficientCreditsError,
    InvalidInputError,
    InvalidSignatureError,
    LockedModelError,
    OrderAlreadySettledError,
    OrderNotFoundError,
    PaymentProviderError,
    SessionNotFoundError,
    WebhookVerificationError,
)
from app.models.api import (
    CatalogModelItem,
    CatalogResponse,
    ChatRequest,
    ChatResponse,
    ChatTurnItem,
    CreateOrderRequest,
    CreateOrderResponse,
    CreditPackageItem,
    DeleteSessionRequest,
    DeleteSessionResponse,
    ErrorDetail,
    HealthResponse,
    HistoryResponse,
    ModelResponse,
    PaymentHistoryResponse,
    PaymentItem,
    SessionItem,
    SessionsResponse,
    UserResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAckResponse,
)
from app.models.domain import ChatTurnData, OrderData
from app.services.catalog import ALL_MODELS, CREDIT_PACKAGES, PREMIUM_MODEL_PRICES, is_free_model
from app.services.chat import ChatService
from app.services.entitlements import EntitlementStore
from app.services.payment_provider import PaymentProvider
from app.services.provider_gateway import ProviderGateway
from app.services.purchases import PurchaseService
from app.services.session_auth import SessionIdentity

logger = get_logger(__name__)

router = APIRouter()

WEBHOOK_SIGNATURE_HEADER = "X-Razorpay-Signature"


def _turn_item(turn: ChatTurnData) -> ChatTurnItem:
    return ChatTurnItem(
        session_id=turn.session_id,
        role=turn.role,
        model=turn.model,
        content=turn.content,
        timestamp=turn.timestamp.isoformat(),
    )


def _payment_item(order: OrderData) -> PaymentItem:
    return PaymentItem(
        external_order_id=order.external_order_id,
        kind=order.kind,
        status=order.status,
        amount=order.amount,
        currency=order.currency,
        package=order.package_id,
        credits_granted=order.credits_granted,
        model=order.model,
        created_at=order.created_at.isoformat(),
        updated_at=order.updated_at.isoformat(),
    )


def _gateway_misconfigured(exc: GatewayMisconfiguredError) -> HTTPException:
    logger.error("payment_gateway_misconfigured", error=exc.message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=exc.message,
    )


# =============================================================================
# Chat
# =============================================================================


@router.post("/v1/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    db: AsyncSession = Depends(get_write_db),
    identity: SessionIdentity = Depends(get_current_identity),
    gateway: ProviderGateway = Depends(get_provider_gateway),
) -> ChatResponse:
    """
    Send one prompt to several models and charge one credit per model.

    Rejections (403) carry machine-checkable flags:
    - needs_credits: balance below the number of models
    - needs_unlock: some models are locked (listed in locked_models)
    """
    service = ChatService(db, gateway)

    try:
        outcome = await service.handle_chat(
            identity=identity.email,
            prompt=request.prompt,
            models=request.models,
            session_id=request.session_id,
        )
    except InvalidInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except InsufficientCreditsError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorDetail(error="Insufficient credits", needs_credits=True).model_dump(),
        ) from exc
    except LockedModelError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorDetail(
                error=str(exc),
                needs_unlock=True,
                locked_models=exc.locked_models,
            ).model_dump(),
        ) from exc
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except DataIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return ChatResponse(
        responses=[ModelResponse(model=r.model, response=r.response) for r in outcome.responses],
        session_id=outcome.session_id,
        credits=outcome.account.credits,
        unlocked_models=list(outcome.account.unlocked_models),
    )


@router.get("/v1/history", response_model=HistoryResponse)
async def get_history(
    session_id: str | None = None,
    db: AsyncSession = Depends(get_read_db),
    identity: SessionIdentity = Depends(get_current_identity),
    gateway: ProviderGateway = Depends(get_provider_gateway),
) -> HistoryResponse:
    """Recent chat turns, oldest first. Restricted to one session when given."""
    service = ChatService(db, gateway)
    turns = await service.get_history(identity.email, session_id=session_id)
    return HistoryResponse(turns=[_turn_item(turn) for turn in turns])


@router.get("/v1/sessions", response_model=SessionsResponse)
async def list_sessions(
    db: AsyncSession = Depends(get_read_db),
    identity: SessionIdentity = Depends(get_current_identity),
    gateway: ProviderGateway = Depends(get_provider_gateway),
) -> SessionsResponse:
    """Chat sessions, most recently active first."""
    service = ChatService(db, gateway)
    sessions = await service.list_sessions(identity.email)
    return SessionsResponse(
        sessions=[
            SessionItem(
                session_id=s.session_id,
                title=s.title,
                preview=s.preview,
                message_count=s.message_count,
                last_activity=s.last_activity.isoformat(),
            )
            for s in sessions
        ]
    )


@router.delete("/v1/sessions", response_model=DeleteSessionResponse)
async def delete_session(
    request: DeleteSessionRequest,
    db: AsyncSession = Depends(get_write_db),
    identity: SessionIdentity = Depends(get_current_identity),
    gateway: ProviderGateway = Depends(get_provider_gateway),
) -> DeleteSessionResponse:
    """Delete every turn of one chat session."""
    service = ChatService(db, gateway)

    try:
        deleted = await service.delete_session(identity.email, request.session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return DeleteSessionResponse(
        success=True,
        message="Session deleted successfully",
        deleted_turns=deleted,
    )


# =============================================================================
# Account and catalog
# =============================================================================


@router.get("/v1/user", response_model=UserResponse)
async def get_user(
    db: AsyncSession = Depends(get_write_db),
    identity: SessionIdentity = Depends(get_current_identity),
) -> UserResponse:
    """
    Current entitlement snapshot.

    Provisions the account on first access. Write operation - requires primary database.
    """
    account = await EntitlementStore(db).get_or_create(identity.email, identity.name)
    return UserResponse(
        email=account.email,
        display_name=account.display_name,
        credits=account.credits,
        unlocked_models=list(account.unlocked_models),
    )


@router.get("/v1/catalog", response_model=CatalogResponse)
async def get_catalog() -> CatalogResponse:
    """Models with unlock prices and the credit packages on sale. No auth."""
    return CatalogResponse(
        currency=settings.payment_currency,
        models=[
            CatalogModelItem(
                model=model,
                free=is_free_model(model),
                unlock_price=PREMIUM_MODEL_PRICES.get(model, 0),
            )
            for model in ALL_MODELS
        ],
        packages=[
            CreditPackageItem(package=p.package_id, credits=p.credits, price=p.price)
            for p in CREDIT_PACKAGES.values()
        ],
    )


# =============================================================================
# Purchases
# =============================================================================


@router.post("/v1/purchase/order", response_model=CreateOrderResponse)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_write_db),
    identity: SessionIdentity = Depends(get_current_identity),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> CreateOrderResponse:
    """
    Open a hosted payment order for a credit package or model unlock.

    The response carries the public key id only, never the secret.
    """
    service = PurchaseService(db, provider)

    try:
        created = await service.create_order(identity.email, request.item)
    except GatewayMisconfiguredError as exc:
        raise _gateway_misconfigured(exc) from exc
    except (InvalidInputError, AlreadyOwnedError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment gateway unavailable",
        ) from exc
    except DataIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return CreateOrderResponse(
        external_order_id=created.external_order_id,
        amount=created.amount_minor,
        currency=created.currency,
        public_key=created.public_key,
    )


@router.post("/v1/purchase/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_write_db),
    identity: SessionIdentity = Depends(get_current_identity),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> VerifyPaymentResponse:
    """
    Verify a completed checkout and apply its entitlement exactly once.

    A signature mismatch marks the order failed.
    """
    service = PurchaseService(db, provider)

    try:
        outcome = await service.verify(
            identity=identity.email,
            external_order_id=request.external_order_id,
            external_payment_id=request.external_payment_id,
            signature=request.signature,
            item=request.item,
        )
    except GatewayMisconfiguredError as exc:
        raise _gateway_misconfigured(exc) from exc
    except InvalidSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payment signature",
        ) from exc
    except (InvalidInputError, OrderAlreadySettledError, AlreadyOwnedError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (OrderNotFoundError, AccountNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return VerifyPaymentResponse(
        success=True,
        credits=outcome.account.credits,
        unlocked_models=list(outcome.account.unlocked_models),
        message=outcome.message,
    )


@router.get("/v1/purchase/history", response_model=PaymentHistoryResponse)
async def payment_history(
    db: AsyncSession = Depends(get_read_db),
    identity: SessionIdentity = Depends(get_current_identity),
) -> PaymentHistoryResponse:
    """Most recent orders first."""
    service = PurchaseService(db, provider=None)
    orders = await service.payment_history(identity.email)
    return PaymentHistoryResponse(payments=[_payment_item(order) for order in orders])


@router.post("/v1/purchase/webhook", response_model=WebhookAckResponse)
async def razorpay_webhook(
    request: Request,
    db: AsyncSession = Depends(get_write_db),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> WebhookAckResponse:
    """
    Handle Razorpay webhook events.

    Settles captured payments through the same path as client verification;
    unknown or already-settled orders are acknowledged without change.
    """
    payload = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER, "")
    service = PurchaseService(db, provider)

    try:
        event = service.parse_webhook(payload, signature)
    except GatewayMisconfiguredError as exc:
        raise _gateway_misconfigured(exc) from exc
    except WebhookVerificationError as exc:
        logger.error("razorpay_webhook_verification_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        ) from exc

    logger.info(
        "razorpay_webhook_received",
        event_type=event.event_type,
        external_order_id=event.external_order_id,
        external_payment_id=event.external_payment_id,
    )

    try:
        outcome = await service.handle_webhook(event)
    except (AccountNotFoundError, DataIntegrityError) as exc:
        logger.error(
            "razorpay_webhook_processing_failed",
            event_type=event.event_type,
            external_order_id=event.external_order_id,
            error=str(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from exc

    return WebhookAckResponse(status=outcome, event=event.event_type)


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )
