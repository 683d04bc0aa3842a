"""
Purchase Service - Hosted-order payments for credits and model unlocks.

NO DICTIONARIES - All operations use strongly typed domain models.

Two phases:
A. create_order: price the item, open a gateway order, record it pending
B. verify: prove the payment by signature, then grant the entitlement and
   move the order to success in one transaction

An entitlement is only ever committed together with the order's conditional
pending -> success transition, so a payment is applied at most once whether
it arrives via client verification, webhook or reconciliation.
"""

from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.exceptions import (
    AccountNotFoundError,
    AlreadyOwnedError,
    GatewayMisconfiguredError,
    InvalidItemError,
    InvalidSignatureError,
    OrderAlreadySettledError,
    OrderNotFoundError,
)
from app.models.api import OrderKind, PurchaseItem
from app.models.domain import (
    OrderCreated,
    OrderData,
    OrderIntent,
    VerificationOutcome,
)
from app.observability.metrics import metrics
from app.services.catalog import resolve_item
from app.services.entitlements import EntitlementStore
from app.services.ledger import LedgerStore
from app.services.payment_provider import (
    HostedOrderRequest,
    PaymentProvider,
    WebhookEvent,
)

logger = get_logger(__name__)

MINOR_UNITS_PER_MAJOR = 100

# Webhook events that prove a payment was captured
SETTLEMENT_EVENTS = frozenset({"payment.captured", "order.paid"})
FAILURE_EVENTS = frozenset({"payment.failed"})


def new_receipt() -> str:
    """Short merchant receipt (gateway limit is 40 characters)."""
    return f"rcpt_{uuid4().hex[:24]}"


class PurchaseService:
    """
    Payment protocol handler.

    The service owns the transaction boundary; stores only flush.
    """

    def __init__(
        self,
        session: AsyncSession,
        provider: PaymentProvider | None,
        entitlements: EntitlementStore | None = None,
        ledger: LedgerStore | None = None,
    ) -> None:
        """
        Initialize purchase service.

        Args:
            session: Database session
            provider: Payment gateway, None when credentials are not configured
        """
        self.session = session
        self.provider = provider
        self.entitlements = entitlements or EntitlementStore(session)
        self.ledger = ledger or LedgerStore(session)

    async def create_order(self, identity: str, item: PurchaseItem) -> OrderCreated:
        """
        Open a hosted order for a catalog item and record it pending.

        Raises:
            GatewayMisconfiguredError: Payment credentials missing
            InvalidItemError: Item not in the catalog
            AlreadyOwnedError: Model already unlocked
            PaymentProviderError: Gateway call failed
        """
        provider = self._require_provider()
        resolved = resolve_item(item)

        account = await self.entitlements.get_or_create(identity)
        if resolved.kind == OrderKind.MODEL_UNLOCK and resolved.model:
            if account.has_unlocked(resolved.model):
                raise AlreadyOwnedError(resolved.model)

        currency = settings.payment_currency
        hosted = await provider.create_order(
            HostedOrderRequest(
                amount_minor=resolved.price * MINOR_UNITS_PER_MAJOR,
                currency=currency,
                receipt=new_receipt(),
                notes_identity=identity,
                notes_kind=resolved.kind.value,
                notes_item=resolved.package_id or resolved.model or "",
            )
        )

        try:
            await self.ledger.create(
                OrderIntent(
                    owner=identity,
                    kind=resolved.kind,
                    amount=resolved.price,
                    currency=currency,
                    external_order_id=hosted.order_id,
                    package_id=resolved.package_id,
                    credits_granted=resolved.credits,
                    model=resolved.model,
                )
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        metrics.orders_created_total.labels(order_kind=resolved.kind.value).inc()
        logger.info(
            "purchase_order_created",
            identity=identity,
            external_order_id=hosted.order_id,
            item=resolved.description,
            amount=resolved.price,
        )
        return OrderCreated(
            external_order_id=hosted.order_id,
            amount_minor=hosted.amount_minor,
            currency=hosted.currency,
            public_key=provider.public_key,
        )

    async def verify(
        self,
        identity: str,
        external_order_id: str,
        external_payment_id: str,
        signature: str,
        item: PurchaseItem | None = None,
    ) -> VerificationOutcome:
        """
        Verify a checkout-reported payment and apply its entitlement.

        Raises:
            GatewayMisconfiguredError: Payment credentials missing
            OrderNotFoundError: No such order for this identity
            InvalidItemError: Supplied item disagrees with the stored order
            InvalidSignatureError: Signature mismatch (order marked failed)
            AccountNotFoundError: Account vanished
            OrderAlreadySettledError: Order no longer pending
            AlreadyOwnedError: Model already unlocked
        """
        provider = self._require_provider()

        order = await self.ledger.get_by_external_id(external_order_id)
        if order is None or order.owner != identity:
            raise OrderNotFoundError(external_order_id)

        if item is not None:
            self._check_item_matches(order, item)

        signature_valid = provider.verify_payment_signature(
            external_order_id, external_payment_id, signature
        )
        if not signature_valid:
            failed = await self.ledger.mark_failed(
                external_order_id,
                external_payment_id=external_payment_id,
                external_signature=signature,
            )
            await self.session.commit()
            if failed:
                metrics.record_order_settled(order.kind.value, "failed")
            logger.warning(
                "payment_signature_invalid",
                identity=identity,
                external_order_id=external_order_id,
                external_payment_id=external_payment_id,
                signature=signature,
                order_marked_failed=failed,
            )
            raise InvalidSignatureError(external_order_id)

        return await self._settle(order, external_payment_id, signature)

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify a raw webhook delivery.

        Raises:
            GatewayMisconfiguredError: Gateway or webhook secret not configured
            WebhookVerificationError: Signature mismatch or malformed payload
        """
        return self._require_provider().verify_webhook(payload, signature)

    async def handle_webhook(self, event: WebhookEvent) -> str:
        """
        Apply a verified webhook event.

        Returns:
            Processing status: settled, failed, already_settled, already_owned
            or ignored
        """
        if event.event_type not in SETTLEMENT_EVENTS | FAILURE_EVENTS:
            logger.info("webhook_event_ignored", event_type=event.event_type)
            return "ignored"

        if not event.external_order_id:
            logger.warning("webhook_event_without_order", event_type=event.event_type)
            return "ignored"

        order = await self.ledger.get_by_external_id(event.external_order_id)
        if order is None:
            logger.warning(
                "webhook_unknown_order",
                event_type=event.event_type,
                external_order_id=event.external_order_id,
            )
            return "ignored"

        if event.event_type in FAILURE_EVENTS:
            failed = await self.ledger.mark_failed(
                order.external_order_id, external_payment_id=event.external_payment_id
            )
            await self.session.commit()
            if not failed:
                return "already_settled"
            metrics.record_order_settled(order.kind.value, "failed")
            logger.info("webhook_order_failed", external_order_id=order.external_order_id)
            return "failed"

        if not event.external_payment_id:
            logger.warning("webhook_settlement_without_payment", event_type=event.event_type)
            return "ignored"

        try:
            await self._settle(order, event.external_payment_id, None)
        except OrderAlreadySettledError:
            return "already_settled"
        except AlreadyOwnedError:
            logger.warning(
                "webhook_payment_for_owned_model",
                external_order_id=order.external_order_id,
                model=order.model,
            )
            return "already_owned"
        return "settled"

    async def reconcile_order(self, order: OrderData) -> str:
        """
        Settle a pending order whose payment was captured but never verified.

        Returns:
            settled, pending (no captured payment yet), already_settled or
            already_owned

        Raises:
            PaymentProviderError: Gateway call failed
        """
        provider = self._require_provider()
        payments = await provider.fetch_order_payments(order.external_order_id)
        captured = next((p for p in payments if p.is_captured), None)
        if captured is None:
            return "pending"

        try:
            await self._settle(order, captured.payment_id, None)
        except OrderAlreadySettledError:
            return "already_settled"
        except AlreadyOwnedError:
            return "already_owned"
        logger.info(
            "order_reconciled",
            external_order_id=order.external_order_id,
            external_payment_id=captured.payment_id,
        )
        return "settled"

    async def payment_history(self, identity: str, limit: int | None = None) -> list[OrderData]:
        """Most recent orders first."""
        return await self.ledger.list_for_owner(
            identity, limit=limit or settings.payment_history_page_size
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _require_provider(self) -> PaymentProvider:
        if self.provider is None:
            raise GatewayMisconfiguredError()
        return self.provider

    def _check_item_matches(self, order: OrderData, item: PurchaseItem) -> None:
        """Reject a client-echoed item that differs from what was ordered."""
        resolved = resolve_item(item)
        if resolved.kind != order.kind:
            raise InvalidItemError("Item does not match order")
        if order.kind == OrderKind.CREDIT_PURCHASE and resolved.package_id != order.package_id:
            raise InvalidItemError("Item does not match order")
        if order.kind == OrderKind.MODEL_UNLOCK and resolved.model != order.model:
            raise InvalidItemError("Item does not match order")

    async def _settle(
        self,
        order: OrderData,
        external_payment_id: str,
        signature: str | None,
    ) -> VerificationOutcome:
        """Apply the order's entitlement and mark it success, atomically."""
        account = await self.entitlements.get(order.owner)
        if account is None:
            raise AccountNotFoundError(order.owner)

        if not order.is_pending:
            raise OrderAlreadySettledError(order.external_order_id, order.status.value)

        if order.kind == OrderKind.MODEL_UNLOCK and order.model:
            if account.has_unlocked(order.model):
                raise AlreadyOwnedError(order.model)

        try:
            message = await self._apply_entitlement(order)
            transitioned = await self.ledger.mark_success(
                order.external_order_id, external_payment_id, signature
            )
            if transitioned:
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if not transitioned:
            # Another verifier settled the order first; discard our grant
            await self.session.rollback()
            raise OrderAlreadySettledError(order.external_order_id, "settled")

        refreshed = await self.entitlements.get(order.owner)
        if refreshed is None:
            raise AccountNotFoundError(order.owner)

        metrics.record_order_settled(order.kind.value, "success")
        if order.kind == OrderKind.CREDIT_PURCHASE:
            metrics.credits_added_total.inc(order.credits_granted or 0)
        else:
            metrics.models_unlocked_total.labels(model=order.model or "").inc()
        logger.info(
            "purchase_settled",
            identity=order.owner,
            external_order_id=order.external_order_id,
            external_payment_id=external_payment_id,
            kind=order.kind.value,
            credits=refreshed.credits,
        )
        return VerificationOutcome(account=refreshed, message=message)

    async def _apply_entitlement(self, order: OrderData) -> str:
        if order.kind == OrderKind.CREDIT_PURCHASE:
            credits = order.credits_granted or 0
            await self.entitlements.credit(order.owner, credits)
            return f"Successfully added {credits} credits!"

        model = order.model or ""
        await self.entitlements.grant_unlock(order.owner, model)
        return f"Successfully unlocked {model}!"
