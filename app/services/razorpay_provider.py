"""
Razorpay Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.

Signatures are checked by the SDK's utility:
- Checkout: HMAC-SHA256(key_secret, "<order_id>|<payment_id>"), hex
- Webhook:  HMAC-SHA256(webhook_secret, raw request body), hex, sent in
  the X-Razorpay-Signature header
Anything that is not a lowercase SHA-256 hex digest is a mismatch.
"""

import asyncio
import hashlib
import hmac
import json
import re

import razorpay
from razorpay.errors import (
    BadRequestError,
    GatewayError,
    ServerError,
    SignatureVerificationError,
)
from structlog import get_logger

from app.config import Settings
from app.exceptions import (
    GatewayMisconfiguredError,
    PaymentProviderError,
    WebhookVerificationError,
)
from app.services.payment_provider import (
    GatewayPayment,
    HostedOrder,
    HostedOrderRequest,
    WebhookEvent,
)

logger = get_logger(__name__)

_GATEWAY_ERRORS = (BadRequestError, GatewayError, ServerError, OSError)

# Shape of a genuine signature: lowercase SHA-256 hexdigest
_SIGNATURE_PATTERN = re.compile(r"[0-9a-f]{64}")


def compute_payment_signature(
    key_secret: str, external_order_id: str, external_payment_id: str
) -> str:
    """Signature the checkout returns for a genuine payment."""
    message = f"{external_order_id}|{external_payment_id}".encode()
    return hmac.new(key_secret.encode(), message, hashlib.sha256).hexdigest()


def compute_webhook_signature(webhook_secret: str, payload: bytes) -> str:
    """Signature Razorpay attaches to a webhook delivery."""
    return hmac.new(webhook_secret.encode(), payload, hashlib.sha256).hexdigest()


class RazorpayProvider:
    """
    Razorpay payment provider implementation.

    Implements the PaymentProvider protocol. The SDK is synchronous, so its
    calls run in a worker thread.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        client: razorpay.Client | None = None,
    ) -> None:
        """
        Initialize Razorpay provider.

        Args:
            key_id: Public key id (safe to hand to the checkout)
            key_secret: API secret, also the checkout signature key
            webhook_secret: Webhook signing secret (empty = webhooks disabled)
            client: Preconstructed SDK client (tests)
        """
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    @property
    def public_key(self) -> str:
        return self.key_id

    async def create_order(self, request: HostedOrderRequest) -> HostedOrder:
        """
        Create a Razorpay order.

        Raises:
            PaymentProviderError: If the Razorpay API call fails
        """
        data = {
            "amount": request.amount_minor,
            "currency": request.currency,
            "receipt": request.receipt,
            "notes": {
                "identity": request.notes_identity,
                "kind": request.notes_kind,
                "item": request.notes_item,
            },
        }

        logger.info(
            "creating_razorpay_order",
            amount_minor=request.amount_minor,
            currency=request.currency,
            receipt=request.receipt,
        )
        try:
            order = await asyncio.to_thread(self.client.order.create, data=data)
        except _GATEWAY_ERRORS as exc:
            logger.error(
                "razorpay_order_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Razorpay order creation failed: {exc}") from exc

        try:
            hosted = HostedOrder(
                order_id=order["id"],
                amount_minor=int(order.get("amount", request.amount_minor)),
                currency=order.get("currency", request.currency),
                status=order.get("status", "created"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PaymentProviderError(f"Unexpected Razorpay order response: {exc}") from exc

        logger.info("razorpay_order_created", external_order_id=hosted.order_id)
        return hosted

    def verify_payment_signature(
        self, external_order_id: str, external_payment_id: str, signature: str
    ) -> bool:
        """Check a checkout-reported signature against the key secret."""
        if not _SIGNATURE_PATTERN.fullmatch(signature):
            return False
        try:
            return bool(
                self.client.utility.verify_payment_signature(
                    {
                        "razorpay_order_id": external_order_id,
                        "razorpay_payment_id": external_payment_id,
                        "razorpay_signature": signature,
                    }
                )
            )
        except SignatureVerificationError:
            return False

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse a webhook delivery.

        Args:
            payload: Raw request body
            signature: X-Razorpay-Signature header value

        Raises:
            GatewayMisconfiguredError: Webhook secret not configured
            WebhookVerificationError: Signature mismatch or malformed payload
        """
        if not self.webhook_secret:
            raise GatewayMisconfiguredError("Webhook secret not configured")

        if not _SIGNATURE_PATTERN.fullmatch(signature):
            logger.warning("razorpay_webhook_signature_invalid", reason="malformed")
            raise WebhookVerificationError("Invalid signature")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookVerificationError("Webhook payload is not UTF-8") from exc

        try:
            self.client.utility.verify_webhook_signature(text, signature, self.webhook_secret)
        except SignatureVerificationError as exc:
            logger.warning("razorpay_webhook_signature_invalid", reason="mismatch")
            raise WebhookVerificationError("Invalid signature") from exc

        try:
            body = json.loads(text)
            event_type = body["event"]
        except (ValueError, KeyError, TypeError) as exc:
            raise WebhookVerificationError(f"Malformed webhook payload: {exc}") from exc

        entities = body.get("payload") or {}
        payment = (entities.get("payment") or {}).get("entity") or {}
        order = (entities.get("order") or {}).get("entity") or {}

        return WebhookEvent(
            event_type=event_type,
            external_order_id=payment.get("order_id") or order.get("id"),
            external_payment_id=payment.get("id"),
            payment_status=payment.get("status"),
        )

    async def fetch_order_payments(self, external_order_id: str) -> list[GatewayPayment]:
        """
        List payments Razorpay holds for an order.

        Raises:
            PaymentProviderError: If the Razorpay API call fails
        """
        try:
            response = await asyncio.to_thread(self.client.order.payments, external_order_id)
        except _GATEWAY_ERRORS as exc:
            logger.error(
                "razorpay_order_payments_failed",
                external_order_id=external_order_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to fetch order payments: {exc}") from exc

        return [
            GatewayPayment(
                payment_id=item["id"],
                order_id=item.get("order_id", external_order_id),
                status=item.get("status", "created"),
                amount_minor=item.get("amount"),
            )
            for item in response.get("items", [])
        ]


def build_payment_provider(settings: Settings) -> RazorpayProvider | None:
    """Razorpay provider from settings, or None when credentials are unusable."""
    if not settings.razorpay_configured:
        return None
    return RazorpayProvider(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        webhook_secret=settings.razorpay_webhook_secret,
    )
