"""
Payment Provider Protocol - Hosted-order gateway interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class HostedOrderRequest:
    """
    Request to open a hosted order with the gateway.

    Notes fields are echoed back by the gateway on the order and in webhooks.
    """

    amount_minor: int
    currency: str
    receipt: str
    notes_identity: str
    notes_kind: str
    notes_item: str

    def __post_init__(self) -> None:
        """Validate gateway constraints."""
        if self.amount_minor <= 0:
            raise ValueError(f"Order amount must be positive: {self.amount_minor}")
        if len(self.receipt) > 40:
            raise ValueError(f"Receipt exceeds 40 characters: {self.receipt}")


@dataclass(frozen=True)
class HostedOrder:
    """Order as created on the gateway."""

    order_id: str
    amount_minor: int
    currency: str
    status: str


@dataclass(frozen=True)
class GatewayPayment:
    """A payment attempt recorded by the gateway against an order."""

    payment_id: str
    order_id: str
    status: str  # created, authorized, captured, refunded, failed
    amount_minor: int | None

    @property
    def is_captured(self) -> bool:
        return self.status == "captured"


@dataclass(frozen=True)
class WebhookEvent:
    """
    Verified gateway webhook notification.

    Identifiers are None when the event carries no payment or order entity.
    """

    event_type: str
    external_order_id: str | None
    external_payment_id: str | None
    payment_status: str | None


class PaymentProvider(Protocol):
    """
    Hosted-order payment provider protocol.

    Orders are created server-side, paid in the gateway's checkout, then
    proven back to the server with an HMAC signature.
    """

    @property
    def public_key(self) -> str:
        """Client-safe key id handed to the checkout widget."""
        ...

    async def create_order(self, request: HostedOrderRequest) -> HostedOrder:
        """
        Create a hosted order.

        Raises:
            PaymentProviderError: If the gateway call fails
        """
        ...

    def verify_payment_signature(
        self, external_order_id: str, external_payment_id: str, signature: str
    ) -> bool:
        """Check a checkout-reported signature in constant time."""
        ...

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse a webhook delivery.

        Raises:
            GatewayMisconfiguredError: Webhook secret not configured
            WebhookVerificationError: Signature mismatch or malformed payload
        """
        ...

    async def fetch_order_payments(self, external_order_id: str) -> list[GatewayPayment]:
        """
        List payments the gateway holds for an order.

        Raises:
            PaymentProviderError: If the gateway call fails
        """
        ...
