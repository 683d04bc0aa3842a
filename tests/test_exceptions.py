"""
Tests for the exception hierarchy.
"""

import pytest

from app.exceptions import (
    AccountNotFoundError,
    AlreadyOwnedError,
    AuthenticationError,
    ConfluxError,
    DataIntegrityError,
    GatewayMisconfiguredError,
    InsufficientCreditsError,
    InvalidInputError,
    InvalidItemError,
    InvalidSignatureError,
    LockedModelError,
    OrderAlreadySettledError,
    OrderNotFoundError,
    PaymentProviderError,
    SessionNotFoundError,
    UpstreamProviderError,
    WebhookVerificationError,
)


class TestExceptionAttributes:
    """Every exception carries typed attributes and a readable message."""

    def test_insufficient_credits(self):
        exc = InsufficientCreditsError(balance=2, required=3)
        assert exc.balance == 2
        assert exc.required == 3
        assert str(exc) == "Insufficient credits. Balance: 2, Required: 3"

    def test_locked_models(self):
        exc = LockedModelError(["Claude", "Grok"])
        assert exc.locked_models == ["Claude", "Grok"]
        assert str(exc) == "You need to unlock these models first: Claude, Grok"

    def test_invalid_input_keeps_message(self):
        exc = InvalidInputError("Prompt is required")
        assert exc.message == "Prompt is required"
        assert "Invalid input" in str(exc)

    def test_invalid_item_is_invalid_input(self):
        assert isinstance(InvalidItemError("bad"), InvalidInputError)

    def test_order_already_settled(self):
        exc = OrderAlreadySettledError("order_1", "success")
        assert exc.external_order_id == "order_1"
        assert exc.status == "success"
        assert str(exc) == "Order order_1 already success"

    def test_upstream_provider_error(self):
        exc = UpstreamProviderError("DeepSeek", "rate limited")
        assert exc.provider == "DeepSeek"
        assert exc.message == "rate limited"

    def test_gateway_misconfigured_default_message(self):
        assert GatewayMisconfiguredError().message == "Payment gateway not configured"

    def test_identifiers(self):
        assert AccountNotFoundError("a@b.c").identity == "a@b.c"
        assert OrderNotFoundError("order_2").external_order_id == "order_2"
        assert SessionNotFoundError("session_x").session_id == "session_x"
        assert InvalidSignatureError("order_3").external_order_id == "order_3"
        assert AlreadyOwnedError("Claude").model == "Claude"


@pytest.mark.parametrize(
    "exc",
    [
        InvalidInputError("x"),
        InsufficientCreditsError(0, 1),
        LockedModelError(["Claude"]),
        AlreadyOwnedError("Claude"),
        OrderAlreadySettledError("o", "failed"),
        AccountNotFoundError("a"),
        OrderNotFoundError("o"),
        SessionNotFoundError("s"),
        InvalidSignatureError("o"),
        UpstreamProviderError("p", "m"),
        GatewayMisconfiguredError(),
        PaymentProviderError("m"),
        WebhookVerificationError("m"),
        AuthenticationError("m"),
        DataIntegrityError("m"),
    ],
)
def test_all_derive_from_base(exc):
    assert isinstance(exc, ConfluxError)
