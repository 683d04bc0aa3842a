"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class ConfluxError(Exception):
    """Base exception for all Conflux errors."""

    pass


class InvalidInputError(ConfluxError):
    """Raised when a request payload is malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid input: {message}")


class InvalidItemError(InvalidInputError):
    """Raised when a purchase item is not in the catalog."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InsufficientCreditsError(ConfluxError):
    """Raised when account has insufficient credits for a request."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")


class LockedModelError(ConfluxError):
    """Raised when a chat request names models the account has not unlocked."""

    def __init__(self, locked_models: list[str]) -> None:
        self.locked_models = locked_models
        super().__init__(f"You need to unlock these models first: {', '.join(locked_models)}")


class AlreadyOwnedError(ConfluxError):
    """Raised when a model is already unlocked for the account."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"Model already unlocked: {model}")


class OrderAlreadySettledError(ConfluxError):
    """Raised when verification targets an order that is no longer pending."""

    def __init__(self, external_order_id: str, status: str) -> None:
        self.external_order_id = external_order_id
        self.status = status
        super().__init__(f"Order {external_order_id} already {status}")


class AccountNotFoundError(ConfluxError):
    """Raised when account doesn't exist."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"Account not found: {identity}")


class OrderNotFoundError(ConfluxError):
    """Raised when no order with the given id belongs to the caller."""

    def __init__(self, external_order_id: str) -> None:
        self.external_order_id = external_order_id
        super().__init__(f"Order not found: {external_order_id}")


class SessionNotFoundError(ConfluxError):
    """Raised when a chat session has no turns for the caller."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Chat session not found: {session_id}")


class InvalidSignatureError(ConfluxError):
    """Raised when a client-reported payment signature does not match."""

    def __init__(self, external_order_id: str) -> None:
        self.external_order_id = external_order_id
        super().__init__(f"Invalid payment signature for order {external_order_id}")


class UpstreamProviderError(ConfluxError):
    """
    Raised by an LLM provider binding when its upstream call fails.

    Never crosses the provider gateway: the gateway renders it as content.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"{provider} provider error: {message}")


class GatewayMisconfiguredError(ConfluxError):
    """Raised when payment gateway credentials are missing."""

    def __init__(self, message: str = "Payment gateway not configured") -> None:
        self.message = message
        super().__init__(message)


class PaymentProviderError(ConfluxError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class WebhookVerificationError(ConfluxError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class AuthenticationError(ConfluxError):
    """Raised when the session token is missing, expired or invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class DataIntegrityError(ConfluxError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")
