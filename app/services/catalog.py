"""
Model and credit package catalog.

Static configuration: which chat models are free, what premium models cost
to unlock, and which credit packages can be bought. Prices are in major
units of the payment currency (INR).
"""

from dataclasses import dataclass

from app.exceptions import InvalidItemError
from app.models.api import ModelId, OrderKind, PurchaseItem

# Always unlocked, zero unlock cost
FREE_MODELS: tuple[str, ...] = (
    ModelId.CHATGPT.value,
    ModelId.DEEPSEEK.value,
    ModelId.GEMINI.value,
)

# Premium model -> one-time unlock price
PREMIUM_MODEL_PRICES: dict[str, int] = {
    ModelId.CLAUDE.value: 299,
    ModelId.PERPLEXITY.value: 249,
    ModelId.GROK.value: 349,
}

ALL_MODELS: tuple[str, ...] = FREE_MODELS + tuple(PREMIUM_MODEL_PRICES)

# Flat cost per provider call
CREDITS_PER_MODEL_CALL = 1


@dataclass(frozen=True)
class CreditPackage:
    """Credit package configuration."""

    package_id: str
    credits: int
    price: int

    def __post_init__(self) -> None:
        """Validate package configuration."""
        if self.credits <= 0:
            raise ValueError(f"Credits must be positive: {self.credits}")
        if self.price <= 0:
            raise ValueError(f"Price must be positive: {self.price}")
        if not self.package_id:
            raise ValueError("Package ID required")


CREDIT_PACKAGES: dict[str, CreditPackage] = {
    "small": CreditPackage(package_id="small", credits=10, price=99),
    "medium": CreditPackage(package_id="medium", credits=50, price=399),
    "large": CreditPackage(package_id="large", credits=100, price=699),
}


@dataclass(frozen=True)
class ResolvedItem:
    """Purchase item validated against the catalog, with its price."""

    kind: OrderKind
    price: int
    package_id: str | None = None
    credits: int | None = None
    model: str | None = None

    @property
    def description(self) -> str:
        """Human-readable label used in receipts and logs."""
        if self.kind == OrderKind.CREDIT_PURCHASE:
            return f"{self.credits} credits ({self.package_id})"
        return f"{self.model} unlock"


def is_free_model(model: str) -> bool:
    """Whether a model is part of the always-unlocked set."""
    return model in FREE_MODELS


def get_package(package_id: str) -> CreditPackage:
    """
    Get credit package configuration by ID.

    Raises:
        InvalidItemError: If package ID not found
    """
    package = CREDIT_PACKAGES.get(package_id)
    if package is None:
        raise InvalidItemError(f"Invalid package type: {package_id}")
    return package


def get_unlock_price(model: str) -> int:
    """
    Get the one-time unlock price of a premium model.

    Raises:
        InvalidItemError: If the model is free or unknown
    """
    price = PREMIUM_MODEL_PRICES.get(model)
    if price is None:
        raise InvalidItemError(f"Invalid model: {model}")
    return price


def resolve_item(item: PurchaseItem) -> ResolvedItem:
    """
    Validate a purchase item against the catalog and price it.

    Raises:
        InvalidItemError: Unknown package or model, or missing field for the kind
    """
    if item.kind == OrderKind.CREDIT_PURCHASE:
        if not item.package:
            raise InvalidItemError("Credit purchase requires a package")
        package = get_package(item.package)
        return ResolvedItem(
            kind=item.kind,
            price=package.price,
            package_id=package.package_id,
            credits=package.credits,
        )

    if not item.model:
        raise InvalidItemError("Model unlock requires a model")
    return ResolvedItem(kind=item.kind, price=get_unlock_price(item.model), model=item.model)
