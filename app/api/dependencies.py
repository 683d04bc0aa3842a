"""
FastAPI Dependencies - Authentication and shared collaborators.

NO DICTIONARIES - All dependencies return typed objects.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError
from app.services.payment_provider import PaymentProvider
from app.services.provider_gateway import ProviderGateway, build_default_gateway
from app.services.razorpay_provider import build_payment_provider
from app.services.session_auth import SessionIdentity, SessionTokenService

logger = get_logger(__name__)

# Bearer token scheme for session auth
bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_session_token_service() -> SessionTokenService:
    """Session token service configured from settings."""
    return SessionTokenService(
        secret=settings.session_jwt_secret,
        expire_hours=settings.session_jwt_expire_hours,
    )


@lru_cache
def get_provider_gateway() -> ProviderGateway:
    """Process-wide provider gateway (bindings hold pooled HTTP clients)."""
    return build_default_gateway(settings)


@lru_cache
def get_payment_provider() -> PaymentProvider | None:
    """Razorpay provider, or None when credentials are not configured."""
    return build_payment_provider(settings)


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token_service: SessionTokenService = Depends(get_session_token_service),
) -> SessionIdentity:
    """
    FastAPI dependency resolving the caller from `Authorization: Bearer <token>`.

    Raises:
        HTTPException 401 if the header is missing or the token is invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return token_service.verify(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
