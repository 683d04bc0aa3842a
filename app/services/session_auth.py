"""
Session token service - HS256 bearer tokens carrying the user's identity.

Tokens are minted by the web frontend after sign-in (or by
scripts/issue_session_token.py in development). The identity is the email
claim; accounts are keyed on it.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from structlog import get_logger

from app.exceptions import AuthenticationError

logger = get_logger(__name__)

ALGORITHM = "HS256"


@dataclass(frozen=True)
class SessionIdentity:
    """Authenticated caller."""

    email: str
    name: str | None = None


class SessionTokenService:
    """Issue and verify session JWTs."""

    def __init__(self, secret: str, expire_hours: int = 24 * 30) -> None:
        self.secret = secret
        self.expire_hours = expire_hours

    def issue(self, email: str, name: str | None = None) -> str:
        """Mint a session token for an identity."""
        if not email:
            raise ValueError("email is required")
        now = datetime.now(UTC)
        payload: dict[str, str | datetime] = {
            "sub": email,
            "email": email,
            "iat": now,
            "exp": now + timedelta(hours=self.expire_hours),
        }
        if name:
            payload["name"] = name
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> SessionIdentity:
        """
        Verify a session token.

        Raises:
            AuthenticationError: Expired, malformed or wrongly signed token,
                or one without an email claim
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.warning("session_token_expired")
            raise AuthenticationError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("session_token_invalid", error=str(exc))
            raise AuthenticationError("Invalid token") from exc

        email = payload.get("email") or payload.get("sub")
        if not isinstance(email, str) or not email:
            raise AuthenticationError("Token missing email claim")

        name = payload.get("name")
        return SessionIdentity(email=email, name=name if isinstance(name, str) else None)
