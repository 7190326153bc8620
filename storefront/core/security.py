"""
JWT session token utilities.

Login, registration and OAuth live outside this service; it only needs to
mint tokens for trusted callers (tests, internal tooling) and to verify the
session token the storefront forwards in a bearer header or cookie.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""

    pass


def create_access_token(
    subject: str,
    role: str = "customer",
    expires_delta: Optional[timedelta] = None,
    **claims: Any,
) -> str:
    """
    Create a signed JWT access token.

    Args:
        subject: User identifier stored in the ``sub`` claim
        role: User role claim
        expires_delta: Optional custom lifetime
        **claims: Additional claims to encode

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    to_encode: Dict[str, Any] = {
        **claims,
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": expire,
        "type": "access",
    }

    token = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )

    logger.debug(
        "Access token created",
        subject=subject,
        expires_at=expire.isoformat(),
    )

    return token


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string to decode

    Returns:
        Dictionary of decoded token claims

    Raises:
        TokenError: If token is empty, expired, malformed or not an access token
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.info("Token has expired")
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Invalid token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    if payload.get("type") != "access":
        raise TokenError("Unexpected token type", code="TOKEN_TYPE_INVALID")

    return payload
