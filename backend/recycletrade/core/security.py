"""
JWT verification and security headers.

Access tokens are issued by the marketplace identity service and signed with
the shared secret; this service only verifies them and reads the subject.
``create_access_token`` exists for service-to-service calls and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from recycletrade.core.config import get_settings
from recycletrade.core.logging import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""
    pass


def create_access_token(
    user_id: UUID,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Token subject
        role: Marketplace role claim
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    return jwt.encode(
        {
            "sub": str(user_id),
            "role": role,
            "exp": expire,
            "iat": now,
            "type": "access",
        },
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        TokenError: If token is invalid, expired, or malformed
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = get_settings()

    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token has expired", error=str(e))
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning("Invalid token", error=str(e), error_type=type(e).__name__)
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e


def get_token_user_id(token: str) -> UUID:
    """
    Extract the user id from an access token.

    Raises:
        TokenError: If the token is invalid or its subject is not a user id
    """
    payload = decode_token(token)

    if payload.get("type", "access") != "access":
        raise TokenError("Not an access token", code="TOKEN_TYPE_INVALID")

    subject = payload.get("sub")
    if subject is None:
        raise TokenError("Token missing 'sub' claim", code="TOKEN_SUBJECT_MISSING")

    try:
        return UUID(subject)
    except ValueError as e:
        raise TokenError(
            "Invalid user ID format",
            code="TOKEN_SUBJECT_INVALID",
            subject=subject,
        ) from e


def get_security_headers() -> Dict[str, str]:
    """Response headers applied to every API response."""
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
    if get_settings().is_production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return headers
