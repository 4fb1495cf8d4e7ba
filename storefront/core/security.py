"""
Bearer token handling.

Tokens are issued by the authentication service; this module only needs to
verify them and, for tooling and tests, mint tokens with the same claims.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt

from storefront.core.config import get_settings
from storefront.core.exceptions import AuthenticationError
from storefront.core.logging import get_logger

logger = get_logger(__name__)


def create_access_token(
    subject: UUID | str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: User id placed in the ``sub`` claim
        role: Role name placed in the ``role`` claim
        expires_delta: Lifetime, defaults to the configured expiry

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    claims = {
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify a token signature and expiry and return its claims.

    Raises:
        AuthenticationError: Token is malformed, expired or not an access token
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.info("Rejected expired token")
        raise AuthenticationError("Token has expired") from e
    except JWTError as e:
        logger.warning("Rejected invalid token", error=str(e))
        raise AuthenticationError("Could not validate credentials") from e

    if payload.get("type", "access") != "access":
        raise AuthenticationError("Could not validate credentials")

    return payload


def user_id_from_token(token: str) -> UUID:
    """Extract the user id from a verified token."""
    payload = decode_access_token(token)
    subject = payload.get("sub")
    try:
        return UUID(subject)
    except (TypeError, ValueError) as e:
        logger.warning("Token subject is not a user id", subject=subject)
        raise AuthenticationError("Could not validate credentials") from e
