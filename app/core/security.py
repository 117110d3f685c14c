"""Dashboard JWT validation and trigger shared-secret checks."""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.config import settings
from app.core.exceptions import InvalidTokenError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
DEFAULT_ACCESS_TOKEN_TTL = timedelta(minutes=30)


@dataclass(frozen=True, slots=True)
class OrganizationPrincipal:
    """Caller identity resolved from a dashboard access token."""

    user_id: str
    organization_id: str


def create_access_token(
    subject: str,
    organization_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a dashboard access token scoped to one organization."""
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_ACCESS_TOKEN_TTL)
    to_encode: dict[str, Any] = {
        "sub": subject,
        "org": organization_id,
        "exp": expire,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> OrganizationPrincipal:
    """Decode and validate a dashboard access token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Token decode failed", extra={"error": str(e)})
        raise InvalidTokenError(str(e)) from e

    token_type = payload.get("type")
    if token_type != ACCESS_TOKEN_TYPE:
        logger.warning("Token type mismatch", extra={"expected": ACCESS_TOKEN_TYPE, "got": token_type})
        raise InvalidTokenError(f"Expected {ACCESS_TOKEN_TYPE} token, got {token_type}")

    subject = payload.get("sub")
    organization_id = payload.get("org")
    if not subject or not organization_id:
        logger.warning("Token missing subject or organization")
        raise InvalidTokenError("Token missing subject or organization")

    return OrganizationPrincipal(user_id=str(subject), organization_id=str(organization_id))


def verify_cron_secret(authorization: str | None, expected_secret: str) -> bool:
    """Constant-time check of an `Authorization: Bearer <secret>` header."""
    if not authorization:
        return False
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credential:
        return False
    return hmac.compare_digest(
        credential.strip().encode("utf-8"),
        expected_secret.encode("utf-8"),
    )
