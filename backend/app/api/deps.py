"""Shared dependencies for API endpoints.

Local mode uses DEFAULT_USER_ID; hosted mode validates a JWT issued by the
identity provider. The ledger trusts the resulting user id verbatim.
"""

import hmac
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import InternalError, UnauthorizedError, ValidationError
from app.schemas.admin import AdminCredentials

# Generic 401 detail, intentionally vague.
# Security: Never include specifics about WHY auth failed (expired, bad sig, etc.).
_UNAUTHORIZED_DETAIL = {
    "code": "UNAUTHORIZED",
    "message": "Authentication required",
}

_BEARER_PREFIX = "bearer "


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=_UNAUTHORIZED_DETAIL,
    )


def _read_token(request: Request) -> str | None:
    """Session cookie first, then Authorization: Bearer."""
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        return header[len(_BEARER_PREFIX) :].strip() or None
    return None


async def get_current_user_id(request: Request) -> str:
    """Get current user ID from auth context.

    Validation steps (hosted mode):
    1. Read JWT from cookie or Bearer header
    2. Decode + verify signature (HS256)
    3. Verify exp, aud, iss claims
    4. Return sub as-is

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        Opaque user id of the authenticated user.

    Raises:
        HTTPException: 401 for any auth failure.
    """
    if not settings.auth_enabled:
        if not settings.default_user_id:
            raise _unauthorized()
        return settings.default_user_id

    token = _read_token(request)
    if not token:
        raise _unauthorized()

    try:
        payload = jwt.decode(
            token,
            settings.auth_secret.get_secret_value(),
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.InvalidTokenError as exc:
        raise _unauthorized() from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise _unauthorized()
    return user_id


def require_admin(credentials: AdminCredentials) -> None:
    """Check admin dashboard credentials carried in a request body.

    The dashboard sends ADMIN_DASHBOARD_PASSWORD joined to a per-request
    nonce with the configured delimiter. Development skips the password
    comparison but still requires a nonce.

    Args:
        credentials: Password and nonce from the request.

    Raises:
        InternalError: If no admin password is configured.
        ValidationError: If the nonce is missing.
        UnauthorizedError: If the password does not match.
    """
    configured = settings.admin_dashboard_password.get_secret_value()
    if not configured:
        raise InternalError("Admin password not configured")

    if not credentials.nonce:
        raise ValidationError("Missing nonce")

    if settings.environment == "development":
        return

    supplied = (
        credentials.password.get_secret_value() if credentials.password else ""
    )
    expected = f"{configured}{settings.admin_password_delimiter}{credentials.nonce}"
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise UnauthorizedError("Invalid admin credentials")


async def require_payment_webhook(
    x_payment_webhook_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Check the shared secret payment provider callbacks carry.

    Raises:
        InternalError: If PAYMENT_WEBHOOK_SECRET is not configured.
        UnauthorizedError: If the header is missing or wrong.
    """
    configured = settings.payment_webhook_secret.get_secret_value()
    if not configured:
        raise InternalError("Payment webhook secret not configured")
    supplied = x_payment_webhook_secret or ""
    if not hmac.compare_digest(supplied.encode(), configured.encode()):
        raise UnauthorizedError("Invalid webhook secret")


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
