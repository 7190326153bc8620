"""
FastAPI dependencies for authentication and authorization.

The session JWT is read from the ``Authorization: Bearer`` header or, for
browser requests, from the session cookie. Failures are raised before any
business logic runs: 401 for a missing or invalid token, 403 for a
non-admin on admin routes.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.logging import get_logger, set_user_id
from storefront.core.security import TokenError, decode_token
from storefront.database.connection import get_db
from storefront.database.models.user import User
from storefront.services.notifications.service import (
    NotificationService,
    get_notification_service,
)
from storefront.services.orders.service import OrderService
from storefront.services.payments.service import PaymentService
from storefront.services.returns.service import ReturnService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def _credentials_exception(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[str]:
    """Bearer token if present, otherwise the session cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().auth_cookie_name)


async def get_current_user(
    token: Annotated[Optional[str], Depends(get_token)],
    db: DatabaseSession,
) -> User:
    """
    Validate the session token and load the user.

    Raises:
        HTTPException: 401 if the token is missing or invalid or the user
            does not exist, 403 if the account is inactive
    """
    if not token:
        logger.info("Authentication failed: No credentials provided")
        raise _credentials_exception()

    try:
        payload = decode_token(token)
    except TokenError as e:
        logger.info("Authentication failed", code=e.code)
        raise _credentials_exception("Invalid or expired token") from e

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        logger.warning("Authentication failed: Invalid user ID format")
        raise _credentials_exception("Invalid or expired token") from e

    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(user_id))
        raise _credentials_exception("Invalid or expired token")

    if not user.is_active:
        logger.warning("Authentication failed: User account is inactive", user_id=str(user.id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    set_user_id(str(user.id))
    return user


async def get_current_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Require an admin user.

    Raises:
        HTTPException: 403 if the user is not an admin
    """
    if not user.is_admin:
        logger.warning(
            "Authorization failed: admin role required",
            user_id=str(user.id),
            role=user.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]


def get_notifications() -> NotificationService:
    return get_notification_service()


def get_order_service(
    db: DatabaseSession,
    notifications: Annotated[NotificationService, Depends(get_notifications)],
) -> OrderService:
    """Order service bound to the request session."""
    return OrderService(db, notification_service=notifications)


def get_payment_service(db: DatabaseSession) -> PaymentService:
    """Payment service bound to the request session."""
    return PaymentService(db)


def get_return_service(db: DatabaseSession) -> ReturnService:
    """Return service bound to the request session."""
    return ReturnService(db)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
ReturnServiceDep = Annotated[ReturnService, Depends(get_return_service)]
