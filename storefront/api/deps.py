"""
FastAPI dependencies for authentication, database sessions and services.

Failures raise the shared exception types; the application level handler
turns them into responses.
"""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    PersistenceError,
)
from storefront.core.logging import get_logger, set_user_id
from storefront.core.security import user_id_from_token
from storefront.database.connection import Database, get_database, get_db
from storefront.database.models.user import User
from storefront.services.notifications.service import NotificationService
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.service import OrderService
from storefront.services.orders.state_machine import OrderStateMachine
from storefront.services.payments.repository import PaymentRepository
from storefront.services.payments.service import PaymentService
from storefront.services.payments.stripe_client import get_stripe_client

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate the bearer token and load the user it names.

    Raises:
        AuthenticationError: Missing or invalid token, or unknown user
        AuthorizationError: User account is inactive
    """
    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise AuthenticationError("Not authenticated")

    user_id = user_id_from_token(credentials.credentials)

    try:
        user = await db.get(User, user_id)
    except SQLAlchemyError as e:
        logger.error(
            "persistence_error",
            operation="load_user",
            user_id=str(user_id),
            error=str(e),
        )
        raise PersistenceError("Failed to load user", user_id=str(user_id)) from e

    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(user_id))
        raise AuthenticationError("Could not validate credentials")

    if not user.is_active:
        logger.warning("Authentication failed: User account is inactive", user_id=str(user.id))
        raise AuthorizationError("Inactive user account")

    set_user_id(str(user.id))
    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency for endpoints requiring the admin role."""
    if not current_user.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=str(current_user.id),
            user_role=current_user.role.value,
        )
        raise AuthorizationError("Admin access required")
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_order_service(
    db: DatabaseSession,
    database: Annotated[Database, Depends(get_database)],
) -> OrderService:
    settings = get_settings()
    return OrderService(
        repository=OrderRepository(db),
        state_machine=OrderStateMachine(settings.admin_status_policy),
        notification_service=NotificationService(database.session_factory),
        total_tolerance=settings.order_total_tolerance,
    )


def get_payment_service(
    db: DatabaseSession,
    database: Annotated[Database, Depends(get_database)],
) -> PaymentService:
    return PaymentService(
        repository=PaymentRepository(db),
        stripe_client=get_stripe_client(),
        notification_service=NotificationService(database.session_factory),
    )


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
