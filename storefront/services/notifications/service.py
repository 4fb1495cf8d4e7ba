"""
In-app notification sink.

Order and payment services call this after their own transaction has
committed. Notifications are written in a separate session, so a failure here
can never undo or block an order change; callers log the error and move on.
"""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.logging import get_logger
from storefront.database.models.notification import Notification, NotificationType
from storefront.database.models.order import Order, OrderStatus

logger = get_logger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class NotificationService:
    """Writes notification rows for order lifecycle events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def send_notification(
        self,
        user_id: UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[UUID] = None,
        related_type: Optional[str] = None,
    ) -> None:
        """
        Persist one notification.

        Raises:
            NotificationServiceError: The row could not be written
        """
        try:
            async with self.session_factory() as session:
                session.add(
                    Notification(
                        user_id=user_id,
                        type=notification_type.value,
                        title=title,
                        message=message,
                        related_id=related_id,
                        related_type=related_type,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise NotificationServiceError(
                "Failed to store notification",
                user_id=str(user_id),
                notification_type=notification_type.value,
                error=str(e),
            ) from e

        logger.debug(
            "Notification stored",
            user_id=str(user_id),
            notification_type=notification_type.value,
            related_id=str(related_id) if related_id else None,
        )

    async def order_placed(self, order: Order) -> None:
        await self.send_notification(
            order.buyer_id,
            NotificationType.ORDER_PLACED,
            title="Order placed",
            message=(
                f"Your order #{str(order.id)[:8]} for ${order.total_price} "
                f"has been placed."
            ),
            related_id=order.id,
            related_type="order",
        )

    async def order_status_changed(
        self, buyer_id: UUID, order_id: UUID, status: OrderStatus
    ) -> None:
        if status == OrderStatus.CANCELLED:
            notification_type = NotificationType.ORDER_CANCELLED
            title = "Order cancelled"
        else:
            notification_type = NotificationType.ORDER_STATUS
            title = "Order status updated"

        await self.send_notification(
            buyer_id,
            notification_type,
            title=title,
            message=f"Your order #{str(order_id)[:8]} is now {status.value}.",
            related_id=order_id,
            related_type="order",
        )

    async def payment_received(self, buyer_id: UUID, order_id: UUID) -> None:
        await self.send_notification(
            buyer_id,
            NotificationType.PAYMENT_RECEIVED,
            title="Payment received",
            message=f"We received your payment for order #{str(order_id)[:8]}.",
            related_id=order_id,
            related_type="order",
        )
