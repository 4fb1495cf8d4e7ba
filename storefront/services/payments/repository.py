"""
Payment record data access.

Like the order repository this one only flushes. The payment service holds a
row lock on the order for the duration of a broker call and commits once at
the end, so the payment record and the order's payment mirror always change
together.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import PersistenceError
from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.database.models.payment import PaymentRecord, PaymentStatus

logger = get_logger(__name__)


class PaymentRepositoryError(PersistenceError):
    """Base exception for payment repository errors."""


class PaymentRepository:
    """Async data access for payment records and the order payment mirror."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _flush(self, operation: str, order_id: uuid.UUID) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "persistence_error",
                operation=operation,
                order_id=str(order_id),
                error=str(e),
            )
            raise PaymentRepositoryError(
                "Failed to update payment record",
                order_id=str(order_id),
                operation=operation,
            ) from e

    async def lock_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Load an order and lock its row until the transaction ends.

        Concurrent broker calls for the same order queue up behind the lock.
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .with_for_update(of=Order)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="lock_order",
                order_id=str(order_id),
                error=str(e),
            )
            raise PaymentRepositoryError(
                "Failed to load order", order_id=str(order_id)
            ) from e
        return result.scalar_one_or_none()

    async def get_payment_for_order(self, order: Order) -> Optional[PaymentRecord]:
        return await order.awaitable_attrs.payment

    async def create_payment(
        self,
        order: Order,
        payment_intent_id: str,
        client_secret: Optional[str],
    ) -> PaymentRecord:
        record = PaymentRecord(
            order_id=order.id,
            payment_status=PaymentStatus.PENDING.value,
            payment_intent_id=payment_intent_id,
            client_secret=client_secret,
        )
        order.payment = record
        await self._flush("create_payment", order.id)
        return record

    async def attach_handle(
        self,
        record: PaymentRecord,
        payment_intent_id: str,
        client_secret: Optional[str],
    ) -> PaymentRecord:
        record.payment_intent_id = payment_intent_id
        record.client_secret = client_secret
        record.payment_status = PaymentStatus.PENDING.value
        await self._flush("attach_handle", record.order_id)
        return record

    async def supersede_payment(self, order: Order, record: PaymentRecord) -> None:
        """
        Delete a payment record whose intent can no longer be paid.

        The order's attempt counter moves forward so the next intent gets a
        fresh idempotency key.
        """
        order.payment = None
        order.payment_attempt = (order.payment_attempt or 0) + 1
        order.payment_status = PaymentStatus.PENDING.value
        await self._flush("supersede_payment", order.id)

        logger.info(
            "Payment record superseded",
            order_id=str(order.id),
            payment_intent_id=record.payment_intent_id,
            payment_attempt=order.payment_attempt,
        )

    async def mark_paid(
        self,
        order: Order,
        record: Optional[PaymentRecord],
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """
        Record a successful payment on both the record and the order.

        ``paid_at`` is only set the first time.

        Returns:
            True if anything changed
        """
        changed = False
        if record is not None and record.payment_status != PaymentStatus.PAID.value:
            record.payment_status = PaymentStatus.PAID.value
            changed = True
        if order.payment_status != PaymentStatus.PAID.value:
            order.payment_status = PaymentStatus.PAID.value
            changed = True
        if order.paid_at is None:
            order.paid_at = paid_at or datetime.now(timezone.utc)
            changed = True

        if changed:
            await self._flush("mark_paid", order.id)
        return changed

    async def set_status(
        self,
        order: Order,
        record: Optional[PaymentRecord],
        status: PaymentStatus,
    ) -> bool:
        """Set a non-paid status on both the record and the order."""
        changed = False
        if record is not None and record.payment_status != status.value:
            record.payment_status = status.value
            changed = True
        if order.payment_status != status.value:
            order.payment_status = status.value
            changed = True
        if changed:
            await self._flush("set_payment_status", order.id)
        return changed

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("persistence_error", operation="commit", error=str(e))
            raise PaymentRepositoryError("Failed to commit payment changes") from e

    async def rollback(self) -> None:
        await self.session.rollback()
