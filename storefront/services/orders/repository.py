"""
Order data access repository.

The repository flushes but never commits: the order service owns the unit of
work and commits once, so an order, its lines, its shipping snapshot and its
initial payment record become visible together or not at all.
"""

import uuid
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import NotFoundError, PersistenceError
from storefront.core.logging import get_logger
from storefront.database.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    ShippingSnapshot,
    VisibilityScope,
)
from storefront.database.models.payment import PaymentRecord, PaymentStatus
from storefront.database.models.product import Product
from storefront.services.orders.pricing import PricedOrder

logger = get_logger(__name__)

_HIDDEN_COLUMN = {
    VisibilityScope.BUYER: Order.hidden_from_buyer,
    VisibilityScope.ADMIN: Order.hidden_from_admin,
}


class OrderRepositoryError(PersistenceError):
    """Base exception for order repository errors."""


class OrderNotFoundError(NotFoundError):
    """Raised when an order does not exist or is not visible to the caller."""


class OrderCreationError(OrderRepositoryError):
    """Raised when order creation fails."""


class OrderUpdateError(OrderRepositoryError):
    """Raised when an order update fails."""


class OrderRepository:
    """Async data access for orders and their dependent records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _order_query(self):
        return (
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.shipping),
                selectinload(Order.payment),
            )
            .execution_options(populate_existing=True)
        )

    async def get_products(self, product_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Product]:
        """
        Load catalog entries by id.

        Returns:
            Mapping of product id to product for every id that exists
        """
        ids = set(product_ids)
        if not ids:
            return {}

        try:
            result = await self.session.execute(
                select(Product).where(Product.id.in_(ids))
            )
        except SQLAlchemyError as e:
            logger.error("persistence_error", operation="get_products", error=str(e))
            raise OrderRepositoryError("Failed to load products", error=str(e)) from e

        return {product.id: product for product in result.scalars().all()}

    async def create_order_with_items(
        self,
        buyer_id: uuid.UUID,
        priced: PricedOrder,
        shipping: dict[str, Any],
    ) -> Order:
        """
        Stage an order with its lines, shipping snapshot and payment record.

        Args:
            buyer_id: User placing the order
            priced: Server computed lines and totals
            shipping: Shipping snapshot fields

        Returns:
            The flushed order

        Raises:
            OrderCreationError: The flush failed; the session is rolled back
        """
        try:
            order = Order(
                id=uuid.uuid4(),
                buyer_id=buyer_id,
                items_price=priced.items_price,
                tax_price=priced.tax_price,
                shipping_price=priced.shipping_price,
                total_price=priced.total_price,
                order_status=OrderStatus.PROCESSING,
                payment_status=PaymentStatus.PENDING.value,
                payment_attempt=0,
                hidden_from_buyer=False,
                hidden_from_admin=False,
            )
            order.items = [
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    product_name=line.product_name,
                    product_image=line.product_image,
                )
                for line in priced.lines
            ]
            order.shipping = ShippingSnapshot(**shipping)
            order.payment = PaymentRecord(
                payment_status=PaymentStatus.PENDING.value,
            )

            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order staged",
                order_id=str(order.id),
                buyer_id=str(buyer_id),
                item_count=len(order.items),
                total_price=str(order.total_price),
            )
            return order

        except IntegrityError as e:
            await self.session.rollback()
            logger.error(
                "persistence_error",
                operation="create_order",
                buyer_id=str(buyer_id),
                error=str(e.orig) if e.orig else str(e),
            )
            raise OrderCreationError(
                "Order violates a database constraint",
                buyer_id=str(buyer_id),
            ) from e

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "persistence_error",
                operation="create_order",
                buyer_id=str(buyer_id),
                error=str(e),
            )
            raise OrderCreationError(
                "Failed to create order",
                buyer_id=str(buyer_id),
            ) from e

    async def get_order_by_id(
        self,
        order_id: uuid.UUID,
        buyer_id: Optional[uuid.UUID] = None,
        visible_to: Optional[VisibilityScope] = None,
    ) -> Optional[Order]:
        """
        Fetch an order with items, shipping and payment.

        Args:
            order_id: Order identifier
            buyer_id: Restrict to orders placed by this user
            visible_to: Exclude orders hidden from this actor

        Returns:
            The order or None
        """
        stmt = self._order_query().where(Order.id == order_id)
        if buyer_id is not None:
            stmt = stmt.where(Order.buyer_id == buyer_id)
        if visible_to is not None:
            stmt = stmt.where(_HIDDEN_COLUMN[visible_to].is_(False))

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="get_order",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to fetch order", order_id=str(order_id)
            ) from e

        return result.scalar_one_or_none()

    async def get_buyer_orders(self, buyer_id: uuid.UUID) -> Sequence[Order]:
        """Orders placed by a buyer and not hidden from them, newest first."""
        stmt = (
            self._order_query()
            .where(Order.buyer_id == buyer_id, Order.hidden_from_buyer.is_(False))
            .order_by(Order.created_at.desc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="get_buyer_orders",
                buyer_id=str(buyer_id),
                error=str(e),
            )
            raise OrderRepositoryError("Failed to fetch orders") from e
        return result.scalars().all()

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Order], int]:
        """
        List orders for the admin console.

        Returns:
            Tuple of (orders, total matching count)
        """
        conditions = [Order.hidden_from_admin.is_(False)]
        if status is not None:
            conditions.append(Order.order_status == status)

        stmt = (
            self._order_query()
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(Order).where(*conditions)

        try:
            total = (await self.session.execute(count_stmt)).scalar_one()
            orders = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("persistence_error", operation="list_orders", error=str(e))
            raise OrderRepositoryError("Failed to list orders") from e

        return orders, total

    async def get_order_statistics(self) -> dict[str, Any]:
        """
        Aggregate order counts and revenue in a single query.

        Revenue counts paid orders only. Orders hidden from the admin console
        are still counted.
        """
        paid = Order.payment_status == PaymentStatus.PAID.value
        stmt = select(
            func.count(Order.id),
            func.coalesce(func.sum(case((paid, Order.total_price), else_=0)), 0),
            func.coalesce(func.avg(Order.total_price), 0),
            *[
                func.count(case((Order.order_status == status, 1)))
                for status in OrderStatus
            ],
        )

        try:
            row = (await self.session.execute(stmt)).one()
        except SQLAlchemyError as e:
            logger.error("persistence_error", operation="order_statistics", error=str(e))
            raise OrderRepositoryError("Failed to fetch order statistics") from e

        total_orders, revenue, average, *status_counts = row
        return {
            "total_orders": int(total_orders or 0),
            "total_revenue": Decimal(revenue or 0).quantize(Decimal("0.01")),
            "average_order_value": Decimal(average or 0).quantize(Decimal("0.01")),
            "status_counts": {
                status.value: int(count or 0)
                for status, count in zip(OrderStatus, status_counts)
            },
        }

    async def update_status_if_current(
        self,
        order_id: uuid.UUID,
        expected: OrderStatus,
        new_status: OrderStatus,
        hide_from: Optional[VisibilityScope] = None,
    ) -> bool:
        """
        Conditionally move an order to ``new_status``.

        The update only matches while the stored status still equals
        ``expected``.

        Returns:
            True if the row was updated
        """
        values: dict[str, Any] = {"order_status": new_status}
        if hide_from is not None:
            values[_HIDDEN_COLUMN[hide_from].key] = True

        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.order_status == expected)
            .values(**values)
            .returning(Order.id)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="update_status",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to update order status", order_id=str(order_id)
            ) from e

        return result.scalar_one_or_none() is not None

    async def hide_order(self, order_id: uuid.UUID, scope: VisibilityScope) -> bool:
        """Soft delete an order from one actor's listings."""
        column = _HIDDEN_COLUMN[scope]
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .values({column.key: True})
            .returning(Order.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="hide_order",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError("Failed to hide order", order_id=str(order_id)) from e
        return result.scalar_one_or_none() is not None

    async def delete_order(self, order_id: uuid.UUID) -> bool:
        """Physically delete an order; lines, shipping and payment cascade."""
        stmt = (
            delete(Order)
            .where(Order.id == order_id)
            .returning(Order.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "persistence_error",
                operation="delete_order",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError("Failed to delete order", order_id=str(order_id)) from e
        return result.scalar_one_or_none() is not None

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("persistence_error", operation="commit", error=str(e))
            raise OrderRepositoryError("Failed to commit order changes") from e

    async def rollback(self) -> None:
        await self.session.rollback()
