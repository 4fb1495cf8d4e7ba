"""
Order service orchestrating checkout, lifecycle changes and read paths.

Each public method is one unit of work: it stages changes through the
repository, commits once, and only then fires notifications. Status changes
are applied with a conditional update on the status read at the start of the
call, so a cancellation racing an admin update fails loudly for the loser
instead of silently overwriting the winner.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from storefront.core.exceptions import ConcurrencyConflictError, ValidationError
from storefront.core.logging import get_logger, log_performance
from storefront.database.models.order import Order, OrderStatus, VisibilityScope
from storefront.services.notifications.service import (
    NotificationService,
    NotificationServiceError,
)
from storefront.services.orders.pricing import (
    ClientTotals,
    LineRequest,
    price_order,
    summarize,
)
from storefront.services.orders.repository import OrderNotFoundError, OrderRepository
from storefront.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
    StatusTransition,
    parse_status,
)

logger = get_logger(__name__)

SHIPPING_FIELDS = ("full_name", "address", "city", "state", "country", "zip_code", "phone")


class Requester(Protocol):
    id: uuid.UUID

    @property
    def is_admin(self) -> bool: ...


class OrderService:
    """
    Checkout, status lifecycle and order read paths.

    Attributes:
        repository: Order data access
        state_machine: Transition rules for admins and customers
        notification_service: Optional post-commit notification sink
        total_tolerance: Allowed rounding difference on client totals
    """

    def __init__(
        self,
        repository: OrderRepository,
        state_machine: Optional[OrderStateMachine] = None,
        notification_service: Optional[NotificationService] = None,
        total_tolerance: Decimal = Decimal("0.01"),
    ):
        self.repository = repository
        self.state_machine = state_machine or OrderStateMachine()
        self.notification_service = notification_service
        self.total_tolerance = total_tolerance

    async def place_order(
        self,
        buyer_id: uuid.UUID,
        items: Sequence[LineRequest],
        totals: ClientTotals,
        shipping: dict[str, Any],
    ) -> Order:
        """
        Create an order with its lines, shipping snapshot and payment record.

        Args:
            buyer_id: Authenticated buyer
            items: Requested lines
            totals: Client computed totals, validated against catalog prices
            shipping: Shipping snapshot fields

        Returns:
            The committed order in ``Processing``

        Raises:
            ValidationError: Bad input or totals that do not add up
            OrderCreationError: The write failed and nothing was stored
        """
        missing = [name for name in SHIPPING_FIELDS if not str(shipping.get(name) or "").strip()]
        if missing:
            raise ValidationError("Shipping information is incomplete", missing_fields=missing)

        with log_performance(logger, "place_order", buyer_id=str(buyer_id)):
            catalog = await self.repository.get_products(line.product_id for line in items)
            priced = price_order(items, catalog, totals, tolerance=self.total_tolerance)

            order = await self.repository.create_order_with_items(
                buyer_id=buyer_id,
                priced=priced,
                shipping={name: str(shipping[name]).strip() for name in SHIPPING_FIELDS},
            )
            await self.repository.commit()
            order = await self._reload(order.id)

        logger.info(
            "Order created",
            order_id=str(order.id),
            buyer_id=str(buyer_id),
            **summarize(priced),
        )

        if self.notification_service:
            await self._notify(self.notification_service.order_placed, order)

        return order

    async def get_order(self, order_id: uuid.UUID, requester: Requester) -> Order:
        """
        Fetch an order for its buyer or for an administrator.

        Other users get the same not-found error as for a missing order.
        """
        if requester.is_admin:
            order = await self.repository.get_order_by_id(order_id)
        else:
            order = await self.repository.get_order_by_id(
                order_id,
                buyer_id=requester.id,
                visible_to=VisibilityScope.BUYER,
            )

        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def list_buyer_orders(self, buyer_id: uuid.UUID) -> Sequence[Order]:
        return await self.repository.get_buyer_orders(buyer_id)

    async def list_orders(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """
        Admin listing with aggregate statistics.

        Returns:
            Dictionary with ``orders``, ``total`` and ``stats``
        """
        status_filter = parse_status(status) if status else None
        orders, total = await self.repository.list_orders(
            status=status_filter, limit=limit, offset=offset
        )
        stats = await self.repository.get_order_statistics()
        return {"orders": orders, "total": total, "stats": stats}

    async def get_order_statistics(self) -> dict[str, Any]:
        return await self.repository.get_order_statistics()

    async def set_status(
        self,
        order_id: uuid.UUID,
        new_status: Any,
        admin_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Administrator status update.

        Raises:
            ValidationError: Unknown status value
            OrderNotFoundError: No such order
            StateTransitionError: Rejected by the forward-only policy
            ConcurrencyConflictError: Status changed since it was read
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        transition = self.state_machine.plan_admin_transition(
            order_id, order.order_status, new_status
        )
        if transition.is_noop:
            return order

        await self._apply(transition)

        logger.info(
            "Order status updated",
            admin_id=str(admin_id) if admin_id else None,
            **self.state_machine.describe(transition),
        )

        if self.notification_service:
            await self._notify(
                self.notification_service.order_status_changed,
                order.buyer_id,
                order.id,
                transition.to_status,
            )

        return await self._reload(order_id)

    async def cancel(self, order_id: uuid.UUID, requester: Requester) -> Order:
        """
        Cancel an order on behalf of its buyer.

        Raises:
            OrderNotFoundError: No such order for this buyer
            StateTransitionError: Order already shipped, delivered or cancelled
            ConcurrencyConflictError: Status changed since it was read
        """
        order = await self._get_buyer_order(order_id, requester)
        transition = self.state_machine.plan_customer_cancel(order_id, order.order_status)
        await self._apply(transition)

        logger.info("Order cancelled by buyer", **self.state_machine.describe(transition))

        if self.notification_service:
            await self._notify(
                self.notification_service.order_status_changed,
                order.buyer_id,
                order.id,
                OrderStatus.CANCELLED,
            )

        return await self._reload(order_id)

    async def delete_for_buyer(self, order_id: uuid.UUID, requester: Requester) -> dict[str, Any]:
        """
        Remove an order from the buyer's history.

        Unshipped orders are cancelled and hidden in one update. Delivered and
        cancelled orders are only hidden. Shipped orders are refused.
        """
        order = await self._get_buyer_order(order_id, requester)
        status = order.order_status

        if status == OrderStatus.SHIPPED:
            raise StateTransitionError(
                f"Cannot delete order with status: {status.value}",
                current_state=status,
                target_state=OrderStatus.CANCELLED,
                order_id=str(order_id),
            )

        cancelled = False
        if status.can_cancel:
            transition = self.state_machine.plan_customer_cancel(order_id, status)
            await self._apply(transition, hide_from=VisibilityScope.BUYER)
            cancelled = True
        else:
            await self.repository.hide_order(order_id, VisibilityScope.BUYER)
            await self.repository.commit()

        logger.info(
            "Order removed by buyer",
            order_id=str(order_id),
            previous_status=status.value,
            cancelled=cancelled,
        )

        if cancelled and self.notification_service:
            await self._notify(
                self.notification_service.order_status_changed,
                order.buyer_id,
                order.id,
                OrderStatus.CANCELLED,
            )

        return {"order_id": order_id, "cancelled": cancelled, "hidden": True}

    async def admin_delete(
        self,
        order_id: uuid.UUID,
        hard: bool = False,
        admin_id: Optional[uuid.UUID] = None,
    ) -> dict[str, Any]:
        """
        Delete an order from the admin console.

        A soft delete hides the order from admin listings; a hard delete
        removes the order and everything it owns.
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if hard:
            await self.repository.delete_order(order_id)
            await self.repository.commit()
            logger.warning(
                "Order hard deleted",
                order_id=str(order_id),
                admin_id=str(admin_id) if admin_id else None,
                order_status=order.order_status.value,
                total_price=str(order.total_price),
            )
        else:
            await self.repository.hide_order(order_id, VisibilityScope.ADMIN)
            await self.repository.commit()
            logger.info(
                "Order hidden from admin",
                order_id=str(order_id),
                admin_id=str(admin_id) if admin_id else None,
            )

        return {"order_id": order_id, "hard": hard}

    async def _get_buyer_order(self, order_id: uuid.UUID, requester: Requester) -> Order:
        order = await self.repository.get_order_by_id(
            order_id,
            buyer_id=requester.id,
            visible_to=VisibilityScope.BUYER,
        )
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _apply(
        self,
        transition: StatusTransition,
        hide_from: Optional[VisibilityScope] = None,
    ) -> None:
        updated = await self.repository.update_status_if_current(
            transition.order_id,
            expected=transition.from_status,
            new_status=transition.to_status,
            hide_from=hide_from,
        )
        if not updated:
            await self.repository.rollback()
            logger.warning(
                "Order status changed concurrently",
                order_id=str(transition.order_id),
                expected_status=transition.from_status.value,
                requested_status=transition.to_status.value,
            )
            raise ConcurrencyConflictError(
                "Order status was changed by another request, please retry",
                order_id=str(transition.order_id),
                expected_status=transition.from_status.value,
            )
        await self.repository.commit()

    async def _reload(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _notify(self, send, *args: Any) -> None:
        try:
            await send(*args)
        except NotificationServiceError as e:
            logger.error(
                "Failed to send order notification",
                error=str(e),
                context=e.context,
            )
