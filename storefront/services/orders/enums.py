"""Order lifecycle transition rules.

The forward lifecycle is ``Processing -> Shipped -> Delivered`` with
``Cancelled`` reachable from any state that has not been delivered.
Administrator updates may bypass these rules depending on the configured
``AdminStatusPolicy``; customer cancellation never does.
"""

from enum import Enum
from typing import Dict, Set

from storefront.core.config import AdminStatusPolicy
from storefront.database.models.order import OrderStatus, VisibilityScope


class StatusActor(str, Enum):
    """Who requested a status change."""

    ADMIN = "admin"
    CUSTOMER = "customer"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus,
) -> bool:
    """Check whether ``current -> new`` follows the forward lifecycle.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if the move is part of the forward lifecycle
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    return set(ORDER_STATUS_TRANSITIONS.get(current, set()))


__all__ = [
    "AdminStatusPolicy",
    "ORDER_STATUS_TRANSITIONS",
    "OrderStatus",
    "StatusActor",
    "VisibilityScope",
    "get_allowed_order_transitions",
    "validate_order_status_transition",
]
