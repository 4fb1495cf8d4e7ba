"""Order state machine.

Decides whether a requested status change is legal for the requesting actor.
The machine does not write anything: it returns a ``StatusTransition`` that
the order service applies with a conditional update, so a concurrent change
between the read and the write is detected instead of overwritten.
"""

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from storefront.core.config import AdminStatusPolicy
from storefront.core.exceptions import DomainStateError, ValidationError
from storefront.core.logging import get_logger
from storefront.services.orders.enums import (
    OrderStatus,
    StatusActor,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


class StateTransitionError(DomainStateError):
    """Raised when a requested transition is not allowed."""

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: OrderStatus,
        **context: Any,
    ):
        super().__init__(
            message,
            current_state=current_state.value,
            target_state=target_state.value,
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


@dataclass(frozen=True)
class StatusTransition:
    """A validated status change waiting to be applied."""

    order_id: UUID
    from_status: OrderStatus
    to_status: OrderStatus
    actor: StatusActor
    is_override: bool = False

    @property
    def is_noop(self) -> bool:
        return self.from_status == self.to_status


def parse_status(value: Any) -> OrderStatus:
    """Parse a requested status or raise a validation error."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus.from_string(value)
    except ValueError as e:
        raise ValidationError(
            "Invalid order status",
            status=value,
            valid_statuses=[s.value for s in OrderStatus],
        ) from e


class OrderStateMachine:
    """State machine for administrator updates and customer cancellation."""

    def __init__(self, admin_policy: AdminStatusPolicy = AdminStatusPolicy.OVERRIDE):
        self.admin_policy = admin_policy

    def plan_admin_transition(
        self,
        order_id: UUID,
        current_status: OrderStatus,
        requested_status: Any,
    ) -> StatusTransition:
        """Validate an administrator status update.

        Under ``OVERRIDE`` any of the four statuses is accepted from any
        state and backward moves are flagged as overrides. Under
        ``FORWARD_ONLY`` only lifecycle moves are accepted.

        Raises:
            ValidationError: Requested status is not a known value
            StateTransitionError: Move rejected by the forward-only policy
        """
        target = parse_status(requested_status)

        if target == current_status:
            return StatusTransition(order_id, current_status, target, StatusActor.ADMIN)

        is_forward = validate_order_status_transition(current_status, target)

        if not is_forward and self.admin_policy == AdminStatusPolicy.FORWARD_ONLY:
            allowed = sorted(s.value for s in get_allowed_order_transitions(current_status))
            raise StateTransitionError(
                f"Cannot change order status from {current_status.value} "
                f"to {target.value}",
                current_state=current_status,
                target_state=target,
                order_id=str(order_id),
                allowed_transitions=allowed,
            )

        if not is_forward:
            logger.warning(
                "Admin status override",
                order_id=str(order_id),
                from_status=current_status.value,
                to_status=target.value,
            )

        return StatusTransition(
            order_id,
            current_status,
            target,
            StatusActor.ADMIN,
            is_override=not is_forward,
        )

    def plan_customer_cancel(
        self,
        order_id: UUID,
        current_status: OrderStatus,
    ) -> StatusTransition:
        """Validate a cancellation requested by the buyer.

        Raises:
            StateTransitionError: Order has shipped, been delivered, or is
                already cancelled
        """
        if not current_status.can_cancel:
            raise StateTransitionError(
                f"Cannot cancel order with status: {current_status.value}",
                current_state=current_status,
                target_state=OrderStatus.CANCELLED,
                order_id=str(order_id),
            )

        return StatusTransition(
            order_id,
            current_status,
            OrderStatus.CANCELLED,
            StatusActor.CUSTOMER,
        )

    def describe(self, transition: StatusTransition, reason: Optional[str] = None) -> dict:
        """Structured log fields for an applied transition."""
        return {
            "order_id": str(transition.order_id),
            "transition": f"{transition.from_status.value}->{transition.to_status.value}",
            "actor": transition.actor.value,
            "override": transition.is_override,
            "reason": reason,
        }
