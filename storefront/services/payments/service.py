"""
Payment service: payment intent broker and status reconciliation.

Stripe is the source of truth for payment state. Whenever a payment handle is
requested for an order that already has one, the intent is re-fetched and the
local record is repaired before anything is returned:

* ``succeeded``: record and order are marked paid (``paid_at`` set once) and
  the existing handle is returned.
* ``canceled`` or an unknown intent id: the record is discarded and a fresh
  intent is minted.
* anything else: the existing handle is returned unchanged.

Every call holds a row lock on the order and commits once. If Stripe cannot be
reached the transaction is rolled back and nothing local changes.
"""

import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from storefront.core.config import get_settings
from storefront.core.exceptions import (
    DomainStateError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.core.logging import get_logger
from storefront.database.models.order import Order, OrderStatus
from storefront.database.models.payment import PaymentRecord, PaymentStatus
from storefront.services.notifications.service import (
    NotificationService,
    NotificationServiceError,
)
from storefront.services.payments.repository import PaymentRepository
from storefront.services.payments.stripe_client import (
    IntentHandle,
    StripeClient,
    StripeIntentNotFoundError,
)

logger = get_logger(__name__)


class IntentOutcome(str, Enum):
    """How a Stripe intent status affects the local record."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


class PaymentValidationError(ValidationError):
    """Exception for payment validation failures."""


class PaymentStateError(DomainStateError):
    """The order cannot be paid in its current state."""


class Requester(Protocol):
    id: uuid.UUID

    @property
    def is_admin(self) -> bool: ...


@dataclass(frozen=True)
class PaymentHandle:
    """What the client needs to complete a payment."""

    order_id: uuid.UUID
    payment_intent_id: str
    client_secret: Optional[str]
    status: str
    amount: int
    currency: str
    reused: bool = False
    reconciled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PaymentService:
    """
    Payment intent broker with self-healing reconciliation.

    Attributes:
        repository: Payment data access
        stripe_client: Stripe API client
        notification_service: Optional post-commit notification sink
        currency: ISO currency for new intents
    """

    def __init__(
        self,
        repository: PaymentRepository,
        stripe_client: StripeClient,
        notification_service: Optional[NotificationService] = None,
        currency: Optional[str] = None,
    ):
        self.repository = repository
        self.stripe_client = stripe_client
        self.notification_service = notification_service
        self.currency = (currency or get_settings().stripe_currency).lower()

    @staticmethod
    def _map_stripe_status_to_outcome(stripe_status: str) -> IntentOutcome:
        """
        Classify a Stripe payment intent status.

        ``canceled`` is the only terminal failure a PaymentIntent reports.
        ``requires_payment_method`` stays pending: Stripe returns an intent to
        that state after a declined card and the buyer may retry with it.
        """
        if stripe_status == "succeeded":
            return IntentOutcome.SUCCEEDED
        if stripe_status == "canceled":
            return IntentOutcome.FAILED
        return IntentOutcome.PENDING

    @staticmethod
    def _idempotency_key(order: Order) -> str:
        return f"order-{order.id}-attempt-{order.payment_attempt or 0}"

    async def _load_order(self, order_id: uuid.UUID, requester: Optional[Requester]) -> Order:
        order = await self.repository.lock_order(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=str(order_id))
        if requester is not None and not requester.is_admin and order.buyer_id != requester.id:
            logger.warning(
                "Payment requested for another user's order",
                order_id=str(order_id),
                requester_id=str(requester.id),
            )
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _retrieve_or_none(self, record: PaymentRecord) -> Optional[IntentHandle]:
        """Fetch the stored intent; an id Stripe does not know yields None."""
        try:
            return await self.stripe_client.retrieve_payment_intent(
                record.payment_intent_id
            )
        except StripeIntentNotFoundError:
            logger.warning(
                "Stored payment intent unknown to Stripe",
                order_id=str(record.order_id),
                payment_intent_id=record.payment_intent_id,
            )
            return None

    async def get_or_create_payment_handle(
        self,
        order_id: uuid.UUID,
        amount: int,
        requester: Optional[Requester] = None,
    ) -> PaymentHandle:
        """
        Return a usable payment handle for an order, creating one if needed.

        Args:
            order_id: Order to pay
            amount: Grand total in minor units; must match the stored total
            requester: Caller; buyers may only pay their own orders

        Returns:
            PaymentHandle with the intent id, client secret and Stripe status

        Raises:
            PaymentValidationError: Missing or mismatched amount
            NotFoundError: Unknown order, or another buyer's order
            PaymentStateError: Order cancelled or already paid
            PaymentGatewayError: Stripe unreachable; nothing was changed
        """
        if order_id is None:
            raise PaymentValidationError("Order id is required")
        if amount is None or isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise PaymentValidationError(
                "Amount must be a positive integer in minor units",
                amount=amount,
            )

        try:
            order = await self._load_order(order_id, requester)

            if amount != order.total_minor_units:
                raise PaymentValidationError(
                    "Amount does not match the order total",
                    order_id=str(order_id),
                    amount=amount,
                    expected_amount=order.total_minor_units,
                )

            record = await self.repository.get_payment_for_order(order)

            if record is not None and record.has_handle:
                intent = await self._retrieve_or_none(record)
                outcome = (
                    self._map_stripe_status_to_outcome(intent.status)
                    if intent is not None
                    else IntentOutcome.FAILED
                )

                if outcome == IntentOutcome.SUCCEEDED:
                    healed = await self.repository.mark_paid(order, record)
                    await self.repository.commit()
                    if healed:
                        logger.info(
                            "Payment reconciled as paid",
                            order_id=str(order_id),
                            payment_intent_id=intent.id,
                        )
                        await self._notify_paid(order)
                    return self._handle(order, record, intent, reused=True, reconciled=healed)

                if outcome == IntentOutcome.PENDING:
                    self._ensure_payable(order)
                    handle = self._handle(order, record, intent, reused=True)
                    await self.repository.rollback()
                    return handle

                await self.repository.supersede_payment(order, record)
                record = None

            self._ensure_payable(order)

            intent = await self.stripe_client.create_payment_intent(
                amount=amount,
                currency=self.currency,
                order_id=order.id,
                idempotency_key=self._idempotency_key(order),
            )

            if record is None:
                record = await self.repository.create_payment(
                    order, intent.id, intent.client_secret
                )
            else:
                record = await self.repository.attach_handle(
                    record, intent.id, intent.client_secret
                )
            await self.repository.commit()

        except StorefrontError:
            await self.repository.rollback()
            raise

        logger.info(
            "Payment handle issued",
            order_id=str(order_id),
            payment_intent_id=intent.id,
            payment_attempt=order.payment_attempt,
            amount=amount,
        )
        return self._handle(order, record, intent)

    async def update_payment_status(
        self,
        order_id: uuid.UUID,
        reported_status: str,
        requester: Optional[Requester] = None,
    ) -> dict[str, Any]:
        """
        Apply a payment status reported by the client callback or a poller.

        When the order has a payment intent, Stripe's status replaces the
        reported one. A reported success that Stripe cannot confirm is
        refused.

        Raises:
            PaymentValidationError: Unknown status value
            NotFoundError: Unknown order, or another buyer's order
            PaymentStateError: Success reported without a confirmed intent
            PaymentGatewayError: Stripe unreachable; nothing was changed
        """
        try:
            target = PaymentStatus.from_reported(reported_status)
        except ValueError as e:
            raise PaymentValidationError(
                "Invalid payment status",
                status=reported_status,
                valid_statuses=["succeeded", "paid", "pending", "failed"],
            ) from e

        newly_paid = False
        try:
            order = await self._load_order(order_id, requester)
            record = await self.repository.get_payment_for_order(order)

            intent = None
            if record is not None and record.has_handle:
                intent = await self._retrieve_or_none(record)

            if intent is not None:
                outcome = self._map_stripe_status_to_outcome(intent.status)
                authoritative = {
                    IntentOutcome.SUCCEEDED: PaymentStatus.PAID,
                    IntentOutcome.FAILED: PaymentStatus.FAILED,
                    IntentOutcome.PENDING: PaymentStatus.PENDING,
                }[outcome]
                if authoritative != target:
                    logger.warning(
                        "Reported payment status differs from Stripe",
                        order_id=str(order_id),
                        reported_status=target.value,
                        stripe_status=intent.status,
                    )
                target = authoritative
            elif target == PaymentStatus.PAID and not order.is_paid:
                raise PaymentStateError(
                    "Payment could not be confirmed with the payment processor",
                    order_id=str(order_id),
                )

            if target == PaymentStatus.PAID:
                newly_paid = await self.repository.mark_paid(order, record)
            elif order.is_paid:
                logger.warning(
                    "Ignoring non-success status for a paid order",
                    order_id=str(order_id),
                    reported_status=target.value,
                )
            else:
                await self.repository.set_status(order, record, target)

            await self.repository.commit()

        except StorefrontError:
            await self.repository.rollback()
            raise

        logger.info(
            "Payment status updated",
            order_id=str(order_id),
            payment_status=order.payment_status,
            paid_at=order.paid_at.isoformat() if order.paid_at else None,
        )

        if newly_paid:
            await self._notify_paid(order)

        return {
            "order_id": order.id,
            "payment_status": order.payment_status,
            "order_status": order.order_status.value,
            "paid_at": order.paid_at,
        }

    def _ensure_payable(self, order: Order) -> None:
        if order.order_status == OrderStatus.CANCELLED:
            raise PaymentStateError(
                "Cannot pay for a cancelled order",
                order_id=str(order.id),
            )
        if order.is_paid or order.payment_status == PaymentStatus.PAID.value:
            raise PaymentStateError(
                "Order has already been paid",
                order_id=str(order.id),
            )

    def _handle(
        self,
        order: Order,
        record: PaymentRecord,
        intent: IntentHandle,
        reused: bool = False,
        reconciled: bool = False,
    ) -> PaymentHandle:
        return PaymentHandle(
            order_id=order.id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret or record.client_secret,
            status=intent.status,
            amount=intent.amount or order.total_minor_units,
            currency=intent.currency or self.currency,
            reused=reused,
            reconciled=reconciled,
        )

    async def _notify_paid(self, order: Order) -> None:
        if not self.notification_service:
            return
        try:
            await self.notification_service.payment_received(order.buyer_id, order.id)
        except NotificationServiceError as e:
            logger.error(
                "Failed to send payment notification",
                order_id=str(order.id),
                error=str(e),
                context=e.context,
            )
