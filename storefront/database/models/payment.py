"""
Payment record model.

Each order has at most one live payment record. It mirrors a Stripe payment
intent: the intent id, the client secret handed to the browser, and the last
status the service reconciled against Stripe.
"""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel

if TYPE_CHECKING:
    from storefront.database.models.order import Order


class PaymentStatus(str, Enum):
    """Local payment status, stored on both the record and the order."""

    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"

    @classmethod
    def from_reported(cls, value: str) -> "PaymentStatus":
        """
        Map a status reported by a payment callback.

        ``succeeded`` and ``paid`` mean paid, ``failed`` means failed and
        ``pending`` means pending.

        Raises:
            ValueError: If the value is not one of the accepted names
        """
        mapping = {
            "succeeded": cls.PAID,
            "paid": cls.PAID,
            "pending": cls.PENDING,
            "failed": cls.FAILED,
        }
        try:
            return mapping[value.strip().lower()]
        except (AttributeError, KeyError):
            raise ValueError(f"Invalid payment status: {value}")


class PaymentType(str, Enum):
    ONLINE = "Online"


class PaymentRecord(BaseModel):
    """
    Local mirror of the order's payment intent.

    Attributes:
        order_id: Owning order, unique
        payment_type: Payment method family
        payment_status: Last reconciled status
        payment_intent_id: Stripe intent id, null until a handle is minted
        client_secret: Secret the browser uses to confirm the intent
    """

    __tablename__ = "payments"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payment_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=PaymentType.ONLINE.value,
        server_default=PaymentType.ONLINE.value,
    )
    payment_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        server_default=PaymentStatus.PENDING.value,
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    client_secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="payment")

    __table_args__ = (Index("ix_payments_payment_status", "payment_status"),)

    @property
    def has_handle(self) -> bool:
        return self.payment_intent_id is not None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(order_id={self.order_id}, "
            f"status={self.payment_status}, intent={self.payment_intent_id})>"
        )


