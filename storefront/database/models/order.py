"""
Order, order item and shipping snapshot models.

An order owns its line items and its shipping snapshot; both are written in
the same transaction as the order and never modified afterwards. Line items
carry the unit price and product name as they were at checkout so that later
catalog edits cannot change a placed order.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import Base, BaseModel, UUIDMixin

if TYPE_CHECKING:
    from storefront.database.models.payment import PaymentRecord


class OrderStatus(str, Enum):
    """
    Order lifecycle states.

    ``Processing`` is the initial state. ``Delivered`` and ``Cancelled`` are
    terminal.
    """

    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """
        Parse a status name, ignoring case and surrounding whitespace.

        Raises:
            ValueError: If value is not one of the four statuses
        """
        normalized = value.strip().lower() if isinstance(value, str) else ""
        for status in cls:
            if status.value.lower() == normalized:
                return status
        raise ValueError(f"Invalid order status: {value}")

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def can_cancel(self) -> bool:
        """Customers may only cancel orders that have not shipped."""
        return self == OrderStatus.PROCESSING


class VisibilityScope(str, Enum):
    """Actor whose order listing a soft delete applies to."""

    BUYER = "buyer"
    ADMIN = "admin"


class Order(BaseModel):
    """
    Buyer checkout with totals, status and payment mirror.

    Attributes:
        buyer_id: User who placed the order
        items_price: Sum of line totals
        tax_price: Tax charged
        shipping_price: Shipping charged
        total_price: Grand total, always items + tax + shipping
        order_status: Lifecycle state
        payment_status: Mirror of the payment record status
        paid_at: Set once when payment succeeds
        payment_attempt: Number of superseded payment records
        hidden_from_buyer: Removed from the buyer's order list
        hidden_from_admin: Removed from the admin order list
    """

    __tablename__ = "orders"

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    items_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    shipping_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order_status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=OrderStatus.PROCESSING,
        server_default=OrderStatus.PROCESSING.value,
    )
    payment_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="Pending", server_default="Pending"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_attempt: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    hidden_from_buyer: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    hidden_from_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.created_at",
    )
    shipping: Mapped[Optional["ShippingSnapshot"]] = relationship(
        "ShippingSnapshot",
        back_populates="order",
        lazy="selectin",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    payment: Mapped[Optional["PaymentRecord"]] = relationship(
        "PaymentRecord",
        back_populates="order",
        lazy="selectin",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        Index("ix_orders_order_status", "order_status"),
        Index("ix_orders_payment_status", "payment_status"),
        CheckConstraint("items_price >= 0", name="ck_orders_items_price_non_negative"),
        CheckConstraint("tax_price >= 0", name="ck_orders_tax_price_non_negative"),
        CheckConstraint(
            "shipping_price >= 0", name="ck_orders_shipping_price_non_negative"
        ),
        CheckConstraint("total_price >= 0", name="ck_orders_total_price_non_negative"),
        CheckConstraint(
            "paid_at IS NULL OR paid_at >= created_at",
            name="ck_orders_paid_after_creation",
        ),
    )

    @property
    def total_minor_units(self) -> int:
        """Grand total in cents as sent to the payment processor."""
        return int((self.total_price * 100).to_integral_value())

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    def is_hidden_from(self, scope: VisibilityScope) -> bool:
        if scope == VisibilityScope.BUYER:
            return self.hidden_from_buyer
        return self.hidden_from_admin

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, buyer_id={self.buyer_id}, "
            f"status={self.order_status}, total={self.total_price})>"
        )


class OrderItem(Base, UUIDMixin):
    """Line item snapshot. Immutable once written."""

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_id", "order_id"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price > 0", name="ck_order_items_unit_price_positive"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ShippingSnapshot(Base, UUIDMixin):
    """Copy of the buyer's shipping details taken at checkout."""

    __tablename__ = "shipping_info"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    order: Mapped["Order"] = relationship("Order", back_populates="shipping")
