"""Builders for transient model instances used across the test suite."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from storefront.database.models.order import Order, OrderItem, OrderStatus, ShippingSnapshot
from storefront.database.models.payment import PaymentRecord, PaymentStatus
from storefront.database.models.product import Product
from storefront.database.models.user import User, UserRole


def make_user(role: UserRole = UserRole.USER, is_active: bool = True) -> User:
    return User(
        id=uuid.uuid4(),
        email=f"{uuid.uuid4().hex[:8]}@example.com",
        full_name="Test User",
        role=role,
        is_active=is_active,
    )


def make_order(
    buyer_id: Optional[uuid.UUID] = None,
    status: OrderStatus = OrderStatus.PROCESSING,
    total_price: Decimal = Decimal("137.00"),
    payment_intent_id: Optional[str] = None,
    paid_at: Optional[datetime] = None,
    **overrides: Any,
) -> Order:
    """
    Build a transient order shaped like the 137.00 checkout.

    Two units at 50.00 and one at 20.00, tax 12.00, shipping 5.00.
    """
    order_id = overrides.pop("id", uuid.uuid4())
    now = datetime.now(timezone.utc)
    payment_status = PaymentStatus.PAID.value if paid_at else PaymentStatus.PENDING.value
    order = Order(
        id=order_id,
        buyer_id=buyer_id or uuid.uuid4(),
        items_price=Decimal("120.00"),
        tax_price=Decimal("12.00"),
        shipping_price=Decimal("5.00"),
        total_price=total_price,
        order_status=status,
        payment_status=payment_status,
        paid_at=paid_at,
        payment_attempt=0,
        hidden_from_buyer=False,
        hidden_from_admin=False,
        created_at=now,
        updated_at=now,
        **overrides,
    )
    order.items = [
        OrderItem(
            id=uuid.uuid4(),
            order_id=order_id,
            product_id=uuid.uuid4(),
            quantity=2,
            unit_price=Decimal("50.00"),
            product_name="Canvas Tote",
            product_image=None,
            created_at=now,
        ),
        OrderItem(
            id=uuid.uuid4(),
            order_id=order_id,
            product_id=uuid.uuid4(),
            quantity=1,
            unit_price=Decimal("20.00"),
            product_name="Enamel Mug",
            product_image="https://cdn.example.com/mug.png",
            created_at=now,
        ),
    ]
    order.shipping = ShippingSnapshot(
        id=uuid.uuid4(),
        order_id=order_id,
        full_name="Jane Doe",
        address="12 Market Street",
        city="Springfield",
        state="IL",
        country="US",
        zip_code="62701",
        phone="2175550100",
        created_at=now,
    )
    order.payment = PaymentRecord(
        id=uuid.uuid4(),
        order_id=order_id,
        payment_type="Online",
        payment_status=payment_status,
        payment_intent_id=payment_intent_id,
        client_secret=f"{payment_intent_id}_secret" if payment_intent_id else None,
    )
    return order


def make_product(name: str, price: str, product_id: Optional[uuid.UUID] = None) -> Product:
    return Product(
        id=product_id or uuid.uuid4(),
        name=name,
        price=Decimal(price),
        image_url=None,
        stock=10,
    )
