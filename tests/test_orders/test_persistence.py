"""
Order persistence against a real database session.

Runs the order repository and service on in-memory SQLite so flushes,
rollbacks and constraints behave the way they do in production.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from storefront.database.connection import Database
from storefront.database.models.order import Order, OrderItem, ShippingSnapshot
from storefront.database.models.payment import PaymentRecord
from storefront.database.models.product import Product
from storefront.database.models.user import User
from storefront.services.orders.pricing import ClientTotals, LineRequest, PricedLine, PricedOrder
from storefront.services.orders.repository import OrderCreationError, OrderRepository
from storefront.services.orders.service import OrderService
from tests.factories import make_product, make_user

SHIPPING = {
    "full_name": "Jane Doe",
    "address": "12 Market Street",
    "city": "Springfield",
    "state": "IL",
    "country": "US",
    "zip_code": "62701",
    "phone": "2175550100",
}


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def seeded(sqlite_database: Database) -> tuple[User, Product]:
    buyer = make_user()
    product = make_product("Field Notebook", "100.00")
    async with sqlite_database.session() as session:
        session.add_all([buyer, product])
    return buyer, product


async def count(database: Database, model) -> int:
    async with database.session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


# ============================================================================
# Checkout Tests
# ============================================================================


class TestPlaceOrder:
    """Test checkout through the service with a real session."""

    @pytest.mark.asyncio
    async def test_unit_price_survives_catalog_change(self, sqlite_database, seeded) -> None:
        buyer, product = seeded

        async with sqlite_database.session_factory() as session:
            service = OrderService(OrderRepository(session))
            order = await service.place_order(
                buyer.id,
                [LineRequest(product.id, 1, Decimal("100.00"))],
                ClientTotals(
                    items_price=Decimal("100.00"),
                    tax_price=Decimal("0.00"),
                    shipping_price=Decimal("0.00"),
                    total_price=Decimal("100.00"),
                ),
                SHIPPING,
            )
            order_id = order.id

        async with sqlite_database.session() as session:
            stored = await session.get(Product, product.id)
            stored.price = Decimal("150.00")

        async with sqlite_database.session_factory() as session:
            reloaded = await OrderRepository(session).get_order_by_id(order_id)

        assert reloaded is not None
        assert len(reloaded.items) == 1
        assert reloaded.items[0].unit_price == Decimal("100.00")
        assert reloaded.items[0].product_name == "Field Notebook"
        assert reloaded.total_price == Decimal("100.00")
        assert reloaded.shipping.city == "Springfield"
        assert reloaded.payment is not None
        assert reloaded.payment.payment_intent_id is None


class TestCreateOrderAtomicity:
    """Test that a failed write leaves nothing behind."""

    @pytest.mark.asyncio
    async def test_failed_flush_stores_nothing(self, sqlite_database, seeded) -> None:
        buyer, product = seeded
        order_id = uuid.uuid4()
        priced = PricedOrder(
            lines=[
                PricedLine(product.id, product.name, None, 1, Decimal("100.00")),
                PricedLine(product.id, product.name, None, 0, Decimal("100.00")),
            ],
            items_price=Decimal("100.00"),
            total_price=Decimal("100.00"),
        )

        async with sqlite_database.session_factory() as session:
            repository = OrderRepository(session)
            with patch(
                "storefront.services.orders.repository.uuid.uuid4", return_value=order_id
            ):
                with pytest.raises(OrderCreationError):
                    await repository.create_order_with_items(buyer.id, priced, SHIPPING)

            assert await repository.get_order_by_id(order_id) is None

        assert await count(sqlite_database, Order) == 0
        assert await count(sqlite_database, OrderItem) == 0
        assert await count(sqlite_database, ShippingSnapshot) == 0
        assert await count(sqlite_database, PaymentRecord) == 0
