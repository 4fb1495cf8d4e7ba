"""
Payment broker against a real database session.

Stripe is scripted; the repository, session and schema are real (in-memory
SQLite), so expiry on rollback and the one-record-per-order constraint apply.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select

from storefront.database.connection import Database
from storefront.database.models.order import Order
from storefront.database.models.payment import PaymentRecord, PaymentStatus
from storefront.services.orders.pricing import PricedLine, PricedOrder
from storefront.services.orders.repository import OrderRepository
from storefront.services.payments.repository import PaymentRepository
from storefront.services.payments.service import PaymentHandle, PaymentService
from storefront.services.payments.stripe_client import IntentHandle, StripeClient
from tests.factories import make_product, make_user

AMOUNT = 10000


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def order_id(sqlite_database: Database) -> uuid.UUID:
    """A committed 100.00 order with its pending payment record."""
    buyer = make_user()
    product = make_product("Field Notebook", "100.00")
    async with sqlite_database.session() as session:
        session.add_all([buyer, product])

    priced = PricedOrder(
        lines=[PricedLine(product.id, product.name, None, 1, Decimal("100.00"))],
        items_price=Decimal("100.00"),
        total_price=Decimal("100.00"),
    )
    shipping = {
        "full_name": "Jane Doe",
        "address": "12 Market Street",
        "city": "Springfield",
        "state": "IL",
        "country": "US",
        "zip_code": "62701",
        "phone": "2175550100",
    }
    async with sqlite_database.session() as session:
        order = await OrderRepository(session).create_order_with_items(
            buyer.id, priced, shipping
        )
        return order.id


@pytest.fixture
def stripe_client() -> AsyncMock:
    return AsyncMock(spec=StripeClient)


def intent(intent_id: str, status: str = "requires_payment_method") -> IntentHandle:
    return IntentHandle(
        id=intent_id,
        client_secret=f"{intent_id}_secret",
        status=status,
        amount=AMOUNT,
        currency="usd",
    )


async def request_handle(
    database: Database, stripe_client: AsyncMock, order_id: uuid.UUID
) -> PaymentHandle:
    """One broker call in its own session, as a request would make it."""
    async with database.session_factory() as session:
        service = PaymentService(
            repository=PaymentRepository(session),
            stripe_client=stripe_client,
            currency="usd",
        )
        return await service.get_or_create_payment_handle(order_id, AMOUNT)


async def stored_state(database: Database, order_id: uuid.UUID):
    async with database.session_factory() as session:
        order = await session.get(Order, order_id)
        records = (
            await session.scalars(
                select(PaymentRecord).where(PaymentRecord.order_id == order_id)
            )
        ).all()
    return order, records


# ============================================================================
# Broker Tests
# ============================================================================


class TestPaymentHandleLifecycle:
    """Test handle issue, reuse and reconciliation across sessions."""

    @pytest.mark.asyncio
    async def test_pending_intent_reused_after_rollback(
        self, sqlite_database, order_id, stripe_client
    ) -> None:
        stripe_client.create_payment_intent.return_value = intent("pi_1")
        first = await request_handle(sqlite_database, stripe_client, order_id)

        stripe_client.retrieve_payment_intent.return_value = intent("pi_1")
        second = await request_handle(sqlite_database, stripe_client, order_id)

        assert first.payment_intent_id == "pi_1"
        assert first.reused is False
        assert second.order_id == order_id
        assert second.payment_intent_id == "pi_1"
        assert second.client_secret == "pi_1_secret"
        assert second.amount == AMOUNT
        assert second.reused is True
        stripe_client.create_payment_intent.assert_awaited_once()

        order, records = await stored_state(sqlite_database, order_id)
        assert order.payment_attempt == 0
        assert order.payment_status == PaymentStatus.PENDING.value
        assert [r.payment_intent_id for r in records] == ["pi_1"]

    @pytest.mark.asyncio
    async def test_succeeded_intent_marks_order_paid_once(
        self, sqlite_database, order_id, stripe_client
    ) -> None:
        stripe_client.create_payment_intent.return_value = intent("pi_1")
        await request_handle(sqlite_database, stripe_client, order_id)

        stripe_client.retrieve_payment_intent.return_value = intent("pi_1", "succeeded")
        healed = await request_handle(sqlite_database, stripe_client, order_id)
        order, _ = await stored_state(sqlite_database, order_id)
        paid_at = order.paid_at

        again = await request_handle(sqlite_database, stripe_client, order_id)
        order, records = await stored_state(sqlite_database, order_id)

        assert healed.reconciled is True
        assert again.reconciled is False
        assert paid_at is not None
        assert order.paid_at == paid_at
        assert order.payment_status == PaymentStatus.PAID.value
        assert records[0].payment_status == PaymentStatus.PAID.value

    @pytest.mark.asyncio
    async def test_canceled_intent_replaced_by_new_record(
        self, sqlite_database, order_id, stripe_client
    ) -> None:
        stripe_client.create_payment_intent.side_effect = [intent("pi_1"), intent("pi_2")]
        await request_handle(sqlite_database, stripe_client, order_id)

        stripe_client.retrieve_payment_intent.return_value = intent("pi_1", "canceled")
        handle = await request_handle(sqlite_database, stripe_client, order_id)

        assert handle.payment_intent_id == "pi_2"
        assert handle.reused is False
        assert (
            stripe_client.create_payment_intent.await_args.kwargs["idempotency_key"]
            == f"order-{order_id}-attempt-1"
        )

        order, records = await stored_state(sqlite_database, order_id)
        assert order.payment_attempt == 1
        assert len(records) == 1
        assert records[0].payment_intent_id == "pi_2"
        assert records[0].payment_status == PaymentStatus.PENDING.value
