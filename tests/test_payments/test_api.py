"""
Test suite for the payment API endpoints.

The payment service is mocked; these tests cover routing, request
validation and how broker failures reach the caller.
"""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi import status

from storefront.core.exceptions import NotFoundError
from storefront.services.payments.service import PaymentHandle, PaymentStateError
from storefront.services.payments.stripe_client import StripeConnectionError

PAYMENTS_URL = "/api/v1/payments"


@pytest.fixture
def order_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def handle(order_id) -> PaymentHandle:
    return PaymentHandle(
        order_id=order_id,
        payment_intent_id="pi_test_123",
        client_secret="pi_test_123_secret_abc",
        status="requires_payment_method",
        amount=13700,
        currency="usd",
    )


# ============================================================================
# Payment Intent Tests
# ============================================================================


class TestPaymentIntentEndpoint:
    """Test POST /payments/intent."""

    @pytest.mark.asyncio
    async def test_returns_handle(
        self, async_client, mock_payment_service, login_as, buyer, order_id, handle
    ) -> None:
        # Arrange
        login_as(buyer)
        mock_payment_service.get_or_create_payment_handle.return_value = handle

        # Act
        response = await async_client.post(
            f"{PAYMENTS_URL}/intent",
            json={"order_id": str(order_id), "amount": 13700},
        )

        # Assert
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["payment_intent_id"] == "pi_test_123"
        assert body["client_secret"] == "pi_test_123_secret_abc"
        assert body["amount"] == 13700
        assert body["reused"] is False
        mock_payment_service.get_or_create_payment_handle.assert_awaited_once_with(
            order_id, 13700, requester=buyer
        )

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client, mock_payment_service) -> None:
        response = await async_client.post(
            f"{PAYMENTS_URL}/intent",
            json={"order_id": str(uuid.uuid4()), "amount": 13700},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"
        mock_payment_service.get_or_create_payment_handle.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"amount": 13700},
            {"order_id": "not-a-uuid", "amount": 13700},
            {"order_id": "123e4567-e89b-12d3-a456-426614174000"},
            {"order_id": "123e4567-e89b-12d3-a456-426614174000", "amount": 0},
            {"order_id": "123e4567-e89b-12d3-a456-426614174000", "amount": 137.5},
        ],
    )
    async def test_invalid_payload(
        self, async_client, mock_payment_service, login_as, buyer, payload
    ) -> None:
        login_as(buyer)

        response = await async_client.post(f"{PAYMENTS_URL}/intent", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        mock_payment_service.get_or_create_payment_handle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stripe_unreachable_is_opaque_500(
        self, async_client, mock_payment_service, login_as, buyer, order_id
    ) -> None:
        login_as(buyer)
        mock_payment_service.get_or_create_payment_handle.side_effect = (
            StripeConnectionError("Stripe is unreachable", operation="retrieve_payment_intent")
        )

        response = await async_client.post(
            f"{PAYMENTS_URL}/intent",
            json={"order_id": str(order_id), "amount": 13700},
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        error = response.json()["error"]
        assert "Stripe" not in error["message"]
        assert "retrieve_payment_intent" not in response.text

    @pytest.mark.asyncio
    async def test_other_buyers_order(
        self, async_client, mock_payment_service, login_as, buyer, order_id
    ) -> None:
        login_as(buyer)
        mock_payment_service.get_or_create_payment_handle.side_effect = NotFoundError(
            "Order not found", order_id=str(order_id)
        )

        response = await async_client.post(
            f"{PAYMENTS_URL}/intent",
            json={"order_id": str(order_id), "amount": 13700},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"]["message"] == "Order not found"


# ============================================================================
# Payment Status Tests
# ============================================================================


class TestPaymentStatusEndpoint:
    """Test PUT /payments/{order_id}/status."""

    @pytest.mark.asyncio
    async def test_status_is_normalized(
        self, async_client, mock_payment_service, login_as, buyer, order_id
    ) -> None:
        login_as(buyer)
        paid_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        mock_payment_service.update_payment_status.return_value = {
            "order_id": order_id,
            "payment_status": "Paid",
            "order_status": "Processing",
            "paid_at": paid_at,
        }

        response = await async_client.put(
            f"{PAYMENTS_URL}/{order_id}/status", json={"status": " Succeeded "}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["payment_status"] == "Paid"
        mock_payment_service.update_payment_status.assert_awaited_once_with(
            order_id, "succeeded", requester=buyer
        )

    @pytest.mark.asyncio
    async def test_unconfirmed_success(
        self, async_client, mock_payment_service, login_as, buyer, order_id
    ) -> None:
        login_as(buyer)
        mock_payment_service.update_payment_status.side_effect = PaymentStateError(
            "Payment could not be confirmed with the payment processor"
        )

        response = await async_client.put(
            f"{PAYMENTS_URL}/{order_id}/status", json={"status": "paid"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_invalid_order_id(
        self, async_client, mock_payment_service, login_as, buyer
    ) -> None:
        login_as(buyer)

        response = await async_client.put(
            f"{PAYMENTS_URL}/not-a-uuid/status", json={"status": "paid"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
