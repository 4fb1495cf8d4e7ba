"""
Payment API endpoints.

``POST /payments/intent`` is the payment intent broker: it is safe to call
repeatedly for the same order and always answers with a usable handle or an
error. ``PUT /payments/{order_id}/status`` is the callback used by the payment
page once Stripe has confirmed (or rejected) the card.
"""

from uuid import UUID

from fastapi import APIRouter, Request

from storefront.api.deps import CurrentUser, PaymentServiceDep
from storefront.api.rate_limit import limiter
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.schemas.payments import (
    PaymentHandleResponse,
    PaymentIntentRequest,
    PaymentStatusResponse,
    PaymentStatusUpdateRequest,
)

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/intent",
    response_model=PaymentHandleResponse,
    summary="Get or create payment intent",
)
@limiter.limit(settings.rate_limit_payment_intents)
async def create_payment_intent(
    request: Request,
    payload: PaymentIntentRequest,
    current_user: CurrentUser,
    service: PaymentServiceDep,
) -> PaymentHandleResponse:
    logger.info(
        "Payment handle requested",
        user_id=str(current_user.id),
        order_id=str(payload.order_id),
        amount=payload.amount,
    )
    handle = await service.get_or_create_payment_handle(
        payload.order_id,
        payload.amount,
        requester=current_user,
    )
    return PaymentHandleResponse(**handle.to_dict())


@router.put(
    "/{order_id}/status",
    response_model=PaymentStatusResponse,
    summary="Report payment status",
)
async def update_payment_status(
    order_id: UUID,
    payload: PaymentStatusUpdateRequest,
    current_user: CurrentUser,
    service: PaymentServiceDep,
) -> PaymentStatusResponse:
    result = await service.update_payment_status(
        order_id,
        payload.status,
        requester=current_user,
    )
    return PaymentStatusResponse(**result)
