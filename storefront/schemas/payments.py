"""
Payment request and response schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PaymentIntentRequest(BaseModel):
    """Request a payment handle for an order."""

    order_id: UUID
    amount: int = Field(
        ...,
        gt=0,
        le=9999999999,
        description="Order grand total in cents",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "123e4567-e89b-12d3-a456-426614174000",
                    "amount": 13700,
                }
            ]
        }
    }


class PaymentHandleResponse(BaseModel):
    """Handle the browser uses to confirm the payment with Stripe."""

    order_id: UUID
    payment_intent_id: str
    client_secret: Optional[str]
    status: str
    amount: int
    currency: str
    reused: bool = False
    reconciled: bool = False


class PaymentStatusUpdateRequest(BaseModel):
    """Status reported by the payment page or a poller."""

    status: str = Field(..., min_length=1, max_length=32)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()


class PaymentStatusResponse(BaseModel):
    order_id: UUID
    payment_status: str
    order_status: str
    paid_at: Optional[datetime]
