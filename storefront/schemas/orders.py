"""
Order request and response schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderItemRequest(BaseModel):
    """One cart line submitted at checkout."""

    product_id: UUID
    quantity: int = Field(..., ge=1, le=1000)
    unit_price: Optional[Decimal] = Field(
        None,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Price shown to the buyer; checked against the catalog",
    )


class ShippingInfoRequest(BaseModel):
    """Shipping address captured at checkout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    phone: str = Field(..., min_length=1, max_length=32)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        digits = "".join(filter(str.isdigit, v))
        if len(digits) < 10:
            raise ValueError("Phone number must contain at least 10 digits")
        return v

    @field_validator("zip_code")
    @classmethod
    def validate_zip_code(cls, v: str) -> str:
        digits = "".join(filter(str.isdigit, v))
        if len(digits) < 5:
            raise ValueError("Postal code must contain at least 5 digits")
        return v


class OrderCreateRequest(BaseModel):
    """Checkout payload."""

    items: list[OrderItemRequest] = Field(..., min_length=1, max_length=100)
    shipping_info: ShippingInfoRequest
    items_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    tax_price: Decimal = Field(Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    shipping_price: Decimal = Field(
        Decimal("0.00"), ge=0, max_digits=10, decimal_places=2
    )
    total_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "product_id": "8d0c8b8e-6a1f-4f0e-9d55-5a3b8f1c2e10",
                            "quantity": 2,
                            "unit_price": "50.00",
                        },
                        {
                            "product_id": "0b7c1c0e-2b55-4a55-8f7e-1f4f9c0d7a21",
                            "quantity": 1,
                            "unit_price": "20.00",
                        },
                    ],
                    "shipping_info": {
                        "full_name": "Jane Doe",
                        "address": "12 Market Street",
                        "city": "Springfield",
                        "state": "IL",
                        "country": "US",
                        "zip_code": "62701",
                        "phone": "2175550100",
                    },
                    "items_price": "120.00",
                    "tax_price": "12.00",
                    "shipping_price": "5.00",
                    "total_price": "137.00",
                }
            ]
        }
    }


class OrderStatusUpdateRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: Optional[UUID]
    product_name: str
    product_image: Optional[str]
    quantity: int
    unit_price: Decimal


class ShippingInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    full_name: str
    address: str
    city: str
    state: str
    country: str
    zip_code: str
    phone: str


class PaymentInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_type: str
    payment_status: str
    payment_intent_id: Optional[str]


class OrderResponse(BaseModel):
    """Order with lines, shipping snapshot and payment mirror."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    buyer_id: UUID
    order_status: str
    payment_status: str
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    paid_at: Optional[datetime]
    created_at: Optional[datetime]
    items: list[OrderItemResponse] = Field(default_factory=list)
    shipping: Optional[ShippingInfoResponse] = None
    payment: Optional[PaymentInfoResponse] = None

    @field_validator("order_status", mode="before")
    @classmethod
    def serialize_status(cls, v):
        return getattr(v, "value", v)


class OrderStatsResponse(BaseModel):
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_counts: dict[str, int]


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    limit: int
    offset: int
    stats: OrderStatsResponse


class OrderDeleteResponse(BaseModel):
    order_id: UUID
    message: str
    cancelled: bool = False
    hard: bool = False
