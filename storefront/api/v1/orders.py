"""
Order API endpoints.

Routes only translate between HTTP and the order service. Errors propagate
to the application exception handler.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from storefront.api.deps import CurrentAdmin, CurrentUser, OrderServiceDep
from storefront.api.rate_limit import limiter
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.schemas.orders import (
    OrderCreateRequest,
    OrderDeleteResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdateRequest,
)
from storefront.services.orders.pricing import ClientTotals, LineRequest

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
)
@limiter.limit(settings.rate_limit_orders)
async def place_order(
    request: Request,
    payload: OrderCreateRequest,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    """
    Create an order with its lines, shipping snapshot and pending payment.

    Unit prices come from the catalog; the submitted totals must agree with
    them.
    """
    logger.info(
        "Placing order",
        user_id=str(current_user.id),
        item_count=len(payload.items),
    )

    order = await service.place_order(
        buyer_id=current_user.id,
        items=[
            LineRequest(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in payload.items
        ],
        totals=ClientTotals(
            items_price=payload.items_price,
            tax_price=payload.tax_price,
            shipping_price=payload.shipping_price,
            total_price=payload.total_price,
        ),
        shipping=payload.shipping_info.model_dump(),
    )
    return OrderResponse.model_validate(order)


@router.get("/me", response_model=list[OrderResponse], summary="List my orders")
async def list_my_orders(
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> list[OrderResponse]:
    orders = await service.list_buyer_orders(current_user.id)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get("/admin", response_model=OrderListResponse, summary="List all orders")
async def list_orders(
    admin: CurrentAdmin,
    service: OrderServiceDep,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> OrderListResponse:
    """Admin listing with revenue and per-status counts."""
    result = await service.list_orders(status=status_filter, limit=limit, offset=offset)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in result["orders"]],
        total=result["total"],
        limit=limit,
        offset=offset,
        stats=OrderStatsResponse(**result["stats"]),
    )


@router.get("/admin/stats", response_model=OrderStatsResponse, summary="Order statistics")
async def order_statistics(
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> OrderStatsResponse:
    stats = await service.get_order_statistics()
    return OrderStatsResponse(**stats)


@router.put("/admin/{order_id}", response_model=OrderResponse, summary="Set order status")
async def set_order_status(
    order_id: UUID,
    payload: OrderStatusUpdateRequest,
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.set_status(order_id, payload.status, admin_id=admin.id)
    return OrderResponse.model_validate(order)


@router.delete(
    "/admin/{order_id}",
    response_model=OrderDeleteResponse,
    summary="Delete order (admin)",
)
async def admin_delete_order(
    order_id: UUID,
    admin: CurrentAdmin,
    service: OrderServiceDep,
    hard: bool = Query(False, description="Remove the order and everything it owns"),
) -> OrderDeleteResponse:
    result = await service.admin_delete(order_id, hard=hard, admin_id=admin.id)
    message = "Order deleted" if result["hard"] else "Order removed from admin view"
    return OrderDeleteResponse(order_id=result["order_id"], message=message, hard=result["hard"])


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
async def get_order(
    order_id: UUID,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.get_order(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.put("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
async def cancel_order(
    order_id: UUID,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.cancel(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.delete("/{order_id}", response_model=OrderDeleteResponse, summary="Delete order")
async def delete_order(
    order_id: UUID,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> OrderDeleteResponse:
    """
    Remove an order from the buyer's history.

    An order still in ``Processing`` is cancelled first.
    """
    result = await service.delete_for_buyer(order_id, current_user)
    message = "Order cancelled and removed" if result["cancelled"] else "Order removed"
    return OrderDeleteResponse(
        order_id=result["order_id"],
        message=message,
        cancelled=result["cancelled"],
    )
