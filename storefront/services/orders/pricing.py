"""
Server side order pricing.

Totals sent by the checkout page are only ever compared against totals
recomputed here from catalog prices. The stored order always carries the
recomputed values.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from storefront.core.exceptions import ValidationError
from storefront.core.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")
MAX_ORDER_TOTAL = Decimal("99999999.99")


class CatalogEntry(Protocol):
    id: UUID
    name: str
    price: Decimal
    image_url: Optional[str]


@dataclass(frozen=True)
class LineRequest:
    product_id: UUID
    quantity: int
    unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class ClientTotals:
    """Totals as computed by the client."""

    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PricedLine:
    product_id: UUID
    product_name: str
    product_image: Optional[str]
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PricedOrder:
    """Authoritative totals for an order about to be written."""

    lines: list[PricedLine] = field(default_factory=list)
    items_price: Decimal = Decimal("0.00")
    tax_price: Decimal = Decimal("0.00")
    shipping_price: Decimal = Decimal("0.00")
    total_price: Decimal = Decimal("0.00")

    @property
    def total_minor_units(self) -> int:
        return to_minor_units(self.total_price)


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to whole cents."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _within(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    return abs(quantize(a) - quantize(b)) <= tolerance


def price_order(
    lines: Sequence[LineRequest],
    catalog: Mapping[UUID, CatalogEntry],
    client_totals: ClientTotals,
    tolerance: Decimal = CENT,
) -> PricedOrder:
    """
    Recompute order totals from catalog prices and check the client's math.

    Args:
        lines: Requested line items
        catalog: Products keyed by id, as currently priced
        client_totals: Totals submitted with the order
        tolerance: Largest accepted difference per compared amount

    Returns:
        PricedOrder with snapshot lines and recomputed totals

    Raises:
        ValidationError: Empty order, unknown product, non-positive quantity
            or price, negative charges, or totals that do not add up
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")

    tax_price = quantize(client_totals.tax_price)
    shipping_price = quantize(client_totals.shipping_price)
    if tax_price < 0 or shipping_price < 0:
        raise ValidationError(
            "Tax and shipping must not be negative",
            tax_price=str(tax_price),
            shipping_price=str(shipping_price),
        )

    priced: list[PricedLine] = []
    for line in lines:
        if line.quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1",
                product_id=str(line.product_id),
                quantity=line.quantity,
            )

        product = catalog.get(line.product_id)
        if product is None:
            raise ValidationError(
                "Product not found",
                product_id=str(line.product_id),
            )

        unit_price = quantize(product.price)
        if unit_price <= 0:
            raise ValidationError(
                "Product is not available for purchase",
                product_id=str(line.product_id),
            )

        if line.unit_price is not None and not _within(
            line.unit_price, unit_price, tolerance
        ):
            logger.info(
                "Client unit price differs from catalog",
                product_id=str(line.product_id),
                client_price=str(line.unit_price),
                catalog_price=str(unit_price),
            )
            raise ValidationError(
                f"Price of {product.name} has changed, please review your cart",
                product_id=str(line.product_id),
                expected_price=str(unit_price),
            )

        priced.append(
            PricedLine(
                product_id=line.product_id,
                product_name=product.name,
                product_image=product.image_url,
                quantity=line.quantity,
                unit_price=unit_price,
            )
        )

    items_price = quantize(sum((p.line_total for p in priced), Decimal("0")))
    total_price = quantize(items_price + tax_price + shipping_price)

    if not _within(client_totals.items_price, items_price, tolerance):
        raise ValidationError(
            "Items subtotal does not match the order lines",
            submitted=str(client_totals.items_price),
            expected=str(items_price),
        )

    if not _within(client_totals.total_price, total_price, tolerance):
        raise ValidationError(
            "Order total does not equal items, tax and shipping",
            submitted=str(client_totals.total_price),
            expected=str(total_price),
        )

    if total_price > MAX_ORDER_TOTAL:
        raise ValidationError("Order total exceeds the allowed maximum")

    return PricedOrder(
        lines=priced,
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping_price,
        total_price=total_price,
    )


def summarize(priced: PricedOrder) -> dict[str, Any]:
    """Log friendly view of a priced order."""
    return {
        "line_count": len(priced.lines),
        "items_price": str(priced.items_price),
        "total_price": str(priced.total_price),
    }
