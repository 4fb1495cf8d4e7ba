"""
Test suite for server side order pricing.

The reference checkout is two units at 50.00 plus one at 20.00, with 12.00
tax and 5.00 shipping, for a grand total of 137.00 (13700 cents).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from storefront.core.exceptions import ValidationError
from storefront.services.orders.pricing import (
    ClientTotals,
    LineRequest,
    price_order,
    quantize,
    summarize,
    to_minor_units,
)
from tests.factories import make_product


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def tote():
    return make_product("Canvas Tote", "50.00")


@pytest.fixture
def mug():
    return make_product("Enamel Mug", "20.00")


@pytest.fixture
def catalog(tote, mug) -> dict:
    return {tote.id: tote, mug.id: mug}


@pytest.fixture
def lines(tote, mug) -> list[LineRequest]:
    return [
        LineRequest(product_id=tote.id, quantity=2, unit_price=Decimal("50.00")),
        LineRequest(product_id=mug.id, quantity=1, unit_price=Decimal("20.00")),
    ]


@pytest.fixture
def totals() -> ClientTotals:
    return ClientTotals(
        items_price=Decimal("120.00"),
        tax_price=Decimal("12.00"),
        shipping_price=Decimal("5.00"),
        total_price=Decimal("137.00"),
    )


# ============================================================================
# Conversion Tests
# ============================================================================


class TestMinorUnits:
    """Test currency rounding and conversion to cents."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("137.00"), 13700),
            (Decimal("0.01"), 1),
            (Decimal("19.999"), 2000),
            (Decimal("10.005"), 1001),
        ],
    )
    def test_to_minor_units(self, amount: Decimal, expected: int) -> None:
        assert to_minor_units(amount) == expected

    def test_quantize_rounds_half_up(self) -> None:
        assert quantize(Decimal("2.345")) == Decimal("2.35")
        assert quantize(Decimal("2.344")) == Decimal("2.34")


# ============================================================================
# Pricing Tests
# ============================================================================


class TestPriceOrder:
    """Test recomputation and validation of client totals."""

    def test_reference_checkout(self, lines, catalog, totals) -> None:
        priced = price_order(lines, catalog, totals)

        assert priced.items_price == Decimal("120.00")
        assert priced.tax_price == Decimal("12.00")
        assert priced.shipping_price == Decimal("5.00")
        assert priced.total_price == Decimal("137.00")
        assert priced.total_minor_units == 13700

    def test_lines_snapshot_catalog_fields(self, lines, catalog, totals, tote) -> None:
        priced = price_order(lines, catalog, totals)

        first = priced.lines[0]
        assert first.product_id == tote.id
        assert first.product_name == "Canvas Tote"
        assert first.unit_price == Decimal("50.00")
        assert first.line_total == Decimal("100.00")

    def test_client_unit_price_is_optional(self, catalog, totals, tote, mug) -> None:
        lines = [
            LineRequest(product_id=tote.id, quantity=2),
            LineRequest(product_id=mug.id, quantity=1),
        ]

        priced = price_order(lines, catalog, totals)

        assert priced.total_price == Decimal("137.00")

    def test_total_within_tolerance_is_accepted(self, lines, catalog) -> None:
        totals = ClientTotals(
            items_price=Decimal("120.00"),
            tax_price=Decimal("12.00"),
            shipping_price=Decimal("5.00"),
            total_price=Decimal("137.01"),
        )

        priced = price_order(lines, catalog, totals)

        assert priced.total_price == Decimal("137.00")

    def test_empty_order_rejected(self, catalog, totals) -> None:
        with pytest.raises(ValidationError, match="at least one item"):
            price_order([], catalog, totals)

    def test_unknown_product_rejected(self, catalog, totals) -> None:
        with pytest.raises(ValidationError, match="Product not found"):
            price_order([LineRequest(product_id=uuid4(), quantity=1)], catalog, totals)

    def test_zero_quantity_rejected(self, catalog, totals, tote) -> None:
        with pytest.raises(ValidationError, match="Quantity"):
            price_order([LineRequest(product_id=tote.id, quantity=0)], catalog, totals)

    def test_unpriced_product_rejected(self, totals) -> None:
        free = make_product("Sticker", "0.00")

        with pytest.raises(ValidationError, match="not available"):
            price_order([LineRequest(product_id=free.id, quantity=1)], {free.id: free}, totals)

    def test_stale_unit_price_rejected(self, catalog, totals, tote, mug) -> None:
        lines = [
            LineRequest(product_id=tote.id, quantity=2, unit_price=Decimal("45.00")),
            LineRequest(product_id=mug.id, quantity=1, unit_price=Decimal("20.00")),
        ]

        with pytest.raises(ValidationError) as exc_info:
            price_order(lines, catalog, totals)

        assert "Canvas Tote" in exc_info.value.message
        assert exc_info.value.context["expected_price"] == "50.00"

    def test_items_subtotal_mismatch_rejected(self, lines, catalog) -> None:
        totals = ClientTotals(
            items_price=Decimal("100.00"),
            tax_price=Decimal("12.00"),
            shipping_price=Decimal("5.00"),
            total_price=Decimal("117.00"),
        )

        with pytest.raises(ValidationError, match="subtotal"):
            price_order(lines, catalog, totals)

    def test_total_mismatch_rejected(self, lines, catalog) -> None:
        totals = ClientTotals(
            items_price=Decimal("120.00"),
            tax_price=Decimal("12.00"),
            shipping_price=Decimal("5.00"),
            total_price=Decimal("1.37"),
        )

        with pytest.raises(ValidationError) as exc_info:
            price_order(lines, catalog, totals)

        assert exc_info.value.context == {"submitted": "1.37", "expected": "137.00"}

    def test_negative_tax_rejected(self, lines, catalog) -> None:
        totals = ClientTotals(
            items_price=Decimal("120.00"),
            tax_price=Decimal("-12.00"),
            shipping_price=Decimal("5.00"),
            total_price=Decimal("113.00"),
        )

        with pytest.raises(ValidationError, match="must not be negative"):
            price_order(lines, catalog, totals)

    def test_summarize(self, lines, catalog, totals) -> None:
        summary = summarize(price_order(lines, catalog, totals))

        assert summary == {
            "line_count": 2,
            "items_price": "120.00",
            "total_price": "137.00",
        }
