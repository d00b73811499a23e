"""
Tests for cart and order money calculations.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from services.pricing import (
    PricingPolicy,
    check_order_invariants,
    compute_cart_totals,
    compute_order_totals,
    money,
    recalculate_cart,
)


def line(quantity, unit_price):
    return SimpleNamespace(quantity=quantity, unit_price=Decimal(unit_price))


class TestCartTotals:
    """Test derived cart totals."""

    def test_empty_cart_totals(self):
        assert compute_cart_totals([]) == (0, Decimal("0.00"))

    def test_totals_sum_quantity_and_amount(self):
        total_items, total_amount = compute_cart_totals([line(2, "10.00"), line(3, "2.50")])
        assert total_items == 5
        assert total_amount == Decimal("27.50")

    def test_recalculate_cart_sets_fields(self):
        cart = SimpleNamespace(items=[line(4, "1.25")], total_items=0, total_amount=None, last_updated=None)
        recalculate_cart(cart)
        assert cart.total_items == 4
        assert cart.total_amount == Decimal("5.00")
        assert cart.last_updated is not None


class TestOrderTotals:
    """Test order total formula."""

    def test_default_policy_matches_checkout_example(self):
        totals = compute_order_totals([line(2, "10.00")], PricingPolicy())
        assert totals.subtotal == Decimal("20.00")
        assert totals.tax == Decimal("2.00")
        assert totals.shipping_cost == Decimal("0.00")
        assert totals.total_amount == Decimal("22.00")

    def test_custom_policy(self):
        policy = PricingPolicy(tax_rate=Decimal("0.20"), shipping_cost=Decimal("5"))
        totals = compute_order_totals([line(1, "9.99")], policy, discount=Decimal("1.00"))
        assert totals.tax == Decimal("2.00")
        assert totals.total_amount == Decimal("15.99")

    def test_tax_rounds_half_up(self):
        totals = compute_order_totals([line(1, "0.05")], PricingPolicy())
        assert totals.tax == Decimal("0.01")

    def test_discount_larger_than_total_rejected(self):
        with pytest.raises(ValueError):
            compute_order_totals([line(1, "1.00")], PricingPolicy(), discount=Decimal("5.00"))

    def test_money_quantizes(self):
        assert money(2.675) == Decimal("2.68")
        assert money(None) == Decimal("0.00")


class TestOrderInvariants:
    """Test the pre-persistence order check."""

    def _order(self, **overrides):
        fields = dict(
            items=[line(2, "10.00")],
            subtotal=Decimal("20.00"),
            shipping_cost=Decimal("0.00"),
            tax=Decimal("2.00"),
            discount=Decimal("0.00"),
            total_amount=Decimal("22.00"),
        )
        fields.update(overrides)
        return SimpleNamespace(**fields)

    def test_consistent_order_passes(self):
        check_order_invariants(self._order())

    def test_order_without_items_rejected(self):
        with pytest.raises(ValueError, match="at least one item"):
            check_order_invariants(self._order(items=[]))

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError):
            check_order_invariants(self._order(items=[line(0, "10.00")]))

    def test_mismatched_total_rejected(self):
        with pytest.raises(ValueError, match="does not match"):
            check_order_invariants(self._order(total_amount=Decimal("21.00")))

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError, match="tax"):
            check_order_invariants(self._order(tax=Decimal("-1.00"), total_amount=Decimal("19.00")))
