"""Derived money fields for carts and orders.

Everything here is a plain function over quantities and prices. Callers
invoke them explicitly right before writing a cart or an order.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

from core.config import Settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class PricedLine(Protocol):
    quantity: int
    unit_price: Decimal


def to_decimal(value: float | int | str | Decimal | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: float | int | str | Decimal | None) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(line: PricedLine) -> Decimal:
    return money(to_decimal(line.unit_price) * line.quantity)


def compute_cart_totals(lines: Iterable[PricedLine]) -> tuple[int, Decimal]:
    """Return ``(total_items, total_amount)`` for a set of cart lines."""
    total_items = 0
    total_amount = ZERO
    for line in lines:
        total_items += line.quantity
        total_amount += to_decimal(line.unit_price) * line.quantity
    return total_items, money(total_amount)


def recalculate_cart(cart, now: datetime | None = None):
    cart.total_items, cart.total_amount = compute_cart_totals(cart.items)
    cart.last_updated = now or datetime.utcnow()
    return cart


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0.10")
    shipping_cost: Decimal = ZERO

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(tax_rate=to_decimal(settings.TAX_RATE), shipping_cost=money(settings.SHIPPING_COST))


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal


def compute_order_totals(
    lines: Iterable[PricedLine], policy: PricingPolicy, discount: Decimal = ZERO
) -> OrderTotals:
    subtotal = money(sum((to_decimal(line.unit_price) * line.quantity for line in lines), ZERO))
    tax = money(subtotal * policy.tax_rate)
    shipping_cost = money(policy.shipping_cost)
    discount = money(discount)
    total_amount = subtotal + shipping_cost + tax - discount
    if total_amount < ZERO:
        raise ValueError("Discount cannot exceed the order total")
    return OrderTotals(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        discount=discount,
        total_amount=total_amount,
    )


def check_order_invariants(order) -> None:
    """Raise ``ValueError`` if ``order`` must not be persisted as-is."""
    if not order.items:
        raise ValueError("Order must have at least one item")
    for item in order.items:
        if not isinstance(item.quantity, int) or item.quantity < 1:
            raise ValueError("Order item quantity must be a whole number of at least 1")
        if to_decimal(item.unit_price) < ZERO:
            raise ValueError("Order item price cannot be negative")

    amounts = {
        "subtotal": to_decimal(order.subtotal),
        "shipping_cost": to_decimal(order.shipping_cost),
        "tax": to_decimal(order.tax),
        "discount": to_decimal(order.discount),
        "total_amount": to_decimal(order.total_amount),
    }
    for name, amount in amounts.items():
        if amount < ZERO:
            raise ValueError(f"Order {name} cannot be negative")

    expected = amounts["subtotal"] + amounts["shipping_cost"] + amounts["tax"] - amounts["discount"]
    if money(expected) != money(amounts["total_amount"]):
        raise ValueError("Order total does not match subtotal + shipping + tax - discount")
