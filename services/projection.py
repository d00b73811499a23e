"""Caller-specific response shapes for carts and orders.

Orders are stored once but read by two kinds of party. A buyer sees the
whole order; a supplier sees only its own lines plus a subtotal over them.
Fields are copied over explicitly, so request metadata (IP address, user
agent) never leaves the service and payment transaction ids are masked.
"""
from typing import Mapping

from core.errors import NotAuthorized
from core.tenancy import is_order_buyer, is_order_supplier
from models.cart import Cart
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from models.user import User
from schemas.cart import CartItemOut, CartOut
from schemas.order import (
    AddressOut,
    OrderItemOut,
    OrderOut,
    PartyOut,
    PaymentDetailsOut,
    TimelineEntryOut,
)
from services.pricing import ZERO, line_total

HIDDEN = "***HIDDEN***"


def _party(user: User) -> PartyOut:
    return PartyOut(id=user.id, name=user.full_name, email=user.email, company=user.company)


def _payment_details(details: dict | None) -> PaymentDetailsOut | None:
    if not details:
        return None
    return PaymentDetailsOut(
        card_last4=details.get("card_last4"),
        card_brand=details.get("card_brand"),
        transaction_id=HIDDEN if details.get("transaction_id") else None,
        payment_gateway=details.get("payment_gateway"),
    )


def _item(item: OrderItem) -> OrderItemOut:
    return OrderItemOut(
        id=item.id,
        product_id=item.product_id,
        product_name=item.product.name if item.product else None,
        supplier_id=item.supplier_id,
        supplier_name=item.supplier.full_name if item.supplier else None,
        quantity=item.quantity,
        unit_price=float(item.unit_price),
        line_total=float(line_total(item)),
    )


def _order_out(order: Order, items: list[OrderItem], **extra) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        buyer=_party(order.buyer),
        items=[_item(item) for item in items],
        shipping_address=AddressOut(**order.shipping_address),
        billing_address=AddressOut(**order.billing_address),
        payment_method=order.payment_method,
        payment_details=_payment_details(order.payment_details),
        order_status=order.order_status,
        payment_status=order.payment_status,
        subtotal=float(order.subtotal),
        shipping_cost=float(order.shipping_cost),
        tax=float(order.tax),
        discount=float(order.discount),
        total_amount=float(order.total_amount),
        currency=order.currency,
        notes=order.notes,
        estimated_delivery_date=order.estimated_delivery_date,
        actual_delivery_date=order.actual_delivery_date,
        tracking_number=order.tracking_number,
        shipping_carrier=order.shipping_carrier,
        cancellation_reason=order.cancellation_reason,
        cancelled_at=order.cancelled_at,
        cancelled_by=order.cancelled_by,
        refund_amount=float(order.refund_amount) if order.refund_amount is not None else None,
        refund_reason=order.refund_reason,
        refunded_at=order.refunded_at,
        order_source=order.order_source,
        timeline=[
            TimelineEntryOut(status=e.status, timestamp=e.timestamp, note=e.note, actor_id=e.actor_id)
            for e in order.timeline
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
        **extra,
    )


def buyer_view(order: Order) -> OrderOut:
    return _order_out(order, list(order.items))


def supplier_view(order: Order, supplier_id: int) -> OrderOut:
    """Order restricted to ``supplier_id``'s lines, with a subtotal over them.

    Order-level amounts stay those of the whole order.
    """
    own = [item for item in order.items if item.supplier_id == supplier_id]
    subtotal = sum((line_total(item) for item in own), ZERO)
    return _order_out(
        order,
        own,
        supplier_subtotal=float(subtotal),
        supplier_item_count=len(own),
    )


def project_order(order: Order, user: User) -> OrderOut:
    if is_order_buyer(order, user):
        return buyer_view(order)
    if is_order_supplier(order, user):
        return supplier_view(order, user.id)
    raise NotAuthorized("Access denied to this order")


def cart_view(cart: Cart, products: Mapping[int, Product]) -> CartOut:
    items = []
    for line in cart.items:
        product = products.get(line.product_id)
        items.append(
            CartItemOut(
                id=line.id,
                product_id=line.product_id,
                product_name=product.name if product else None,
                supplier_id=product.supplier_id if product else None,
                quantity=line.quantity,
                unit_price=float(line.unit_price),
                line_total=float(line_total(line)),
                added_at=line.added_at,
            )
        )
    return CartOut(
        id=cart.id,
        currency=cart.currency,
        items=items,
        total_items=cart.total_items or 0,
        total_amount=float(cart.total_amount or 0),
        last_updated=cart.last_updated,
        expires_at=cart.expires_at,
    )
