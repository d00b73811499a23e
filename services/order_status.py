"""Order lifecycle state machine.

Forward path, driven by any supplier with an item in the order::

    pending -> confirmed -> processing -> shipped -> delivered

Side exits: the buyer may cancel while the order is pending or confirmed; a
co-supplier may refund a paid order that is confirmed, processing or shipped.
delivered, cancelled and refunded are terminal.

Each change appends exactly one timeline entry. Timestamps and the
cancellation/refund details are written once and never overwritten.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from core.db import transaction
from core.errors import CannotCancel, InvalidRefund, InvalidTransition, NotAuthorized, StateError
from core.tenancy import is_order_buyer, is_order_supplier
from models.enums import OrderStatus, PaymentStatus, ShippingCarrier
from models.order import Order
from models.order_timeline import OrderTimelineEntry
from models.user import User
from services.pricing import ZERO, money

logger = logging.getLogger(__name__)

FORWARD_TRANSITIONS = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}
CANCELLABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})
REFUNDABLE_STATES = frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED})
TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def can_advance(current: str, requested: str) -> bool:
    try:
        return FORWARD_TRANSITIONS.get(OrderStatus(current)) is OrderStatus(requested)
    except ValueError:
        return False


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATES


def _record(order: Order, status: str, note: str, actor: User | None, now: datetime) -> None:
    order.timeline.append(
        OrderTimelineEntry(
            status=status,
            timestamp=now,
            note=note[:500],
            actor_id=actor.id if actor else None,
        )
    )
    order.updated_at = now


def _require_co_supplier(order: Order, actor: User) -> None:
    if not is_order_supplier(order, actor):
        raise NotAuthorized("You can only update orders containing your products")


def advance_status(
    db: Session,
    order: Order,
    actor: User,
    new_status: str,
    note: str | None = None,
    tracking_number: str | None = None,
    shipping_carrier: str | None = None,
    estimated_delivery_date: datetime | None = None,
) -> Order:
    _require_co_supplier(order, actor)
    current = order.order_status
    requested = getattr(new_status, "value", new_status)
    if not can_advance(current, requested):
        raise InvalidTransition(current, requested)

    with transaction(db):
        now = datetime.utcnow()
        order.order_status = requested
        if requested == OrderStatus.DELIVERED.value and order.actual_delivery_date is None:
            order.actual_delivery_date = now
        if tracking_number:
            order.tracking_number = tracking_number
        if shipping_carrier:
            order.shipping_carrier = ShippingCarrier(shipping_carrier).value
        if estimated_delivery_date:
            order.estimated_delivery_date = estimated_delivery_date.replace(tzinfo=None)
        _record(order, requested, note or f"Status changed from {current} to {requested}", actor, now)

    logger.info(
        "Order %s moved from %s to %s by supplier %s",
        order.order_number, current, requested, actor.id,
        extra={"order_number": order.order_number, "user_id": actor.id},
    )
    return order


def cancel_order(db: Session, order: Order, actor: User, reason: str | None = None) -> Order:
    if not is_order_buyer(order, actor):
        raise NotAuthorized("You can only cancel your own orders")
    current = order.order_status
    if OrderStatus(current) not in CANCELLABLE_STATES:
        raise CannotCancel(current)

    reason = reason or "Cancelled by buyer"
    with transaction(db):
        now = datetime.utcnow()
        order.order_status = OrderStatus.CANCELLED.value
        if order.cancelled_at is None:
            order.cancelled_at = now
        if order.cancelled_by is None:
            order.cancelled_by = actor.id
        if order.cancellation_reason is None:
            order.cancellation_reason = reason
        _record(order, OrderStatus.CANCELLED.value, f"Order cancelled: {reason}", actor, now)

    logger.info(
        "Order %s cancelled by buyer %s",
        order.order_number, actor.id,
        extra={"order_number": order.order_number, "user_id": actor.id},
    )
    return order


def refund_order(db: Session, order: Order, actor: User, amount, reason: str) -> Order:
    _require_co_supplier(order, actor)
    current = order.order_status
    if OrderStatus(current) not in REFUNDABLE_STATES:
        raise InvalidTransition(current, OrderStatus.REFUNDED.value)
    if order.payment_status != PaymentStatus.PAID.value:
        raise InvalidRefund("Only paid orders can be refunded")
    if order.refunded_at is not None:
        raise InvalidRefund("Order has already been refunded")

    amount = money(amount)
    total = money(order.total_amount)
    if amount <= ZERO or amount > total:
        raise InvalidRefund(f"Refund amount must be greater than 0 and at most {total}")

    with transaction(db):
        now = datetime.utcnow()
        order.order_status = OrderStatus.REFUNDED.value
        order.payment_status = (
            PaymentStatus.REFUNDED.value if amount == total else PaymentStatus.PARTIALLY_REFUNDED.value
        )
        order.refund_amount = amount
        order.refund_reason = reason
        order.refunded_at = now
        _record(order, OrderStatus.REFUNDED.value, f"Order refunded ({amount}): {reason}", actor, now)

    logger.info(
        "Order %s refunded %s by supplier %s",
        order.order_number, amount, actor.id,
        extra={"order_number": order.order_number, "user_id": actor.id},
    )
    return order


def add_tracking(
    db: Session, order: Order, actor: User, tracking_number: str, shipping_carrier: str | None = None
) -> Order:
    _require_co_supplier(order, actor)
    if is_terminal(order.order_status):
        raise StateError(f"Cannot add tracking to an order that is {order.order_status}")

    with transaction(db):
        now = datetime.utcnow()
        order.tracking_number = tracking_number
        if shipping_carrier:
            order.shipping_carrier = ShippingCarrier(shipping_carrier).value
        via = f" via {order.shipping_carrier}" if shipping_carrier else ""
        _record(order, order.order_status, f"Tracking number added: {tracking_number}{via}", actor, now)
    return order

