"""Tenant-scoped order queries."""
import math
from dataclasses import dataclass
from datetime import datetime, time
from typing import List

from sqlalchemy.orm import Session

from core.config import settings
from core.errors import NotAuthorized, ValidationFailed
from core.tenancy import is_order_party
from models.enums import OrderStatus, PaymentStatus, UserRole
from models.order import Order
from models.order_item import OrderItem
from models.user import User
from schemas.order import OrderListQuery

ACCESS_DENIED = "Access denied to this order"

_SORTS = {
    "-created_at": Order.created_at.desc(),
    "created_at": Order.created_at.asc(),
    "-total_amount": Order.total_amount.desc(),
    "total_amount": Order.total_amount.asc(),
}


@dataclass
class OrderPage:
    orders: List[Order]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def get_order_for_party(db: Session, order_id: int, user: User) -> Order:
    # Unknown ids and foreign orders look the same to the caller
    order = db.get(Order, order_id)
    if order is None or not is_order_party(order, user):
        raise NotAuthorized(ACCESS_DENIED)
    return order


def _scoped_query(db: Session, user: User):
    query = db.query(Order)
    if user.role == UserRole.SUPPLIER.value:
        return query.filter(Order.items.any(OrderItem.supplier_id == user.id))
    return query.filter(Order.buyer_id == user.id)


def _check_filters(filters: OrderListQuery) -> None:
    if filters.page < 1:
        raise ValidationFailed("Page must be at least 1")
    if not 1 <= filters.limit <= settings.MAX_PAGE_SIZE:
        raise ValidationFailed(f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}")
    if filters.status and filters.status != "all" and filters.status not in OrderStatus._value2member_map_:
        raise ValidationFailed(f"Unknown order status: {filters.status}")
    if (
        filters.payment_status
        and filters.payment_status != "all"
        and filters.payment_status not in PaymentStatus._value2member_map_
    ):
        raise ValidationFailed(f"Unknown payment status: {filters.payment_status}")
    if filters.sort not in _SORTS:
        raise ValidationFailed(f"Unsupported sort: {filters.sort}")


def list_orders(db: Session, user: User, filters: OrderListQuery | None = None) -> OrderPage:
    """Orders visible to ``user``: their own as a buyer, or any containing their items as a supplier."""
    filters = filters or OrderListQuery(limit=settings.DEFAULT_PAGE_SIZE)
    _check_filters(filters)

    query = _scoped_query(db, user)
    if filters.status and filters.status != "all":
        query = query.filter(Order.order_status == filters.status)
    if filters.payment_status and filters.payment_status != "all":
        query = query.filter(Order.payment_status == filters.payment_status)
    if filters.date_from:
        query = query.filter(Order.created_at >= datetime.combine(filters.date_from, time.min))
    if filters.date_to:
        query = query.filter(Order.created_at <= datetime.combine(filters.date_to, time.max))

    total = query.count()
    orders = (
        query.order_by(_SORTS[filters.sort], Order.id.desc())
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
        .all()
    )
    return OrderPage(orders=orders, total=total, page=filters.page, limit=filters.limit)
