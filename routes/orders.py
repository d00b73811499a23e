from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import require_buyer, require_order_party, require_supplier
from models.user import User
from schemas.order import (
    CancelRequest,
    CheckoutRequest,
    OrderListOut,
    OrderListQuery,
    OrderResponse,
    RefundRequest,
    StatusUpdateRequest,
    TrackingRequest,
)
from services import order_status
from services import orders as order_queries
from services.checkout import ClientInfo, checkout
from services.projection import buyer_view, project_order, supplier_view

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout", response_model=OrderResponse, status_code=201)
def create_order(
    data: CheckoutRequest, request: Request, user: User = Depends(require_buyer), db: Session = Depends(get_db)
):
    client = ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    order = checkout(db, user, data, client=client)
    return OrderResponse(message="Order placed successfully", order=buyer_view(order))


@router.get("/", response_model=OrderListOut)
def list_orders(
    filters: OrderListQuery = Depends(), user: User = Depends(require_order_party), db: Session = Depends(get_db)
):
    page = order_queries.list_orders(db, user, filters)
    orders = [project_order(order, user) for order in page.orders]
    return OrderListOut(count=len(orders), total=page.total, page=page.page, pages=page.pages, orders=orders)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, user: User = Depends(require_order_party), db: Session = Depends(get_db)):
    order = order_queries.get_order_for_party(db, order_id, user)
    return OrderResponse(order=project_order(order, user))


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int, data: StatusUpdateRequest, user: User = Depends(require_supplier), db: Session = Depends(get_db)
):
    order = order_queries.get_order_for_party(db, order_id, user)
    order = order_status.advance_status(
        db,
        order,
        user,
        data.status.value,
        note=data.note,
        tracking_number=data.tracking_number,
        shipping_carrier=data.shipping_carrier.value if data.shipping_carrier else None,
        estimated_delivery_date=data.estimated_delivery_date,
    )
    return OrderResponse(message="Order status updated successfully", order=supplier_view(order, user.id))


@router.put("/{order_id}/tracking", response_model=OrderResponse)
def add_tracking(
    order_id: int, data: TrackingRequest, user: User = Depends(require_supplier), db: Session = Depends(get_db)
):
    order = order_queries.get_order_for_party(db, order_id, user)
    order = order_status.add_tracking(
        db,
        order,
        user,
        data.tracking_number,
        data.shipping_carrier.value if data.shipping_carrier else None,
    )
    return OrderResponse(message="Tracking information added", order=supplier_view(order, user.id))


@router.put("/{order_id}/refund", response_model=OrderResponse)
def refund_order(
    order_id: int, data: RefundRequest, user: User = Depends(require_supplier), db: Session = Depends(get_db)
):
    order = order_queries.get_order_for_party(db, order_id, user)
    order = order_status.refund_order(db, order, user, data.amount, data.reason)
    return OrderResponse(message="Order refunded", order=supplier_view(order, user.id))


@router.put("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    data: CancelRequest | None = None,
    user: User = Depends(require_buyer),
    db: Session = Depends(get_db),
):
    order = order_queries.get_order_for_party(db, order_id, user)
    order = order_status.cancel_order(db, order, user, data.reason if data else None)
    return OrderResponse(message="Order cancelled successfully", order=buyer_view(order))
