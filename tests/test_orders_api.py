"""
Tests for tenant-scoped order access and views.
"""
from datetime import datetime, timedelta

import pytest
from fastapi import status

from core.errors import NotAuthorized, ValidationFailed
from schemas.order import OrderListQuery
from services import order_status
from services import orders as order_queries
from services.projection import HIDDEN, buyer_view, project_order, supplier_view


class TestOrderViews:
    """Test buyer and supplier projections."""

    def test_buyer_sees_every_line(self, mixed_order):
        view = buyer_view(mixed_order)
        assert len(view.items) == 2
        assert view.supplier_subtotal is None
        assert view.payment_details.transaction_id == HIDDEN

    def test_supplier_sees_only_own_lines(self, mixed_order, supplier, other_supplier):
        view = supplier_view(mixed_order, supplier.id)
        assert [item.supplier_id for item in view.items] == [supplier.id]
        assert view.supplier_subtotal == 20.0
        assert view.supplier_item_count == 1
        assert view.total_amount == 49.5

        other = supplier_view(mixed_order, other_supplier.id)
        assert other.supplier_subtotal == 25.0

    def test_internal_metadata_never_projected(self, mixed_order, buyer):
        data = project_order(mixed_order, buyer).model_dump()
        assert "ip_address" not in data
        assert "user_agent" not in data

    def test_project_for_stranger_rejected(self, mixed_order, other_buyer):
        with pytest.raises(NotAuthorized):
            project_order(mixed_order, other_buyer)


class TestOrderQueries:
    """Test order lookup and listing."""

    def test_missing_and_foreign_orders_look_alike(self, db, mixed_order, other_buyer):
        with pytest.raises(NotAuthorized) as missing:
            order_queries.get_order_for_party(db, 9999, other_buyer)
        with pytest.raises(NotAuthorized) as foreign:
            order_queries.get_order_for_party(db, mixed_order.id, other_buyer)
        assert missing.value.message == foreign.value.message == "Access denied to this order"

    def test_buyer_lists_own_orders(self, db, place_order, buyer, other_buyer, widget):
        place_order(buyer, [(widget, 1)])
        place_order(other_buyer, [(widget, 1)])
        page = order_queries.list_orders(db, buyer)
        assert page.total == 1
        assert page.orders[0].buyer_id == buyer.id

    def test_supplier_lists_orders_with_their_items(self, db, place_order, buyer, widget, bolts, supplier, other_supplier):
        place_order(buyer, [(widget, 1)])
        place_order(buyer, [(bolts, 5)])
        place_order(buyer, [(widget, 1), (bolts, 5)])
        assert order_queries.list_orders(db, supplier).total == 2
        assert order_queries.list_orders(db, other_supplier).total == 2

    def test_pagination(self, db, place_order, buyer, widget):
        for _ in range(3):
            place_order(buyer, [(widget, 1)])
        page = order_queries.list_orders(db, buyer, OrderListQuery(page=2, limit=2))
        assert page.total == 3
        assert page.pages == 2
        assert len(page.orders) == 1

    def test_status_filter(self, db, place_order, buyer, widget):
        first = place_order(buyer, [(widget, 1)])
        place_order(buyer, [(widget, 1)])
        order_status.cancel_order(db, first, buyer)
        page = order_queries.list_orders(db, buyer, OrderListQuery(status="cancelled"))
        assert [order.id for order in page.orders] == [first.id]
        assert order_queries.list_orders(db, buyer, OrderListQuery(status="all")).total == 2

    def test_date_range_filter(self, db, mixed_order, buyer):
        today = datetime.utcnow().date()
        assert order_queries.list_orders(db, buyer, OrderListQuery(date_from=today - timedelta(days=1))).total == 1
        assert order_queries.list_orders(db, buyer, OrderListQuery(date_to=today - timedelta(days=1))).total == 0

    @pytest.mark.parametrize("filters", [
        {"page": 0},
        {"limit": 0},
        {"limit": 51},
        {"status": "lost"},
        {"sort": "name"},
    ])
    def test_bad_filters_rejected(self, db, buyer, filters):
        with pytest.raises(ValidationFailed):
            order_queries.list_orders(db, buyer, OrderListQuery(**filters))


class TestOrderRoutes:
    """Test the order HTTP surface and its authorization."""

    def test_buyer_gets_order(self, client, mixed_order, buyer, headers_for):
        response = client.get(f"/orders/{mixed_order.id}", headers=headers_for(buyer))
        assert response.status_code == status.HTTP_200_OK
        order = response.json()["order"]
        assert order["order_number"] == mixed_order.order_number
        assert order["buyer"]["company"] == "Acme Retail"
        assert len(order["items"]) == 2

    def test_supplier_gets_filtered_order(self, client, mixed_order, other_supplier, headers_for):
        order = client.get(f"/orders/{mixed_order.id}", headers=headers_for(other_supplier)).json()["order"]
        assert [item["product_name"] for item in order["items"]] == ["Bolts"]
        assert order["supplier_subtotal"] == 25.0

    def test_other_buyer_denied(self, client, mixed_order, other_buyer, headers_for):
        response = client.get(f"/orders/{mixed_order.id}", headers=headers_for(other_buyer))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "Access denied to this order"

    def test_unknown_order_denied(self, client, buyer, headers_for):
        response = client.get("/orders/424242", headers=headers_for(buyer))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_invalid_token(self, client, mixed_order):
        response = client.get(f"/orders/{mixed_order.id}", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_orders(self, client, mixed_order, buyer, headers_for):
        body = client.get("/orders/?limit=5", headers=headers_for(buyer)).json()
        assert body["total"] == 1
        assert body["pages"] == 1
        assert body["orders"][0]["id"] == mixed_order.id

    def test_list_rejects_large_limit(self, client, buyer, headers_for):
        response = client.get("/orders/?limit=500", headers=headers_for(buyer))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_supplier_advances_status(self, client, mixed_order, supplier, headers_for):
        response = client.put(
            f"/orders/{mixed_order.id}/status",
            json={"status": "processing", "note": "Picking started"},
            headers=headers_for(supplier),
        )
        assert response.status_code == status.HTTP_200_OK
        order = response.json()["order"]
        assert order["order_status"] == "processing"
        assert order["timeline"][-1]["note"] == "Picking started"

    def test_invalid_transition_is_400(self, client, mixed_order, supplier, headers_for):
        response = client.put(
            f"/orders/{mixed_order.id}/status", json={"status": "delivered"}, headers=headers_for(supplier)
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Cannot change order status from confirmed to delivered"

    def test_past_delivery_estimate_rejected(self, client, mixed_order, supplier, headers_for):
        response = client.put(
            f"/orders/{mixed_order.id}/status",
            json={"status": "processing", "estimated_delivery_date": "2001-01-01T00:00:00"},
            headers=headers_for(supplier),
        )
        assert response.status_code == 422

    def test_buyer_cannot_update_status(self, client, mixed_order, buyer, headers_for):
        response = client.put(
            f"/orders/{mixed_order.id}/status", json={"status": "processing"}, headers=headers_for(buyer)
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_buyer_cancels(self, client, mixed_order, buyer, headers_for):
        response = client.put(
            f"/orders/{mixed_order.id}/cancel", json={"reason": "Changed plans"}, headers=headers_for(buyer)
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order"]["cancellation_reason"] == "Changed plans"

    def test_supplier_cannot_cancel(self, client, mixed_order, supplier, headers_for):
        response = client.put(f"/orders/{mixed_order.id}/cancel", json={}, headers=headers_for(supplier))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_refund_and_tracking_routes(self, client, mixed_order, supplier, headers_for):
        headers = headers_for(supplier)
        tracking = client.put(
            f"/orders/{mixed_order.id}/tracking",
            json={"tracking_number": "TRK-9", "shipping_carrier": "fedex"},
            headers=headers,
        )
        assert tracking.json()["order"]["tracking_number"] == "TRK-9"

        refund = client.put(
            f"/orders/{mixed_order.id}/refund", json={"amount": 20, "reason": "Short shipment"}, headers=headers
        )
        assert refund.status_code == status.HTTP_200_OK
        assert refund.json()["order"]["payment_status"] == "partially_refunded"
        assert refund.json()["order"]["refund_amount"] == 20.0

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
