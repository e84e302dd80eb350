"""Back-office order fulfilment and subscription listing."""

from __future__ import annotations

from decimal import Decimal

import pytest
from freezegun import freeze_time

from storefront.errors import NotFoundError, ValidationError
from storefront.models import Order, OrderItem, OrderStatus, Subscription, SubscriptionStatus


def _order(store, session_id: str, status: OrderStatus = OrderStatus.PROCESSING, **fields) -> Order:
    created, _ = store.create_order(
        Order(
            stripe_checkout_session_id=session_id,
            customer_email=fields.pop("customer_email", "ada@example.com"),
            customer_name=fields.pop("customer_name", "Ada Lovelace"),
            total=Decimal("21.00"),
            status=status,
            **fields,
        )
    )
    return created


@pytest.fixture()
def orders_admin(services):
    return services.orders


@pytest.fixture()
def order(store) -> Order:
    return _order(store, "cs_admin_1")


class TestListOrders:
    def test_status_filter_and_search(self, orders_admin, store):
        _order(store, "cs_1", customer_name="Grace Hopper", customer_email="grace@example.com")
        _order(store, "cs_2", OrderStatus.SHIPPED)
        _order(store, "cs_3", OrderStatus.PENDING)

        assert len(orders_admin.list_orders()) == 3
        assert [o.status for o in orders_admin.list_orders("shipped")] == [OrderStatus.SHIPPED]
        assert [o.customer_name for o in orders_admin.list_orders(search="GRACE")] == ["Grace Hopper"]

    def test_search_by_order_number(self, orders_admin, order):
        assert orders_admin.list_orders(search=order.order_number.lower()) == [order]

    def test_unknown_status(self, orders_admin):
        with pytest.raises(ValidationError):
            orders_admin.list_orders("lost")

    def test_stats(self, orders_admin, store):
        _order(store, "cs_1")
        _order(store, "cs_2", OrderStatus.SHIPPED)
        stats = orders_admin.order_stats()
        assert stats["total"] == 2
        assert stats["processing"] == 1
        assert stats["shipped"] == 1
        assert stats["delivered"] == 0


class TestStatusChanges:
    @freeze_time("2026-04-02 15:30:00")
    def test_ship_stamps_and_emails(self, orders_admin, store, sender, order):
        change = orders_admin.change_status(
            order.id, OrderStatus.SHIPPED, " 9400111899560000000000 ", "https://tools.usps.com/t"
        )
        stored = store.get_order(order.id)
        assert stored.status is OrderStatus.SHIPPED
        assert stored.tracking_number == "9400111899560000000000"
        assert stored.tracking_url == "https://tools.usps.com/t"
        assert stored.shipped_at.isoformat() == "2026-04-02T15:30:00+00:00"
        assert change.email.ok is True
        assert "9400111899560000000000" in sender.sent[0].html

    def test_ship_requires_tracking_number(self, orders_admin, store, sender, order):
        with pytest.raises(ValidationError, match="Tracking number"):
            orders_admin.change_status(order.id, OrderStatus.SHIPPED, "  ")
        assert store.get_order(order.id).status is OrderStatus.PROCESSING
        assert sender.sent == []

    def test_ship_without_notification(self, orders_admin, sender, order):
        change = orders_admin.change_status(order.id, OrderStatus.SHIPPED, "1Z999", notify=False)
        assert change.email is None
        assert sender.sent == []

    @freeze_time("2026-04-05 09:00:00")
    def test_deliver_after_ship(self, orders_admin, store, order):
        orders_admin.change_status(order.id, OrderStatus.SHIPPED, "1Z999", notify=False)
        change = orders_admin.change_status(order.id, OrderStatus.DELIVERED)
        assert change.order.status is OrderStatus.DELIVERED
        assert change.order.delivered_at.isoformat() == "2026-04-05T09:00:00+00:00"
        assert change.email is None

    def test_cancel_sends_cancellation(self, orders_admin, sender, order):
        change = orders_admin.change_status(order.id, OrderStatus.CANCELLED)
        assert change.order.status is OrderStatus.CANCELLED
        assert change.email.name == "cancellation_email"
        assert "line-through" in sender.sent[0].html

    def test_email_failure_keeps_status(self, orders_admin, store, sender, order):
        sender.fail = True
        change = orders_admin.change_status(order.id, OrderStatus.CANCELLED)
        assert change.email.ok is False
        assert change.email.error == "provider down"
        assert store.get_order(order.id).status is OrderStatus.CANCELLED

    def test_pending_to_processing(self, orders_admin, store):
        pending = _order(store, "cs_pending", OrderStatus.PENDING)
        change = orders_admin.change_status(pending.id, OrderStatus.PROCESSING)
        assert change.order.status is OrderStatus.PROCESSING
        assert change.email is None

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PROCESSING, OrderStatus.DELIVERED),
            (OrderStatus.SHIPPED, OrderStatus.PROCESSING),
            (OrderStatus.REFUNDED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.REFUNDED),
            (OrderStatus.PROCESSING, OrderStatus.PENDING),
        ],
    )
    def test_disallowed_moves(self, orders_admin, store, current, target):
        existing = _order(store, "cs_move", current)
        with pytest.raises(ValidationError, match="Cannot mark"):
            orders_admin.change_status(existing.id, target, "1Z999")
        assert store.get_order(existing.id).status is current

    def test_unknown_order(self, orders_admin):
        with pytest.raises(NotFoundError):
            orders_admin.change_status("missing", OrderStatus.CANCELLED)


class TestSubscriptions:
    @pytest.fixture()
    def subscriptions(self, store):
        store.create_subscription(
            Subscription("sub_a", customer_name="Ada", recurring_amount=Decimal("30.00"))
        )
        store.create_subscription(
            Subscription("sub_b", customer_name="Grace", recurring_amount=Decimal("45.50"))
        )
        store.create_subscription(
            Subscription(
                "sub_c",
                customer_name="Lin",
                status=SubscriptionStatus.PAUSED,
                recurring_amount=Decimal("99.00"),
            )
        )

    def test_filter_and_search(self, orders_admin, subscriptions):
        assert len(orders_admin.list_subscriptions()) == 3
        assert [s.stripe_subscription_id for s in orders_admin.list_subscriptions("paused")] == ["sub_c"]
        assert [s.customer_name for s in orders_admin.list_subscriptions(search="sub_b")] == ["Grace"]

    def test_stats(self, orders_admin, subscriptions):
        assert orders_admin.subscription_stats() == {
            "total": 3,
            "active": 2,
            "paused": 1,
            "mrr": Decimal("75.50"),
        }


class TestOrderRoutes:
    def test_list(self, client, admin_headers, order):
        resp = client.get("/admin/orders", params={"status": "processing"}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["orders"][0]["order_number"] == order.order_number
        assert body["stats"]["total"] == 1

    def test_detail_includes_items(self, client, admin_headers, store, order):
        store.add_order_items(
            order.id, [OrderItem(product_title="Rose Quartz", stripe_line_item_id="li_1")]
        )
        resp = client.get(f"/admin/orders/{order.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert [i["product_title"] for i in resp.json()["items"]] == ["Rose Quartz"]

    def test_ship(self, client, admin_headers, sender, order):
        resp = client.post(
            f"/admin/orders/{order.id}/status",
            json={"status": "shipped", "tracking_number": "1Z999"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["order"]["status"] == "shipped"
        assert resp.json()["emailSent"] is True
        assert len(sender.sent) == 1

    def test_failed_email_reported(self, client, admin_headers, sender, order):
        sender.fail = True
        resp = client.post(
            f"/admin/orders/{order.id}/status", json={"status": "cancelled"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json()["emailSent"] is False
        assert resp.json()["emailError"] == "provider down"

    def test_bad_status_value(self, client, admin_headers, order):
        resp = client.post(
            f"/admin/orders/{order.id}/status", json={"status": "lost"}, headers=admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid status")

    def test_disallowed_move(self, client, admin_headers, order):
        resp = client.post(
            f"/admin/orders/{order.id}/status", json={"status": "delivered"}, headers=admin_headers
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Cannot mark a processing order as delivered"}

    def test_notes(self, client, admin_headers, store, order):
        resp = client.put(
            f"/admin/orders/{order.id}/notes",
            json={"internal_notes": "Gift wrap requested"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert store.get_order(order.id).internal_notes == "Gift wrap requested"

    def test_unknown_order(self, client, admin_headers):
        assert client.get("/admin/orders/missing", headers=admin_headers).status_code == 404

    def test_subscriptions(self, client, admin_headers, store):
        store.create_subscription(Subscription("sub_a", recurring_amount=Decimal("30.00")))
        resp = client.get("/admin/subscriptions", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["count"] == 1
        assert resp.json()["stats"]["active"] == 1

    def test_requires_auth(self, client, order):
        assert client.get("/admin/orders").status_code == 401
