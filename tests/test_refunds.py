"""Refunds: service rules and POST /orders/refunds."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from freezegun import freeze_time

from storefront.app import create_app
from storefront.errors import NotFoundError, PaymentProviderError, StoreError, ValidationError
from storefront.models import Order, OrderStatus, PaymentStatus
from storefront.orders.refunds import refund_note


@pytest.fixture()
def order(store) -> Order:
    created, _ = store.create_order(
        Order(
            stripe_checkout_session_id="cs_refund_1",
            stripe_payment_intent_id="pi_refund_1",
            total=Decimal("21.00"),
        )
    )
    return created


@pytest.fixture()
def refunds(services):
    return services.refunds


class TestRefundNote:
    def test_with_reason(self):
        when = datetime(2026, 5, 1, 14, 3, 7, 123000, tzinfo=timezone.utc)
        assert refund_note(Decimal("5"), "Damaged", when) == (
            "[2026-05-01T14:03:07.123Z] Refund: $5.00 - Damaged"
        )

    def test_without_reason(self):
        when = datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert refund_note(Decimal("21.00"), None, when) == "[2026-05-01T00:00:00.000Z] Refund: $21.00"


class TestRefundService:
    def test_full_refund(self, refunds, store, gateway, order):
        result = refunds.refund_order(order.id)

        assert result.is_full_refund is True
        assert result.amount == Decimal("21.00")
        assert gateway.refunds[0]["amount"] == 2100
        assert gateway.refunds[0]["payment_intent"] == "pi_refund_1"
        stored = store.get_order(order.id)
        assert stored.payment_status is PaymentStatus.REFUNDED
        assert stored.status is OrderStatus.REFUNDED

    def test_amount_at_or_above_total_is_full(self, refunds, order):
        assert refunds.refund_order(order.id, Decimal("25.00")).is_full_refund is True

    @freeze_time("2026-05-01 10:00:00")
    def test_partial_refund(self, refunds, store, gateway, order):
        result = refunds.refund_order(order.id, Decimal("5.50"), "Chipped crystal")

        assert result.is_full_refund is False
        assert gateway.refunds[0]["amount"] == 550
        stored = store.get_order(order.id)
        assert stored.payment_status is PaymentStatus.PAID
        assert stored.status is OrderStatus.PROCESSING
        assert stored.internal_notes == "[2026-05-01T10:00:00.000Z] Refund: $5.50 - Chipped crystal"

    def test_notes_are_appended(self, refunds, store, order):
        store.update_order(order.id, {"internal_notes": "Gift wrap requested"})
        refunds.refund_order(order.id, Decimal("1.00"))
        notes = store.get_order(order.id).internal_notes
        assert notes.startswith("Gift wrap requested\n\n[")
        assert notes.endswith("Refund: $1.00")

    def test_already_refunded(self, refunds, order):
        refunds.refund_order(order.id)
        with pytest.raises(ValidationError, match="already been refunded"):
            refunds.refund_order(order.id)

    def test_missing_order_id(self, refunds):
        with pytest.raises(ValidationError, match="Order ID is required"):
            refunds.refund_order("")

    def test_unknown_order(self, refunds):
        with pytest.raises(NotFoundError):
            refunds.refund_order("missing")

    def test_no_payment_intent(self, refunds, store):
        created, _ = store.create_order(Order(stripe_checkout_session_id="cs_no_pi", total=Decimal("5")))
        with pytest.raises(ValidationError, match="No payment intent"):
            refunds.refund_order(created.id)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-3.00"), Decimal("0.001")])
    def test_non_positive_amount(self, refunds, gateway, order, amount):
        with pytest.raises(ValidationError, match="greater than 0"):
            refunds.refund_order(order.id, amount)
        assert gateway.refunds == []

    def test_provider_failure_leaves_order_untouched(self, refunds, store, gateway, order):
        gateway.refund_error = PaymentProviderError("charge already refunded", True)
        with pytest.raises(PaymentProviderError):
            refunds.refund_order(order.id)
        assert store.get_order(order.id).payment_status is PaymentStatus.PAID

    def test_update_failure_still_reports_refund(self, refunds, store, gateway, order, monkeypatch):
        def broken(order_id, changes):
            raise StoreError("write failed")

        monkeypatch.setattr(store, "update_order", broken)
        result = refunds.refund_order(order.id)
        assert result.id == "re_1"
        assert len(gateway.refunds) == 1


class TestRefundRoute:
    def test_full_refund(self, client, admin_headers, order):
        resp = client.post("/orders/refunds", json={"orderId": order.id}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "refund": {"id": "re_1", "amount": 21.0, "status": "succeeded", "isFullRefund": True},
        }

    def test_partial_refund(self, client, admin_headers, order):
        resp = client.post(
            "/orders/refunds",
            json={"orderId": order.id, "amount": 7.25, "reason": "Late delivery"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["refund"]["amount"] == 7.25
        assert resp.json()["refund"]["isFullRefund"] is False

    def test_second_refund_rejected(self, client, admin_headers, order):
        client.post("/orders/refunds", json={"orderId": order.id}, headers=admin_headers)
        resp = client.post("/orders/refunds", json={"orderId": order.id}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Order has already been refunded"}

    def test_stripe_client_error_is_400(self, client, admin_headers, gateway, order):
        gateway.refund_error = PaymentProviderError("Charge has been disputed", True)
        resp = client.post("/orders/refunds", json={"orderId": order.id}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Charge has been disputed"}

    def test_bad_amount_type(self, client, admin_headers, order):
        resp = client.post(
            "/orders/refunds", json={"orderId": order.id, "amount": "lots"}, headers=admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid amount")

    def test_rate_limited(self, client, admin_headers):
        statuses = [
            client.post("/orders/refunds", json={"orderId": "missing"}, headers=admin_headers).status_code
            for _ in range(11)
        ]
        assert statuses[:10] == [404] * 10
        assert statuses[10] == 429

    def test_rebuilding_the_app_keeps_one_limit(self, settings, services, admin_headers):
        for _ in range(5):
            create_app(settings, services)
        with TestClient(create_app(settings, services)) as fresh:
            statuses = [
                fresh.post("/orders/refunds", json={"orderId": "missing"}, headers=admin_headers).status_code
                for _ in range(3)
            ]
        assert statuses == [404, 404, 404]

    def test_requires_auth(self, client, order, gateway):
        resp = client.post("/orders/refunds", json={"orderId": order.id})
        assert resp.status_code == 401
        assert gateway.refunds == []
