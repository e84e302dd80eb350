"""Checkout ingestion: session -> order, items, inventory, subscription, email."""

from __future__ import annotations

import copy
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from storefront.errors import PaymentProviderError, StoreError
from storefront.models import (
    BillingInterval,
    OrderStatus,
    PaymentStatus,
    SubscriptionStatus,
    expected_total,
)
from storefront.orders.ingestion import build_order, build_order_items


@pytest.fixture()
def ingestor(services):
    return services.ingestor


@pytest.fixture()
def two_item_checkout(gateway, make_session, make_line_item):
    """$10.00 x1 + $5.00 x2, $3.00 shipping, $2.00 discount."""
    gateway.line_items["cs_test_1"] = [
        make_line_item("Rose Quartz", 1000, product_id="prod_rose"),
        make_line_item("Sage Bundle", 500, quantity=2, product_id="prod_sage", variant_id="var_lg"),
    ]
    return make_session(amount_subtotal=2000, shipping=300, discount=200)


class TestBuildOrderItems:
    def test_maps_prices_and_metadata(self, make_line_item):
        items = build_order_items(
            [make_line_item("Sage Bundle", 1999, quantity=3, product_id="p1", variant_id="v1",
                            images=["https://img/1.png", "https://img/2.png"])]
        )
        item = items[0]
        assert item.product_title == "Sage Bundle"
        assert item.unit_price == Decimal("19.99")
        assert item.total_price == Decimal("59.97")
        assert item.quantity == 3
        assert item.product_id == "p1"
        assert item.variant_id == "v1"
        assert item.image_url == "https://img/1.png"
        assert item.is_subscription is False

    def test_description_wins_over_product_name(self, make_line_item):
        items = build_order_items([make_line_item("Sage", 500, description="Sage (large)")])
        assert items[0].product_title == "Sage (large)"

    def test_unexpanded_product(self):
        line = {"quantity": 1, "amount_total": 500, "price": {"unit_amount": 500, "product": "prod_x"}}
        item = build_order_items([line])[0]
        assert item.product_title == "Unknown Product"
        assert item.product_id is None
        assert item.image_url is None

    def test_subscription_flag(self, make_line_item):
        items = build_order_items([make_line_item("Box", 3000)], is_subscription=True)
        assert items[0].is_subscription is True


class TestBuildOrder:
    def test_amounts_and_customer(self, make_session):
        order = build_order(make_session())
        assert order.subtotal == Decimal("20.00")
        assert order.shipping_cost == Decimal("3.00")
        assert order.discount_amount == Decimal("2.00")
        assert order.total == Decimal("21.00")
        assert order.status is OrderStatus.PROCESSING
        assert order.payment_status is PaymentStatus.PAID
        assert order.customer_email == "ada@example.com"
        assert order.shipping.city == "Indianapolis"
        assert order.stripe_payment_intent_id == "pi_test_1"
        assert order.order_number.startswith("NKH-")

    def test_missing_optional_blocks(self):
        order = build_order({"id": "cs_bare", "amount_total": 500})
        assert order.customer_email == ""
        assert order.shipping_cost == Decimal("0.00")
        assert order.discount_amount == Decimal("0.00")
        assert order.shipping.country == "US"


class TestHandleCheckoutCompleted:
    def test_two_item_order(self, ingestor, store, sender, two_item_checkout):
        result = ingestor.handle_checkout_completed(two_item_checkout)

        assert result.created is True
        assert result.order.total == Decimal("21.00")
        stored = store.get_order_items(result.order.id)
        assert len(stored) == 2
        assert expected_total(stored, result.order.shipping_cost, result.order.discount_amount) == Decimal("21.00")
        assert all(item.order_id == result.order.id for item in stored)
        assert result.failed_side_effects == []
        assert len(sender.sent) == 1
        assert sender.sent[0].to == "ada@example.com"
        assert result.order.order_number in sender.sent[0].subject

    def test_redelivery_is_idempotent(self, ingestor, store, sender, two_item_checkout):
        first = ingestor.handle_checkout_completed(two_item_checkout)
        second = ingestor.handle_checkout_completed(two_item_checkout)

        assert second.created is False
        assert second.order.id == first.order.id
        assert store.order_count == 1
        assert len(store.get_order_items(first.order.id)) == 2
        assert len(sender.sent) == 1

    def test_decrements_inventory(self, ingestor, store, two_item_checkout):
        store.insert_record("products", {"id": "prod_rose", "inventory_quantity": 5})
        store.insert_record(
            "products",
            {"id": "prod_sage", "variants": {"var_lg": {"inventory_quantity": 10}}},
        )
        ingestor.handle_checkout_completed(two_item_checkout)

        assert store.get_record("products", "prod_rose")["inventory_quantity"] == 4
        sage = store.get_record("products", "prod_sage")
        assert sage["variants"]["var_lg"]["inventory_quantity"] == 8

    def test_redelivery_does_not_decrement_twice(self, ingestor, store, two_item_checkout):
        store.insert_record("products", {"id": "prod_rose", "inventory_quantity": 5})
        ingestor.handle_checkout_completed(two_item_checkout)
        ingestor.handle_checkout_completed(two_item_checkout)
        assert store.get_record("products", "prod_rose")["inventory_quantity"] == 4

    def test_inventory_never_negative(self, ingestor, store, two_item_checkout):
        store.insert_record("products", {"id": "prod_rose", "inventory_quantity": 0})
        ingestor.handle_checkout_completed(two_item_checkout)
        assert store.get_record("products", "prod_rose")["inventory_quantity"] == 0

    def test_inventory_failure_does_not_block(self, ingestor, store, sender, two_item_checkout, monkeypatch):
        def broken(*args, **kwargs):
            raise StoreError("inventory table locked")

        monkeypatch.setattr(store, "decrement_inventory", broken)
        result = ingestor.handle_checkout_completed(two_item_checkout)

        assert store.order_count == 1
        assert len(sender.sent) == 1
        failed = {effect.name for effect in result.failed_side_effects}
        assert failed == {"inventory:prod_rose", "inventory:prod_sage"}

    def test_email_failure_does_not_block(self, ingestor, store, sender, two_item_checkout):
        sender.fail = True
        result = ingestor.handle_checkout_completed(two_item_checkout)

        assert store.order_count == 1
        assert len(store.get_order_items(result.order.id)) == 2
        assert [effect.name for effect in result.failed_side_effects] == ["confirmation_email"]
        assert result.failed_side_effects[0].error == "provider down"

    def test_item_insert_failure_is_resumed(self, ingestor, store, two_item_checkout, monkeypatch):
        original = store.add_order_items
        calls = {"n": 0}

        def flaky(order_id, items):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StoreError("connection reset")
            return original(order_id, items)

        monkeypatch.setattr(store, "add_order_items", flaky)
        first = ingestor.handle_checkout_completed(two_item_checkout)
        assert "order_items" in {effect.name for effect in first.failed_side_effects}
        assert store.get_order_items(first.order.id) == []

        second = ingestor.handle_checkout_completed(two_item_checkout)
        assert second.created is False
        assert len(store.get_order_items(first.order.id)) == 2

    def test_concurrent_redelivery_converges(self, ingestor, store, sender, two_item_checkout, monkeypatch):
        original = store.add_order_items
        inserting = threading.Event()

        def slow(order_id, items):
            inserting.set()
            time.sleep(0.2)
            return original(order_id, items)

        monkeypatch.setattr(store, "add_order_items", slow)
        first = threading.Thread(
            target=ingestor.handle_checkout_completed, args=(copy.deepcopy(two_item_checkout),)
        )
        first.start()
        assert inserting.wait(timeout=2)
        second = ingestor.handle_checkout_completed(two_item_checkout)
        first.join(timeout=5)

        assert second.created is False
        assert store.order_count == 1
        stored = store.get_order_items(second.order.id)
        assert len(stored) == 2
        assert expected_total(stored, second.order.shipping_cost, second.order.discount_amount) == Decimal("21.00")
        assert len(sender.sent) == 1

    def test_failed_confirmation_is_retried_on_redelivery(self, ingestor, store, sender, two_item_checkout):
        sender.fail = True
        first = ingestor.handle_checkout_completed(two_item_checkout)
        assert store.get_order(first.order.id).confirmation_sent_at is None

        sender.fail = False
        second = ingestor.handle_checkout_completed(two_item_checkout)
        assert second.failed_side_effects == []
        assert len(sender.sent) == 2
        assert store.get_order(first.order.id).confirmation_sent_at is not None

    def test_line_items_without_ids_get_positional_keys(self):
        lines = [{"quantity": 1, "amount_total": 100, "price": {"unit_amount": 100}}] * 2
        assert [item.stripe_line_item_id for item in build_order_items(lines)] == ["line-0", "line-1"]

    def test_line_item_failure_propagates(self, ingestor, store, gateway, two_item_checkout):
        gateway.line_item_error = PaymentProviderError("Stripe unavailable")
        with pytest.raises(PaymentProviderError):
            ingestor.handle_checkout_completed(two_item_checkout)
        assert store.order_count == 0


class TestSubscriptionCheckout:
    @pytest.fixture()
    def subscription_checkout(self, gateway, make_session, make_line_item):
        gateway.line_items["cs_sub_1"] = [make_line_item("Monthly Box", 3000, product_id="prod_box")]
        gateway.subscriptions["sub_1"] = {
            "id": "sub_1",
            "status": "active",
            "current_period_end": 1_735_689_600,
            "items": {"data": [{"price": {"recurring": {"interval": "week", "interval_count": 2}}}]},
        }
        return make_session(
            session_id="cs_sub_1",
            amount_subtotal=3000,
            shipping=0,
            discount=0,
            mode="subscription",
            subscription="sub_1",
        )

    def test_records_subscription(self, ingestor, store, subscription_checkout):
        result = ingestor.handle_checkout_completed(subscription_checkout)

        assert result.order.is_subscription_order is True
        assert result.order.subscription_id == "sub_1"
        sub = store.get_subscription("sub_1")
        assert sub.status is SubscriptionStatus.ACTIVE
        assert sub.billing_interval is BillingInterval.EVERY_2_WEEKS
        assert sub.recurring_amount == Decimal("30.00")
        assert sub.next_billing_date == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert sub.customer_email == "ada@example.com"
        assert all(item.is_subscription for item in store.get_order_items(result.order.id))

    def test_redelivery_keeps_one_subscription(self, ingestor, store, subscription_checkout):
        ingestor.handle_checkout_completed(subscription_checkout)
        ingestor.handle_checkout_completed(subscription_checkout)
        assert store.subscription_count == 1
        assert store.order_count == 1

    def test_confirmation_sent_when_retry_completes(self, ingestor, store, gateway, sender, subscription_checkout):
        remote = gateway.subscriptions.pop("sub_1")
        with pytest.raises(PaymentProviderError):
            ingestor.handle_checkout_completed(subscription_checkout)
        assert store.order_count == 1
        assert sender.sent == []

        gateway.subscriptions["sub_1"] = remote
        retry = ingestor.handle_checkout_completed(subscription_checkout)
        assert retry.created is False
        assert retry.order.subscription_id == "sub_1"
        assert len(sender.sent) == 1

        ingestor.handle_checkout_completed(subscription_checkout)
        assert len(sender.sent) == 1

    def test_subscription_lookup_failure_propagates(self, ingestor, gateway, subscription_checkout):
        del gateway.subscriptions["sub_1"]
        with pytest.raises(PaymentProviderError):
            ingestor.handle_checkout_completed(subscription_checkout)


class TestTotals:
    @hyp_settings(max_examples=50)
    @given(
        lines=st.lists(
            st.tuples(st.integers(min_value=1, max_value=50_000), st.integers(min_value=1, max_value=9)),
            min_size=1,
            max_size=6,
        ),
        shipping=st.integers(min_value=0, max_value=5_000),
        discount_pct=st.integers(min_value=0, max_value=100),
    )
    def test_stripe_total_matches_items(self, lines, shipping, discount_pct):
        """Stored amounts are exact cents, so items + shipping - discount == total."""
        subtotal = sum(unit * qty for unit, qty in lines)
        discount = subtotal * discount_pct // 100
        line_items = [
            {"quantity": qty, "amount_total": unit * qty, "price": {"unit_amount": unit, "product": {"name": "x"}}}
            for unit, qty in lines
        ]
        session = {
            "id": "cs_prop",
            "amount_subtotal": subtotal,
            "amount_total": subtotal + shipping - discount,
            "shipping_cost": {"amount_total": shipping},
            "total_details": {"amount_discount": discount},
        }
        order = build_order(session)
        items = build_order_items(line_items)
        assert expected_total(items, order.shipping_cost, order.discount_amount) == order.total
