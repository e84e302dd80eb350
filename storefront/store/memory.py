"""In-memory store for local runs and tests.

Mirrors the Postgres backend's contract, including the unique keys on
checkout session id and Stripe subscription id. Returned objects are copies
so callers cannot mutate stored state behind the store's back.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any

from storefront.errors import StoreError
from storefront.models import Order, OrderItem, Subscription, new_id
from storefront.store.base import ADMIN_TABLES

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed implementation of OrderStore and RecordStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}
        self._orders_by_session: dict[str, str] = {}
        self._items: dict[str, list[OrderItem]] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._tables: dict[str, dict[str, dict[str, Any]]] = {t: {} for t in ADMIN_TABLES}

    # ── Orders ────────────────────────────────────────────────────────────

    def create_order(self, order: Order) -> tuple[Order, bool]:
        with self._lock:
            existing_id = self._orders_by_session.get(order.stripe_checkout_session_id)
            if existing_id:
                return copy.deepcopy(self._orders[existing_id]), False
            stored = copy.deepcopy(order)
            self._orders[stored.id] = stored
            self._orders_by_session[stored.stripe_checkout_session_id] = stored.id
            return copy.deepcopy(stored), True

    def add_order_items(self, order_id: str, items: list[OrderItem]) -> list[OrderItem]:
        with self._lock:
            if order_id not in self._orders:
                raise StoreError(f"order_items: unknown order {order_id}")
            stored = self._items.setdefault(order_id, [])
            seen = {item.stripe_line_item_id for item in stored}
            for item in items:
                if item.stripe_line_item_id in seen:
                    continue
                row = copy.deepcopy(item)
                row.order_id = order_id
                stored.append(row)
                seen.add(row.stripe_line_item_id)
            return copy.deepcopy(stored)

    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def list_orders(self, status: str | None = None) -> list[Order]:
        with self._lock:
            orders = [
                o for o in self._orders.values()
                if status is None or o.status.value == status
            ]
            orders.sort(key=lambda o: o.created_at, reverse=True)
            return copy.deepcopy(orders)

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        with self._lock:
            return copy.deepcopy(self._items.get(order_id, []))

    def update_order(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            row = order.to_row()
            row.update(changes)
            row["updated_at"] = datetime.now(timezone.utc)
            updated = Order.from_row(row)
            self._orders[order_id] = updated
            return copy.deepcopy(updated)

    def claim_confirmation(self, order_id: str) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.confirmation_sent_at is not None:
                return False
            order.confirmation_sent_at = datetime.now(timezone.utc)
            return True

    def decrement_inventory(
        self, product_id: str, variant_id: str | None, quantity: int
    ) -> None:
        with self._lock:
            row = self._tables["products"].get(product_id)
            if variant_id:
                # Variants live on the product row under "variants"
                variants = (row or {}).get("variants") or {}
                if variant_id in variants:
                    current = int(variants[variant_id].get("inventory_quantity", 0))
                    variants[variant_id]["inventory_quantity"] = max(current - quantity, 0)
                    return
            if row is None or "inventory_quantity" not in row:
                logger.debug("No inventory tracked for product %s", product_id)
                return
            row["inventory_quantity"] = max(int(row["inventory_quantity"]) - quantity, 0)

    # ── Subscriptions ─────────────────────────────────────────────────────

    def create_subscription(self, subscription: Subscription) -> tuple[Subscription, bool]:
        with self._lock:
            existing = self._subscriptions.get(subscription.stripe_subscription_id)
            if existing:
                return copy.deepcopy(existing), False
            stored = copy.deepcopy(subscription)
            self._subscriptions[stored.stripe_subscription_id] = stored
            return copy.deepcopy(stored), True

    def get_subscription(self, stripe_subscription_id: str) -> Subscription | None:
        with self._lock:
            sub = self._subscriptions.get(stripe_subscription_id)
            return copy.deepcopy(sub) if sub else None

    def list_subscriptions(self, status: str | None = None) -> list[Subscription]:
        with self._lock:
            subs = [
                s for s in self._subscriptions.values()
                if status is None or s.status.value == status
            ]
            subs.sort(key=lambda s: s.created_at, reverse=True)
            return copy.deepcopy(subs)

    def update_subscription(
        self, stripe_subscription_id: str, changes: dict[str, Any]
    ) -> Subscription | None:
        with self._lock:
            sub = self._subscriptions.get(stripe_subscription_id)
            if sub is None:
                return None
            row = sub.to_row()
            row.update(changes)
            updated = Subscription.from_row(row)
            self._subscriptions[stripe_subscription_id] = updated
            return copy.deepcopy(updated)

    @property
    def order_count(self) -> int:
        return len(self._orders)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # ── Admin tables ──────────────────────────────────────────────────────

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        if table not in self._tables:
            raise StoreError(f"Unknown table: {table}")
        return self._tables[table]

    def list_records(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                r for r in self._table(table).values()
                if all(r.get(k) == v for k, v in (filters or {}).items())
            ]
            rows.sort(key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")))
            if descending:
                present = [r for r in rows if r.get(order_by) is not None]
                missing = [r for r in rows if r.get(order_by) is None]
                rows = list(reversed(present)) + missing
            return copy.deepcopy(rows)

    def get_record(self, table: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._table(table).get(record_id)
            return copy.deepcopy(row) if row else None

    def find_record(self, table: str, column: str, value: Any) -> dict[str, Any] | None:
        with self._lock:
            for row in self._table(table).values():
                if row.get(column) == value:
                    return copy.deepcopy(row)
            return None

    def insert_record(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            row = copy.deepcopy(data)
            row.setdefault("id", new_id())
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            rows = self._table(table)
            if row["id"] in rows:
                raise StoreError(f"{table}: duplicate id {row['id']}")
            rows[row["id"]] = row
            return copy.deepcopy(row)

    def update_record(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._lock:
            row = self._table(table).get(record_id)
            if row is None:
                return None
            row.update(copy.deepcopy(changes))
            return copy.deepcopy(row)

    def delete_record(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def delete_where(self, table: str, column: str, value: Any) -> int:
        with self._lock:
            rows = self._table(table)
            doomed = [rid for rid, r in rows.items() if r.get(column) == value]
            for rid in doomed:
                del rows[rid]
            return len(doomed)
