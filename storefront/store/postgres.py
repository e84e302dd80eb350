"""Postgres store: orders, subscriptions and admin tables over psycopg.

One short-lived connection per call; the ``with`` block commits on success
and rolls back on error. The unique constraint on
``orders.stripe_checkout_session_id`` makes order creation idempotent:
``ON CONFLICT DO NOTHING`` followed by a lookup of the existing row. Order
items are unique per ``(order_id, stripe_line_item_id)`` so a repeated insert
adds nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from storefront.errors import StoreError
from storefront.models import Order, OrderItem, Subscription
from storefront.store.base import ADMIN_TABLES

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    order_number TEXT NOT NULL,
    stripe_checkout_session_id TEXT NOT NULL UNIQUE,
    stripe_payment_intent_id TEXT,
    stripe_customer_id TEXT,
    status TEXT NOT NULL,
    payment_status TEXT NOT NULL,
    customer_email TEXT NOT NULL DEFAULT '',
    customer_name TEXT NOT NULL DEFAULT '',
    customer_phone TEXT NOT NULL DEFAULT '',
    shipping_address_line1 TEXT NOT NULL DEFAULT '',
    shipping_address_line2 TEXT NOT NULL DEFAULT '',
    shipping_city TEXT NOT NULL DEFAULT '',
    shipping_state TEXT NOT NULL DEFAULT '',
    shipping_postal_code TEXT NOT NULL DEFAULT '',
    shipping_country TEXT NOT NULL DEFAULT 'US',
    subtotal NUMERIC(12, 2) NOT NULL DEFAULT 0,
    shipping_cost NUMERIC(12, 2) NOT NULL DEFAULT 0,
    discount_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    total NUMERIC(12, 2) NOT NULL DEFAULT 0,
    is_subscription_order BOOLEAN NOT NULL DEFAULT FALSE,
    subscription_id TEXT,
    internal_notes TEXT,
    tracking_number TEXT,
    tracking_url TEXT,
    shipped_at TIMESTAMPTZ,
    delivered_at TIMESTAMPTZ,
    confirmation_sent_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS order_items (
    id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL REFERENCES orders(id),
    product_id TEXT,
    variant_id TEXT,
    product_title TEXT NOT NULL,
    variant_title TEXT,
    sku TEXT,
    image_url TEXT,
    quantity INTEGER NOT NULL,
    unit_price NUMERIC(12, 2) NOT NULL,
    total_price NUMERIC(12, 2) NOT NULL,
    is_subscription BOOLEAN NOT NULL DEFAULT FALSE,
    stripe_line_item_id TEXT NOT NULL,
    UNIQUE (order_id, stripe_line_item_id)
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id TEXT PRIMARY KEY,
    stripe_subscription_id TEXT NOT NULL UNIQUE,
    stripe_customer_id TEXT,
    customer_email TEXT NOT NULL DEFAULT '',
    customer_name TEXT NOT NULL DEFAULT '',
    shipping_address_line1 TEXT NOT NULL DEFAULT '',
    shipping_address_line2 TEXT NOT NULL DEFAULT '',
    shipping_city TEXT NOT NULL DEFAULT '',
    shipping_state TEXT NOT NULL DEFAULT '',
    shipping_postal_code TEXT NOT NULL DEFAULT '',
    shipping_country TEXT NOT NULL DEFAULT 'US',
    status TEXT NOT NULL,
    billing_interval TEXT NOT NULL,
    next_billing_date TIMESTAMPTZ,
    recurring_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    paused_at TIMESTAMPTZ,
    cancelled_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

_ORDER_COLUMNS = tuple(Order(stripe_checkout_session_id="").to_row().keys())
_ITEM_COLUMNS = tuple(OrderItem(product_title="").to_row().keys())
_SUBSCRIPTION_COLUMNS = tuple(Subscription(stripe_subscription_id="").to_row().keys())


def _insert(table: str, columns: tuple[str, ...]) -> sql.Composed:
    return sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
        sql.Identifier(table),
        sql.SQL(", ").join(map(sql.Identifier, columns)),
        sql.SQL(", ").join(sql.Placeholder() * len(columns)),
    )


def _assignments(changes: dict[str, Any]) -> sql.Composed:
    return sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(k), sql.Placeholder()) for k in changes
    )


class PostgresStore:
    """psycopg-backed implementation of OrderStore and RecordStore."""

    def __init__(self, dsn: str):
        self._dsn = dsn

    def _conn(self) -> psycopg.Connection:
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def ensure_schema(self) -> None:
        """Create the order pipeline tables if they do not exist."""
        try:
            with self._conn() as conn:
                conn.execute(SCHEMA_SQL)
        except psycopg.Error as e:
            raise StoreError(f"Schema setup failed: {e}") from e

    # ── Orders ────────────────────────────────────────────────────────────

    def create_order(self, order: Order) -> tuple[Order, bool]:
        row = order.to_row()
        query = sql.SQL("{} ON CONFLICT (stripe_checkout_session_id) DO NOTHING RETURNING *").format(
            _insert("orders", _ORDER_COLUMNS)
        )
        try:
            with self._conn() as conn:
                created = conn.execute(query, [row[c] for c in _ORDER_COLUMNS]).fetchone()
                if created is not None:
                    return Order.from_row(created), True
                existing = conn.execute(
                    "SELECT * FROM orders WHERE stripe_checkout_session_id = %s",
                    (order.stripe_checkout_session_id,),
                ).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to create order: {e}") from e
        if existing is None:
            raise StoreError(
                f"Order for session {order.stripe_checkout_session_id} conflicted but was not found"
            )
        logger.info(
            "Order for session %s already exists: %s",
            order.stripe_checkout_session_id,
            existing["id"],
        )
        return Order.from_row(existing), False

    def add_order_items(self, order_id: str, items: list[OrderItem]) -> list[OrderItem]:
        rows = []
        for item in items:
            row = item.to_row()
            row["order_id"] = order_id
            rows.append(row)
        query = sql.SQL("{} ON CONFLICT (order_id, stripe_line_item_id) DO NOTHING").format(
            _insert("order_items", _ITEM_COLUMNS)
        )
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(query, [[r[c] for c in _ITEM_COLUMNS] for r in rows])
                stored = conn.execute(
                    "SELECT * FROM order_items WHERE order_id = %s", (order_id,)
                ).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to create order items: {e}") from e
        return [OrderItem.from_row(r) for r in stored]

    def get_order(self, order_id: str) -> Order | None:
        try:
            with self._conn() as conn:
                row = conn.execute("SELECT * FROM orders WHERE id = %s", (order_id,)).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to load order {order_id}: {e}") from e
        return Order.from_row(row) if row else None

    def list_orders(self, status: str | None = None) -> list[Order]:
        query = "SELECT * FROM orders"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = %s"
            params = (status,)
        try:
            with self._conn() as conn:
                rows = conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to list orders: {e}") from e
        return [Order.from_row(r) for r in rows]

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        try:
            with self._conn() as conn:
                rows = conn.execute(
                    "SELECT * FROM order_items WHERE order_id = %s", (order_id,)
                ).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to load items for order {order_id}: {e}") from e
        return [OrderItem.from_row(r) for r in rows]

    def update_order(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        changes = {**changes, "updated_at": datetime.now(timezone.utc)}
        query = sql.SQL("UPDATE orders SET {} WHERE id = {} RETURNING *").format(
            _assignments(changes), sql.Placeholder()
        )
        try:
            with self._conn() as conn:
                row = conn.execute(query, [*changes.values(), order_id]).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to update order {order_id}: {e}") from e
        return Order.from_row(row) if row else None

    def claim_confirmation(self, order_id: str) -> bool:
        try:
            with self._conn() as conn:
                row = conn.execute(
                    "UPDATE orders SET confirmation_sent_at = now() "
                    "WHERE id = %s AND confirmation_sent_at IS NULL RETURNING id",
                    (order_id,),
                ).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to claim confirmation for {order_id}: {e}") from e
        return row is not None

    def decrement_inventory(
        self, product_id: str, variant_id: str | None, quantity: int
    ) -> None:
        try:
            with self._conn() as conn:
                conn.execute(
                    "SELECT decrement_inventory(%s, %s, %s)",
                    (product_id, variant_id, quantity),
                )
        except psycopg.Error as e:
            raise StoreError(f"Inventory decrement failed for {product_id}: {e}") from e

    # ── Subscriptions ─────────────────────────────────────────────────────

    def create_subscription(self, subscription: Subscription) -> tuple[Subscription, bool]:
        row = subscription.to_row()
        query = sql.SQL("{} ON CONFLICT (stripe_subscription_id) DO NOTHING RETURNING *").format(
            _insert("subscriptions", _SUBSCRIPTION_COLUMNS)
        )
        try:
            with self._conn() as conn:
                created = conn.execute(
                    query, [row[c] for c in _SUBSCRIPTION_COLUMNS]
                ).fetchone()
                if created is not None:
                    return Subscription.from_row(created), True
                existing = conn.execute(
                    "SELECT * FROM subscriptions WHERE stripe_subscription_id = %s",
                    (subscription.stripe_subscription_id,),
                ).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to create subscription: {e}") from e
        if existing is None:
            raise StoreError(
                f"Subscription {subscription.stripe_subscription_id} conflicted but was not found"
            )
        return Subscription.from_row(existing), False

    def get_subscription(self, stripe_subscription_id: str) -> Subscription | None:
        try:
            with self._conn() as conn:
                row = conn.execute(
                    "SELECT * FROM subscriptions WHERE stripe_subscription_id = %s",
                    (stripe_subscription_id,),
                ).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to load subscription {stripe_subscription_id}: {e}") from e
        return Subscription.from_row(row) if row else None

    def list_subscriptions(self, status: str | None = None) -> list[Subscription]:
        query = "SELECT * FROM subscriptions"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = %s"
            params = (status,)
        try:
            with self._conn() as conn:
                rows = conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to list subscriptions: {e}") from e
        return [Subscription.from_row(r) for r in rows]

    def update_subscription(
        self, stripe_subscription_id: str, changes: dict[str, Any]
    ) -> Subscription | None:
        query = sql.SQL(
            "UPDATE subscriptions SET {} WHERE stripe_subscription_id = {} RETURNING *"
        ).format(_assignments(changes), sql.Placeholder())
        try:
            with self._conn() as conn:
                row = conn.execute(query, [*changes.values(), stripe_subscription_id]).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to update subscription {stripe_subscription_id}: {e}") from e
        return Subscription.from_row(row) if row else None

    # ── Admin tables ──────────────────────────────────────────────────────

    @staticmethod
    def _check_table(table: str) -> sql.Identifier:
        if table not in ADMIN_TABLES:
            raise StoreError(f"Unknown table: {table}")
        return sql.Identifier(table)

    def list_records(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        ident = self._check_table(table)
        filters = filters or {}
        query = sql.SQL("SELECT * FROM {}").format(ident)
        if filters:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(
                sql.SQL("{} = {}").format(sql.Identifier(k), sql.Placeholder()) for k in filters
            )
        query += sql.SQL(" ORDER BY {} {} NULLS LAST").format(
            sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
        )
        try:
            with self._conn() as conn:
                return conn.execute(query, list(filters.values())).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to list {table}: {e}") from e

    def get_record(self, table: str, record_id: str) -> dict[str, Any] | None:
        return self.find_record(table, "id", record_id)

    def find_record(self, table: str, column: str, value: Any) -> dict[str, Any] | None:
        query = sql.SQL("SELECT * FROM {} WHERE {} = %s LIMIT 1").format(
            self._check_table(table), sql.Identifier(column)
        )
        try:
            with self._conn() as conn:
                return conn.execute(query, (value,)).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to read {table}: {e}") from e

    def insert_record(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check_table(table)
        query = sql.SQL("{} RETURNING *").format(_insert(table, tuple(data.keys())))
        try:
            with self._conn() as conn:
                return conn.execute(query, list(data.values())).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to insert into {table}: {e}") from e

    def update_record(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        query = sql.SQL("UPDATE {} SET {} WHERE id = {} RETURNING *").format(
            self._check_table(table), _assignments(changes), sql.Placeholder()
        )
        try:
            with self._conn() as conn:
                return conn.execute(query, [*changes.values(), record_id]).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to update {table} {record_id}: {e}") from e

    def delete_record(self, table: str, record_id: str) -> bool:
        return self.delete_where(table, "id", record_id) > 0

    def delete_where(self, table: str, column: str, value: Any) -> int:
        query = sql.SQL("DELETE FROM {} WHERE {} = %s").format(
            self._check_table(table), sql.Identifier(column)
        )
        try:
            with self._conn() as conn:
                return conn.execute(query, (value,)).rowcount
        except psycopg.Error as e:
            raise StoreError(f"Failed to delete from {table}: {e}") from e
