"""Storage protocols.

``OrderStore`` covers the order pipeline tables; ``RecordStore`` is the
generic table CRUD used by the admin endpoints. Both the Postgres and the
in-memory backends implement both protocols.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from storefront.models import Order, OrderItem, Subscription

# Tables reachable through RecordStore
ADMIN_TABLES = frozenset(
    {"coupons", "events", "event_registrations", "reviews", "products"}
)


@runtime_checkable
class OrderStore(Protocol):
    """Persistence for orders, order items and subscriptions."""

    def create_order(self, order: Order) -> tuple[Order, bool]:
        """Insert an order keyed by checkout session id.

        Returns ``(order, created)``. When the session id already exists the
        stored order is returned with ``created=False``.
        """
        ...

    def add_order_items(self, order_id: str, items: list[OrderItem]) -> list[OrderItem]:
        """Insert items, skipping any whose Stripe line item id the order already has.

        Returns every stored item of the order.
        """
        ...

    def get_order(self, order_id: str) -> Order | None:
        ...

    def list_orders(self, status: str | None = None) -> list[Order]:
        """Orders newest first, optionally filtered by status."""
        ...

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        ...

    def update_order(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        ...

    def claim_confirmation(self, order_id: str) -> bool:
        """Stamp confirmation_sent_at if unset. True when this caller set it."""
        ...

    def decrement_inventory(
        self, product_id: str, variant_id: str | None, quantity: int
    ) -> None:
        ...

    def create_subscription(self, subscription: Subscription) -> tuple[Subscription, bool]:
        """Insert a subscription keyed by Stripe subscription id."""
        ...

    def get_subscription(self, stripe_subscription_id: str) -> Subscription | None:
        ...

    def list_subscriptions(self, status: str | None = None) -> list[Subscription]:
        ...

    def update_subscription(
        self, stripe_subscription_id: str, changes: dict[str, Any]
    ) -> Subscription | None:
        ...


@runtime_checkable
class RecordStore(Protocol):
    """Row-level CRUD over the admin tables."""

    def list_records(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        ...

    def get_record(self, table: str, record_id: str) -> dict[str, Any] | None:
        ...

    def find_record(self, table: str, column: str, value: Any) -> dict[str, Any] | None:
        ...

    def insert_record(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    def update_record(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        ...

    def delete_record(self, table: str, record_id: str) -> bool:
        ...

    def delete_where(self, table: str, column: str, value: Any) -> int:
        ...
