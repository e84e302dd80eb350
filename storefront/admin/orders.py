"""Order fulfilment and subscription views for the back office.

Status moves follow the fulfilment lifecycle:

    pending -> processing -> shipped -> delivered
    any open order -> cancelled

Shipping stamps ``shipped_at`` and the tracking details; delivery stamps
``delivered_at``. Shipping and cancellation notify the customer unless the
operator opts out. A failed email is reported but never undoes the move.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from storefront.errors import NotFoundError, ValidationError
from storefront.models import Order, OrderItem, OrderStatus, Subscription, SubscriptionStatus
from storefront.notifications.service import OrderNotifier
from storefront.orders.effects import SideEffectResult, delivery_outcome, run_best_effort
from storefront.store.base import OrderStore

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
_ALLOWED_FROM: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PROCESSING: frozenset({OrderStatus.PENDING}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.CANCELLED: frozenset(
        {OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
    ),
}


class StatusChangeInput(BaseModel):
    """Body of ``POST /admin/orders/{id}/status``."""

    status: OrderStatus
    tracking_number: str | None = None
    tracking_url: str | None = None
    notify: bool = True


class NotesInput(BaseModel):
    internal_notes: str = ""


@dataclass
class StatusChange:
    order: Order
    email: SideEffectResult | None = None


def _matches(search: str, *values: str | None) -> bool:
    needle = search.strip().lower()
    return not needle or any(needle in (value or "").lower() for value in values)


def _status_filter(status: str, enum_cls: type) -> str | None:
    if status == "all":
        return None
    try:
        return enum_cls(status).value
    except ValueError:
        raise ValidationError(f"Unknown status: {status}") from None


class OrderAdminService:
    """Back-office reads and fulfilment moves over stored orders."""

    def __init__(self, store: OrderStore, notifier: OrderNotifier):
        self._store = store
        self._notifier = notifier

    def list_orders(self, status: str = "all", search: str = "") -> list[Order]:
        """Orders newest first; search covers order number, email and name."""
        orders = self._store.list_orders(_status_filter(status, OrderStatus))
        return [
            o for o in orders
            if _matches(search, o.order_number, o.customer_email, o.customer_name)
        ]

    def order_stats(self) -> dict[str, int]:
        orders = self._store.list_orders()
        stats = {"total": len(orders)}
        for status in OrderStatus:
            stats[status.value] = sum(1 for o in orders if o.status is status)
        return stats

    def _require(self, order_id: str) -> Order:
        order = self._store.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get_order(self, order_id: str) -> tuple[Order, list[OrderItem]]:
        order = self._require(order_id)
        return order, self._store.get_order_items(order_id)

    def change_status(
        self,
        order_id: str,
        target: OrderStatus,
        tracking_number: str | None = None,
        tracking_url: str | None = None,
        notify: bool = True,
    ) -> StatusChange:
        """Move an order to ``target``, stamping and notifying as the status requires.

        Raises:
            NotFoundError: unknown order.
            ValidationError: the move is not allowed from the current status,
                or a shipment has no tracking number.
        """
        order = self._require(order_id)
        allowed = _ALLOWED_FROM.get(target)
        if allowed is None or order.status not in allowed:
            raise ValidationError(f"Cannot mark a {order.status.value} order as {target.value}")

        changes: dict[str, Any] = {"status": target.value}
        now = datetime.now(timezone.utc)
        if target is OrderStatus.SHIPPED:
            tracking_number = (tracking_number or "").strip()
            if not tracking_number:
                raise ValidationError("Tracking number is required to ship an order")
            changes.update(
                shipped_at=now,
                tracking_number=tracking_number,
                tracking_url=(tracking_url or "").strip() or None,
            )
        elif target is OrderStatus.DELIVERED:
            changes["delivered_at"] = now

        updated = self._store.update_order(order_id, changes)
        if updated is None:
            raise NotFoundError("Order not found")
        logger.info(
            "Order %s marked %s (was %s)", updated.order_number, target.value, order.status.value
        )

        result = StatusChange(order=updated)
        if notify and target is OrderStatus.SHIPPED:
            result.email = delivery_outcome(
                run_best_effort(
                    "shipping_email",
                    self._notifier.send_shipping,
                    updated,
                    updated.tracking_number,
                    updated.tracking_url,
                )
            )
        elif notify and target is OrderStatus.CANCELLED:
            result.email = delivery_outcome(
                run_best_effort("cancellation_email", self._notifier.send_cancellation, updated)
            )
        if result.email is not None and not result.email.ok:
            logger.warning(
                "Order %s %s failed: %s", updated.order_number, result.email.name, result.email.error
            )
        return result

    def update_notes(self, order_id: str, notes: str) -> Order:
        updated = self._store.update_order(order_id, {"internal_notes": notes or None})
        if updated is None:
            raise NotFoundError("Order not found")
        return updated

    def list_subscriptions(self, status: str = "all", search: str = "") -> list[Subscription]:
        subs = self._store.list_subscriptions(_status_filter(status, SubscriptionStatus))
        return [
            s for s in subs
            if _matches(search, s.customer_email, s.customer_name, s.stripe_subscription_id)
        ]

    def subscription_stats(self) -> dict[str, Any]:
        """Counts plus monthly recurring revenue summed over active subscriptions."""
        subs = self._store.list_subscriptions()
        active = [s for s in subs if s.status is SubscriptionStatus.ACTIVE]
        return {
            "total": len(subs),
            "active": len(active),
            "paused": sum(1 for s in subs if s.status is SubscriptionStatus.PAUSED),
            "mrr": sum((s.recurring_amount for s in active), Decimal("0.00")),
        }
