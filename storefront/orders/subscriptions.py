"""Subscription lifecycle sync.

Mirrors Stripe subscription events onto local Subscription records:
renewal invoices refresh the next billing date, updates map the provider
status, deletions mark the subscription cancelled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from storefront.errors import ValidationError
from storefront.models import BillingInterval, Subscription, SubscriptionStatus
from storefront.payments.stripe_gateway import PaymentGateway
from storefront.store.base import OrderStore

logger = logging.getLogger(__name__)

# (interval, interval_count) -> billing interval; anything else is monthly
_BILLING_INTERVALS: dict[tuple[str, int], BillingInterval] = {
    ("week", 2): BillingInterval.EVERY_2_WEEKS,
    ("month", 1): BillingInterval.MONTHLY,
    ("month", 3): BillingInterval.EVERY_3_MONTHS,
}

_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
}


def billing_interval_for(interval: str | None, interval_count: int | None) -> BillingInterval:
    return _BILLING_INTERVALS.get((interval or "", interval_count or 0), BillingInterval.MONTHLY)


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    data = (subscription.get("items") or {}).get("data") or []
    return data[0] if data else {}


def interval_from_subscription(subscription: dict[str, Any]) -> BillingInterval:
    """Billing interval of the subscription's first price."""
    recurring = (_first_item(subscription).get("price") or {}).get("recurring")
    if not recurring:
        return BillingInterval.MONTHLY
    return billing_interval_for(recurring.get("interval"), recurring.get("interval_count"))


def subscription_status_for(subscription: dict[str, Any]) -> SubscriptionStatus:
    """Map a Stripe subscription to a local status. A collection pause wins."""
    if subscription.get("pause_collection"):
        return SubscriptionStatus.PAUSED
    return _STATUS_MAP.get(subscription.get("status") or "", SubscriptionStatus.ACTIVE)


def next_billing_date_for(subscription: dict[str, Any]) -> datetime | None:
    """End of the current period, read from the subscription or its first item."""
    period_end = subscription.get("current_period_end")
    if period_end is None:
        period_end = _first_item(subscription).get("current_period_end")
    if period_end is None:
        return None
    return datetime.fromtimestamp(int(period_end), tz=timezone.utc)


class SubscriptionSync:
    """Handlers for invoice and subscription lifecycle events."""

    def __init__(self, store: OrderStore, gateway: PaymentGateway):
        self._store = store
        self._gateway = gateway

    def _update(self, stripe_subscription_id: str, changes: dict[str, Any]) -> Subscription | None:
        updated = self._store.update_subscription(stripe_subscription_id, changes)
        if updated is None:
            logger.warning("No local subscription for %s, update skipped", stripe_subscription_id)
        return updated

    @staticmethod
    def _subscription_id(subscription: dict[str, Any]) -> str:
        subscription_id = subscription.get("id")
        if not isinstance(subscription_id, str) or not subscription_id:
            raise ValidationError("Subscription event has no id")
        return subscription_id

    def handle_invoice_paid(self, invoice: dict[str, Any]) -> Subscription | None:
        subscription_id = invoice.get("subscription")
        if not subscription_id:
            return None
        logger.info("Processing subscription invoice: %s", invoice.get("id"))
        remote = self._gateway.retrieve_subscription(subscription_id)
        return self._update(
            subscription_id,
            {
                "next_billing_date": next_billing_date_for(remote),
                "status": SubscriptionStatus.ACTIVE.value,
            },
        )

    def handle_subscription_updated(self, subscription: dict[str, Any]) -> Subscription | None:
        subscription_id = self._subscription_id(subscription)
        status = subscription_status_for(subscription)
        logger.info(
            "Subscription updated: %s %s -> %s",
            subscription_id,
            subscription.get("status"),
            status.value,
        )
        changes: dict[str, Any] = {
            "status": status.value,
            "paused_at": datetime.now(timezone.utc) if status is SubscriptionStatus.PAUSED else None,
        }
        next_billing = next_billing_date_for(subscription)
        if next_billing is not None:
            changes["next_billing_date"] = next_billing
        return self._update(subscription_id, changes)

    def handle_subscription_deleted(self, subscription: dict[str, Any]) -> Subscription | None:
        subscription_id = self._subscription_id(subscription)
        logger.info("Subscription cancelled: %s", subscription_id)
        return self._update(
            subscription_id,
            {
                "status": SubscriptionStatus.CANCELLED.value,
                "cancelled_at": datetime.now(timezone.utc),
            },
        )
