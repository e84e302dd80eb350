"""Webhook event dispatcher: routes verified Stripe events to order services.

Event type -> handler is a fixed table. Unknown types are acknowledged and
ignored so the provider does not retry them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from storefront.orders.ingestion import OrderIngestor
from storefront.orders.subscriptions import SubscriptionSync

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.payment_succeeded"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


@dataclass
class WebhookEvent:
    """Normalized webhook event ready for dispatch."""

    provider: str
    event_type: str
    event_id: str
    data: dict[str, Any] = field(default_factory=dict)  # event.data.object


def parse_event(provider: str, payload: dict[str, Any]) -> WebhookEvent | None:
    """Normalize a Stripe event envelope.

    Returns None without a type or when ``data.object`` is not an object.
    """
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        return None
    envelope = payload.get("data")
    data = envelope.get("object") if isinstance(envelope, dict) else None
    if not isinstance(data, dict):
        return None
    return WebhookEvent(
        provider=provider,
        event_type=event_type,
        event_id=str(payload.get("id") or ""),
        data=data,
    )


class WebhookDispatcher:
    """Maps Stripe event types to order pipeline handlers."""

    def __init__(self, ingestor: OrderIngestor, subscriptions: SubscriptionSync):
        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {
            CHECKOUT_COMPLETED: ingestor.handle_checkout_completed,
            INVOICE_PAID: subscriptions.handle_invoice_paid,
            SUBSCRIPTION_UPDATED: subscriptions.handle_subscription_updated,
            SUBSCRIPTION_DELETED: subscriptions.handle_subscription_deleted,
        }

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def handles(self, event_type: str) -> bool:
        return event_type in self._handlers

    def dispatch(self, event: WebhookEvent) -> Any:
        """Run the handler for ``event``. Handler exceptions propagate."""
        handler = self._handlers.get(event.event_type)
        if handler is None:
            logger.info("Unhandled event type: %s", event.event_type)
            return None
        logger.info("Dispatching %s/%s (%s)", event.provider, event.event_type, event.event_id)
        return handler(event.data)
