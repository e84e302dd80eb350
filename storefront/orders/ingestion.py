"""Checkout ingestion: completed Stripe checkout session -> persisted order.

Steps, in order:
1. Fetch line items (product expanded). Failure propagates.
2. Map line items to OrderItems.
3. Insert the Order keyed by checkout session id. Failure propagates.
4. Insert OrderItems (best effort).
5. Decrement inventory per product (best effort).
6. For subscription checkouts, record the Subscription and link it.
7. Send the confirmation email (best effort).

A redelivered session finds its existing order and resumes whatever did not
complete the first time: items (unique per Stripe line item), the subscription
link and the confirmation email. Inventory is only decremented by the delivery
that created the order; the email is sent by whichever delivery claims the
order's confirmation stamp first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from storefront.errors import ValidationError
from storefront.models import (
    CheckoutMode,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ShippingAddress,
    Subscription,
    SubscriptionStatus,
    minor_to_decimal,
)
from storefront.notifications.protocol import SendResult
from storefront.notifications.service import OrderNotifier
from storefront.orders.effects import SideEffectResult, delivery_outcome, run_best_effort
from storefront.orders.subscriptions import interval_from_subscription, next_billing_date_for
from storefront.payments.stripe_gateway import PaymentGateway
from storefront.store.base import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """What a checkout ingestion produced."""
    order: Order
    items: list[OrderItem]
    created: bool
    subscription: Subscription | None = None
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def failed_side_effects(self) -> list[SideEffectResult]:
        return [effect for effect in self.side_effects if not effect.ok]


def _is_subscription_checkout(session: dict[str, Any]) -> bool:
    return session.get("mode") == CheckoutMode.SUBSCRIPTION.value


def build_order_items(line_items: list[dict[str, Any]], is_subscription: bool = False) -> list[OrderItem]:
    """Map Stripe line items (price.product expanded) to OrderItems."""
    items = []
    for position, line in enumerate(line_items):
        price = line.get("price") or {}
        product = price.get("product")
        if not isinstance(product, dict):
            product = {}
        metadata = product.get("metadata") or {}
        images = product.get("images") or []
        items.append(
            OrderItem(
                product_id=metadata.get("product_id") or None,
                variant_id=metadata.get("variant_id") or None,
                product_title=line.get("description") or product.get("name") or "Unknown Product",
                image_url=images[0] if images else None,
                quantity=line.get("quantity") or 1,
                unit_price=minor_to_decimal(price.get("unit_amount")),
                total_price=minor_to_decimal(line.get("amount_total")),
                is_subscription=is_subscription,
                stripe_line_item_id=line.get("id") or f"line-{position}",
            )
        )
    return items


def build_order(session: dict[str, Any]) -> Order:
    """Build the Order for a completed checkout session."""
    customer = session.get("customer_details") or {}
    shipping = session.get("shipping_details") or {}
    shipping_cost = session.get("shipping_cost") or {}
    totals = session.get("total_details") or {}
    return Order(
        stripe_checkout_session_id=session["id"],
        stripe_payment_intent_id=session.get("payment_intent"),
        stripe_customer_id=session.get("customer"),
        status=OrderStatus.PROCESSING,
        payment_status=PaymentStatus.PAID,
        customer_email=customer.get("email") or "",
        customer_name=customer.get("name") or shipping.get("name") or "",
        customer_phone=customer.get("phone") or "",
        shipping=ShippingAddress.from_stripe(shipping),
        subtotal=minor_to_decimal(session.get("amount_subtotal")),
        shipping_cost=minor_to_decimal(shipping_cost.get("amount_total")),
        discount_amount=minor_to_decimal(totals.get("amount_discount")),
        total=minor_to_decimal(session.get("amount_total")),
        is_subscription_order=_is_subscription_checkout(session),
    )


class OrderIngestor:
    """Handles ``checkout.session.completed`` events."""

    def __init__(self, store: OrderStore, gateway: PaymentGateway, notifier: OrderNotifier):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier

    def handle_checkout_completed(self, session: dict[str, Any]) -> IngestionResult:
        session_id = session.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("Checkout session has no id")
        logger.info("Processing checkout session: %s", session_id)

        line_items = self._gateway.list_line_items(session_id)
        items = build_order_items(line_items, _is_subscription_checkout(session))

        order, created = self._store.create_order(build_order(session))
        if created:
            logger.info("Order created: %s (%s)", order.order_number, order.id)
        else:
            logger.info(
                "Checkout session %s already ingested as %s, resuming",
                session_id,
                order.order_number,
            )

        result = IngestionResult(order=order, items=items, created=created)
        self._persist_items(result, decrement_inventory=created)

        if _is_subscription_checkout(session) and session.get("subscription") and not order.subscription_id:
            result.subscription = self._record_subscription(result, session)

        if result.order.confirmation_sent_at is None:
            email = run_best_effort(
                "confirmation_email", self._send_confirmation, result.order, result.items
            )
            if not email.ok or email.value is not None:
                result.side_effects.append(delivery_outcome(email))

        for effect in result.failed_side_effects:
            logger.warning(
                "Order %s side effect %s failed: %s",
                order.order_number,
                effect.name,
                effect.error,
            )
        logger.info("Checkout processing complete for order: %s", order.order_number)
        return result

    def _persist_items(self, result: IngestionResult, decrement_inventory: bool) -> None:
        order_id = result.order.id
        for item in result.items:
            item.order_id = order_id

        inserted = run_best_effort("order_items", self._store.add_order_items, order_id, result.items)
        result.side_effects.append(inserted)
        if inserted.ok:
            result.items = inserted.value

        if not decrement_inventory:
            return
        for item in result.items:
            if not item.product_id:
                continue
            result.side_effects.append(
                run_best_effort(
                    f"inventory:{item.product_id}",
                    self._store.decrement_inventory,
                    item.product_id,
                    item.variant_id,
                    item.quantity,
                )
            )

    def _send_confirmation(self, order: Order, items: list[OrderItem]) -> SendResult | None:
        """Send the confirmation once per order. None when another delivery owns it."""
        if not self._store.claim_confirmation(order.id):
            logger.info("Confirmation for %s already claimed", order.order_number)
            return None
        try:
            sent = self._notifier.send_confirmation(order, items)
        except Exception:
            self._store.update_order(order.id, {"confirmation_sent_at": None})
            raise
        if not sent.success:
            # Released so a later redelivery can try again
            self._store.update_order(order.id, {"confirmation_sent_at": None})
        return sent

    def _record_subscription(
        self, result: IngestionResult, session: dict[str, Any]
    ) -> Subscription:
        order = result.order
        remote = self._gateway.retrieve_subscription(session["subscription"])
        subscription, created = self._store.create_subscription(
            Subscription(
                stripe_subscription_id=remote.get("id") or session["subscription"],
                stripe_customer_id=session.get("customer"),
                customer_email=order.customer_email,
                customer_name=(session.get("customer_details") or {}).get("name") or "",
                shipping=order.shipping,
                status=SubscriptionStatus.ACTIVE,
                billing_interval=interval_from_subscription(remote),
                next_billing_date=next_billing_date_for(remote),
                recurring_amount=minor_to_decimal(session.get("amount_total")),
            )
        )
        if created:
            logger.info("Subscription recorded: %s", subscription.stripe_subscription_id)

        updated = self._store.update_order(
            order.id, {"subscription_id": subscription.stripe_subscription_id}
        )
        if updated is not None:
            result.order = updated
        return subscription
