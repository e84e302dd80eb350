"""Full and partial refunds through the payment provider.

The refund itself is the point of no return: once Stripe accepts it, a
failure to record it on the order is logged and the refund is still
reported as successful.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from storefront.errors import NotFoundError, StorefrontError, ValidationError
from storefront.models import (
    OrderStatus,
    PaymentStatus,
    decimal_to_minor,
    minor_to_decimal,
)
from storefront.payments.stripe_gateway import PaymentGateway
from storefront.store.base import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    id: str
    amount: Decimal
    status: str
    is_full_refund: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": float(self.amount),
            "status": self.status,
            "isFullRefund": self.is_full_refund,
        }


def refund_note(amount: Decimal, reason: str | None, when: datetime) -> str:
    timestamp = when.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    note = f"[{timestamp}] Refund: ${amount:.2f}"
    return f"{note} - {reason}" if reason else note


class RefundService:
    """Issues refunds for stored orders."""

    def __init__(self, store: OrderStore, gateway: PaymentGateway):
        self._store = store
        self._gateway = gateway

    def refund_order(
        self,
        order_id: str,
        amount: Decimal | None = None,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund ``amount`` (or the whole total) of an order.

        Raises:
            ValidationError: missing order id, no payment intent, already
                refunded, or a non-positive amount.
            NotFoundError: unknown order.
            PaymentProviderError: Stripe rejected the refund.
        """
        if not order_id:
            raise ValidationError("Order ID is required")

        order = self._store.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if not order.stripe_payment_intent_id:
            raise ValidationError("No payment intent found for this order")
        if order.payment_status is PaymentStatus.REFUNDED:
            raise ValidationError("Order has already been refunded")

        total_minor = decimal_to_minor(order.total)
        if amount is None or Decimal(amount) >= order.total:
            amount_minor = total_minor
            is_full = True
        else:
            amount_minor = decimal_to_minor(Decimal(amount))
            is_full = False
            if amount_minor <= 0:
                raise ValidationError("Refund amount must be greater than 0")

        refund = self._gateway.create_refund(
            order.stripe_payment_intent_id, amount_minor, reason
        )
        refunded = minor_to_decimal(amount_minor)
        logger.info(
            "REFUND_AUDIT order=%s refund=%s amount=%s full=%s",
            order.order_number,
            refund.get("id"),
            refunded,
            is_full,
        )

        note = refund_note(refunded, reason, datetime.now(timezone.utc))
        changes = {
            "payment_status": (PaymentStatus.REFUNDED if is_full else PaymentStatus.PAID).value,
            "internal_notes": f"{order.internal_notes}\n\n{note}" if order.internal_notes else note,
        }
        if is_full:
            changes["status"] = OrderStatus.REFUNDED.value
        try:
            self._store.update_order(order.id, changes)
        except StorefrontError:
            logger.error(
                "Refund %s succeeded but order %s was not updated",
                refund.get("id"),
                order.id,
                exc_info=True,
            )

        return RefundResult(
            id=refund.get("id", ""),
            amount=refunded,
            status=refund.get("status", ""),
            is_full_refund=is_full,
        )
