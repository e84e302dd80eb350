"""Order notification dispatch.

``OrderNotifier`` renders a template and hands it to the configured
``EmailSender``. ``send_order_email`` is the service behind the internal
``POST /orders/emails`` trigger: it validates the request, loads the order and
turns a provider failure into ``EmailDeliveryError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from storefront.errors import EmailDeliveryError, NotFoundError, ValidationError
from storefront.models import Order, OrderItem
from storefront.notifications import templates
from storefront.notifications.protocol import EmailMessage, EmailSender, SendResult
from storefront.notifications.templates import OrganizationInfo
from storefront.store.base import OrderStore

logger = logging.getLogger(__name__)


class EmailType(str, Enum):
    """Emails an operator can trigger for an existing order."""
    SHIPPING = "shipping"
    REFUND = "refund"
    CANCELLATION = "cancellation"


@dataclass
class OrderEmailRequest:
    order_id: str = ""
    email_type: str = ""
    tracking_number: str | None = None
    tracking_url: str | None = None
    refund_amount: Decimal | None = None
    is_full_refund: bool = True
    reason: str | None = None


class OrderNotifier:
    """Renders order emails and delivers them through an EmailSender."""

    def __init__(self, sender: EmailSender, org: OrganizationInfo, email_from: str = ""):
        self._sender = sender
        self._org = org
        self._email_from = email_from

    @property
    def org(self) -> OrganizationInfo:
        return self._org

    def _deliver(self, kind: str, order: Order, html: str) -> SendResult:
        message = EmailMessage(
            to=order.customer_email,
            subject=templates.subject_for(kind, order, self._org),
            html=html,
            sender=self._email_from,
        )
        result = self._sender.send(message)
        logger.info(
            "EMAIL_AUDIT kind=%s order=%s provider=%s success=%s",
            kind,
            order.order_number,
            result.provider,
            result.success,
        )
        return result

    def send_confirmation(self, order: Order, items: list[OrderItem]) -> SendResult:
        html = templates.render_confirmation(order, items, self._org)
        return self._deliver("confirmation", order, html)

    def send_shipping(
        self, order: Order, tracking_number: str, tracking_url: str | None = None
    ) -> SendResult:
        html = templates.render_shipping(order, tracking_number, tracking_url, self._org)
        return self._deliver("shipping", order, html)

    def send_refund(
        self,
        order: Order,
        refund_amount: Decimal,
        is_full_refund: bool = True,
        reason: str | None = None,
    ) -> SendResult:
        html = templates.render_refund(order, refund_amount, is_full_refund, reason, self._org)
        return self._deliver("refund", order, html)

    def send_cancellation(self, order: Order) -> SendResult:
        html = templates.render_cancellation(order, self._org)
        return self._deliver("cancellation", order, html)


def send_order_email(
    store: OrderStore, notifier: OrderNotifier, request: OrderEmailRequest
) -> SendResult:
    """Send a shipping, refund or cancellation email for a stored order.

    Raises:
        ValidationError: missing order id / email type, unknown email type,
            or a shipping email without a tracking number.
        NotFoundError: the order does not exist.
        EmailDeliveryError: the provider did not accept the message.
    """
    if not request.order_id or not request.email_type:
        raise ValidationError("Missing orderId or emailType")
    try:
        email_type = EmailType(request.email_type)
    except ValueError:
        raise ValidationError(f"Unknown email type: {request.email_type}") from None
    if email_type is EmailType.SHIPPING and not request.tracking_number:
        raise ValidationError("Tracking number is required for shipping emails")

    order = store.get_order(request.order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if email_type is EmailType.SHIPPING:
        result = notifier.send_shipping(order, request.tracking_number, request.tracking_url)
    elif email_type is EmailType.REFUND:
        amount = request.refund_amount if request.refund_amount is not None else order.total
        result = notifier.send_refund(order, amount, request.is_full_refund, request.reason)
    else:
        result = notifier.send_cancellation(order)

    if not result.success:
        raise EmailDeliveryError("Failed to send email", details=result.error)
    return result
