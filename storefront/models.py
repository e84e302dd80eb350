"""Order, order item and subscription data models.

Monetary fields are ``Decimal`` quantized to cents. Stripe reports amounts
as integer minor units; ``minor_to_decimal`` is the only conversion path so
that 1999 always becomes exactly 19.99.

Row helpers (``to_row`` / ``from_row``) map to the flat column layout of the
``orders``, ``order_items`` and ``subscriptions`` tables.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable

CENT = Decimal("0.01")


class OrderStatus(str, Enum):
    """Fulfilment lifecycle of an order."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Payment state mirrored from Stripe."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class BillingInterval(str, Enum):
    EVERY_2_WEEKS = "every-2-weeks"
    MONTHLY = "monthly"
    EVERY_3_MONTHS = "every-3-months"


class CheckoutMode(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


def minor_to_decimal(amount: int | None) -> Decimal:
    """Convert integer minor units (cents) to a two-place Decimal."""
    return (Decimal(int(amount or 0)) / 100).quantize(CENT)


def decimal_to_minor(amount: Decimal) -> int:
    """Convert a Decimal currency amount to integer minor units."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_money(value: Any) -> Decimal:
    """Coerce a stored or user-supplied amount to a two-place Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def new_order_number() -> str:
    return f"NKH-{uuid.uuid4().hex[:8].upper()}"


@dataclass
class ShippingAddress:
    """Postal address snapshot taken at checkout."""
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "US"

    @staticmethod
    def from_stripe(details: dict[str, Any] | None) -> ShippingAddress:
        address = (details or {}).get("address") or {}
        return ShippingAddress(
            line1=address.get("line1") or "",
            line2=address.get("line2") or "",
            city=address.get("city") or "",
            state=address.get("state") or "",
            postal_code=address.get("postal_code") or "",
            country=address.get("country") or "US",
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "shipping_address_line1": self.line1,
            "shipping_address_line2": self.line2,
            "shipping_city": self.city,
            "shipping_state": self.state,
            "shipping_postal_code": self.postal_code,
            "shipping_country": self.country,
        }

    @staticmethod
    def from_row(row: dict[str, Any]) -> ShippingAddress:
        return ShippingAddress(
            line1=row.get("shipping_address_line1") or "",
            line2=row.get("shipping_address_line2") or "",
            city=row.get("shipping_city") or "",
            state=row.get("shipping_state") or "",
            postal_code=row.get("shipping_postal_code") or "",
            country=row.get("shipping_country") or "US",
        )


@dataclass
class OrderItem:
    """Line item snapshot. Denormalized so history survives catalog edits."""
    product_title: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    total_price: Decimal = Decimal("0.00")
    product_id: str | None = None
    variant_id: str | None = None
    variant_title: str | None = None
    sku: str | None = None
    image_url: str | None = None
    is_subscription: bool = False
    stripe_line_item_id: str = ""
    order_id: str = ""
    id: str = field(default_factory=new_id)

    def to_row(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_row(row: dict[str, Any]) -> OrderItem:
        data = {k: v for k, v in row.items() if k in OrderItem.__dataclass_fields__}
        data["unit_price"] = to_money(data.get("unit_price"))
        data["total_price"] = to_money(data.get("total_price"))
        return OrderItem(**data)


@dataclass
class Order:
    """A paid checkout persisted as an order."""
    stripe_checkout_session_id: str
    customer_email: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    shipping: ShippingAddress = field(default_factory=ShippingAddress)
    subtotal: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    status: OrderStatus = OrderStatus.PROCESSING
    payment_status: PaymentStatus = PaymentStatus.PAID
    stripe_payment_intent_id: str | None = None
    stripe_customer_id: str | None = None
    is_subscription_order: bool = False
    subscription_id: str | None = None
    internal_notes: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    confirmation_sent_at: datetime | None = None
    order_number: str = field(default_factory=new_order_number)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_row(self) -> dict[str, Any]:
        row = {k: v for k, v in asdict(self).items() if k != "shipping"}
        row.update(self.shipping.to_row())
        row["status"] = self.status.value
        row["payment_status"] = self.payment_status.value
        return row

    @staticmethod
    def from_row(row: dict[str, Any]) -> Order:
        data = {
            k: v for k, v in row.items()
            if k in Order.__dataclass_fields__ and k != "shipping"
        }
        data["shipping"] = ShippingAddress.from_row(row)
        data["status"] = OrderStatus(data.get("status") or OrderStatus.PROCESSING.value)
        data["payment_status"] = PaymentStatus(
            data.get("payment_status") or PaymentStatus.PAID.value
        )
        for key in ("subtotal", "shipping_cost", "discount_amount", "total"):
            data[key] = to_money(data.get(key))
        return Order(**data)


@dataclass
class Subscription:
    """Recurring purchase created from a subscription-mode checkout."""
    stripe_subscription_id: str
    stripe_customer_id: str | None = None
    customer_email: str = ""
    customer_name: str = ""
    shipping: ShippingAddress = field(default_factory=ShippingAddress)
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    next_billing_date: datetime | None = None
    recurring_amount: Decimal = Decimal("0.00")
    paused_at: datetime | None = None
    cancelled_at: datetime | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)

    def to_row(self) -> dict[str, Any]:
        row = {k: v for k, v in asdict(self).items() if k != "shipping"}
        row.update(self.shipping.to_row())
        row["status"] = self.status.value
        row["billing_interval"] = self.billing_interval.value
        return row

    @staticmethod
    def from_row(row: dict[str, Any]) -> Subscription:
        data = {
            k: v for k, v in row.items()
            if k in Subscription.__dataclass_fields__ and k != "shipping"
        }
        data["shipping"] = ShippingAddress.from_row(row)
        data["status"] = SubscriptionStatus(data.get("status") or "active")
        data["billing_interval"] = BillingInterval(data.get("billing_interval") or "monthly")
        data["recurring_amount"] = to_money(data.get("recurring_amount"))
        return Subscription(**data)


def expected_total(
    items: Iterable[OrderItem],
    shipping_cost: Decimal,
    discount_amount: Decimal,
) -> Decimal:
    """Total implied by line items, shipping and discount."""
    items_total = sum((item.total_price for item in items), Decimal("0.00"))
    return (items_total + shipping_cost - discount_amount).quantize(CENT)
