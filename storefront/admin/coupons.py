"""Coupon administration."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

from storefront.admin.dates import isoformat, parse_datetime
from storefront.errors import NotFoundError, ValidationError
from storefront.store.base import RecordStore

logger = logging.getLogger(__name__)

TABLE = "coupons"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"


class AppliesTo(str, Enum):
    ALL = "all"
    SPECIFIC_PRODUCTS = "specific_products"
    SPECIFIC_CATEGORIES = "specific_categories"


class CouponStatusFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class CouponInput(BaseModel):
    """Editable coupon fields."""

    code: str = ""
    name: str = ""
    description: str | None = None
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal | None = None
    applies_to: AppliesTo = AppliesTo.ALL
    category_names: list[str] | None = None
    minimum_purchase: Decimal | None = None
    start_date: str | None = None
    end_date: str | None = None
    usage_limit: int | None = None
    usage_limit_per_customer: int | None = None
    is_active: bool = True


def normalize_code(code: str) -> str:
    """Upper-case a coupon code and strip all whitespace."""
    return re.sub(r"\s+", "", code or "").upper()


def _format_number(value: Any) -> str:
    number = Decimal(str(value))
    return str(number.quantize(Decimal(1))) if number == number.to_integral_value() else str(number)


def discount_display(coupon: dict[str, Any]) -> str:
    """Human-readable discount, e.g. ``15% off`` or ``$10 off``."""
    kind = coupon.get("discount_type")
    value = coupon.get("discount_value")
    if kind == DiscountType.PERCENTAGE.value and value is not None:
        return f"{_format_number(value)}% off"
    if kind == DiscountType.FIXED_AMOUNT.value and value is not None:
        return f"${_format_number(value)} off"
    if kind == DiscountType.FREE_SHIPPING.value:
        return "Free Shipping"
    return "-"


def is_expired(coupon: dict[str, Any], now: datetime | None = None) -> bool:
    end = parse_datetime(coupon.get("end_date"))
    if end is None:
        return False
    return end < (now or datetime.now(timezone.utc))


def is_limit_reached(coupon: dict[str, Any]) -> bool:
    limit = coupon.get("usage_limit")
    if not limit:
        return False
    return (coupon.get("current_usage") or 0) >= limit


def _matches_status(coupon: dict[str, Any], status: CouponStatusFilter, now: datetime) -> bool:
    if status is CouponStatusFilter.ACTIVE:
        return bool(coupon.get("is_active")) and not is_expired(coupon, now)
    if status is CouponStatusFilter.INACTIVE:
        return not coupon.get("is_active")
    if status is CouponStatusFilter.EXPIRED:
        return is_expired(coupon, now)
    return True


def coupon_row(data: CouponInput) -> dict[str, Any]:
    """Validate editable fields and build the stored row.

    Raises:
        ValidationError: missing code/name, or no discount value for a
            non-free-shipping coupon.
    """
    code = normalize_code(data.code)
    name = (data.name or "").strip()
    if not code or not name:
        raise ValidationError("Please enter a coupon code and name.")
    free_shipping = data.discount_type is DiscountType.FREE_SHIPPING
    if data.discount_value is None and not free_shipping:
        raise ValidationError("Please enter a discount value.")

    start = parse_datetime(data.start_date)
    end = parse_datetime(data.end_date)
    if data.start_date and start is None:
        raise ValidationError(f"Invalid start_date: {data.start_date}")
    if data.end_date and end is None:
        raise ValidationError(f"Invalid end_date: {data.end_date}")

    return {
        "code": code,
        "name": name,
        "description": (data.description or "").strip() or None,
        "discount_type": data.discount_type.value,
        "discount_value": None if free_shipping else data.discount_value,
        "applies_to": data.applies_to.value,
        "category_names": (
            list(data.category_names or [])
            if data.applies_to is AppliesTo.SPECIFIC_CATEGORIES
            else None
        ),
        "product_ids": None,
        "minimum_purchase": data.minimum_purchase,
        "start_date": isoformat(start),
        "end_date": isoformat(end),
        "usage_limit": data.usage_limit,
        "usage_limit_per_customer": data.usage_limit_per_customer or 1,
        "is_active": data.is_active,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


class CouponService:
    """CRUD over the coupons table."""

    def __init__(self, store: RecordStore):
        self._store = store

    def list_coupons(
        self,
        search: str = "",
        status: CouponStatusFilter = CouponStatusFilter.ALL,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        now = now or datetime.now(timezone.utc)
        needle = search.strip().lower()
        coupons = []
        for coupon in self._store.list_records(TABLE):
            if needle and needle not in (coupon.get("code") or "").lower() \
                    and needle not in (coupon.get("name") or "").lower():
                continue
            if not _matches_status(coupon, status, now):
                continue
            coupons.append(coupon)
        return coupons

    def get_coupon(self, coupon_id: str) -> dict[str, Any]:
        coupon = self._store.get_record(TABLE, coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon not found")
        return coupon

    def _check_unique_code(self, code: str, coupon_id: str | None = None) -> None:
        existing = self._store.find_record(TABLE, "code", code)
        if existing is not None and existing.get("id") != coupon_id:
            raise ValidationError(
                "A coupon with this code already exists. Please use a different code."
            )

    def create_coupon(self, data: CouponInput) -> dict[str, Any]:
        row = coupon_row(data)
        self._check_unique_code(row["code"])
        row["current_usage"] = 0
        coupon = self._store.insert_record(TABLE, row)
        logger.info("Coupon created: %s", coupon["code"])
        return coupon

    def update_coupon(self, coupon_id: str, data: CouponInput) -> dict[str, Any]:
        self.get_coupon(coupon_id)
        row = coupon_row(data)
        self._check_unique_code(row["code"], coupon_id)
        coupon = self._store.update_record(TABLE, coupon_id, row)
        if coupon is None:
            raise NotFoundError("Coupon not found")
        return coupon

    def delete_coupon(self, coupon_id: str) -> None:
        if not self._store.delete_record(TABLE, coupon_id):
            raise NotFoundError("Coupon not found")
        logger.info("Coupon deleted: %s", coupon_id)

    def toggle_active(self, coupon_id: str) -> dict[str, Any]:
        coupon = self.get_coupon(coupon_id)
        updated = self._store.update_record(
            TABLE, coupon_id, {"is_active": not coupon.get("is_active")}
        )
        if updated is None:
            raise NotFoundError("Coupon not found")
        return updated
