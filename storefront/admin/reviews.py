"""Review moderation and manual review entry."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from storefront.admin.dates import isoformat, parse_datetime
from storefront.errors import NotFoundError, ValidationError
from storefront.store.base import RecordStore

logger = logging.getLogger(__name__)

TABLE = "reviews"
MIN_RATING = 1
MAX_RATING = 5
MANUAL_EMAIL = "manual@entry.com"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewInput(BaseModel):
    """Fields of a manually entered review."""

    product_id: str | None = None
    is_general: bool = False
    customer_name: str = ""
    customer_email: str = ""
    rating: int = Field(5, ge=MIN_RATING, le=MAX_RATING)
    title: str | None = None
    review_text: str = ""
    is_verified_buyer: bool = False
    reviewed_at: str | None = None
    status: ReviewStatus | None = None


def review_row(data: ReviewInput, default_status: ReviewStatus) -> dict[str, Any]:
    if not data.customer_name.strip() or not data.review_text.strip():
        raise ValidationError("Please fill in customer name and review text")
    reviewed_at = parse_datetime(data.reviewed_at) or datetime.now(timezone.utc)
    return {
        "product_id": None if data.is_general else (data.product_id or None),
        "customer_name": data.customer_name.strip(),
        "customer_email": data.customer_email.strip() or MANUAL_EMAIL,
        "rating": data.rating,
        "title": (data.title or "").strip() or None,
        "review_text": data.review_text.strip(),
        "is_verified_buyer": data.is_verified_buyer,
        "status": (data.status or default_status).value,
        "reviewed_at": isoformat(reviewed_at),
    }


class ReviewService:
    """Moderation queue and CRUD over the reviews table."""

    def __init__(self, store: RecordStore):
        self._store = store

    def _product_titles(self, reviews: list[dict[str, Any]]) -> dict[str, str]:
        titles: dict[str, str] = {}
        for product_id in {r["product_id"] for r in reviews if r.get("product_id")}:
            product = self._store.get_record("products", product_id)
            if product is not None:
                titles[product_id] = product.get("title") or ""
        return titles

    def list_reviews(self, status: str = ReviewStatus.PENDING.value, search: str = "") -> list[dict[str, Any]]:
        """Reviews newest first, each carrying ``product_title``.

        ``status`` is a ReviewStatus value or ``all``. ``search`` matches
        customer name, review text and product title, case-insensitively.
        """
        filters = None
        if status != "all":
            try:
                filters = {"status": ReviewStatus(status).value}
            except ValueError:
                raise ValidationError(f"Unknown review status: {status}") from None

        reviews = self._store.list_records(TABLE, filters)
        titles = self._product_titles(reviews)
        needle = search.strip().lower()
        matched = []
        for review in reviews:
            review["product_title"] = titles.get(review.get("product_id") or "")
            haystack = (
                review.get("customer_name") or "",
                review.get("review_text") or "",
                review.get("product_title") or "",
            )
            if needle and not any(needle in field.lower() for field in haystack):
                continue
            matched.append(review)
        return matched

    def get_review(self, review_id: str) -> dict[str, Any]:
        review = self._store.get_record(TABLE, review_id)
        if review is None:
            raise NotFoundError("Review not found")
        return review

    def set_status(self, review_id: str, status: ReviewStatus) -> dict[str, Any]:
        review = self._store.update_record(TABLE, review_id, {"status": status.value})
        if review is None:
            raise NotFoundError("Review not found")
        logger.info("Review %s %s", review_id, status.value)
        return review

    def approve(self, review_id: str) -> dict[str, Any]:
        return self.set_status(review_id, ReviewStatus.APPROVED)

    def reject(self, review_id: str) -> dict[str, Any]:
        return self.set_status(review_id, ReviewStatus.REJECTED)

    def create_review(self, data: ReviewInput) -> dict[str, Any]:
        """Manually entered reviews are approved on creation."""
        return self._store.insert_record(TABLE, review_row(data, ReviewStatus.APPROVED))

    def update_review(self, review_id: str, data: ReviewInput) -> dict[str, Any]:
        """Update a review, keeping its moderation status unless one is given."""
        current = self.get_review(review_id)
        row = review_row(data, ReviewStatus(current.get("status") or ReviewStatus.PENDING.value))
        review = self._store.update_record(TABLE, review_id, row)
        if review is None:
            raise NotFoundError("Review not found")
        return review

    def delete_review(self, review_id: str) -> None:
        if not self._store.delete_record(TABLE, review_id):
            raise NotFoundError("Review not found")
