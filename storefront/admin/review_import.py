"""Bulk review import from CSV exports and Etsy JSON dumps.

CSV columns: customer_name, customer_email, rating, title, review_text,
product_id, date, verified_buyer. ``product_id`` holds a product slug; an
empty value (or ``is_general=true``) marks a general testimonial. Imported
reviews are approved immediately.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from storefront.admin.dates import parse_datetime
from storefront.admin.reviews import MAX_RATING, MIN_RATING, TABLE, ReviewStatus
from storefront.errors import StoreError
from storefront.store.base import RecordStore

logger = logging.getLogger(__name__)

IMPORTED_EMAIL = "imported@review.com"
ETSY_EMAIL = "etsy@imported.com"

_DATE_COLUMNS = ("date", "reviewed_at", "created_at")


@dataclass
class ImportResult:
    success: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"success": self.success, "errors": self.errors, "skipped": self.skipped}


def _text(row: dict[str, Any], key: str) -> str:
    return (row.get(key) or "").strip()


def _is_true(value: Any) -> bool:
    return str(value or "").strip().lower() == "true"


def parse_rating(value: Any) -> int:
    """Whole-star rating in range. Raises ValueError otherwise."""
    rating = int(str(value).strip())
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"rating {rating} outside {MIN_RATING}-{MAX_RATING}")
    return rating


def _reviewed_at(row: dict[str, Any]) -> str:
    raw = next((row[c] for c in _DATE_COLUMNS if _text(row, c)), None)
    parsed = parse_datetime(raw) if raw else None
    return (parsed or datetime.now(timezone.utc)).isoformat()


class ReviewImporter:
    """Inserts reviews parsed from CSV or Etsy JSON."""

    def __init__(self, store: RecordStore):
        self._store = store

    def _product_id_for_slug(self, slug: str) -> str | None:
        product = self._store.find_record("products", "slug", slug)
        return product["id"] if product else None

    def csv_row_to_review(self, row: dict[str, Any]) -> dict[str, Any]:
        """Build a review record from one CSV row. Raises ValueError on a bad rating."""
        slug = _text(row, "product_id")
        is_general = not slug or _is_true(row.get("is_general"))
        return {
            "product_id": None if is_general else self._product_id_for_slug(slug),
            "customer_name": _text(row, "customer_name"),
            "customer_email": _text(row, "customer_email") or IMPORTED_EMAIL,
            "rating": parse_rating(_text(row, "rating")),
            "title": _text(row, "title") or None,
            "review_text": _text(row, "review_text"),
            "is_verified_buyer": _is_true(row.get("verified_buyer"))
            or _is_true(row.get("is_verified_buyer")),
            "status": ReviewStatus.APPROVED.value,
            "reviewed_at": _reviewed_at(row),
        }

    def _insert_all(self, reviews: Iterable[dict[str, Any]], result: ImportResult) -> None:
        for review in reviews:
            try:
                self._store.insert_record(TABLE, review)
            except StoreError as e:
                logger.error("Error importing review from %s: %s", review.get("customer_name"), e)
                result.errors += 1
            else:
                result.success += 1

    def import_csv(self, text: str) -> ImportResult:
        result = ImportResult()
        reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
        reviews = []
        for row in reader:
            if not (_text(row, "customer_name") and _text(row, "rating") and _text(row, "review_text")):
                result.skipped += 1
                continue
            try:
                reviews.append(self.csv_row_to_review(row))
            except ValueError as e:
                logger.error("Error importing review row %d: %s", reader.line_num, e)
                result.errors += 1
        self._insert_all(reviews, result)
        logger.info(
            "CSV review import: %d imported, %d errors, %d skipped",
            result.success,
            result.errors,
            result.skipped,
        )
        return result

    def import_etsy(self, entries: list[dict[str, Any]]) -> ImportResult:
        """Import Etsy reviews; all become verified general testimonials."""
        result = ImportResult()
        reviews = []
        for entry in entries:
            try:
                rating = parse_rating(entry.get("star_rating"))
            except ValueError:
                logger.error("Error importing review from %s: bad rating", entry.get("reviewer"))
                result.errors += 1
                continue
            reviewed_at = parse_datetime(entry.get("date_reviewed")) or datetime.now(timezone.utc)
            reviews.append(
                {
                    "product_id": None,
                    "customer_name": entry.get("reviewer") or "",
                    "customer_email": ETSY_EMAIL,
                    "rating": rating,
                    "title": None,
                    "review_text": entry.get("message") or "",
                    "is_verified_buyer": True,
                    "status": ReviewStatus.APPROVED.value,
                    "reviewed_at": reviewed_at.isoformat(),
                }
            )
        self._insert_all(reviews, result)
        logger.info("Etsy review import: %d imported, %d errors", result.success, result.errors)
        return result
