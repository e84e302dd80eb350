"""Admin API routes: coupons, events, reviews, review import, orders,
subscriptions and blog embeds.

All paths live under /admin and require the admin bearer token.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from storefront.admin.coupons import CouponInput, CouponStatusFilter, discount_display, is_limit_reached
from storefront.admin.events import EventInput
from storefront.admin.orders import NotesInput, StatusChange, StatusChangeInput
from storefront.admin.reviews import ReviewInput
from storefront.api import get_services, parse_payload, read_json
from storefront.content.embeds import embeds_from_document, parse_embeds, resolve_embeds, to_node
from storefront.errors import ValidationError

router = APIRouter(prefix="/admin", tags=["admin"])


def _with_display(coupon: dict) -> dict:
    return {
        **coupon,
        "discount_display": discount_display(coupon),
        "limit_reached": is_limit_reached(coupon),
    }


# --- Coupons ---


@router.get("/coupons")
async def list_coupons(request: Request, search: str = "", status: str = "all"):
    """List coupons with search on code/name and a status filter."""
    try:
        status_filter = CouponStatusFilter(status)
    except ValueError:
        raise ValidationError(f"Unknown coupon status: {status}") from None
    coupons = await asyncio.to_thread(
        get_services(request).coupons.list_coupons, search, status_filter
    )
    return {"coupons": [_with_display(c) for c in coupons], "count": len(coupons)}


@router.get("/coupons/{coupon_id}")
async def get_coupon(request: Request, coupon_id: str):
    coupon = await asyncio.to_thread(get_services(request).coupons.get_coupon, coupon_id)
    return _with_display(coupon)


@router.post("/coupons", status_code=201)
async def create_coupon(request: Request):
    data = parse_payload(CouponInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).coupons.create_coupon, data)


@router.put("/coupons/{coupon_id}")
async def update_coupon(request: Request, coupon_id: str):
    data = parse_payload(CouponInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).coupons.update_coupon, coupon_id, data)


@router.delete("/coupons/{coupon_id}")
async def delete_coupon(request: Request, coupon_id: str):
    await asyncio.to_thread(get_services(request).coupons.delete_coupon, coupon_id)
    return {"success": True}


@router.post("/coupons/{coupon_id}/toggle")
async def toggle_coupon(request: Request, coupon_id: str):
    """Flip a coupon's is_active flag."""
    return await asyncio.to_thread(get_services(request).coupons.toggle_active, coupon_id)


# --- Events ---


@router.get("/events")
async def list_events(request: Request, status: str = "all"):
    """List events (newest first) with confirmed registration counts."""
    events = await asyncio.to_thread(get_services(request).events.list_events, status)
    return {"events": events, "count": len(events)}


@router.get("/events/{event_id}")
async def get_event(request: Request, event_id: str):
    return await asyncio.to_thread(get_services(request).events.get_event, event_id)


@router.post("/events", status_code=201)
async def create_event(request: Request):
    data = parse_payload(EventInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).events.create_event, data)


@router.put("/events/{event_id}")
async def update_event(request: Request, event_id: str):
    data = parse_payload(EventInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).events.update_event, event_id, data)


@router.delete("/events/{event_id}")
async def delete_event(request: Request, event_id: str):
    """Delete an event together with its registrations."""
    removed = await asyncio.to_thread(get_services(request).events.delete_event, event_id)
    return {"success": True, "registrations_removed": removed}


@router.post("/events/{event_id}/toggle")
async def toggle_event(request: Request, event_id: str):
    """Publish a draft event or unpublish a published one."""
    return await asyncio.to_thread(get_services(request).events.toggle_published, event_id)


@router.get("/events/{event_id}/registrations")
async def list_registrations(request: Request, event_id: str):
    registrations = await asyncio.to_thread(
        get_services(request).events.list_registrations, event_id
    )
    return {"registrations": registrations, "count": len(registrations)}


@router.post("/registrations/{registration_id}/cancel")
async def cancel_registration(request: Request, registration_id: str):
    return await asyncio.to_thread(
        get_services(request).events.cancel_registration, registration_id
    )


# --- Reviews ---


@router.get("/reviews")
async def list_reviews(request: Request, status: str = "pending", search: str = ""):
    """Moderation queue; defaults to pending reviews."""
    reviews = await asyncio.to_thread(get_services(request).reviews.list_reviews, status, search)
    return {"reviews": reviews, "count": len(reviews)}


@router.post("/reviews/import")
async def import_reviews_csv(request: Request):
    """Import reviews from a CSV body (text/csv)."""
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("CSV body must be UTF-8") from None
    if not text.strip():
        raise ValidationError("CSV body is empty")
    result = await asyncio.to_thread(get_services(request).review_importer.import_csv, text)
    return result.to_dict()


@router.post("/reviews/import/etsy")
async def import_reviews_etsy(request: Request):
    """Import an Etsy review export (JSON list)."""
    entries = await read_json(request)
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise ValidationError("Expected a JSON list of Etsy reviews")
    result = await asyncio.to_thread(get_services(request).review_importer.import_etsy, entries)
    return result.to_dict()


@router.get("/reviews/{review_id}")
async def get_review(request: Request, review_id: str):
    return await asyncio.to_thread(get_services(request).reviews.get_review, review_id)


@router.post("/reviews", status_code=201)
async def create_review(request: Request):
    """Add a review by hand (approved immediately)."""
    data = parse_payload(ReviewInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).reviews.create_review, data)


@router.put("/reviews/{review_id}")
async def update_review(request: Request, review_id: str):
    data = parse_payload(ReviewInput, await read_json(request))
    return await asyncio.to_thread(get_services(request).reviews.update_review, review_id, data)


@router.post("/reviews/{review_id}/approve")
async def approve_review(request: Request, review_id: str):
    return await asyncio.to_thread(get_services(request).reviews.approve, review_id)


@router.post("/reviews/{review_id}/reject")
async def reject_review(request: Request, review_id: str):
    return await asyncio.to_thread(get_services(request).reviews.reject, review_id)


@router.delete("/reviews/{review_id}")
async def delete_review(request: Request, review_id: str):
    await asyncio.to_thread(get_services(request).reviews.delete_review, review_id)
    return {"success": True}


# --- Orders ---


def _email_outcome(change: StatusChange) -> dict[str, Any]:
    if change.email is None:
        return {"emailSent": None}
    outcome: dict[str, Any] = {"emailSent": change.email.ok}
    if not change.email.ok:
        outcome["emailError"] = change.email.error
    return outcome


@router.get("/orders")
async def list_orders(request: Request, status: str = "all", search: str = ""):
    """Orders newest first with a status filter and per-status counts."""
    orders_admin = get_services(request).orders
    orders = await asyncio.to_thread(orders_admin.list_orders, status, search)
    stats = await asyncio.to_thread(orders_admin.order_stats)
    return {"orders": [o.to_row() for o in orders], "count": len(orders), "stats": stats}


@router.get("/orders/{order_id}")
async def get_order(request: Request, order_id: str):
    order, items = await asyncio.to_thread(get_services(request).orders.get_order, order_id)
    return {"order": order.to_row(), "items": [item.to_row() for item in items]}


@router.post("/orders/{order_id}/status")
async def change_order_status(request: Request, order_id: str):
    """Mark an order processing, shipped, delivered or cancelled."""
    data = parse_payload(StatusChangeInput, await read_json(request))
    change = await asyncio.to_thread(
        get_services(request).orders.change_status,
        order_id,
        data.status,
        data.tracking_number,
        data.tracking_url,
        data.notify,
    )
    return {"order": change.order.to_row(), **_email_outcome(change)}


@router.put("/orders/{order_id}/notes")
async def update_order_notes(request: Request, order_id: str):
    data = parse_payload(NotesInput, await read_json(request))
    order = await asyncio.to_thread(
        get_services(request).orders.update_notes, order_id, data.internal_notes
    )
    return {"order": order.to_row()}


@router.get("/subscriptions")
async def list_subscriptions(request: Request, status: str = "all", search: str = ""):
    orders_admin = get_services(request).orders
    subs = await asyncio.to_thread(orders_admin.list_subscriptions, status, search)
    stats = await asyncio.to_thread(orders_admin.subscription_stats)
    return {"subscriptions": [s.to_row() for s in subs], "count": len(subs), "stats": stats}


# --- Content ---


class EmbedLookupInput(BaseModel):
    """Blog content as stored HTML or editor JSON."""

    html: str | None = None
    doc: dict[str, Any] | None = None


@router.post("/content/embeds")
async def lookup_embeds(request: Request):
    """List the embeds in a blog post and load the records they reference."""
    data = parse_payload(EmbedLookupInput, await read_json(request))
    if data.doc is not None:
        embeds = embeds_from_document(data.doc)
    elif data.html is not None:
        embeds = parse_embeds(data.html)
    else:
        raise ValidationError("Provide html or doc")
    resolved = await asyncio.to_thread(resolve_embeds, get_services(request).store, embeds)
    return {"embeds": [to_node(embed) for embed in embeds], **resolved}
