"""Internal order endpoints: operator-triggered emails and refunds.

Both routes sit behind the admin bearer token and are rate limited. The
endpoints are decorated once at import so every app built from this router
shares a single limit per route.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from storefront.api import get_services, parse_payload, read_json
from storefront.notifications.service import OrderEmailRequest, send_order_email
from storefront.security import limiter

EMAIL_RATE_LIMIT = "30/minute"
REFUND_RATE_LIMIT = "10/minute"

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderEmailPayload(BaseModel):
    """Body of ``POST /orders/emails``."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field("", alias="orderId")
    email_type: str = Field("", alias="emailType")
    tracking_number: str | None = Field(None, alias="trackingNumber")
    tracking_url: str | None = Field(None, alias="trackingUrl")
    refund_amount: Decimal | None = Field(None, alias="refundAmount")
    is_full_refund: bool | None = Field(None, alias="isFullRefund")
    reason: str | None = None

    def to_request(self) -> OrderEmailRequest:
        return OrderEmailRequest(
            order_id=self.order_id,
            email_type=self.email_type,
            tracking_number=self.tracking_number,
            tracking_url=self.tracking_url,
            refund_amount=self.refund_amount,
            is_full_refund=self.is_full_refund is not False,
            reason=self.reason,
        )


class RefundPayload(BaseModel):
    """Body of ``POST /orders/refunds``."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field("", alias="orderId")
    amount: Decimal | None = None
    reason: str | None = None


@router.post("/emails")
@limiter.limit(EMAIL_RATE_LIMIT)
async def send_email(request: Request):
    """Send a shipping, refund or cancellation email for an order."""
    payload = parse_payload(OrderEmailPayload, await read_json(request))
    services = get_services(request)
    result = await asyncio.to_thread(
        send_order_email, services.store, services.notifier, payload.to_request()
    )
    return {"success": True, "emailId": result.response_id}


@router.post("/refunds")
@limiter.limit(REFUND_RATE_LIMIT)
async def refund_order(request: Request):
    """Refund an order in full or in part."""
    payload = parse_payload(RefundPayload, await read_json(request))
    services = get_services(request)
    refund = await asyncio.to_thread(
        services.refunds.refund_order, payload.order_id, payload.amount, payload.reason
    )
    return {"success": True, "refund": refund.to_dict()}
