"""Webhook HTTP handlers: FastAPI route handler for inbound Stripe events.

The handler:
1. Reads raw body (needed for HMAC verification)
2. Verifies the Stripe-Signature header
3. Parses the event and skips types we do not handle
4. Checks the event ledger (already processed -> acknowledge)
5. Runs the order pipeline handler and acknowledges with 200

Security contract:
- Never return error details to webhook caller (info disclosure)
- Return 200 for unrecognized events so the provider stops retrying
- Return 500 when a handler fails so the provider retries delivery
- Return 400 for a signed event whose object is unusable (retrying will not help)
- Log all webhook activity for audit trail
"""

from __future__ import annotations

import asyncio
import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api import get_services
from storefront.errors import ValidationError
from storefront.webhooks.dispatcher import parse_event
from storefront.webhooks.verification import SIGNATURE_HEADER, Verification, verify_stripe

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

_REJECTIONS: dict[Verification, tuple[int, str]] = {
    Verification.MISSING_SIGNATURE: (400, "No signature"),
    Verification.MISSING_SECRET: (500, "Webhook secret not configured"),
    Verification.MALFORMED: (400, "Signature verification failed"),
    Verification.EXPIRED: (400, "Signature verification failed"),
    Verification.MISMATCH: (400, "Signature verification failed"),
}


def _log_webhook(request: Request, event_type: str, webhook_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    counts: dict[str, int] = request.app.state.webhook_counts
    counts[PROVIDER] = counts.get(PROVIDER, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s id=%s status=%s count=%d",
        PROVIDER,
        event_type,
        webhook_id,
        status,
        counts[PROVIDER],
    )


def _received() -> JSONResponse:
    return JSONResponse({"received": True}, status_code=200)


async def _handle_stripe_webhook(request: Request) -> JSONResponse:
    start = time.time()
    services = get_services(request)
    settings = services.settings

    # Read raw body for signature verification
    body = await request.body()

    # 1. Verify signature
    verdict = verify_stripe(
        body,
        request.headers.get(SIGNATURE_HEADER),
        settings.stripe_webhook_secret,
        settings.stripe_signature_tolerance,
    )
    if verdict is not Verification.OK:
        _log_webhook(request, "unknown", "unknown", verdict.value)
        status_code, message = _REJECTIONS[verdict]
        return JSONResponse({"error": message}, status_code=status_code)

    # 2. Parse JSON payload
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    event = parse_event(PROVIDER, payload) if isinstance(payload, dict) else None
    if event is None:
        _log_webhook(request, "unknown", "unknown", "invalid_payload")
        return JSONResponse({"error": "Invalid payload"}, status_code=400)

    # 3. Unrecognized event type: acknowledge and ignore
    if not services.dispatcher.handles(event.event_type):
        _log_webhook(request, event.event_type, event.event_id, "skipped")
        return _received()

    # 4. Check the event ledger
    ledger = services.ledger
    if ledger is not None and ledger.is_processed(PROVIDER, event.event_id):
        _log_webhook(request, event.event_type, event.event_id, "duplicate")
        return _received()

    # 5. Run the handler
    try:
        await asyncio.to_thread(services.dispatcher.dispatch, event)
    except ValidationError as e:
        logger.warning("Rejected webhook event %s/%s: %s", PROVIDER, event.event_type, e)
        _log_webhook(request, event.event_type, event.event_id, "invalid_payload")
        return JSONResponse({"error": "Invalid payload"}, status_code=400)
    except Exception:
        logger.exception("Failed to process webhook event: %s/%s", PROVIDER, event.event_type)
        _log_webhook(request, event.event_type, event.event_id, "failed")
        return JSONResponse({"error": "processing_failed"}, status_code=500)

    if ledger is not None:
        ledger.mark_processed(PROVIDER, event.event_id)
    _log_webhook(request, event.event_type, event.event_id, "processed")

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s/%s", elapsed_ms, PROVIDER, event.event_type)
    return _received()


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoint routes on the FastAPI app.

    Call this BEFORE install_security_middleware() so routes are available
    for middleware to inspect.
    """
    app.state.webhook_counts = {}

    @app.post("/webhooks/stripe")
    async def stripe_webhook(request: Request):
        """Receive Stripe webhooks (signature-verified)."""
        return await _handle_stripe_webhook(request)

    @app.get("/webhooks/status")
    async def webhook_status(request: Request):
        """Webhook receive counts (requires auth, not public)."""
        return {"counts": dict(request.app.state.webhook_counts)}

    logger.info("Webhook routes registered: /webhooks/stripe")
