"""Stripe webhook signature verification: constant-time HMAC.

Security contract:
- All comparisons use hmac.compare_digest() (constant-time, no timing attacks)
- Verification failure -> rejected before any payload processing
- Missing secret -> MISSING_SECRET, never a pass (fail-closed)
- Timestamp tolerance: 300s (5 min) to prevent replay
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from enum import Enum

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"

# Stripe timestamp tolerance (seconds)
DEFAULT_TOLERANCE = 300


class Verification(str, Enum):
    """Outcome of checking a Stripe-Signature header."""
    OK = "ok"
    MISSING_SIGNATURE = "missing_signature"
    MISSING_SECRET = "missing_secret"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


def parse_signature_header(signature_header: str) -> tuple[int | None, list[str]]:
    """Split ``t=...,v1=...,v1=...`` into the timestamp and all v1 signatures."""
    timestamp: int | None = None
    signatures: list[str] = []
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, signatures
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    """HMAC-SHA256 hex digest of ``"{timestamp}.{body}"``."""
    signed_payload = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify_stripe(
    body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE,
    now: float | None = None,
) -> Verification:
    """Verify a Stripe webhook signature.

    Stripe signs with HMAC-SHA256 and sends ``t=<ts>,v1=<sig>``. Several v1
    entries may be present while a secret is being rolled; any match passes.

    Args:
        body: Raw request body
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_...)
        tolerance: Maximum age of the signed timestamp in seconds
        now: Current unix time, for tests
    """
    if not signature_header:
        return Verification.MISSING_SIGNATURE
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured, rejecting webhook")
        return Verification.MISSING_SECRET

    timestamp, signatures = parse_signature_header(signature_header)
    if timestamp is None or not signatures:
        return Verification.MALFORMED

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.warning("Stripe webhook timestamp too old/future: %s", timestamp)
        return Verification.EXPIRED

    expected = compute_signature(secret, timestamp, body)
    if any(hmac.compare_digest(expected, sig) for sig in signatures):
        return Verification.OK
    return Verification.MISMATCH
