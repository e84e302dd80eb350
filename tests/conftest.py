"""Shared fixtures for the storefront test suite.

Stripe and Resend are replaced by in-process fakes; storage is the
in-memory store. The FastAPI app is built through the real factory so
routes, middleware and error handlers are exercised as deployed.
"""

from __future__ import annotations

import copy
import hashlib
import hmac
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

from storefront.app import assemble_services, create_app
from storefront.config import Settings
from storefront.errors import PaymentProviderError
from storefront.notifications.protocol import EmailMessage, SendResult
from storefront.security import limiter
from storefront.store.memory import InMemoryStore

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_TOKEN = "admin-test-token"


class FakeGateway:
    """PaymentGateway double recording every call."""

    def __init__(self):
        self.line_items: dict[str, list[dict[str, Any]]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.refunds: list[dict[str, Any]] = []
        self.line_item_calls: list[str] = []
        self.line_item_error: Exception | None = None
        self.refund_error: Exception | None = None

    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        self.line_item_calls.append(session_id)
        if self.line_item_error is not None:
            raise self.line_item_error
        return copy.deepcopy(self.line_items.get(session_id, []))

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        if subscription_id not in self.subscriptions:
            raise PaymentProviderError(f"No such subscription: {subscription_id}", True)
        return copy.deepcopy(self.subscriptions[subscription_id])

    def create_refund(
        self, payment_intent_id: str, amount: int, reason: str | None = None
    ) -> dict[str, Any]:
        if self.refund_error is not None:
            raise self.refund_error
        refund = {
            "id": f"re_{len(self.refunds) + 1}",
            "payment_intent": payment_intent_id,
            "amount": amount,
            "status": "succeeded",
            "metadata": {"reason": reason} if reason else {},
        }
        self.refunds.append(refund)
        return refund


class FakeSender:
    """EmailSender double; flip ``fail`` to simulate a provider error."""

    provider = "fake"
    is_configured = True

    def __init__(self):
        self.sent: list[EmailMessage] = []
        self.fail = False

    def send(self, message: EmailMessage) -> SendResult:
        self.sent.append(message)
        if self.fail:
            return SendResult(success=False, provider=self.provider, error="provider down")
        return SendResult(
            success=True, provider=self.provider, response_id=f"email_{len(self.sent)}"
        )


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        stripe_webhook_secret=WEBHOOK_SECRET,
        admin_api_token=ADMIN_TOKEN,
        database_url="",
        redis_url="",
    )


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture()
def services(settings, store, gateway, sender):
    return assemble_services(settings, store, gateway, sender)


@pytest.fixture()
def app(settings, services):
    return create_app(settings, services)


@pytest.fixture()
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture()
def sign():
    """Factory for Stripe-Signature header values."""

    def _sign(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        ts = timestamp if timestamp is not None else int(time.time())
        sig = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
        return f"t={ts},v1={sig}"

    return _sign


@pytest.fixture()
def make_line_item():
    """Factory for Stripe line items with an expanded product."""

    def _make(
        name: str,
        unit_amount: int,
        quantity: int = 1,
        product_id: str | None = None,
        variant_id: str | None = None,
        description: str | None = None,
        images: list[str] | None = None,
    ) -> dict[str, Any]:
        metadata = {}
        if product_id:
            metadata["product_id"] = product_id
        if variant_id:
            metadata["variant_id"] = variant_id
        return {
            "id": f"li_{name.lower().replace(' ', '_')}",
            "description": description,
            "quantity": quantity,
            "amount_total": unit_amount * quantity,
            "price": {
                "unit_amount": unit_amount,
                "product": {"name": name, "metadata": metadata, "images": images or []},
            },
        }

    return _make


@pytest.fixture()
def make_session():
    """Factory for completed checkout session objects."""

    def _make(
        session_id: str = "cs_test_1",
        amount_subtotal: int = 2000,
        shipping: int = 300,
        discount: int = 200,
        amount_total: int | None = None,
        mode: str = "payment",
        subscription: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        session = {
            "id": session_id,
            "object": "checkout.session",
            "mode": mode,
            "payment_intent": "pi_test_1",
            "customer": "cus_test_1",
            "subscription": subscription,
            "amount_subtotal": amount_subtotal,
            "amount_total": (
                amount_total if amount_total is not None else amount_subtotal + shipping - discount
            ),
            "shipping_cost": {"amount_total": shipping},
            "total_details": {"amount_discount": discount},
            "customer_details": {
                "email": "ada@example.com",
                "name": "Ada Lovelace",
                "phone": "+15555550100",
            },
            "shipping_details": {
                "name": "Ada Lovelace",
                "address": {
                    "line1": "12 Analytical Way",
                    "line2": None,
                    "city": "Indianapolis",
                    "state": "IN",
                    "postal_code": "46204",
                    "country": "US",
                },
            },
        }
        session.update(extra)
        return session

    return _make
