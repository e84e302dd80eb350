"""Stripe API gateway.

Wraps the three provider calls the order pipeline needs: listing a checkout
session's line items, retrieving a subscription, creating a refund. Results
are returned as plain dicts so services never depend on SDK object types.

Stripe SDK errors are re-raised as PaymentProviderError; card and
invalid-request errors are flagged as client errors.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import stripe

from storefront.errors import PaymentProviderError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    """Provider operations used by ingestion, subscription sync and refunds."""

    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        ...

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        ...

    def create_refund(
        self, payment_intent_id: str, amount: int, reason: str | None = None
    ) -> dict[str, Any]:
        ...


def _plain(obj: Any) -> dict[str, Any]:
    """Convert a StripeObject (or an already-plain mapping) to a dict."""
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Unexpected Stripe payload type: {type(obj).__name__}")


def _wrap(e: stripe.StripeError, action: str) -> PaymentProviderError:
    client_error = isinstance(e, (stripe.CardError, stripe.InvalidRequestError))
    logger.error("Stripe %s failed: %s", action, e.user_message or str(e))
    return PaymentProviderError(e.user_message or str(e), is_client_error=client_error)


class StripeGateway:
    """PaymentGateway backed by the official ``stripe`` SDK."""

    def __init__(self, api_key: str, api_version: str | None = None):
        self._opts: dict[str, Any] = {"api_key": api_key}
        if api_version:
            self._opts["stripe_version"] = api_version

    @property
    def is_configured(self) -> bool:
        return bool(self._opts["api_key"])

    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        try:
            page = stripe.checkout.Session.list_line_items(
                session_id,
                expand=["data.price.product"],
                limit=100,
                **self._opts,
            )
            items = [_plain(item) for item in page.auto_paging_iter()]
        except stripe.StripeError as e:
            raise _wrap(e, f"line item fetch for {session_id}") from e
        logger.info("Fetched %d line items for session %s", len(items), session_id)
        return items

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, **self._opts)
        except stripe.StripeError as e:
            raise _wrap(e, f"subscription fetch for {subscription_id}") from e
        return _plain(subscription)

    def create_refund(
        self, payment_intent_id: str, amount: int, reason: str | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"payment_intent": payment_intent_id, "amount": amount}
        if reason:
            params["metadata"] = {"reason": reason}
        try:
            refund = stripe.Refund.create(**params, **self._opts)
        except stripe.StripeError as e:
            raise _wrap(e, f"refund for {payment_intent_id}") from e
        logger.info("Refund %s created for %s (%d)", refund.id, payment_intent_id, amount)
        return _plain(refund)
