"""Inbound Stripe webhooks: verification, dispatch, deduplication."""
