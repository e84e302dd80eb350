"""Storefront back office: Stripe webhook ingestion, order email, admin CRUD."""

__version__ = "0.1.0"
