"""Storage backends for orders, subscriptions and admin tables."""

from storefront.store.base import OrderStore, RecordStore
from storefront.store.memory import InMemoryStore

__all__ = ["InMemoryStore", "OrderStore", "RecordStore"]
