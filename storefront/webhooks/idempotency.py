"""Webhook event ledger: Redis-based deduplication of Stripe event ids.

Security contract:
- Tracks processed event ids in Redis with a 24h TTL
- An id is marked only after its handler succeeded, so a failed delivery
  is retried in full by the provider
- Key pattern: webhook:seen:{provider}:{event_id}
- If Redis is down, falls back to allowing (fail-open for availability)
"""

from __future__ import annotations

import logging

import redis

logger = logging.getLogger(__name__)

_DEDUP_TTL_SECONDS = 86400  # 24 hours

# Key prefix for webhook dedup
_KEY_PREFIX = "webhook:seen"


class EventLedger:
    """Remembers which provider event ids were processed successfully."""

    def __init__(self, client: redis.Redis, ttl: int = _DEDUP_TTL_SECONDS):
        self._redis = client
        self._ttl = ttl

    @classmethod
    def from_url(cls, redis_url: str) -> EventLedger:
        return cls(redis.from_url(redis_url, decode_responses=True))

    @staticmethod
    def _key(provider: str, event_id: str) -> str:
        return f"{_KEY_PREFIX}:{provider}:{event_id}"

    def is_processed(self, provider: str, event_id: str) -> bool:
        """Check whether this event id was already handled successfully."""
        if not event_id:
            return False  # No ID = can't dedup, allow through
        try:
            return bool(self._redis.exists(self._key(provider, event_id)))
        except redis.RedisError:
            # Redis down: fail open for availability
            logger.warning(
                "Redis unavailable for webhook dedup, allowing %s/%s",
                provider,
                event_id,
                exc_info=True,
            )
            return False

    def mark_processed(self, provider: str, event_id: str) -> None:
        """Record a successfully handled event id."""
        if not event_id:
            return
        try:
            self._redis.set(self._key(provider, event_id), "1", ex=self._ttl)
        except redis.RedisError:
            logger.warning("Failed to mark webhook as processed: %s/%s", provider, event_id)
