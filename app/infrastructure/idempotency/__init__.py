"""Infrastructure idempotency cache.

Protects the Send API against duplicate notifications when clients retry
a request with the same idempotency key.

Usage:

    from infrastructure.idempotency import (
        IdempotencyKeyBuilder,
        InMemoryIdempotencyCache,
    )

    cache = InMemoryIdempotencyCache()
    key = IdempotencyKeyBuilder("send_api").build("send", tenant_id=t, client_key=k)

    with cache.lock(key):
        cached = cache.get(key)
        if cached:
            return cached

        response = execute_send(...)
        cache.set(key, response, ttl_seconds=3600)
"""

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.key_builder import IdempotencyKeyBuilder
from infrastructure.idempotency.memory import InMemoryIdempotencyCache

__all__ = [
    "IdempotencyCache",
    "IdempotencyKeyBuilder",
    "InMemoryIdempotencyCache",
]
