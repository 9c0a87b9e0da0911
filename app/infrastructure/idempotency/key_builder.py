"""Cache keys for client-supplied idempotency keys."""

import hashlib


class IdempotencyKeyBuilder:
    """Turn a client key into a tenant-scoped cache key.

    The same client key sent by two tenants maps to two cache entries, and
    the raw client key never reaches the cache backend or its logs.

    Example:
        >>> keys = IdempotencyKeyBuilder(namespace="send_api")
        >>> keys.build("send", tenant_id="tenant-1", client_key="order-42").startswith(
        ...     "send_api:send:"
        ... )
        True
    """

    DIGEST_LENGTH = 16

    def __init__(self, namespace: str):
        self.namespace = namespace

    def build(self, operation: str, **components: object) -> str:
        # Sorted so keyword order never changes the key
        material = "|".join(
            [self.namespace, operation]
            + [f"{name}={value}" for name, value in sorted(components.items())]
        )
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
        return f"{self.namespace}:{operation}:{digest[: self.DIGEST_LENGTH]}"
