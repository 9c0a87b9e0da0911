"""Unit tests for the in-memory idempotency cache and key builder."""

import threading
import time
from unittest.mock import patch

import pytest

from infrastructure.idempotency import IdempotencyKeyBuilder, InMemoryIdempotencyCache


@pytest.fixture
def cache():
    return InMemoryIdempotencyCache()


@pytest.mark.unit
class TestIdempotencyKeyBuilder:
    def test_deterministic(self):
        """Test the same components always build the same key."""
        builder = IdempotencyKeyBuilder("send_api")

        first = builder.build("send", tenant_id="tenant-1", client_key="k-1")
        second = builder.build("send", client_key="k-1", tenant_id="tenant-1")

        assert first == second
        assert first.startswith("send_api:send:")

    def test_tenant_scoped(self):
        """Test the same client key from two tenants builds two keys."""
        builder = IdempotencyKeyBuilder("send_api")

        assert builder.build("send", tenant_id="tenant-1", client_key="k-1") != builder.build(
            "send", tenant_id="tenant-2", client_key="k-1"
        )

    def test_raw_key_not_exposed(self):
        """Test the client key is hashed into the cache key."""
        key = IdempotencyKeyBuilder("send_api").build("send", client_key="secret-order")

        assert "secret-order" not in key


@pytest.mark.unit
class TestInMemoryIdempotencyCache:
    def test_miss(self, cache):
        assert cache.get("missing") is None

    def test_set_and_get(self, cache):
        """Test stored responses are returned."""
        cache.set("k", {"notification_id": "n-1"}, ttl_seconds=60)

        assert cache.get("k") == {"notification_id": "n-1"}

    def test_returns_copies(self, cache):
        """Test callers cannot mutate the cached response."""
        response = {"decisions": [{"channel": "email"}]}
        cache.set("k", response, ttl_seconds=60)

        response["decisions"].append({"channel": "sms"})
        cache.get("k")["decisions"].clear()

        assert cache.get("k") == {"decisions": [{"channel": "email"}]}

    def test_expiry(self, cache):
        """Test entries expire after their TTL."""
        with patch("infrastructure.idempotency.memory.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            cache.set("k", {"notification_id": "n-1"}, ttl_seconds=60)

            mock_time.monotonic.return_value = 1059.0
            assert cache.get("k") is not None

            mock_time.monotonic.return_value = 1060.0
            assert cache.get("k") is None

    def test_stats_and_clear(self, cache):
        """Test hit/miss stats and clear()."""
        cache.set("k", {}, ttl_seconds=60)
        cache.get("k")
        cache.get("other")

        stats = cache.get_stats()
        cache.clear()

        assert stats == {
            "backend": "memory",
            "entries": 1,
            "locked_keys": 0,
            "hits": 1,
            "misses": 1,
        }
        assert cache.get_stats()["entries"] == 0

    def test_purge_expired(self, cache):
        """Test purge_expired() removes only entries past their TTL."""
        with patch("infrastructure.idempotency.memory.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            cache.set("short", {}, ttl_seconds=10)
            cache.set("long", {}, ttl_seconds=600)

            mock_time.monotonic.return_value = 1100.0
            assert cache.purge_expired() == 1
            assert cache.get_stats()["entries"] == 1
            assert cache.get("long") == {}

    def test_lock_serializes_same_key(self, cache):
        """Test a second holder of the same key waits for the first."""
        order = []
        entered = threading.Event()

        def _first():
            with cache.lock("k"):
                entered.set()
                time.sleep(0.05)
                order.append("first")

        def _second():
            entered.wait(1)
            with cache.lock("k"):
                order.append("second")

        threads = [threading.Thread(target=_first), threading.Thread(target=_second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert order == ["first", "second"]
        assert cache.get_stats()["locked_keys"] == 0

    def test_lock_other_keys_independent(self, cache):
        """Test holding one key does not block another."""
        with cache.lock("a"):
            acquired = threading.Event()

            def _other():
                with cache.lock("b"):
                    acquired.set()

            t = threading.Thread(target=_other)
            t.start()
            t.join(1)

        assert acquired.is_set()
