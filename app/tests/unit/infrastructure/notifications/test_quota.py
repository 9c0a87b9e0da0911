"""Unit tests for tenant quota counters."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from infrastructure.notifications.errors import QuotaExceeded
from infrastructure.notifications.models import Channel
from infrastructure.notifications.quota import DAY, MONTH, InMemoryQuotaStore, window_key


@pytest.mark.unit
class TestWindowKey:
    def test_day_and_month_keys(self):
        """Test window keys are built from the UTC date."""
        at = datetime(2026, 1, 31, 23, 30, tzinfo=timezone.utc)

        assert window_key(DAY, at) == "day:2026-01-31"
        assert window_key(MONTH, at) == "month:2026-01"

    def test_unknown_window_rejected(self):
        """Test only day and month windows exist."""
        with pytest.raises(ValueError):
            window_key("week", datetime(2026, 1, 1, tzinfo=timezone.utc))


@pytest.mark.unit
class TestInMemoryQuotaStore:
    def test_try_consume_counts_every_window(self):
        """Test a successful consume increments each window."""
        store = InMemoryQuotaStore()

        store.try_consume("t", Channel.SMS, {"day:2026-01-01": 5, "month:2026-01": None})

        assert store.usage("t", Channel.SMS, "day:2026-01-01") == 1
        assert store.usage("t", Channel.SMS, "month:2026-01") == 1

    def test_try_consume_is_all_or_nothing(self):
        """Test a full month window blocks the send and leaves the day count alone."""
        store = InMemoryQuotaStore()
        store.try_consume("t", Channel.SMS, {"month:2026-01": 1})

        with pytest.raises(QuotaExceeded) as exc_info:
            store.try_consume("t", Channel.SMS, {"day:2026-01-02": 10, "month:2026-01": 1})

        assert exc_info.value.window == "month:2026-01"
        assert exc_info.value.channel == "sms"
        assert store.usage("t", Channel.SMS, "day:2026-01-02") == 0

    def test_release_never_goes_negative(self):
        """Test releasing more than was consumed floors at zero."""
        store = InMemoryQuotaStore()
        store.try_consume("t", Channel.PUSH, {"day:x": None})

        store.release("t", Channel.PUSH, ["day:x"])
        store.release("t", Channel.PUSH, ["day:x"])

        assert store.usage("t", Channel.PUSH, "day:x") == 0

    def test_concurrent_consumers_never_overshoot(self):
        """Test parallel sends never consume past the limit."""
        store = InMemoryQuotaStore()

        def _consume(_):
            try:
                store.try_consume("t", Channel.SMS, {"day:x": 25})
                return True
            except QuotaExceeded:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(_consume, range(100)))

        assert sum(results) == 25
        assert store.usage("t", Channel.SMS, "day:x") == 25
