"""Shared fixtures for the notification engine test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from infrastructure.configuration import Settings
from infrastructure.events import clear_handlers


class FakeClock:
    """Controllable time source passed to components as ``clock``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def base_time():
    """Tuesday 2026-03-10 12:00 UTC."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(base_time):
    return FakeClock(base_time)


@pytest.fixture
def settings():
    """Settings with a known JWT secret and callback secret."""
    base = Settings()
    return base.model_copy(
        update={
            "server": base.server.model_copy(
                update={"SECRET_KEY": "test-secret-key-with-enough-bytes-1234"}
            ),
            "notifications": base.notifications.model_copy(
                update={
                    "callback_secrets": {"sendgrid": "callback-secret"},
                    "worker_count": 2,
                }
            ),
            "idempotency": base.idempotency.model_copy(
                update={"IDEMPOTENCY_ENABLED": True}
            ),
        }
    )


@pytest.fixture(autouse=True)
def _reset_event_handlers():
    clear_handlers()
    yield
    clear_handlers()
