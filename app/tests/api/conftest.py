"""Fixtures for HTTP tests against the FastAPI application."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from api.dependencies.rate_limits import get_limiter
from infrastructure.audit import InMemoryAuditLog
from infrastructure.notifications import FeatureToggleService, NotificationService, RealtimeHub
from infrastructure.services import (
    get_feature_toggle_service,
    get_notification_service,
    get_realtime_hub,
    get_settings,
)
from server.server import create_app

TENANT = "tenant-1"


@pytest.fixture
def engine(settings, clock):
    service = NotificationService(settings, clock=clock)
    yield service
    service.shutdown()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def toggles(engine, audit_log):
    return FeatureToggleService(
        tenant_store=engine.tenant_settings,
        global_store=engine.global_controls,
        audit_log=audit_log,
    )


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def app(settings, engine, toggles, hub):
    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_notification_service] = lambda: engine
    application.dependency_overrides[get_feature_toggle_service] = lambda: toggles
    application.dependency_overrides[get_realtime_hub] = lambda: hub
    get_limiter().reset()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def token_factory(settings):
    """Factory for signed bearer tokens.

    Example:
        headers = {"Authorization": f"Bearer {token_factory(role='admin')}"}
    """

    def _factory(
        user_id: str = "user-1",
        tenant_id: str = TENANT,
        role: str = "user",
        expires_in: timedelta = timedelta(hours=1),
        secret: str = None,
    ) -> str:
        claims = {
            "sub": user_id,
            "tenant_id": tenant_id,
            "role": role,
            "exp": datetime.now(timezone.utc) + expires_in,
        }
        return jwt.encode(
            claims, secret or settings.server.SECRET_KEY, algorithm="HS256"
        )

    return _factory


@pytest.fixture
def auth_headers(token_factory):
    def _headers(**kwargs):
        return {"Authorization": f"Bearer {token_factory(**kwargs)}"}

    return _headers


@pytest.fixture
def send_payload():
    def _payload(channels=None, **overrides):
        payload = {
            "tenant_id": TENANT,
            "recipient": {
                "user_id": "user-1",
                "email": "asha@example.com",
                "phone_number": "+919812345678",
            },
            "event_type": "order_confirmed",
            "channels": channels or ["email"],
            "variables": {"name": "Asha", "order_id": "ORD-42", "total": "₹500"},
        }
        payload.update(overrides)
        return payload

    return _payload
