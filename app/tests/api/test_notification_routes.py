"""HTTP tests for the Send API and the in-app inbox."""

from datetime import timedelta

import pytest

from infrastructure.notifications import Channel
from infrastructure.notifications.preferences import TenantNotificationSettings

TENANT = "tenant-1"


@pytest.mark.unit
class TestAuthentication:
    def test_missing_token(self, client, send_payload):
        response = client.post("/api/v1/notifications", json=send_payload())

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_secret(self, client, auth_headers, send_payload):
        """Test a token signed with another secret is rejected."""
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(),
            headers=auth_headers(role="admin", secret="another-secret-with-enough-bytes-12"),
        )

        assert response.status_code == 401

    def test_expired_token(self, client, auth_headers):
        response = client.get(
            "/api/v1/notifications/unread-count",
            headers=auth_headers(expires_in=timedelta(minutes=-5)),
        )

        assert response.status_code == 401

    def test_user_cannot_send(self, client, auth_headers, send_payload):
        """Test the Send API needs the admin role."""
        response = client.post(
            "/api/v1/notifications", json=send_payload(), headers=auth_headers()
        )

        assert response.status_code == 403

    def test_admin_cannot_send_for_other_tenant(self, client, auth_headers, send_payload):
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(tenant_id="tenant-2"),
            headers=auth_headers(role="admin"),
        )

        assert response.status_code == 403

    def test_super_admin_can_send_for_any_tenant(self, client, auth_headers, send_payload):
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(),
            headers=auth_headers(role="super_admin", tenant_id="platform"),
        )

        assert response.status_code == 202


@pytest.mark.unit
class TestSendRoute:
    def test_accepted(self, client, auth_headers, send_payload, engine):
        """Test a valid request answers 202 with one decision per channel."""
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(channels=["email", "in_app"]),
            headers=auth_headers(role="admin"),
        )

        body = response.json()
        assert response.status_code == 202
        assert body["status"] == "queued"
        assert [d["channel"] for d in body["decisions"]] == ["email", "in_app"]
        assert engine.store.get(body["notification_id"]).tenant_id == TENANT

    def test_idempotent_replay(self, client, auth_headers, send_payload):
        """Test a repeated idempotency key returns the first response."""
        payload = send_payload(idempotency_key="order-42-confirmed")
        headers = auth_headers(role="admin")

        first = client.post("/api/v1/notifications", json=payload, headers=headers).json()
        second = client.post("/api/v1/notifications", json=payload, headers=headers).json()

        assert second["notification_id"] == first["notification_id"]
        assert second["idempotent_replay"] is True

    def test_invalid_body(self, client, auth_headers, send_payload):
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(channels=["carrier_pigeon"]),
            headers=auth_headers(role="admin"),
        )

        assert response.status_code == 422

    def test_unknown_event_type(self, client, auth_headers, send_payload):
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(event_type="no_such_event"),
            headers=auth_headers(role="admin"),
        )

        assert response.status_code == 422

    def test_missing_variable(self, client, auth_headers, send_payload):
        """Test a template error answers 422 naming the variable."""
        response = client.post(
            "/api/v1/notifications",
            json=send_payload(variables={"name": "Asha"}),
            headers=auth_headers(role="admin"),
        )

        detail = response.json()["detail"]
        assert response.status_code == 422
        assert detail["reason"] == "template_error"
        assert detail["variable"] in {"order_id", "total"}

    def test_quota_exceeded(self, client, auth_headers, send_payload, engine):
        """Test a send denied for quota on every channel answers 429."""
        engine.tenant_settings.save(
            TenantNotificationSettings(tenant_id=TENANT, daily_quota={Channel.SMS: 0})
        )

        response = client.post(
            "/api/v1/notifications",
            json=send_payload(channels=["sms"]),
            headers=auth_headers(role="admin"),
        )

        detail = response.json()["detail"]
        assert response.status_code == 429
        assert detail["reason"] == "quota_exceeded"
        assert detail["channel"] == "sms"
        assert detail["window"] == "day:2026-03-10"


@pytest.fixture
def delivered(client, auth_headers, send_payload, engine):
    """Two in-app notifications delivered to user-1."""
    headers = auth_headers(role="admin")
    ids = [
        client.post(
            "/api/v1/notifications", json=send_payload(channels=["in_app"]), headers=headers
        ).json()["notification_id"]
        for _ in range(2)
    ]
    engine.process_due()
    return ids


@pytest.mark.unit
class TestInboxRoutes:
    def test_list(self, client, auth_headers, delivered):
        response = client.get("/api/v1/notifications", headers=auth_headers())

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 2
        assert {item["id"] for item in body["items"]} == set(delivered)

    def test_unread_count_and_mark_read(self, client, auth_headers, delivered):
        """Test marking one notification read lowers the unread count."""
        headers = auth_headers()

        read = client.post(f"/api/v1/notifications/{delivered[0]}/read", headers=headers)
        count = client.get("/api/v1/notifications/unread-count", headers=headers)

        assert read.status_code == 200
        assert read.json()["read_at"] is not None
        assert count.json() == {"count": 1}

    def test_mark_all_read(self, client, auth_headers, delivered):
        response = client.post("/api/v1/notifications/read-all", headers=auth_headers())

        assert response.json() == {"updated": 2}

    def test_other_user_gets_404(self, client, auth_headers, delivered):
        """Test one user cannot touch another user's notification."""
        response = client.post(
            f"/api/v1/notifications/{delivered[0]}/read",
            headers=auth_headers(user_id="user-2"),
        )

        assert response.status_code == 404

    def test_delete(self, client, auth_headers, delivered):
        headers = auth_headers()

        response = client.delete(f"/api/v1/notifications/{delivered[0]}", headers=headers)

        assert response.status_code == 204
        assert client.get("/api/v1/notifications", headers=headers).json()["total"] == 1


@pytest.mark.unit
class TestAdminNotificationRoutes:
    def test_cancel_queued(self, client, auth_headers, send_payload):
        headers = auth_headers(role="admin")
        notification_id = client.post(
            "/api/v1/notifications", json=send_payload(), headers=headers
        ).json()["notification_id"]

        response = client.post(
            f"/api/v1/notifications/{notification_id}/cancel", headers=headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_retry_requires_failure(self, client, auth_headers, send_payload):
        """Test retrying a notification that has not failed is rejected."""
        headers = auth_headers(role="admin")
        notification_id = client.post(
            "/api/v1/notifications", json=send_payload(), headers=headers
        ).json()["notification_id"]

        response = client.post(
            f"/api/v1/notifications/{notification_id}/retry", headers=headers
        )

        assert response.status_code == 422

    def test_detail(self, client, auth_headers, delivered):
        response = client.get(
            f"/api/v1/notifications/{delivered[0]}", headers=auth_headers(role="admin")
        )

        body = response.json()
        assert body["notification"]["status"] == "delivered"
        assert len(body["attempts"]) == 1

    def test_detail_unknown(self, client, auth_headers):
        response = client.get(
            "/api/v1/notifications/does-not-exist", headers=auth_headers(role="admin")
        )

        assert response.status_code == 404
