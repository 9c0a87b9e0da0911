"""HTTP tests for templates, campaigns, schedules and analytics."""

import csv
import io
from datetime import timedelta

import pytest

from infrastructure.notifications.preferences import TenantNotificationSettings

TENANT = "tenant-1"


@pytest.fixture
def admin(auth_headers):
    return auth_headers(user_id="admin-1", role="admin")


@pytest.fixture
def sms_template(client, admin):
    response = client.post(
        "/api/v1/templates",
        json={
            "event_type": "order_confirmed",
            "channel": "sms",
            "body": "Hi #{name}, order #{order_id} is confirmed",
        },
        headers=admin,
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.unit
class TestTemplateRoutes:
    def test_created_for_callers_tenant(self, sms_template):
        assert sms_template["tenant_id"] == TENANT

    def test_user_forbidden(self, client, auth_headers):
        response = client.get("/api/v1/templates", headers=auth_headers())

        assert response.status_code == 403

    def test_preview(self, client, admin, sms_template):
        response = client.post(
            f"/api/v1/templates/{sms_template['id']}/preview",
            json={"variables": {"name": "Asha", "order_id": "ORD-42"}},
            headers=admin,
        )

        assert response.status_code == 200
        assert response.json()["body"].startswith("Hi Asha, order ORD-42 is confirmed")

    def test_preview_missing_variable(self, client, admin, sms_template):
        """Test a preview without a required variable names it in a 422."""
        response = client.post(
            f"/api/v1/templates/{sms_template['id']}/preview",
            json={"variables": {"name": "Asha"}},
            headers=admin,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["variable"] == "order_id"

    def test_capability_disabled(self, client, admin, engine):
        """Test tenants without custom templates get a 403."""
        engine.tenant_settings.save(
            TenantNotificationSettings(tenant_id=TENANT, custom_templates_enabled=False)
        )

        response = client.post(
            "/api/v1/templates",
            json={"event_type": "order_confirmed", "channel": "sms", "body": "x"},
            headers=admin,
        )

        assert response.status_code == 403

    def test_other_tenant_template_hidden(self, client, sms_template, auth_headers):
        response = client.get(
            f"/api/v1/templates/{sms_template['id']}",
            headers=auth_headers(tenant_id="tenant-2", role="admin"),
        )

        assert response.status_code == 404


@pytest.mark.unit
class TestCampaignRoutes:
    def test_create_and_launch(self, client, admin, engine, base_time):
        """Test launching a campaign queues one send per recipient."""
        campaign = client.post(
            "/api/v1/campaigns",
            json={
                "name": "Diwali sale",
                "event_type": "order_confirmed",
                "channels": ["in_app"],
                "audience": {
                    "type": "explicit",
                    "recipients": [{"user_id": "user-1"}, {"user_id": "user-2"}],
                },
                "variables": {"name": "friend", "order_id": "SALE", "total": "₹0"},
            },
            headers=admin,
        ).json()

        first = client.post(f"/api/v1/campaigns/{campaign['id']}/launch", headers=admin)
        second = client.post(f"/api/v1/campaigns/{campaign['id']}/launch", headers=admin)

        assert first.status_code == 200
        assert first.json()["recipients"] == 2
        assert first.json()["queued"] == 2
        assert second.status_code == 200
        assert len(engine.store.list_between(TENANT, base_time, base_time + timedelta(days=1))) == 2

    def test_empty_channels_rejected(self, client, admin):
        response = client.post(
            "/api/v1/campaigns",
            json={"name": "x", "event_type": "order_confirmed", "channels": []},
            headers=admin,
        )

        assert response.status_code == 422


@pytest.mark.unit
class TestScheduleRoutes:
    def test_create_recurring_from_rule(self, client, admin, send_payload):
        response = client.post(
            "/api/v1/schedules",
            json={
                "kind": "recurring",
                "send_request": send_payload(),
                "rule": "weekly:mon,thu@09:00",
                "timezone": "Asia/Kolkata",
            },
            headers=admin,
        )

        body = response.json()
        assert response.status_code == 201
        assert body["tenant_id"] == TENANT
        assert body["recurrence"]["weekdays"] == [0, 3]
        assert body["next_execution_at"] is not None

    def test_bad_rule(self, client, admin, send_payload):
        response = client.post(
            "/api/v1/schedules",
            json={"kind": "recurring", "send_request": send_payload(), "rule": "weekly:xyz"},
            headers=admin,
        )

        assert response.status_code == 422

    def test_one_time_needs_run_at(self, client, admin, send_payload):
        response = client.post(
            "/api/v1/schedules",
            json={"kind": "one_time", "send_request": send_payload()},
            headers=admin,
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert isinstance(detail, list)
        assert all("input" not in error for error in detail)

    def test_cancel(self, client, admin, send_payload):
        created = client.post(
            "/api/v1/schedules",
            json={
                "kind": "one_time",
                "send_request": send_payload(),
                "run_at": "2026-03-11T09:00:00Z",
            },
            headers=admin,
        ).json()

        response = client.post(f"/api/v1/schedules/{created['id']}/cancel", headers=admin)

        assert response.json()["status"] == "cancelled"


@pytest.mark.unit
class TestAnalyticsRoutes:
    def test_totals(self, client, admin):
        response = client.get("/api/v1/analytics/totals", headers=admin)

        assert response.status_code == 200
        assert response.json()["sent"] == 0

    def test_export_csv(self, client, admin, send_payload):
        client.post("/api/v1/notifications", json=send_payload(), headers=admin)

        response = client.get(
            "/api/v1/analytics/export",
            params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-11T00:00:00Z"},
            headers=admin,
        )

        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "notifications-2026-03-10-2026-03-11.csv" in response.headers["content-disposition"]
        assert [row["record_type"] for row in rows] == ["notification"]

    def test_export_bad_range(self, client, admin):
        response = client.get(
            "/api/v1/analytics/export",
            params={"start": "2026-03-11T00:00:00Z", "end": "2026-03-10T00:00:00Z"},
            headers=admin,
        )

        assert response.status_code == 422

    def test_analytics_capability(self, client, admin, engine):
        engine.tenant_settings.save(
            TenantNotificationSettings(tenant_id=TENANT, analytics_enabled=False)
        )

        response = client.get("/api/v1/analytics/daily", headers=admin)

        assert response.status_code == 403
