"""Unit tests for FeatureToggleService."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from infrastructure.audit import InMemoryAuditLog
from infrastructure.notifications.admin import (
    FeatureToggleService,
    GlobalControlsUpdate,
    TenantSettingsUpdate,
)
from infrastructure.notifications.models import Channel
from infrastructure.notifications.preferences import (
    InMemoryGlobalControlsStore,
    InMemoryTenantSettingsStore,
)


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def toggles(audit_log):
    return FeatureToggleService(
        InMemoryTenantSettingsStore(), InMemoryGlobalControlsStore(), audit_log
    )


@pytest.mark.unit
class TestTenantToggles:
    def test_defaults_for_unknown_tenant(self, toggles):
        """Test a tenant without stored settings reads defaults."""
        settings = toggles.get_tenant_settings("tenant-1")

        assert settings.notifications_enabled is True
        assert settings.branded_templates_enabled is False

    def test_partial_update(self, toggles):
        """Test only the fields sent are changed."""
        toggles.update_tenant_settings(
            "tenant-1",
            TenantSettingsUpdate(daily_quota={Channel.SMS: 100}),
            actor="root-1",
        )
        updated = toggles.update_tenant_settings(
            "tenant-1",
            TenantSettingsUpdate(channels_enabled={Channel.SMS: False}),
            actor="root-1",
        )

        assert updated.daily_quota == {Channel.SMS: 100}
        assert updated.channel_enabled(Channel.SMS) is False
        assert updated.updated_by == "root-1"

    def test_update_is_audited_with_before_and_after(self, toggles, audit_log):
        """Test each write records changed fields with before/after values."""
        toggles.update_tenant_settings(
            "tenant-1", TenantSettingsUpdate(campaigns_enabled=False), actor="root-1"
        )

        events = toggles.history("tenant-1")

        assert len(events) == 1
        event = events[0]
        assert event.action == "toggles_updated"
        assert event.actor == "root-1"
        assert event.resource_id == "tenant-1"
        assert event.audit_meta_changed_fields == "campaigns_enabled"
        assert json.loads(event.audit_meta_before) == {"campaigns_enabled": True}
        assert json.loads(event.audit_meta_after) == {"campaigns_enabled": False}

    def test_invalid_update_rejected(self, toggles, audit_log):
        """Test invalid merged settings raise and nothing is stored or audited."""
        with pytest.raises(PydanticValidationError):
            toggles.update_tenant_settings(
                "tenant-1",
                TenantSettingsUpdate(daily_quota={Channel.SMS: -5}),
                actor="root-1",
            )

        assert toggles.get_tenant_settings("tenant-1").daily_quota == {}
        assert toggles.history("tenant-1") == []

    def test_unknown_fields_rejected(self):
        """Test the update model forbids unknown fields."""
        with pytest.raises(PydanticValidationError):
            TenantSettingsUpdate(voice_enabled=True)

    def test_bulk_update(self, toggles):
        """Test a bulk update applies once per distinct tenant."""
        results = toggles.bulk_update(
            ["tenant-1", "tenant-2", "tenant-1"],
            TenantSettingsUpdate(export_enabled=False),
            actor="root-1",
        )

        assert [s.tenant_id for s in results] == ["tenant-1", "tenant-2"]
        assert toggles.get_tenant_settings("tenant-2").export_enabled is False

    def test_reset(self, toggles):
        """Test reset drops stored settings back to defaults."""
        toggles.update_tenant_settings(
            "tenant-1", TenantSettingsUpdate(analytics_enabled=False), actor="root-1"
        )

        reset = toggles.reset_tenant_settings("tenant-1", actor="root-2")

        assert reset.analytics_enabled is True
        assert toggles.history("tenant-1")[0].action == "toggles_reset"

    def test_history_is_tenant_scoped_newest_first(self, toggles):
        """Test history only lists the tenant's entries, newest first."""
        toggles.update_tenant_settings(
            "tenant-1", TenantSettingsUpdate(webhooks_enabled=False), actor="root-1"
        )
        toggles.update_tenant_settings(
            "tenant-2", TenantSettingsUpdate(webhooks_enabled=False), actor="root-1"
        )
        toggles.update_tenant_settings(
            "tenant-1", TenantSettingsUpdate(webhooks_enabled=True), actor="root-2"
        )

        history = toggles.history("tenant-1")

        assert [e.actor for e in history] == ["root-2", "root-1"]


@pytest.mark.unit
class TestGlobalControls:
    def test_kill_switch(self, toggles):
        """Test the global kill-switch disables every channel."""
        controls = toggles.update_global_controls(
            GlobalControlsUpdate(notifications_enabled=False), actor="root-1"
        )

        assert controls.channel_enabled(Channel.EMAIL) is False
        assert toggles.get_global_controls().notifications_enabled is False

    def test_disabled_channels(self, toggles):
        """Test single channels can be disabled platform-wide."""
        controls = toggles.update_global_controls(
            GlobalControlsUpdate(disabled_channels={Channel.SMS}), actor="root-1"
        )

        assert controls.channel_enabled(Channel.SMS) is False
        assert controls.channel_enabled(Channel.EMAIL) is True

    def test_global_history(self, toggles):
        """Test global writes are audited under the global resource."""
        toggles.update_global_controls(
            GlobalControlsUpdate(notifications_enabled=False), actor="root-1"
        )

        events = toggles.history()

        assert len(events) == 1
        assert events[0].action == "global_controls_updated"
        assert events[0].resource_id == "global"
