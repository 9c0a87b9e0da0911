"""Super-admin feature toggle management.

Reads and writes per-tenant notification settings and the global
kill-switch. Every write is recorded in the audit log with the changed
fields and their before/after values, and returns the settings as stored.
"""

import json
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from infrastructure.audit import AuditEvent, AuditLog, create_audit_event
from infrastructure.logging import get_correlation_id, get_module_logger
from infrastructure.notifications.models import Channel
from infrastructure.notifications.preferences import (
    GlobalControls,
    GlobalControlsStore,
    TenantNotificationSettings,
    TenantSettingsStore,
)
from infrastructure.notifications.templates import Branding

logger = get_module_logger()

TOGGLES_RESOURCE = "notification_feature_toggles"
GLOBAL_RESOURCE_ID = "global"


class TenantSettingsUpdate(BaseModel):
    """Partial update of tenant settings; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    notifications_enabled: Optional[bool] = None
    channels_enabled: Optional[Dict[Channel, bool]] = None
    disabled_event_types: Optional[Set[str]] = None
    daily_quota: Optional[Dict[Channel, Optional[int]]] = None
    monthly_quota: Optional[Dict[Channel, Optional[int]]] = None
    campaigns_enabled: Optional[bool] = None
    custom_templates_enabled: Optional[bool] = None
    branded_templates_enabled: Optional[bool] = None
    analytics_enabled: Optional[bool] = None
    export_enabled: Optional[bool] = None
    webhooks_enabled: Optional[bool] = None
    super_admin_disabled: Optional[Set[str]] = None
    provider_overrides: Optional[Dict[Channel, str]] = None
    branding: Optional[Branding] = None
    timezone: Optional[str] = None


class GlobalControlsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notifications_enabled: Optional[bool] = None
    disabled_channels: Optional[Set[Channel]] = None


def _diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    ignored = {"updated_at", "updated_by"}
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in after
        if key not in ignored and before.get(key) != after.get(key)
    }


class FeatureToggleService:
    """Audited reads and writes of tenant settings and global controls.

    Args:
        tenant_store: Tenant settings store
        global_store: Global controls store
        audit_log: Receives one AuditEvent per write
    """

    def __init__(
        self,
        tenant_store: TenantSettingsStore,
        global_store: GlobalControlsStore,
        audit_log: AuditLog,
    ):
        self.tenant_store = tenant_store
        self.global_store = global_store
        self.audit_log = audit_log

    def get_tenant_settings(self, tenant_id: str) -> TenantNotificationSettings:
        return self.tenant_store.get(tenant_id)

    def update_tenant_settings(
        self, tenant_id: str, changes: TenantSettingsUpdate, actor: str
    ) -> TenantNotificationSettings:
        """Apply a partial update and return the stored settings.

        Raises:
            pydantic.ValidationError: The merged settings are invalid
        """
        before = self.tenant_store.get(tenant_id)
        data = before.model_dump()
        data.update(changes.model_dump(exclude_unset=True))
        data["updated_by"] = actor
        after = TenantNotificationSettings.model_validate(data)
        stored = self.tenant_store.save(after)
        self._audit(
            "toggles_updated",
            tenant_id,
            actor,
            before.model_dump(mode="json"),
            stored.model_dump(mode="json"),
        )
        return stored

    def bulk_update(
        self, tenant_ids: List[str], changes: TenantSettingsUpdate, actor: str
    ) -> List[TenantNotificationSettings]:
        """Apply the same partial update to several tenants."""
        results = [
            self.update_tenant_settings(tenant_id, changes, actor)
            for tenant_id in dict.fromkeys(tenant_ids)
        ]
        logger.info("toggles_bulk_updated", tenant_count=len(results), actor=actor)
        return results

    def reset_tenant_settings(
        self, tenant_id: str, actor: str
    ) -> TenantNotificationSettings:
        """Drop stored settings so the tenant falls back to defaults."""
        before = self.tenant_store.get(tenant_id)
        self.tenant_store.delete(tenant_id)
        after = self.tenant_store.get(tenant_id)
        self._audit(
            "toggles_reset",
            tenant_id,
            actor,
            before.model_dump(mode="json"),
            after.model_dump(mode="json"),
        )
        return after

    def get_global_controls(self) -> GlobalControls:
        return self.global_store.get()

    def update_global_controls(
        self, changes: GlobalControlsUpdate, actor: str
    ) -> GlobalControls:
        before = self.global_store.get()
        data = before.model_dump()
        data.update(changes.model_dump(exclude_unset=True))
        data["updated_by"] = actor
        stored = self.global_store.save(GlobalControls.model_validate(data))
        self._audit(
            "global_controls_updated",
            "",
            actor,
            before.model_dump(mode="json"),
            stored.model_dump(mode="json"),
        )
        if before.notifications_enabled != stored.notifications_enabled:
            logger.warning(
                "global_kill_switch_changed",
                notifications_enabled=stored.notifications_enabled,
                actor=actor,
            )
        return stored

    def history(self, tenant_id: Optional[str] = None, limit: int = 100) -> List[AuditEvent]:
        """Audit entries for a tenant's settings, or for the global controls."""
        return self.audit_log.query(
            resource_type=TOGGLES_RESOURCE,
            resource_id=tenant_id or GLOBAL_RESOURCE_ID,
            limit=limit,
        )

    def _audit(
        self,
        action: str,
        tenant_id: str,
        actor: str,
        before: Dict[str, Any],
        after: Dict[str, Any],
    ) -> None:
        changes = _diff(before, after)
        event = create_audit_event(
            correlation_id=get_correlation_id() or "system",
            action=action,
            resource_type=TOGGLES_RESOURCE,
            resource_id=tenant_id or GLOBAL_RESOURCE_ID,
            tenant_id=tenant_id,
            actor=actor,
            result="success",
            metadata={
                "changed_fields": ",".join(sorted(changes)),
                "before": json.dumps({k: v["before"] for k, v in changes.items()}, sort_keys=True),
                "after": json.dumps({k: v["after"] for k, v in changes.items()}, sort_keys=True),
            },
        )
        self.audit_log.append(event)
        logger.info(
            action,
            tenant_id=tenant_id or None,
            actor=actor,
            changed_fields=sorted(changes),
        )
