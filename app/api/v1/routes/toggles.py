"""Super-admin feature toggles.

Every write returns the settings as stored and is recorded in the audit
log with before/after values, readable through the history endpoints.
"""

from typing import List

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from api.dependencies.auth import SuperAdminDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import GlobalControlsUpdate, TenantSettingsUpdate
from infrastructure.notifications.preferences import (
    GlobalControls,
    TenantNotificationSettings,
)
from infrastructure.services import FeatureToggleServiceDep

router = APIRouter(prefix="/admin/toggles", tags=["Feature toggles"])


class BulkToggleUpdate(BaseModel):
    tenant_ids: List[str] = Field(..., min_length=1)
    changes: TenantSettingsUpdate


@router.get("/global", response_model=GlobalControls)
def get_global_controls(_principal: SuperAdminDep, toggles: FeatureToggleServiceDep):
    return toggles.get_global_controls()


@router.put("/global", response_model=GlobalControls)
def update_global_controls(
    payload: GlobalControlsUpdate,
    principal: SuperAdminDep,
    toggles: FeatureToggleServiceDep,
):
    """Update the platform kill-switch and globally disabled channels."""
    with engine_errors():
        return toggles.update_global_controls(payload, actor=principal.user_id)


@router.get("/global/history")
def global_history(
    _principal: SuperAdminDep,
    toggles: FeatureToggleServiceDep,
    limit: int = Query(default=100, ge=1, le=1000),
):
    return [event.to_payload() for event in toggles.history(None, limit=limit)]


@router.post("/bulk", response_model=List[TenantNotificationSettings])
def bulk_update(
    payload: BulkToggleUpdate,
    principal: SuperAdminDep,
    toggles: FeatureToggleServiceDep,
):
    with engine_errors():
        return toggles.bulk_update(payload.tenant_ids, payload.changes, actor=principal.user_id)


@router.get("/tenants/{tenant_id}", response_model=TenantNotificationSettings)
def get_tenant_settings(
    tenant_id: str, _principal: SuperAdminDep, toggles: FeatureToggleServiceDep
):
    return toggles.get_tenant_settings(tenant_id)


@router.put("/tenants/{tenant_id}", response_model=TenantNotificationSettings)
def update_tenant_settings(
    tenant_id: str,
    payload: TenantSettingsUpdate,
    principal: SuperAdminDep,
    toggles: FeatureToggleServiceDep,
):
    with engine_errors():
        return toggles.update_tenant_settings(tenant_id, payload, actor=principal.user_id)


@router.post("/tenants/{tenant_id}/reset", response_model=TenantNotificationSettings)
def reset_tenant_settings(
    tenant_id: str, principal: SuperAdminDep, toggles: FeatureToggleServiceDep
):
    """Drop every override so the tenant falls back to defaults."""
    return toggles.reset_tenant_settings(tenant_id, actor=principal.user_id)


@router.get("/tenants/{tenant_id}/history")
def tenant_history(
    tenant_id: str,
    _principal: SuperAdminDep,
    toggles: FeatureToggleServiceDep,
    limit: int = Query(default=100, ge=1, le=1000),
):
    return [event.to_payload() for event in toggles.history(tenant_id, limit=limit)]
