from typing import Dict, Optional, Set

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from api.dependencies.auth import PrincipalDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import Channel, NotificationCategory
from infrastructure.notifications.preferences import (
    DigestFrequency,
    QuietHours,
    UserPreference,
)
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/preferences", tags=["Preferences"])


class PreferencesUpdate(BaseModel):
    """Partial update of the caller's preferences; unset fields are kept."""

    model_config = ConfigDict(extra="forbid")

    channels: Optional[Dict[Channel, bool]] = None
    disabled_categories: Optional[Set[NotificationCategory]] = None
    disabled_event_types: Optional[Set[str]] = None
    quiet_hours: Optional[QuietHours] = None
    timezone: Optional[str] = None
    language: Optional[str] = None
    digest_frequency: Optional[DigestFrequency] = None


@router.get("", response_model=UserPreference)
def get_preferences(principal: PrincipalDep, service: NotificationServiceDep):
    return service.get_preferences(principal.tenant_id, principal.user_id)


@router.put("", response_model=UserPreference)
def update_preferences(
    payload: PreferencesUpdate,
    principal: PrincipalDep,
    service: NotificationServiceDep,
):
    """Update the caller's channel opt-ins, quiet hours and digest settings.

    Transactional, security and system categories cannot be disabled; the
    request is rejected with 422 if it tries to.
    """
    current = service.get_preferences(principal.tenant_id, principal.user_id)
    data = current.model_dump()
    data.update(payload.model_dump(exclude_unset=True))
    with engine_errors():
        return service.save_preferences(UserPreference.model_validate(data))
