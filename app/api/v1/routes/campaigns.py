from typing import Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies.auth import AdminDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import (
    Campaign,
    CampaignAudience,
    Channel,
    NotificationPriority,
)
from infrastructure.notifications.service import CampaignLaunchResult
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


class CampaignCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    event_type: str = Field(..., min_length=1)
    channels: List[Channel] = Field(..., min_length=1)
    template_id: Optional[str] = None
    audience: CampaignAudience = Field(default_factory=CampaignAudience)
    variables: Dict[str, str] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.LOW


@router.post("", response_model=Campaign, status_code=201)
def create_campaign(
    payload: CampaignCreate, principal: AdminDep, service: NotificationServiceDep
):
    with engine_errors():
        campaign = Campaign(tenant_id=principal.tenant_id, **payload.model_dump())
        return service.create_campaign(campaign, actor=principal.user_id)


@router.get("", response_model=List[Campaign])
def list_campaigns(principal: AdminDep, service: NotificationServiceDep):
    return service.list_campaigns(principal.tenant_id)


@router.post("/{campaign_id}/launch", response_model=CampaignLaunchResult)
def launch_campaign(
    campaign_id: str, principal: AdminDep, service: NotificationServiceDep
):
    """Send the campaign to its audience now.

    Relaunching is safe: recipients that already received this campaign
    are not sent to again.
    """
    with engine_errors():
        return service.launch_campaign(
            principal.tenant_id, campaign_id, actor=principal.user_id
        )


@router.post("/{campaign_id}/cancel", response_model=Campaign)
def cancel_campaign(
    campaign_id: str, principal: AdminDep, service: NotificationServiceDep
):
    with engine_errors():
        return service.cancel_campaign(principal.tenant_id, campaign_id)
