"""Admin template management.

System templates are shared by every tenant and read-only here; tenant
templates override them for the same event type, channel and language.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies.auth import AdminDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import Channel
from infrastructure.notifications.rendering import RenderedContent
from infrastructure.notifications.templates import (
    Branding,
    NotificationTemplate,
    TemplateUpdate,
)
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/templates", tags=["Templates"])


class TemplateCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_type: str = Field(..., min_length=1)
    channel: Channel
    language: str = "en"
    name: Optional[str] = None
    subject: Optional[str] = None
    body: str = Field(..., min_length=1)
    html_body: Optional[str] = None
    branding: Optional[Branding] = None


class TemplatePreviewRequest(BaseModel):
    variables: Dict[str, Any] = Field(default_factory=dict)


@router.post("", response_model=NotificationTemplate, status_code=201)
def create_template(
    payload: TemplateCreate, principal: AdminDep, service: NotificationServiceDep
):
    template = NotificationTemplate(tenant_id=principal.tenant_id, **payload.model_dump())
    with engine_errors():
        return service.create_template(template, actor=principal.user_id)


@router.get("", response_model=List[NotificationTemplate])
def list_templates(
    principal: AdminDep,
    service: NotificationServiceDep,
    event_type: Optional[str] = None,
    channel: Optional[Channel] = None,
    include_system: bool = True,
):
    return service.list_templates(
        principal.tenant_id,
        event_type=event_type,
        channel=channel,
        include_system=include_system,
    )


@router.get("/{template_id}", response_model=NotificationTemplate)
def get_template(template_id: str, principal: AdminDep, service: NotificationServiceDep):
    with engine_errors():
        return service.get_template(principal.tenant_id, template_id)


@router.put("/{template_id}", response_model=NotificationTemplate)
def update_template(
    template_id: str,
    payload: TemplateUpdate,
    principal: AdminDep,
    service: NotificationServiceDep,
):
    """Update a tenant template. System templates answer 403."""
    with engine_errors():
        return service.update_template(
            principal.tenant_id, template_id, payload, actor=principal.user_id
        )


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: str, principal: AdminDep, service: NotificationServiceDep
):
    """Delete a tenant template. System templates answer 403."""
    with engine_errors():
        service.delete_template(principal.tenant_id, template_id, actor=principal.user_id)


@router.post("/{template_id}/preview", response_model=RenderedContent)
def preview_template(
    template_id: str,
    payload: TemplatePreviewRequest,
    principal: AdminDep,
    service: NotificationServiceDep,
):
    """Render a template with sample variables.

    A missing variable answers 422 naming the variable.
    """
    with engine_errors():
        return service.preview_template(principal.tenant_id, template_id, payload.variables)
