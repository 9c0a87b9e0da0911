"""Admin scheduling: one-time, recurring and event-triggered sends."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies.auth import AdminDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import (
    Recipient,
    Schedule,
    ScheduleKind,
    ScheduleStatus,
    SendRequest,
    parse_recurrence_rule,
)
from infrastructure.notifications.scheduler import Recurrence
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/schedules", tags=["Schedules"])


class ScheduleCreate(BaseModel):
    """New schedule.

    Recurring schedules take either a structured ``recurrence`` or a
    ``rule`` string such as ``weekly:mon,thu@09:00`` or ``cron:0 9 * * 1-5``
    evaluated in ``timezone``.
    """

    model_config = ConfigDict(extra="forbid")

    kind: ScheduleKind
    name: Optional[str] = None
    send_request: Optional[SendRequest] = None
    campaign_id: Optional[str] = None
    run_at: Optional[datetime] = None
    recurrence: Optional[Recurrence] = None
    rule: Optional[str] = None
    timezone: str = "UTC"
    trigger_event: Optional[str] = None
    trigger_delay_minutes: int = Field(default=0, ge=0)
    start_at: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_executions: Optional[int] = Field(default=None, ge=1)


class TriggerRequest(BaseModel):
    recipient: Optional[Recipient] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: Optional[datetime] = None


@router.post("", response_model=Schedule, status_code=201)
def create_schedule(
    payload: ScheduleCreate, principal: AdminDep, service: NotificationServiceDep
):
    with engine_errors():
        data = payload.model_dump(exclude={"rule", "timezone", "recurrence"})
        recurrence = payload.recurrence
        if payload.rule:
            recurrence = parse_recurrence_rule(payload.rule, payload.timezone)
        schedule = Schedule(tenant_id=principal.tenant_id, recurrence=recurrence, **data)
        return service.create_schedule(schedule, actor=principal.user_id)


@router.get("", response_model=List[Schedule])
def list_schedules(
    principal: AdminDep,
    service: NotificationServiceDep,
    kind: Optional[ScheduleKind] = None,
    status: Optional[ScheduleStatus] = None,
):
    return service.list_schedules(principal.tenant_id, kind=kind, status=status)


@router.get("/{schedule_id}", response_model=Schedule)
def get_schedule(schedule_id: str, principal: AdminDep, service: NotificationServiceDep):
    with engine_errors():
        return service.get_schedule(principal.tenant_id, schedule_id)


@router.post("/{schedule_id}/cancel", response_model=Schedule)
def cancel_schedule(
    schedule_id: str, principal: AdminDep, service: NotificationServiceDep
):
    with engine_errors():
        return service.cancel_schedule(
            principal.tenant_id, schedule_id, actor=principal.user_id
        )


@router.post("/triggers/{event}", response_model=List[Schedule])
def fire_trigger(
    event: str,
    payload: TriggerRequest,
    principal: AdminDep,
    service: NotificationServiceDep,
):
    """Report an external event; every matching trigger schedule queues a
    one-time send after its configured delay."""
    with engine_errors():
        return service.trigger_event(
            principal.tenant_id,
            event,
            anchor_at=payload.occurred_at,
            recipient=payload.recipient,
            variables=payload.variables,
        )
