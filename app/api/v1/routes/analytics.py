"""Admin analytics and reporting export."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Query, Response

from api.dependencies.auth import AdminDep
from api.dependencies.errors import engine_errors
from infrastructure.notifications import Channel
from infrastructure.notifications.analytics import (
    CampaignStats,
    DailyChannelStats,
    DeliveryStats,
)
from infrastructure.notifications.export import ExportFormat
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/analytics", tags=["Analytics"])

_MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


@router.get("/daily", response_model=List[DailyChannelStats])
def daily_stats(
    principal: AdminDep,
    service: NotificationServiceDep,
    channel: Optional[Channel] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    """Per-channel daily counters with delivery, open, click and bounce rates."""
    with engine_errors():
        return service.daily_stats(principal.tenant_id, channel=channel, start=start, end=end)


@router.get("/totals", response_model=DeliveryStats)
def totals(
    principal: AdminDep,
    service: NotificationServiceDep,
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    with engine_errors():
        return service.totals(principal.tenant_id, start=start, end=end)


@router.get("/campaigns/{campaign_id}", response_model=CampaignStats)
def campaign_stats(
    campaign_id: str, principal: AdminDep, service: NotificationServiceDep
):
    with engine_errors():
        return service.campaign_stats(principal.tenant_id, campaign_id)


@router.get("/export")
def export_notifications(
    principal: AdminDep,
    service: NotificationServiceDep,
    start: datetime,
    end: datetime,
    fmt: ExportFormat = Query(default=ExportFormat.CSV, alias="format"),
):
    """Download notifications and delivery attempts created in ``[start, end)``."""
    with engine_errors():
        content = service.export(principal.tenant_id, start, end, fmt)
    filename = f"notifications-{start.date().isoformat()}-{end.date().isoformat()}.{fmt.value}"
    return Response(
        content=content,
        media_type=_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
