"""Application startup and shutdown.

Startup configures logging, wires the audit handlers onto the event bus,
builds the notification engine, subscribes the realtime hub to it and,
outside tests, starts the background jobs (dispatch polling, scheduler
tick, idempotency purge). Shutdown stops the jobs before the engine's
worker pool is drained.
"""

from contextlib import asynccontextmanager
import sys
import threading
from typing import AsyncIterator, Optional, TYPE_CHECKING

from fastapi import FastAPI
from structlog.stdlib import BoundLogger

from infrastructure.events import register_infrastructure_handlers
from infrastructure.logging.setup import configure_logging
from infrastructure.notifications.realtime import register_realtime_handler
from infrastructure.services import (
    get_audit_log,
    get_notification_service,
    get_realtime_hub,
    get_settings,
)
from jobs import scheduled_tasks

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.notifications import NotificationService


def _is_test_environment() -> bool:
    return "pytest" in sys.modules


def _log_engine_config(
    settings: "Settings", service: "NotificationService", logger: BoundLogger
) -> None:
    # Values only for non-secret knobs; provider keys and signing secrets never reach the log
    notifications = settings.notifications
    logger.info(
        "engine_configuration_loaded",
        environment=settings.PREFIX or "production",
        git_sha=settings.GIT_SHA,
        worker_count=notifications.worker_count,
        adapter_timeout_seconds=notifications.adapter_timeout_seconds,
        retry_backoff=list(settings.retry.backoff_schedule),
        idempotency_enabled=settings.idempotency.IDEMPOTENCY_ENABLED,
        callback_providers=sorted(notifications.callback_secrets),
    )
    logger.info(
        "delivery_providers_configured",
        adapters=[
            f"{adapter.channel.value}:{adapter.provider_name}"
            for adapter in service.registry.adapters()
        ],
    )


def _start_jobs(
    service: "NotificationService", settings: "Settings", logger: BoundLogger
) -> Optional[threading.Event]:
    if _is_test_environment():
        logger.info("background_jobs_skipped", reason="test_environment")
        return None

    scheduled_tasks.init(service, settings)
    stop_event = scheduled_tasks.run_continuously()
    logger.info("background_jobs_started")
    return stop_event


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger = configure_logging(
        log_level=settings.LOG_LEVEL, is_production=settings.is_production
    )
    logger.info("application_startup")

    try:
        register_infrastructure_handlers(get_audit_log())
    except Exception as exc:  # pylint: disable=broad-except
        # Sends still work without audit records; the failure is surfaced in the log
        logger.error("audit_handlers_registration_failed", error=str(exc))

    service = get_notification_service()
    register_realtime_handler(service, get_realtime_hub())
    _log_engine_config(settings, service, logger)

    app.state.settings = settings
    app.state.notification_service = service
    stop_event = _start_jobs(service, settings, logger)

    yield

    logger.info("application_shutdown")
    if stop_event is not None:
        stop_event.set()
        scheduled_tasks.clear()
    service.shutdown()
