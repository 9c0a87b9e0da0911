"""Background jobs driving the notification engine.

- ``dispatch_due_notifications``: hand due queued notifications to the
  dispatch worker pool (first sends and retries alike)
- ``run_notification_scheduler``: fire due one-time and recurring schedules
- ``purge_idempotency_cache``: drop expired Send API idempotency entries
- ``provider_healthchecks``: health-check every configured delivery provider
- ``scheduler_heartbeat``: periodic liveness log line
"""

import threading
import time
from typing import TYPE_CHECKING

import schedule

from infrastructure.logging import get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.notifications import NotificationService

logger = get_module_logger()


def safe_run(job):
    def wrapper(*args, **kwargs):
        try:
            job(*args, **kwargs)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("scheduled_job_failed", job=job.__name__, error=str(e))

    return wrapper


def init(service: "NotificationService", settings: "Settings") -> None:
    config = settings.notifications
    logger.info(
        "scheduled_tasks_initialized",
        poll_interval_seconds=config.poll_interval_seconds,
        scheduler_interval_seconds=config.scheduler_interval_seconds,
    )

    schedule.every(config.poll_interval_seconds).seconds.do(
        safe_run(dispatch_due_notifications), service=service
    )
    schedule.every(config.scheduler_interval_seconds).seconds.do(
        safe_run(run_notification_scheduler), service=service
    )
    schedule.every(10).minutes.do(
        safe_run(purge_idempotency_cache), service=service
    )
    schedule.every(5).minutes.do(safe_run(provider_healthchecks), service=service)
    schedule.every(5).minutes.do(safe_run(scheduler_heartbeat))


def dispatch_due_notifications(service: "NotificationService") -> None:
    stats = service.process_due()
    if stats.get("processed"):
        logger.info("due_notifications_dispatched", **stats)


def run_notification_scheduler(service: "NotificationService") -> None:
    report = service.run_scheduler()
    if report.fired or report.failed:
        logger.info(
            "notification_scheduler_ticked",
            fired=len(report.fired),
            late=len(report.late),
            failed=len(report.failed),
        )


def purge_idempotency_cache(service: "NotificationService") -> None:
    removed = service.idempotency_cache.purge_expired()
    if removed:
        logger.info("idempotency_cache_purged", removed=removed)


def provider_healthchecks(service: "NotificationService") -> None:
    for adapter in service.registry.adapters():
        result = adapter.health_check()
        fields = {"channel": adapter.channel.value, "provider": adapter.provider_name}
        if result.is_success:
            logger.info("provider_healthy", **fields)
        else:
            logger.error("provider_unhealthy", **fields, **result.log_fields())


def scheduler_heartbeat():
    logger.info("scheduler_heartbeat", at=time.ctime())


def clear() -> None:
    """Remove every registered job."""
    schedule.clear()


def run_continuously(interval=1) -> threading.Event:
    """Run pending jobs every ``interval`` seconds on a daemon thread.

    Returns the event that stops the loop once set. Runs missed while a
    slow job held the thread are not replayed; each due job runs once.
    """
    stop = threading.Event()

    def _loop():
        while not stop.is_set():
            schedule.run_pending()
            time.sleep(interval)

    threading.Thread(target=_loop, daemon=True, name="notification-jobs").start()
    return stop
