"""Dispatch worker pool.

Workers pull due ``queued`` notifications from the store and hand each
to the dispatcher. Claiming is the dispatcher's compare-and-swap, so
several pools (or processes) can poll the same store; a notification a
worker fails to claim is counted as skipped.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, Optional

import structlog

from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.models import NotificationStatus, utc_now
from infrastructure.notifications.store import NotificationStore

logger = structlog.get_logger()


def _empty_stats() -> Dict[str, int]:
    return {
        "processed": 0,
        "sent": 0,
        "retried": 0,
        "failed": 0,
        "cancelled": 0,
        "skipped": 0,
    }


class DispatchWorkerPool:
    """Pool of workers processing batches of due notifications.

    Attributes:
        dispatcher: Performs one dispatch attempt per notification
        store: Notification store (durable queue)
        worker_count: Concurrent dispatches per batch
        batch_size: Maximum notifications fetched per batch
        worker_id: Identifier used in logs
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        store: NotificationStore,
        worker_count: int = 4,
        batch_size: int = 20,
        worker_id: str = "dispatch-worker-1",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.dispatcher = dispatcher
        self.store = store
        self.worker_count = worker_count
        self.batch_size = batch_size
        self.worker_id = worker_id
        self.clock = clock
        self.log = logger.bind(component="dispatch_worker", worker_id=worker_id)
        self._executor = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="dispatch-worker"
        )

    def process_batch(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Dispatch one batch of due notifications.

        Returns:
            Dictionary with processing statistics:
                - processed: Notifications this worker claimed
                - sent: Accepted or delivered by a provider
                - retried: Re-queued for a later attempt
                - failed: Moved to failed or bounced
                - cancelled: Expired or cancelled during the attempt
                - skipped: Claimed by someone else first
        """
        now = now or self.clock()
        due = self.store.fetch_due(now, limit=self.batch_size)
        stats = _empty_stats()
        if not due:
            self.log.debug("dispatch_batch_empty")
            return stats

        self.log.info("dispatch_batch_start", count=len(due))
        futures = {
            self._executor.submit(self.dispatcher.dispatch, n.id): n.id for n in due
        }
        for future in as_completed(futures):
            notification_id = futures[future]
            try:
                result = future.result()
            except Exception as e:
                # The notification stays in whatever state the store holds.
                self.log.error(
                    "dispatch_exception",
                    notification_id=notification_id,
                    error=str(e),
                    exc_info=True,
                )
                stats["skipped"] += 1
                continue

            if result is None:
                stats["skipped"] += 1
                continue
            stats["processed"] += 1
            if result.status in (NotificationStatus.SENT, NotificationStatus.DELIVERED):
                stats["sent"] += 1
            elif result.status is NotificationStatus.QUEUED:
                stats["retried"] += 1
            elif result.status is NotificationStatus.CANCELLED:
                stats["cancelled"] += 1
            else:
                stats["failed"] += 1

        self.log.info("dispatch_batch_complete", **stats)
        return stats

    def drain(self, now: Optional[datetime] = None, max_batches: int = 100) -> Dict[str, int]:
        """Process batches until nothing is due (or ``max_batches`` is hit)."""
        totals = _empty_stats()
        for _ in range(max_batches):
            stats = self.process_batch(now)
            for key, value in stats.items():
                totals[key] += value
            if sum(stats.values()) == 0:
                break
        return totals

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
