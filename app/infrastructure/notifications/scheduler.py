"""Notification scheduler.

Turns one-time, recurring and event-triggered schedules into send
requests at the right wall-clock time.

Recurrence rules are parsed once into a closed set of variants:

- ``daily@09:00``
- ``weekly:mon,thu@09:00``
- ``monthly:15@09:00`` (day clamped to the month's last day)
- ``cron:0 9 * * 1-5`` (standard five-field crontab)

each evaluated in its own timezone.

Firing is at-least-once and never silently dropped:

1. A due schedule is leased with a compare-and-swap on its version, so
   two concurrent ticks fire it only once.
2. A schedule that missed its time (process down) fires once on recovery
   and is logged as ``schedule_fired_late``; a recurring schedule then
   continues from the next occurrence after now.
3. If firing fails on infrastructure the schedule stays active,
   ``failure_count`` goes up and it is retried on a later tick. A request
   that can never be sent (unknown type, missing template variable) marks
   the schedule ``failed`` with ``last_error`` and it never fires again.

Trigger schedules are dormant definitions keyed by ``trigger_event``.
When that event happens, a one-time child schedule is registered at
``anchor + trigger_delay_minutes``.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field, field_validator, model_validator

from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import Recipient, SendRequest, new_id, utc_now
from infrastructure.notifications.preferences import parse_hhmm, validate_timezone

logger = get_module_logger()

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class _RecurrenceBase(BaseModel):
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: str) -> str:
        return validate_timezone(v)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class _TimeOfDay(_RecurrenceBase):
    at_time: str = "09:00"

    @field_validator("at_time")
    @classmethod
    def validate_at_time(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    def _at(self, day) -> datetime:
        return datetime.combine(day, parse_hhmm(self.at_time), tzinfo=self.zone)


class DailyRecurrence(_TimeOfDay):
    kind: Literal["daily"] = "daily"

    def next_after(self, after: datetime) -> datetime:
        local = after.astimezone(self.zone)
        candidate = self._at(local.date())
        if candidate <= local:
            candidate = self._at(local.date() + timedelta(days=1))
        return candidate.astimezone(timezone.utc)


class WeeklyRecurrence(_TimeOfDay):
    kind: Literal["weekly"] = "weekly"
    weekdays: List[int] = Field(..., min_length=1)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v: List[int]) -> List[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("weekdays must be 0 (Monday) to 6 (Sunday)")
        return sorted(set(v))

    def next_after(self, after: datetime) -> datetime:
        local = after.astimezone(self.zone)
        for offset in range(8):
            day = local.date() + timedelta(days=offset)
            if day.weekday() not in self.weekdays:
                continue
            candidate = self._at(day)
            if candidate > local:
                return candidate.astimezone(timezone.utc)
        raise ValidationError("Weekly recurrence has no next occurrence")


class MonthlyRecurrence(_TimeOfDay):
    kind: Literal["monthly"] = "monthly"
    day_of_month: int = Field(..., ge=1, le=31)

    def next_after(self, after: datetime) -> datetime:
        local = after.astimezone(self.zone)
        first = local.date().replace(day=1)
        for months in range(13):
            # relativedelta(day=31) clamps to the last day of short months.
            day = first + relativedelta(months=months, day=self.day_of_month)
            candidate = self._at(day)
            if candidate > local:
                return candidate.astimezone(timezone.utc)
        raise ValidationError("Monthly recurrence has no next occurrence")


class CronRecurrence(_RecurrenceBase):
    kind: Literal["cron"] = "cron"
    expression: str

    @field_validator("expression")
    @classmethod
    def validate_expression(cls, v: str) -> str:
        try:
            CronTrigger.from_crontab(v)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression '{v}': {e}") from e
        return v

    def next_after(self, after: datetime) -> datetime:
        trigger = CronTrigger.from_crontab(self.expression, timezone=self.zone)
        fire_time = trigger.get_next_fire_time(
            None, after.astimezone(self.zone) + timedelta(microseconds=1)
        )
        if fire_time is None:
            raise ValidationError(f"Cron expression {self.expression} never fires again")
        return fire_time.astimezone(timezone.utc)


Recurrence = Annotated[
    Union[DailyRecurrence, WeeklyRecurrence, MonthlyRecurrence, CronRecurrence],
    Field(discriminator="kind"),
]


def parse_recurrence_rule(rule: str, tz: str = "UTC") -> Recurrence:
    """Parse a recurrence rule string into a recurrence variant.

    Args:
        rule: ``daily@HH:MM``, ``weekly:mon,thu@HH:MM``,
            ``monthly:DD@HH:MM`` or ``cron:<crontab>``
        tz: Timezone the rule is evaluated in

    Raises:
        ValidationError: Unrecognized or malformed rule
    """
    rule = rule.strip()
    try:
        if rule.startswith("cron:"):
            return CronRecurrence(expression=rule[5:].strip(), timezone=tz)

        head, _, at_time = rule.partition("@")
        at_time = at_time or "09:00"
        kind, _, arg = head.partition(":")
        kind = kind.strip().lower()
        if kind == "daily" and not arg:
            return DailyRecurrence(at_time=at_time, timezone=tz)
        if kind == "weekly" and arg:
            names = [d.strip().lower()[:3] for d in arg.split(",") if d.strip()]
            unknown = [d for d in names if d not in WEEKDAYS]
            if unknown:
                raise ValidationError(f"Unknown weekdays: {', '.join(unknown)}")
            return WeeklyRecurrence(
                at_time=at_time,
                timezone=tz,
                weekdays=[WEEKDAYS.index(d) for d in names],
            )
        if kind == "monthly" and arg.strip().isdigit():
            return MonthlyRecurrence(
                at_time=at_time, timezone=tz, day_of_month=int(arg)
            )
    except ValueError as e:
        raise ValidationError(f"Invalid recurrence rule '{rule}': {e}") from e
    raise ValidationError(f"Unrecognized recurrence rule: {rule}")


class ScheduleKind(Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"
    TRIGGER = "trigger"


class ScheduleStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Schedule(BaseModel):
    """A scheduled send or campaign launch.

    Exactly one of ``send_request`` and ``campaign_id`` says what to fire.

    Attributes:
        kind: ONE_TIME (``run_at``), RECURRING (``recurrence``) or TRIGGER
            (``trigger_event`` + ``trigger_delay_minutes``)
        next_execution_at: Next fire time; None when dormant or finished
        end_date: Recurring schedules stop after this time
        max_executions: Recurring schedules stop after this many fires
        version: Compare-and-swap token, bumped on every write
    """

    id: str = Field(default_factory=new_id)
    tenant_id: str
    name: Optional[str] = None
    kind: ScheduleKind
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    send_request: Optional[SendRequest] = None
    campaign_id: Optional[str] = None
    run_at: Optional[datetime] = None
    recurrence: Optional[Recurrence] = None
    trigger_event: Optional[str] = None
    trigger_delay_minutes: int = Field(default=0, ge=0)
    parent_schedule_id: Optional[str] = None
    start_at: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_executions: Optional[int] = Field(default=None, ge=1)
    next_execution_at: Optional[datetime] = None
    last_executed_at: Optional[datetime] = None
    execution_count: int = 0
    failure_count: int = 0
    last_error: Optional[str] = None
    version: int = 0
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_kind(self) -> "Schedule":
        if (self.send_request is None) == (self.campaign_id is None):
            raise ValueError("Schedule needs exactly one of send_request or campaign_id")
        if self.kind is ScheduleKind.ONE_TIME and self.run_at is None:
            raise ValueError("One-time schedules need run_at")
        if self.kind is ScheduleKind.RECURRING and self.recurrence is None:
            raise ValueError("Recurring schedules need a recurrence")
        if self.kind is ScheduleKind.TRIGGER and not self.trigger_event:
            raise ValueError("Trigger schedules need trigger_event")
        return self


class ScheduleStore(ABC):
    """Storage contract for schedules. All writes are compare-and-swap."""

    @abstractmethod
    def add(self, schedule: Schedule) -> Schedule:
        pass

    @abstractmethod
    def get(self, schedule_id: str) -> Optional[Schedule]:
        pass

    @abstractmethod
    def compare_and_set(self, schedule: Schedule, expected_version: int) -> bool:
        """Store ``schedule`` if the stored version is ``expected_version``."""

    @abstractmethod
    def due(self, now: datetime) -> List[Schedule]:
        pass

    @abstractmethod
    def list(
        self,
        tenant_id: str,
        kind: Optional[ScheduleKind] = None,
        status: Optional[ScheduleStatus] = None,
    ) -> List[Schedule]:
        pass


class InMemoryScheduleStore(ScheduleStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, Schedule] = {}

    def add(self, schedule: Schedule) -> Schedule:
        with self._lock:
            self._items[schedule.id] = schedule.model_copy(deep=True)
        return schedule.model_copy(deep=True)

    def get(self, schedule_id: str) -> Optional[Schedule]:
        with self._lock:
            item = self._items.get(schedule_id)
            return item.model_copy(deep=True) if item else None

    def compare_and_set(self, schedule: Schedule, expected_version: int) -> bool:
        with self._lock:
            current = self._items.get(schedule.id)
            if current is None or current.version != expected_version:
                return False
            self._items[schedule.id] = schedule.model_copy(
                update={"version": expected_version + 1}, deep=True
            )
            return True

    def due(self, now: datetime) -> List[Schedule]:
        with self._lock:
            items = [
                s
                for s in self._items.values()
                if s.status is ScheduleStatus.ACTIVE
                and s.next_execution_at is not None
                and s.next_execution_at <= now
            ]
        items.sort(key=lambda s: s.next_execution_at)
        return [s.model_copy(deep=True) for s in items]

    def list(
        self,
        tenant_id: str,
        kind: Optional[ScheduleKind] = None,
        status: Optional[ScheduleStatus] = None,
    ) -> List[Schedule]:
        with self._lock:
            items = [
                s
                for s in self._items.values()
                if s.tenant_id == tenant_id
                and (kind is None or s.kind is kind)
                and (status is None or s.status is status)
            ]
        items.sort(key=lambda s: s.created_at)
        return [s.model_copy(deep=True) for s in items]


@dataclass
class TickReport:
    fired: List[str] = field(default_factory=list)
    late: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


FireCallback = Callable[[Schedule, datetime], Any]


class NotificationScheduler:
    """Register schedules and fire the due ones on each tick.

    Args:
        store: Schedule store
        fire: Called with (schedule, fire_time) to submit the send
        late_threshold_seconds: Lateness above which a fire is logged late
        lease_seconds: How long a claimed schedule is hidden from other ticks
        retry_delay_seconds: Delay before retrying a failed fire
        clock: Time source
    """

    CAS_RETRIES = 5

    def __init__(
        self,
        store: ScheduleStore,
        fire: FireCallback,
        late_threshold_seconds: int = 60,
        lease_seconds: int = 300,
        retry_delay_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.fire = fire
        self.late_threshold = timedelta(seconds=late_threshold_seconds)
        self.lease = timedelta(seconds=lease_seconds)
        self.retry_delay = timedelta(seconds=retry_delay_seconds)
        self.clock = clock

    def register(self, schedule: Schedule) -> Schedule:
        """Store a new schedule with its first fire time computed."""
        now = self.clock()
        if schedule.kind is ScheduleKind.ONE_TIME:
            first = schedule.run_at
        elif schedule.kind is ScheduleKind.RECURRING:
            anchor = max(schedule.start_at, now) if schedule.start_at else now
            first = schedule.recurrence.next_after(anchor - timedelta(seconds=1))
        else:
            first = None
        stored = self.store.add(
            schedule.model_copy(update={"next_execution_at": first, "version": 0})
        )
        logger.info(
            "schedule_registered",
            schedule_id=stored.id,
            tenant_id=stored.tenant_id,
            kind=stored.kind.value,
            next_execution_at=first.isoformat() if first else None,
        )
        return stored

    def cancel(self, schedule_id: str, actor: Optional[str] = None) -> Schedule:
        def _cancel(s: Schedule) -> Schedule:
            return s.model_copy(
                update={"status": ScheduleStatus.CANCELLED, "next_execution_at": None}
            )

        cancelled = self._update(schedule_id, _cancel)
        logger.info("schedule_cancelled", schedule_id=schedule_id, actor=actor)
        return cancelled

    def trigger(
        self,
        tenant_id: str,
        event: str,
        anchor_at: datetime,
        recipient: Optional[Recipient] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> List[Schedule]:
        """Register delayed one-time children for every matching trigger.

        Args:
            tenant_id: Tenant whose triggers to match
            event: External event name (e.g. ``cart_abandoned``)
            anchor_at: When the external event happened
            recipient: Recipient for this occurrence
            variables: Variables merged over the trigger's own

        Returns:
            The child schedules registered
        """
        children = []
        for parent in self.store.list(
            tenant_id, kind=ScheduleKind.TRIGGER, status=ScheduleStatus.ACTIVE
        ):
            if parent.trigger_event != event:
                continue
            request = parent.send_request
            if request is not None:
                updates: Dict[str, Any] = {
                    "variables": {**request.variables, **(variables or {})}
                }
                if recipient is not None:
                    updates["recipient"] = recipient
                request = request.model_copy(update=updates)
            child = Schedule(
                tenant_id=tenant_id,
                name=parent.name,
                kind=ScheduleKind.ONE_TIME,
                send_request=request,
                campaign_id=parent.campaign_id,
                run_at=anchor_at + timedelta(minutes=parent.trigger_delay_minutes),
                parent_schedule_id=parent.id,
                created_by=parent.created_by,
            )
            children.append(self.register(child))
        logger.info(
            "trigger_event_received",
            tenant_id=tenant_id,
            trigger_event=event,
            scheduled=len(children),
        )
        return children

    def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Fire every due schedule once."""
        now = now or self.clock()
        report = TickReport()
        for schedule in self.store.due(now):
            due_at = schedule.next_execution_at
            leased = schedule.model_copy(update={"next_execution_at": now + self.lease})
            if not self.store.compare_and_set(leased, schedule.version):
                continue
            leased_version = schedule.version + 1

            if now - due_at > self.late_threshold:
                report.late.append(schedule.id)
                logger.warning(
                    "schedule_fired_late",
                    schedule_id=schedule.id,
                    due_at=due_at.isoformat(),
                    late_by_seconds=int((now - due_at).total_seconds()),
                )

            try:
                self.fire(leased, now)
            except ValidationError as e:
                report.failed.append(schedule.id)
                logger.error(
                    "schedule_request_invalid",
                    schedule_id=schedule.id,
                    error=str(e),
                )
                self._update(
                    schedule.id,
                    lambda s, error=str(e): s.model_copy(
                        update={
                            "status": (
                                ScheduleStatus.FAILED
                                if s.status is ScheduleStatus.ACTIVE
                                else s.status
                            ),
                            "failure_count": s.failure_count + 1,
                            "last_error": error,
                            "next_execution_at": None,
                        }
                    ),
                    expected_version=leased_version,
                )
                continue
            except Exception as e:
                report.failed.append(schedule.id)
                logger.error(
                    "schedule_fire_failed",
                    schedule_id=schedule.id,
                    error=str(e),
                    exc_info=True,
                )
                self._update(
                    schedule.id,
                    lambda s, error=str(e): s.model_copy(
                        update={
                            "failure_count": s.failure_count + 1,
                            "last_error": error,
                            "next_execution_at": (
                                now + self.retry_delay
                                if s.status is ScheduleStatus.ACTIVE
                                else None
                            ),
                        }
                    ),
                    expected_version=leased_version,
                )
                continue

            report.fired.append(schedule.id)
            self._update(
                schedule.id,
                lambda s: self._after_fire(s, now),
                expected_version=leased_version,
            )
        return report

    def _after_fire(self, schedule: Schedule, now: datetime) -> Schedule:
        count = schedule.execution_count + 1
        updates: Dict[str, Any] = {
            "execution_count": count,
            "last_executed_at": now,
            "last_error": None,
        }
        if schedule.status is not ScheduleStatus.ACTIVE:
            updates["next_execution_at"] = None
            return schedule.model_copy(update=updates)

        next_at = None
        if schedule.kind is ScheduleKind.RECURRING:
            next_at = schedule.recurrence.next_after(now)
            if schedule.end_date is not None and next_at > schedule.end_date:
                next_at = None
            if schedule.max_executions is not None and count >= schedule.max_executions:
                next_at = None

        updates["next_execution_at"] = next_at
        if next_at is None:
            updates["status"] = ScheduleStatus.COMPLETED
        logger.info(
            "schedule_fired",
            schedule_id=schedule.id,
            execution_count=count,
            next_execution_at=next_at.isoformat() if next_at else None,
        )
        return schedule.model_copy(update=updates)

    def _update(
        self,
        schedule_id: str,
        mutate: Callable[[Schedule], Schedule],
        expected_version: Optional[int] = None,
    ) -> Schedule:
        for _ in range(self.CAS_RETRIES):
            current = self.store.get(schedule_id)
            if current is None:
                raise NotFoundError(f"Schedule {schedule_id} not found")
            if expected_version is not None and current.version != expected_version:
                # Someone else wrote in between (e.g. a cancel); apply on top.
                expected_version = None
            updated = mutate(current)
            if self.store.compare_and_set(updated, current.version):
                return self.store.get(schedule_id)
        raise ValidationError(f"Schedule {schedule_id} is being modified concurrently")
