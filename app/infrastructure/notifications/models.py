"""Notification engine core models.

Channel-agnostic models shared by the resolver, renderer, dispatcher,
adapters and scheduler. Notifications hold campaign and template ids by
value only; lookups go through the owning store.

Uses Pydantic BaseModel for:
- RFC 5322 compliant email validation (EmailStr)
- E.164 phone validation on recipients
- Schema-validated metadata (known keys plus a typed ``extra`` bag)
- Consistency with the API layer request/response schemas
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Channel(Enum):
    """Delivery media supported by the engine."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    WEBHOOK = "webhook"
    IN_APP = "in_app"


class NotificationPriority(Enum):
    """Notification priority levels.

    URGENT bypasses quiet hours and is popped from the queue first.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Queue ordering rank, higher pops first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.LOW: 0,
    NotificationPriority.MEDIUM: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.URGENT: 3,
}


class NotificationCategory(Enum):
    """Notification type category.

    Transactional, security and system notifications can never be
    suppressed by a user's opt-out settings.
    """

    TRANSACTIONAL = "transactional"
    MARKETING = "marketing"
    SYSTEM = "system"
    SECURITY = "security"

    @property
    def bypasses_opt_out(self) -> bool:
        return self is not NotificationCategory.MARKETING


class NotificationStatus(Enum):
    """Delivery lifecycle of a single notification.

    See ``infrastructure.notifications.state`` for the allowed transitions.
    """

    PENDING = "pending"
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    BOUNCED = "bounced"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            NotificationStatus.DELIVERED,
            NotificationStatus.BOUNCED,
            NotificationStatus.FAILED,
            NotificationStatus.CANCELLED,
        )


class AttemptOutcome(Enum):
    """Outcome recorded on a DeliveryAttempt row.

    Synchronous channels (in-app) record ``sent`` too; delivery itself is
    a status transition, never an attempt outcome.
    """

    SENT = "sent"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"

    @property
    def is_success(self) -> bool:
        return self is AttemptOutcome.SENT


class Recipient(BaseModel):
    """Notification recipient.

    The user id is the stable identity; per-channel addresses are resolved
    by the caller and carried by value.

    Attributes:
        user_id: Platform user identifier (required)
        email: Email address for the email channel
        phone_number: E.164 phone number for the SMS channel
        device_token: Push token for the push channel
        webhook_url: Endpoint for the webhook channel

    Example:
        recipient = Recipient(
            user_id="user-42",
            email="asha@example.com",
            phone_number="+919876543210",
        )
    """

    user_id: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    device_token: Optional[str] = None
    webhook_url: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: Optional[str]) -> Optional[str]:
        """Validate E.164 phone format if provided."""
        if v is None:
            return v
        if not v.startswith("+") or not v[1:].isdigit():
            raise ValueError(f"Phone number must be in E.164 format: {v}")
        if len(v) < 8 or len(v) > 16:
            raise ValueError(f"Phone number length invalid: {v}")
        return v

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Webhook URL must be http(s): {v}")
        return v

    def address_for(self, channel: Channel) -> Optional[str]:
        """Resolved address for a channel, or None when missing."""
        if channel is Channel.EMAIL:
            return str(self.email) if self.email else None
        if channel is Channel.SMS:
            return self.phone_number
        if channel is Channel.PUSH:
            return self.device_token
        if channel is Channel.WEBHOOK:
            return self.webhook_url
        return self.user_id


ExtraValue = Union[str, int, float, bool]


class NotificationMetadata(BaseModel):
    """Typed notification metadata.

    Known keys are validated fields; anything else must go in ``extra``,
    which only accepts scalar values. Unknown top-level keys are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    campaign_id: Optional[str] = None
    schedule_id: Optional[str] = None
    order_id: Optional[str] = None
    source_event: Optional[str] = None
    correlation_id: Optional[str] = None
    marketing_consent: Optional[bool] = None
    extra: Dict[str, ExtraValue] = Field(default_factory=dict)


class StatusChange(BaseModel):
    """One entry of a notification's status history."""

    model_config = ConfigDict(frozen=True)

    from_status: Optional[NotificationStatus]
    to_status: NotificationStatus
    at: datetime
    reason: Optional[str] = None


class Notification(BaseModel):
    """One attempted message for one recipient on one channel.

    ``payload`` carries the rendered channel payload produced at send time
    so dispatch never re-renders. Status changes only go through the
    notification store, which enforces the state machine.

    Attributes:
        id: Notification identifier
        tenant_id: Owning tenant
        recipient: Recipient with per-channel addresses
        event_type: Notification type code (e.g. ``order_confirmed``)
        category: Category of the notification type
        channel: Delivery channel
        priority: Priority level (default MEDIUM)
        title: Rendered title (subject for email)
        body: Rendered plain-text body
        payload: Rendered channel payload
        status: Current status
        attempt_count: Dispatch attempts made so far
        max_attempts: Automatic attempt budget
        next_attempt_at: Earliest time a worker may pick the notification up
        cancel_requested: Set when cancel arrives while ``sending``
    """

    id: str = Field(default_factory=new_id)
    tenant_id: str
    recipient: Recipient
    event_type: str
    category: NotificationCategory = NotificationCategory.TRANSACTIONAL
    channel: Channel
    priority: NotificationPriority = NotificationPriority.MEDIUM
    template_id: Optional[str] = None
    language: str = "en"
    title: str = ""
    body: str = ""
    payload: Dict[str, object] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    provider: Optional[str] = None
    provider_message_id: Optional[str] = None
    failure_reason: Optional[str] = None
    attempt_count: int = 0
    max_attempts: int = 4
    cancel_requested: bool = False
    quota_windows: List[str] = Field(default_factory=list)
    scheduled_for: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    queued_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    history: List[StatusChange] = Field(default_factory=list)

    @property
    def campaign_id(self) -> Optional[str]:
        return self.metadata.campaign_id

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class DeliveryAttempt(BaseModel):
    """Append-only record of one provider call.

    Never mutated after it is written; the attempt id is the idempotency
    key for analytics aggregation.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    notification_id: str
    tenant_id: str
    channel: Channel
    attempt_number: int
    provider: str
    outcome: AttemptOutcome
    attempted_at: datetime = Field(default_factory=utc_now)
    latency_ms: float = 0.0
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    campaign_id: Optional[str] = None


class ExpiryAction(Enum):
    """What to do when a deferred send outlives its expiry."""

    SEND_ANYWAY = "send_anyway"
    DROP = "drop"


class ExpiryPolicy(BaseModel):
    """Deferral limit for a notification type.

    Attributes:
        max_defer_seconds: Longest acceptable deferral, None never expires
        on_expiry: Action taken when the deferral exceeds the limit
    """

    model_config = ConfigDict(frozen=True)

    max_defer_seconds: Optional[int] = Field(default=None, ge=0)
    on_expiry: ExpiryAction = ExpiryAction.SEND_ANYWAY


class NotificationTypeDefinition(BaseModel):
    """Catalogue entry describing a notification type."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    category: NotificationCategory
    can_opt_out: bool = True
    default_priority: NotificationPriority = NotificationPriority.MEDIUM
    default_channels: List[Channel] = Field(
        default_factory=lambda: [Channel.EMAIL, Channel.IN_APP]
    )
    expiry: ExpiryPolicy = Field(default_factory=ExpiryPolicy)


class AudienceType(Enum):
    ALL = "all"
    SEGMENT = "segment"
    EXPLICIT = "explicit"
    FILTER = "filter"


class CampaignAudience(BaseModel):
    """Campaign target audience definition."""

    type: AudienceType = AudienceType.EXPLICIT
    recipients: List[Recipient] = Field(default_factory=list)
    segment: Optional[str] = None
    filters: Dict[str, str] = Field(default_factory=dict)


class CampaignStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Campaign(BaseModel):
    """Grouping of notifications sent from one template to an audience.

    Counters are not stored here; they are read from analytics by
    campaign id.
    """

    id: str = Field(default_factory=new_id)
    tenant_id: str
    name: str
    event_type: str
    template_id: Optional[str] = None
    channels: List[Channel] = Field(..., min_length=1)
    audience: CampaignAudience = Field(default_factory=CampaignAudience)
    variables: Dict[str, str] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.LOW
    status: CampaignStatus = CampaignStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    created_by: Optional[str] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SendRequest(BaseModel):
    """Send API input: one logical event for one recipient.

    One notification is created per eligible channel. ``template_id`` pins
    a template; otherwise the template is resolved by tenant, event type,
    channel and language. Naive timestamps are taken as UTC.

    Example:
        request = SendRequest(
            tenant_id="tenant-1",
            recipient=Recipient(user_id="user-42", email="asha@example.com"),
            event_type="order_confirmed",
            channels=[Channel.EMAIL, Channel.IN_APP],
            variables={"name": "Asha", "order_id": "ORD-42", "total": "₹500"},
        )
    """

    tenant_id: str = Field(..., min_length=1)
    recipient: Recipient
    event_type: str = Field(..., min_length=1)
    channels: List[Channel] = Field(..., min_length=1)
    template_id: Optional[str] = None
    variables: Dict[str, Union[str, int, float, bool]] = Field(default_factory=dict)
    priority: Optional[NotificationPriority] = None
    scheduled_for: Optional[datetime] = None
    language: Optional[str] = None
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    idempotency_key: Optional[str] = Field(default=None, max_length=255)

    @field_validator("scheduled_for", "expires_at")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v: List[Channel]) -> List[Channel]:
        return list(dict.fromkeys(v))
