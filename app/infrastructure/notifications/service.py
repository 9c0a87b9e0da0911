"""Notification service for dependency injection.

Facade over the delivery engine used by the HTTP API and the background
jobs. It owns the Send API pipeline:

1. Look up the notification type and honour the idempotency key.
2. Render every requested channel (template errors surface before any
   side effect).
3. Evaluate eligibility per channel; a denial is a reason code, not an
   error, and a quiet-hours deferral queues the send for later.
4. Apply the type's expiry policy to deferred sends.
5. Store one ``queued`` notification per eligible channel for the
   dispatch workers.

and wires the dispatcher, retry manager, callback processor, scheduler
and analytics together so every status transition feeds analytics, quota
bookkeeping and the ``notification.status_changed`` event.

Usage:
    # Via dependency injection
    from infrastructure.services import NotificationServiceDep

    @router.post("/notifications")
    def send(service: NotificationServiceDep, request: SendRequest):
        return service.send(request)

    # Direct instantiation
    from infrastructure.services import get_settings
    from infrastructure.notifications import NotificationService

    service = NotificationService(get_settings())
    response = service.send(request)
    service.process_due()
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field

from infrastructure.events import Event, dispatch_event
from infrastructure.idempotency import (
    IdempotencyCache,
    IdempotencyKeyBuilder,
    InMemoryIdempotencyCache,
)
from infrastructure.logging import get_correlation_id, get_module_logger
from infrastructure.notifications.analytics import (
    AnalyticsAggregator,
    CampaignStats,
    DailyChannelStats,
    DeliveryStats,
)
from infrastructure.notifications.callbacks import CallbackProcessor, CallbackSummary
from infrastructure.notifications.campaigns import (
    AudienceDirectory,
    CampaignStore,
    InMemoryAudienceDirectory,
    InMemoryCampaignStore,
)
from infrastructure.notifications.catalog import NotificationTypeCatalog
from infrastructure.notifications.channels import (
    ChannelRegistry,
    build_channel_registry,
)
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.eligibility import (
    EligibilityDecision,
    EligibilityDenied,
    EligibilityRequest,
    EligibilityResolver,
)
from infrastructure.notifications.errors import (
    NotFoundError,
    PermissionDeniedError,
    QuotaExceeded,
    ValidationError,
)
from infrastructure.notifications.export import ExportFormat, NotificationExporter
from infrastructure.notifications.models import (
    Campaign,
    CampaignStatus,
    Channel,
    DeliveryAttempt,
    ExpiryAction,
    Notification,
    NotificationMetadata,
    NotificationStatus,
    NotificationTypeDefinition,
    Recipient,
    SendRequest,
    new_id,
    utc_now,
)
from infrastructure.notifications.preferences import (
    GlobalControlsStore,
    InMemoryGlobalControlsStore,
    InMemoryPreferenceStore,
    InMemoryTenantSettingsStore,
    PreferenceStore,
    TenantNotificationSettings,
    TenantSettingsStore,
    UserPreference,
)
from infrastructure.notifications.quota import InMemoryQuotaStore, QuotaStore
from infrastructure.notifications.rendering import RenderedContent, TemplateRenderer
from infrastructure.notifications.retry import RetryManager, RetryPolicy
from infrastructure.notifications.scheduler import (
    InMemoryScheduleStore,
    NotificationScheduler,
    Schedule,
    ScheduleKind,
    ScheduleStatus,
    ScheduleStore,
    TickReport,
)
from infrastructure.notifications.state import CANCELLABLE
from infrastructure.notifications.store import (
    DeliveryAttemptLog,
    InMemoryDeliveryAttemptLog,
    InMemoryNotificationStore,
    NotificationStore,
)
from infrastructure.notifications.templates import (
    InMemoryTemplateStore,
    NotificationTemplate,
    TemplateStore,
    TemplateUpdate,
    seed_system_templates,
)
from infrastructure.notifications.worker import DispatchWorkerPool

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = get_module_logger()


class ChannelDecision(BaseModel):
    """Send API outcome for one requested channel."""

    channel: Channel
    decision: str
    reason: Optional[str] = None
    notification_id: Optional[str] = None
    status: Optional[NotificationStatus] = None
    scheduled_for: Optional[datetime] = None


class SendResponse(BaseModel):
    """Send API response; ``status`` reflects the decision, not delivery."""

    notification_id: Optional[str] = None
    status: str
    decisions: List[ChannelDecision] = Field(default_factory=list)
    idempotent_replay: bool = False


class NotificationPage(BaseModel):
    items: List[Notification]
    total: int
    page: int
    page_size: int


class NotificationDetail(BaseModel):
    notification: Notification
    attempts: List[DeliveryAttempt]


class CampaignLaunchResult(BaseModel):
    campaign_id: str
    recipients: int = 0
    queued: int = 0
    denied: int = 0
    errors: int = 0


class NotificationService:
    """Class-based notification service.

    Every collaborator is optional; missing ones are built in memory from
    ``settings`` so a single instance is a working engine.

    Args:
        settings: Settings instance (required, passed from provider)
        store: Notification store (durable dispatch queue)
        attempts: Delivery attempt log
        templates: Template store; seeded with system templates when built here
        preferences: User preference store
        tenant_settings: Tenant settings store
        global_controls: Global kill-switch store
        quotas: Tenant quota counters
        schedules: Schedule store
        campaigns: Campaign store
        audience: Audience directory used by campaigns
        registry: Channel adapter registry
        idempotency_cache: Send API idempotency cache
        catalog: Notification type catalogue
        analytics: Analytics aggregator
        http_client: Shared httpx client for provider adapters
        clock: Time source shared by every component
    """

    def __init__(
        self,
        settings: "Settings",
        store: Optional[NotificationStore] = None,
        attempts: Optional[DeliveryAttemptLog] = None,
        templates: Optional[TemplateStore] = None,
        preferences: Optional[PreferenceStore] = None,
        tenant_settings: Optional[TenantSettingsStore] = None,
        global_controls: Optional[GlobalControlsStore] = None,
        quotas: Optional[QuotaStore] = None,
        schedules: Optional[ScheduleStore] = None,
        campaigns: Optional[CampaignStore] = None,
        audience: Optional[AudienceDirectory] = None,
        registry: Optional[ChannelRegistry] = None,
        idempotency_cache: Optional[IdempotencyCache] = None,
        catalog: Optional[NotificationTypeCatalog] = None,
        analytics: Optional[AnalyticsAggregator] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._settings = settings
        config = settings.notifications
        self.clock = clock

        self.store = store or InMemoryNotificationStore()
        self.attempts = attempts or InMemoryDeliveryAttemptLog()
        if templates is None:
            templates = InMemoryTemplateStore()
            seed_system_templates(templates)
        self.templates = templates
        self.preferences = preferences or InMemoryPreferenceStore()
        self.tenant_settings = tenant_settings or InMemoryTenantSettingsStore()
        self.global_controls = global_controls or InMemoryGlobalControlsStore(
            notifications_enabled=config.global_enabled
        )
        self.quotas = quotas or InMemoryQuotaStore()
        self.campaigns = campaigns or InMemoryCampaignStore()
        self.audience = audience or InMemoryAudienceDirectory()
        self.registry = registry or build_channel_registry(
            settings, self.store, http_client=http_client
        )
        self.idempotency_cache = idempotency_cache or InMemoryIdempotencyCache()
        self.idempotency_keys = IdempotencyKeyBuilder(namespace="send_api")
        self.catalog = catalog or NotificationTypeCatalog()
        self.analytics = analytics or AnalyticsAggregator()

        self.resolver = EligibilityResolver(
            global_store=self.global_controls,
            tenant_store=self.tenant_settings,
            preference_store=self.preferences,
            quota_store=self.quotas,
            default_timezone=config.default_timezone,
        )
        self.renderer = TemplateRenderer.from_settings(config, settings.providers)
        self.retry_manager = RetryManager(
            self.store,
            RetryPolicy.from_settings(settings.retry),
            listeners=[self._on_transition],
            clock=clock,
        )
        self.dispatcher = NotificationDispatcher(
            store=self.store,
            attempts=self.attempts,
            registry=self.registry,
            retry_manager=self.retry_manager,
            tenant_store=self.tenant_settings,
            listeners=[self._on_transition],
            attempt_listeners=[self._on_attempt],
            timeout_seconds=config.adapter_timeout_seconds,
            max_concurrent_calls=max(config.worker_count * 2, 4),
            clock=clock,
        )
        self.workers = DispatchWorkerPool(
            self.dispatcher,
            self.store,
            worker_count=config.worker_count,
            batch_size=config.worker_batch_size,
            clock=clock,
        )
        self.callbacks = CallbackProcessor(
            self.store,
            self.registry,
            secrets=config.callback_secrets,
            listeners=[self._on_transition],
            engagement_listeners=[self._on_engagement],
        )
        self.scheduler = NotificationScheduler(
            schedules or InMemoryScheduleStore(),
            fire=self._fire_schedule,
            late_threshold_seconds=config.schedule_late_threshold_seconds,
            clock=clock,
        )
        self.exporter = NotificationExporter(self.store, self.attempts)

    @property
    def settings(self) -> "Settings":
        return self._settings

    # Send API

    def send(self, request: SendRequest, actor: str = "system") -> SendResponse:
        """Create notifications for one logical event.

        Args:
            request: Send API request
            actor: Caller recorded on status change events

        Returns:
            SendResponse with one decision per requested channel

        Raises:
            ValidationError: Unknown type, missing template or variable,
                recipient without an address for any requested channel
            QuotaExceeded: Every requested channel is over quota
        """
        idempotency = self._settings.idempotency
        if not (request.idempotency_key and idempotency.IDEMPOTENCY_ENABLED):
            return self._send(request, actor)

        idempotency_key = self.idempotency_keys.build(
            "send",
            tenant_id=request.tenant_id,
            client_key=request.idempotency_key,
        )
        with self.idempotency_cache.lock(idempotency_key):
            cached = self.idempotency_cache.get(idempotency_key)
            if cached is not None:
                logger.info(
                    "send_idempotent_replay",
                    tenant_id=request.tenant_id,
                    notification_id=cached.get("notification_id"),
                )
                response = SendResponse.model_validate(cached)
                response.idempotent_replay = True
                return response

            response = self._send(request, actor)
            self.idempotency_cache.set(
                idempotency_key,
                response.model_dump(mode="json"),
                ttl_seconds=idempotency.IDEMPOTENCY_TTL_SECONDS,
            )
        return response

    def _send(self, request: SendRequest, actor: str) -> SendResponse:
        definition = self.catalog.require(request.event_type)
        tenant = self.tenant_settings.get(request.tenant_id)
        preference = self.preferences.get(request.tenant_id, request.recipient.user_id)
        now = self.clock()
        requested_at = max(request.scheduled_for or now, now)
        priority = request.priority or definition.default_priority
        language = request.language or preference.language

        addressable = [
            c for c in request.channels if request.recipient.address_for(c) is not None
        ]
        if not addressable:
            raise ValidationError(
                "Recipient has no address for channels: "
                + ", ".join(c.value for c in request.channels)
            )

        rendered: Dict[Channel, tuple] = {}
        for channel in addressable:
            notification_id = new_id()
            template = self._resolve_template(request, tenant, channel, language)
            content = self.renderer.render(
                template,
                request.variables,
                notification_id=notification_id,
                tenant_id=request.tenant_id,
                branding=tenant.branding,
                branding_entitled=tenant.capability_enabled("branded_templates"),
                action_url=request.action_url,
                action_label=request.action_label,
                timestamp=now,
            )
            rendered[channel] = (notification_id, template, content)

        decisions: List[ChannelDecision] = []
        exhausted: Dict[Channel, str] = {}
        for channel in request.channels:
            if channel not in rendered:
                decisions.append(
                    ChannelDecision(channel=channel, decision="deny", reason="missing_address")
                )
                continue
            notification_id, template, content = rendered[channel]
            eligibility = self.resolver.evaluate(
                EligibilityRequest(
                    tenant_id=request.tenant_id,
                    user_id=request.recipient.user_id,
                    event_type=request.event_type,
                    category=definition.category,
                    channel=channel,
                    priority=priority,
                    requested_at=requested_at,
                )
            )
            if eligibility.is_denied:
                if eligibility.exhausted_window:
                    exhausted[channel] = eligibility.exhausted_window
                decisions.append(
                    ChannelDecision(
                        channel=channel,
                        decision=eligibility.decision.value,
                        reason=eligibility.reason.value,
                    )
                )
                continue
            notification = self._create(
                notification_id=notification_id,
                request=request,
                definition=definition,
                channel=channel,
                priority=priority,
                language=template.language,
                template=template,
                content=content,
                eligibility=eligibility,
                requested_at=requested_at,
                now=now,
                actor=actor,
            )
            decisions.append(
                ChannelDecision(
                    channel=channel,
                    decision=eligibility.decision.value,
                    reason=notification.failure_reason,
                    notification_id=notification.id,
                    status=notification.status,
                    scheduled_for=notification.next_attempt_at,
                )
            )

        denied = [d for d in decisions if d.notification_id is None]
        if denied and len(denied) == len(decisions) and all(
            d.reason == EligibilityDenied.QUOTA_EXCEEDED.value for d in denied
        ):
            raise QuotaExceeded(
                request.tenant_id,
                denied[0].channel.value,
                exhausted[denied[0].channel],
            )

        first = next((d for d in decisions if d.notification_id), None)
        response = SendResponse(
            notification_id=first.notification_id if first else None,
            status=first.status.value if first else "denied",
            decisions=decisions,
        )
        logger.info(
            "send_request_processed",
            tenant_id=request.tenant_id,
            event_type=request.event_type,
            user_id=request.recipient.user_id,
            notification_id=response.notification_id,
            status=response.status,
            decisions={d.channel.value: d.reason or d.decision for d in decisions},
        )
        return response

    def _create(
        self,
        notification_id: str,
        request: SendRequest,
        definition: NotificationTypeDefinition,
        channel: Channel,
        priority,
        language: str,
        template: NotificationTemplate,
        content: RenderedContent,
        eligibility: EligibilityDecision,
        requested_at: datetime,
        now: datetime,
        actor: str,
    ) -> Notification:
        send_at = eligibility.allow_at or requested_at
        policy = definition.expiry
        expires_at = request.expires_at
        if (
            expires_at is None
            and policy.on_expiry is ExpiryAction.DROP
            and policy.max_defer_seconds is not None
        ):
            expires_at = requested_at + timedelta(seconds=policy.max_defer_seconds)

        expired = False
        if eligibility.allow_at is not None:
            deferred_by = (eligibility.allow_at - requested_at).total_seconds()
            past_policy = (
                policy.max_defer_seconds is not None
                and deferred_by > policy.max_defer_seconds
            )
            past_explicit = expires_at is not None and eligibility.allow_at > expires_at
            if past_policy or past_explicit:
                if policy.on_expiry is ExpiryAction.DROP:
                    expired = True
                else:
                    expires_at = None

        metadata = request.metadata.model_copy(
            update={"correlation_id": request.metadata.correlation_id or get_correlation_id()}
        )
        notification = Notification(
            id=notification_id,
            tenant_id=request.tenant_id,
            recipient=request.recipient,
            event_type=request.event_type,
            category=definition.category,
            channel=channel,
            priority=priority,
            template_id=template.id,
            language=language,
            title=content.title,
            body=content.body,
            payload=content.payload,
            action_url=request.action_url,
            action_label=request.action_label,
            scheduled_for=send_at if send_at > now else None,
            expires_at=expires_at,
            quota_windows=list(eligibility.quota_windows),
            metadata=metadata,
            created_at=now,
            max_attempts=self.retry_manager.policy.max_attempts,
        )
        self.store.add(notification)

        if expired:
            logger.info(
                "deferred_send_expired",
                notification_id=notification.id,
                allow_at=eligibility.allow_at.isoformat(),
            )
            return self._transition(
                notification.id,
                {NotificationStatus.PENDING},
                NotificationStatus.CANCELLED,
                reason="expired",
                actor=actor,
                at=now,
                failure_reason="expired",
                cancelled_at=now,
            )

        return self._transition(
            notification.id,
            {NotificationStatus.PENDING},
            NotificationStatus.QUEUED,
            reason="deferred" if eligibility.allow_at else "eligible",
            actor=actor,
            at=now,
            queued_at=now,
            next_attempt_at=send_at,
        )

    def _resolve_template(
        self,
        request: SendRequest,
        tenant: TenantNotificationSettings,
        channel: Channel,
        language: str,
    ) -> NotificationTemplate:
        if request.template_id:
            template = self.templates.get(request.template_id)
            if template is None or template.tenant_id not in (request.tenant_id, None):
                raise ValidationError(f"Template {request.template_id} not found")
            if template.channel is channel:
                return template
        owner = (
            request.tenant_id if tenant.capability_enabled("custom_templates") else None
        )
        try:
            return self.templates.resolve(owner, request.event_type, channel, language)
        except NotFoundError as e:
            raise ValidationError(str(e)) from e

    # Lifecycle operations

    def cancel(self, tenant_id: str, notification_id: str, actor: str) -> Notification:
        """Cancel a pending or queued notification.

        A notification in ``sending`` cannot be interrupted; the request is
        recorded and suppresses any further retry.

        Raises:
            NotFoundError: Unknown notification for this tenant
            ValidationError: Notification already finished
        """
        current = self._require(tenant_id, notification_id)
        now = self.clock()
        cancelled = self._transition(
            notification_id,
            CANCELLABLE,
            NotificationStatus.CANCELLED,
            reason=f"cancelled:{actor}",
            actor=actor,
            at=now,
            cancelled_at=now,
        )
        if cancelled is not None:
            return cancelled

        current = self._require(tenant_id, notification_id)
        if current.status is NotificationStatus.SENDING:
            logger.info(
                "cancel_requested_during_send",
                notification_id=notification_id,
                actor=actor,
            )
            return self.store.update(notification_id, cancel_requested=True)
        raise ValidationError(
            f"Notification {notification_id} cannot be cancelled "
            f"(status: {current.status.value})"
        )

    def retry(self, tenant_id: str, notification_id: str, actor: str) -> Notification:
        """Force one more attempt on a failed or bounced notification."""
        self._require(tenant_id, notification_id)
        return self.retry_manager.manual_retry(notification_id, actor)

    def process_due(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Dispatch one batch of due notifications."""
        return self.workers.process_batch(now)

    def dispatch(self, notification_id: str) -> Optional[Notification]:
        return self.dispatcher.dispatch(notification_id)

    # Query API

    def list_notifications(
        self,
        tenant_id: str,
        user_id: str,
        page: int = 1,
        page_size: Optional[int] = None,
        unread_only: bool = False,
        channel: Optional[Channel] = None,
    ) -> NotificationPage:
        config = self._settings.notifications
        page = max(page, 1)
        page_size = min(page_size or config.default_page_size, config.max_page_size)
        items, total = self.store.list_for_user(
            tenant_id,
            user_id,
            offset=(page - 1) * page_size,
            limit=page_size,
            unread_only=unread_only,
            channel=channel,
        )
        return NotificationPage(items=items, total=total, page=page, page_size=page_size)

    def unread_count(self, tenant_id: str, user_id: str) -> int:
        return self.store.count_unread(tenant_id, user_id)

    def mark_read(self, tenant_id: str, user_id: str, notification_id: str) -> Notification:
        notification = self._require_for_user(tenant_id, user_id, notification_id)
        if notification.read_at is not None:
            return notification
        at = self.clock()
        updated = self.store.update(notification_id, read_at=at)
        self._on_engagement(updated, "opened", at)
        self._publish(
            "notification.read",
            tenant_id,
            user_id,
            notification_id=notification_id,
            user_id=user_id,
        )
        return updated

    def mark_all_read(self, tenant_id: str, user_id: str) -> int:
        count = self.store.mark_all_read(tenant_id, user_id, self.clock())
        logger.info("notifications_marked_read", tenant_id=tenant_id, user_id=user_id, count=count)
        if count:
            self._publish("notification.read", tenant_id, user_id, user_id=user_id, count=count)
        return count

    def delete(self, tenant_id: str, user_id: str, notification_id: str) -> None:
        self._require_for_user(tenant_id, user_id, notification_id)
        self.store.update(notification_id, deleted_at=self.clock())
        self._publish(
            "notification.deleted",
            tenant_id,
            user_id,
            notification_id=notification_id,
            user_id=user_id,
        )

    def get_detail(self, tenant_id: str, notification_id: str) -> NotificationDetail:
        notification = self._require(tenant_id, notification_id)
        return NotificationDetail(
            notification=notification,
            attempts=self.attempts.list_for_notification(notification_id),
        )

    # Preferences

    def get_preferences(self, tenant_id: str, user_id: str) -> UserPreference:
        return self.preferences.get(tenant_id, user_id)

    def save_preferences(self, preference: UserPreference) -> UserPreference:
        saved = self.preferences.save(preference)
        logger.info(
            "preferences_updated",
            tenant_id=preference.tenant_id,
            user_id=preference.user_id,
        )
        return saved

    # Templates

    def create_template(
        self, template: NotificationTemplate, actor: str
    ) -> NotificationTemplate:
        if template.tenant_id is None or template.is_system:
            raise PermissionDeniedError("System templates cannot be created via the API")
        tenant = self.tenant_settings.get(template.tenant_id)
        if not tenant.capability_enabled("custom_templates"):
            raise PermissionDeniedError(
                f"Custom templates are disabled for tenant {template.tenant_id}"
            )
        created = self.templates.add(template)
        self._publish("template.created", created.tenant_id, actor, template_id=created.id)
        return created

    def get_template(self, tenant_id: str, template_id: str) -> NotificationTemplate:
        template = self.templates.get(template_id)
        if template is None or template.tenant_id not in (tenant_id, None):
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def list_templates(
        self,
        tenant_id: str,
        event_type: Optional[str] = None,
        channel: Optional[Channel] = None,
        include_system: bool = True,
    ) -> List[NotificationTemplate]:
        return self.templates.list(
            tenant_id=tenant_id,
            event_type=event_type,
            channel=channel,
            include_system=include_system,
        )

    def update_template(
        self, tenant_id: str, template_id: str, changes: TemplateUpdate, actor: str
    ) -> NotificationTemplate:
        self.get_template(tenant_id, template_id)
        updated = self.templates.update(template_id, changes)
        self._publish("template.updated", tenant_id, actor, template_id=template_id)
        return updated

    def delete_template(self, tenant_id: str, template_id: str, actor: str) -> None:
        self.get_template(tenant_id, template_id)
        self.templates.delete(template_id)
        self._publish("template.deleted", tenant_id, actor, template_id=template_id)

    def preview_template(
        self, tenant_id: str, template_id: str, variables: Dict[str, Any]
    ) -> RenderedContent:
        template = self.get_template(tenant_id, template_id)
        tenant = self.tenant_settings.get(tenant_id)
        return self.renderer.render(
            template,
            variables,
            notification_id="preview",
            tenant_id=tenant_id,
            branding=tenant.branding,
            branding_entitled=tenant.capability_enabled("branded_templates"),
            timestamp=self.clock(),
        )

    # Provider callbacks

    def handle_callback(
        self, channel: Channel, provider: str, body: bytes, signature: Optional[str]
    ) -> CallbackSummary:
        return self.callbacks.handle(channel, provider, body, signature)

    # Campaigns

    def create_campaign(self, campaign: Campaign, actor: str) -> Campaign:
        self._require_capability(campaign.tenant_id, "campaigns")
        self.catalog.require(campaign.event_type)
        created = self.campaigns.add(campaign.model_copy(update={"created_by": actor}))
        logger.info("campaign_created", campaign_id=created.id, tenant_id=created.tenant_id)
        return created

    def launch_campaign(
        self,
        tenant_id: str,
        campaign_id: str,
        actor: str,
        occurrence: Optional[str] = None,
    ) -> CampaignLaunchResult:
        """Fan a campaign out to its audience.

        Each recipient gets a Send API request tagged with the campaign id
        and an idempotency key, so relaunching the same occurrence never
        duplicates a send. Scheduled launches pass the schedule occurrence.
        """
        self._require_capability(tenant_id, "campaigns")
        campaign = self.campaigns.get(tenant_id, campaign_id)
        if campaign.status is CampaignStatus.CANCELLED:
            raise ValidationError(f"Campaign {campaign_id} is cancelled")
        self.campaigns.set_status(tenant_id, campaign_id, CampaignStatus.SENDING)

        recipients = self.audience.resolve(tenant_id, campaign.audience)
        result = CampaignLaunchResult(campaign_id=campaign_id, recipients=len(recipients))
        for recipient in recipients:
            request = SendRequest(
                tenant_id=tenant_id,
                recipient=recipient,
                event_type=campaign.event_type,
                channels=campaign.channels,
                template_id=campaign.template_id,
                variables=campaign.variables,
                priority=campaign.priority,
                metadata=NotificationMetadata(campaign_id=campaign.id),
                idempotency_key=f"campaign:{campaign.id}:{occurrence or 'once'}:{recipient.user_id}",
            )
            try:
                response = self.send(request, actor=actor)
            except QuotaExceeded:
                result.denied += 1
                continue
            except ValidationError as e:
                logger.warning(
                    "campaign_recipient_failed",
                    campaign_id=campaign_id,
                    user_id=recipient.user_id,
                    error=str(e),
                )
                result.errors += 1
                continue
            queued = sum(1 for d in response.decisions if d.notification_id)
            result.queued += queued
            result.denied += len(response.decisions) - queued

        self.campaigns.set_status(tenant_id, campaign_id, CampaignStatus.COMPLETED)
        logger.info("campaign_launched", **result.model_dump())
        self._publish(
            "campaign.launched",
            tenant_id,
            actor,
            campaign_id=campaign_id,
            occurrence=occurrence,
            recipients=result.recipients,
            queued=result.queued,
        )
        return result

    def cancel_campaign(self, tenant_id: str, campaign_id: str) -> Campaign:
        return self.campaigns.set_status(tenant_id, campaign_id, CampaignStatus.CANCELLED)

    def list_campaigns(self, tenant_id: str) -> List[Campaign]:
        return self.campaigns.list(tenant_id)

    # Schedules

    def create_schedule(self, schedule: Schedule, actor: str) -> Schedule:
        """Register a one-time, recurring or trigger schedule.

        Raises:
            ValidationError: Payload belongs to another tenant or names an
                unknown notification type
            NotFoundError: Unknown campaign
        """
        if schedule.send_request is not None:
            if schedule.send_request.tenant_id != schedule.tenant_id:
                raise ValidationError("Scheduled send must belong to the schedule's tenant")
            self.catalog.require(schedule.send_request.event_type)
        if schedule.campaign_id is not None:
            self.campaigns.get(schedule.tenant_id, schedule.campaign_id)
            self.campaigns.set_status(
                schedule.tenant_id, schedule.campaign_id, CampaignStatus.SCHEDULED
            )
        created = self.scheduler.register(schedule.model_copy(update={"created_by": actor}))
        self._publish("schedule.created", created.tenant_id, actor, schedule_id=created.id)
        return created

    def cancel_schedule(self, tenant_id: str, schedule_id: str, actor: str) -> Schedule:
        self.get_schedule(tenant_id, schedule_id)
        cancelled = self.scheduler.cancel(schedule_id, actor=actor)
        self._publish("schedule.cancelled", tenant_id, actor, schedule_id=schedule_id)
        return cancelled

    def get_schedule(self, tenant_id: str, schedule_id: str) -> Schedule:
        schedule = self.scheduler.store.get(schedule_id)
        if schedule is None or schedule.tenant_id != tenant_id:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    def list_schedules(
        self,
        tenant_id: str,
        kind: Optional[ScheduleKind] = None,
        status: Optional[ScheduleStatus] = None,
    ) -> List[Schedule]:
        return self.scheduler.store.list(tenant_id, kind=kind, status=status)

    def trigger_event(
        self,
        tenant_id: str,
        event: str,
        anchor_at: Optional[datetime] = None,
        recipient: Optional[Recipient] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> List[Schedule]:
        return self.scheduler.trigger(
            tenant_id,
            event,
            anchor_at or self.clock(),
            recipient=recipient,
            variables=variables,
        )

    def run_scheduler(self, now: Optional[datetime] = None) -> TickReport:
        return self.scheduler.tick(now)

    def _fire_schedule(self, schedule: Schedule, fire_time: datetime) -> None:
        # Same key for a re-fire of the same occurrence.
        occurrence = f"{schedule.id}:{schedule.execution_count + 1}"
        if schedule.campaign_id is not None:
            self.launch_campaign(
                schedule.tenant_id,
                schedule.campaign_id,
                actor="scheduler",
                occurrence=occurrence,
            )
            return
        request = schedule.send_request.model_copy(
            update={
                "scheduled_for": None,
                "metadata": schedule.send_request.metadata.model_copy(
                    update={"schedule_id": schedule.id}
                ),
                "idempotency_key": f"schedule:{occurrence}",
            }
        )
        try:
            self.send(request, actor="scheduler")
        except QuotaExceeded as e:
            logger.info("scheduled_send_denied", schedule_id=schedule.id, reason=e.reason)

    # Analytics and export

    def daily_stats(
        self,
        tenant_id: str,
        channel: Optional[Channel] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[DailyChannelStats]:
        self._require_capability(tenant_id, "analytics")
        return self.analytics.daily_stats(tenant_id, channel=channel, start=start, end=end)

    def totals(
        self, tenant_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> DeliveryStats:
        self._require_capability(tenant_id, "analytics")
        return self.analytics.totals(tenant_id, start=start, end=end)

    def campaign_stats(self, tenant_id: str, campaign_id: str) -> CampaignStats:
        self._require_capability(tenant_id, "analytics")
        self.campaigns.get(tenant_id, campaign_id)
        return self.analytics.campaign_stats(tenant_id, campaign_id)

    def export(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        fmt: ExportFormat = ExportFormat.CSV,
    ) -> str:
        self._require_capability(tenant_id, "export")
        try:
            return self.exporter.export(tenant_id, start, end, fmt)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def shutdown(self) -> None:
        self.workers.shutdown()
        self.dispatcher.shutdown()

    # Internals

    def _transition(
        self,
        notification_id: str,
        expected,
        target: NotificationStatus,
        reason: str,
        actor: str,
        at: datetime,
        **changes,
    ) -> Optional[Notification]:
        current = self.store.get(notification_id)
        updated = self.store.transition(
            notification_id, expected, target, reason=reason, at=at, **changes
        )
        if updated is not None:
            self._on_transition(updated, current.status, actor=actor)
        return updated

    def _on_transition(
        self,
        notification: Notification,
        previous: NotificationStatus,
        actor: str = "system",
    ) -> None:
        logger.info(
            "notification_status_changed",
            notification_id=notification.id,
            tenant_id=notification.tenant_id,
            channel=notification.channel.value,
            from_status=previous.value,
            to_status=notification.status.value,
        )
        try:
            self.analytics.record_transition(notification, previous, at=self.clock())
            if notification.quota_windows and self._never_dispatched(notification):
                self.quotas.release(
                    notification.tenant_id,
                    notification.channel,
                    notification.quota_windows,
                )
                # A manual retry of a released notification is not charged again
                self.store.update(notification.id, quota_windows=[])
            self._publish(
                "notification.status_changed",
                notification.tenant_id,
                actor,
                notification_id=notification.id,
                user_id=notification.recipient.user_id,
                channel=notification.channel.value,
                from_status=previous.value,
                to_status=notification.status.value,
                failure_reason=notification.failure_reason,
            )
        except Exception as e:
            logger.error(
                "transition_listener_failed",
                notification_id=notification.id,
                error=str(e),
                exc_info=True,
            )

    @staticmethod
    def _never_dispatched(notification: Notification) -> bool:
        """Cancelled before any attempt, or failed without a provider accepting it."""
        if notification.status is NotificationStatus.CANCELLED:
            return notification.attempt_count == 0
        if notification.status is NotificationStatus.FAILED:
            return notification.sent_at is None
        return False

    def _on_attempt(self, attempt: DeliveryAttempt) -> None:
        try:
            self.analytics.record_attempt(attempt)
        except Exception as e:
            logger.error("attempt_listener_failed", attempt_id=attempt.id, error=str(e))

    def _on_engagement(self, notification: Notification, metric: str, at: datetime) -> None:
        try:
            self.analytics.record_event(notification, metric, at)
        except Exception as e:
            logger.error(
                "engagement_listener_failed",
                notification_id=notification.id,
                metric=metric,
                error=str(e),
            )

    def _publish(self, event_type: str, tenant_id: str, actor: str, **metadata) -> None:
        dispatch_event(
            Event(
                event_type=event_type,
                tenant_id=tenant_id,
                actor=actor,
                metadata={k: v for k, v in metadata.items() if v is not None},
            )
        )

    def _require(self, tenant_id: str, notification_id: str) -> Notification:
        notification = self.store.get(notification_id)
        if notification is None or notification.tenant_id != tenant_id:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def _require_for_user(
        self, tenant_id: str, user_id: str, notification_id: str
    ) -> Notification:
        notification = self._require(tenant_id, notification_id)
        if notification.recipient.user_id != user_id or notification.deleted_at is not None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def _require_capability(self, tenant_id: str, capability: str) -> None:
        if not self.tenant_settings.get(tenant_id).capability_enabled(capability):
            raise PermissionDeniedError(
                f"{capability.replace('_', ' ').capitalize()} disabled for tenant {tenant_id}"
            )
