"""Preference and eligibility resolver.

Merges global controls, tenant toggles and quotas, user preferences and
quiet hours into a single per-send decision. Checks run in strict order
and the first denial wins:

    1. global kill-switch or channel off        -> deny(global_disabled)
    2. tenant channel or event type disabled    -> deny(tenant_disabled)
    3. tenant daily/monthly quota used up       -> deny(quota_exceeded)
    4. transactional/security/system category   -> skip opt-out checks
    5. user disabled the channel or category    -> deny(user_opted_out)
    6. inside quiet hours and not urgent        -> defer(window end)

Step 3 and the consumption both use the UTC windows of the effective send
time, which is the end of quiet hours for a deferred send. When every
check passes, one unit of quota is consumed atomically. Every decision
is logged as ``eligibility_decided``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import QuotaExceeded
from infrastructure.notifications.models import (
    Channel,
    NotificationCategory,
    NotificationPriority,
)
from infrastructure.notifications.preferences import (
    GlobalControlsStore,
    PreferenceStore,
    TenantSettingsStore,
)
from infrastructure.notifications.quota import DAY, MONTH, QuotaStore, window_key

logger = get_module_logger()


class EligibilityDenied(Enum):
    """Reason code for a deliberate non-send. Not an error."""

    GLOBAL_DISABLED = "global_disabled"
    TENANT_DISABLED = "tenant_disabled"
    QUOTA_EXCEEDED = "quota_exceeded"
    USER_OPTED_OUT = "user_opted_out"


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"
    DEFER = "defer"


@dataclass(frozen=True)
class EligibilityRequest:
    tenant_id: str
    user_id: str
    event_type: str
    category: NotificationCategory
    channel: Channel
    priority: NotificationPriority
    requested_at: datetime


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of an eligibility evaluation.

    Attributes:
        decision: ALLOW, DENY or DEFER
        reason: Denial reason when denied
        allow_at: Earliest send time when deferred
        quota_windows: Quota windows consumed for this send
        exhausted_window: Quota window that denied the send
    """

    decision: Decision
    reason: Optional[EligibilityDenied] = None
    allow_at: Optional[datetime] = None
    quota_windows: Tuple[str, ...] = field(default_factory=tuple)
    exhausted_window: Optional[str] = None

    @property
    def is_allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    @property
    def is_denied(self) -> bool:
        return self.decision is Decision.DENY

    @property
    def is_deferred(self) -> bool:
        return self.decision is Decision.DEFER

    @classmethod
    def allow(cls, quota_windows: Tuple[str, ...] = ()) -> "EligibilityDecision":
        return cls(Decision.ALLOW, quota_windows=quota_windows)

    @classmethod
    def deny(
        cls, reason: EligibilityDenied, exhausted_window: Optional[str] = None
    ) -> "EligibilityDecision":
        return cls(Decision.DENY, reason=reason, exhausted_window=exhausted_window)

    @classmethod
    def defer(
        cls, allow_at: datetime, quota_windows: Tuple[str, ...] = ()
    ) -> "EligibilityDecision":
        return cls(Decision.DEFER, allow_at=allow_at, quota_windows=quota_windows)


class EligibilityResolver:
    """Evaluate whether a (user, channel) send may happen now, later or never.

    Example:
        resolver = EligibilityResolver(global_store, tenant_store, prefs, quotas)
        decision = resolver.evaluate(EligibilityRequest(...))
        if decision.is_deferred:
            queue_at(decision.allow_at)
    """

    def __init__(
        self,
        global_store: GlobalControlsStore,
        tenant_store: TenantSettingsStore,
        preference_store: PreferenceStore,
        quota_store: QuotaStore,
        default_timezone: str = "UTC",
    ):
        self.global_store = global_store
        self.tenant_store = tenant_store
        self.preference_store = preference_store
        self.quota_store = quota_store
        self.default_timezone = default_timezone

    def evaluate(
        self, request: EligibilityRequest, consume_quota: bool = True
    ) -> EligibilityDecision:
        """Run the ordered checks for one send.

        Args:
            request: Send being evaluated
            consume_quota: Consume quota when the send is allowed or deferred

        Returns:
            EligibilityDecision
        """
        decision = self._evaluate(request, consume_quota)
        logger.info(
            "eligibility_decided",
            tenant_id=request.tenant_id,
            user_id=request.user_id,
            event_type=request.event_type,
            channel=request.channel.value,
            priority=request.priority.value,
            decision=decision.decision.value,
            reason=decision.reason.value if decision.reason else None,
            allow_at=decision.allow_at.isoformat() if decision.allow_at else None,
        )
        return decision

    def _evaluate(
        self, request: EligibilityRequest, consume_quota: bool
    ) -> EligibilityDecision:
        channel = request.channel

        if not self.global_store.get().channel_enabled(channel):
            return EligibilityDecision.deny(EligibilityDenied.GLOBAL_DISABLED)

        tenant = self.tenant_store.get(request.tenant_id)
        if (
            not tenant.channel_enabled(channel)
            or request.event_type in tenant.disabled_event_types
        ):
            return EligibilityDecision.deny(EligibilityDenied.TENANT_DISABLED)

        preference = self.preference_store.get(request.tenant_id, request.user_id)
        allow_at = None
        if (
            preference.quiet_hours is not None
            and request.priority is not NotificationPriority.URGENT
        ):
            tz_name = preference.timezone or tenant.timezone or self.default_timezone
            allow_at = preference.quiet_hours.deferral_until(
                request.requested_at, tz_name
            )

        # Checked and charged against the windows of the effective send time
        send_at = allow_at or request.requested_at
        daily, monthly = tenant.quota_limits(channel)
        limits = {
            window_key(DAY, send_at): daily,
            window_key(MONTH, send_at): monthly,
        }
        exhausted = self._exhausted(request, limits)
        if exhausted is not None:
            return EligibilityDecision.deny(
                EligibilityDenied.QUOTA_EXCEEDED, exhausted_window=exhausted
            )

        if not request.category.bypasses_opt_out and preference.opted_out_of(
            channel, request.category, request.event_type
        ):
            return EligibilityDecision.deny(EligibilityDenied.USER_OPTED_OUT)

        windows: Tuple[str, ...] = ()
        if consume_quota:
            try:
                self.quota_store.try_consume(request.tenant_id, channel, limits)
            except QuotaExceeded as e:
                logger.info(
                    "quota_exhausted",
                    tenant_id=request.tenant_id,
                    channel=channel.value,
                    window=e.window,
                )
                return EligibilityDecision.deny(
                    EligibilityDenied.QUOTA_EXCEEDED, exhausted_window=e.window
                )
            windows = tuple(limits)

        if allow_at is not None:
            return EligibilityDecision.defer(allow_at, quota_windows=windows)
        return EligibilityDecision.allow(quota_windows=windows)

    def _exhausted(
        self, request: EligibilityRequest, limits: Dict[str, Optional[int]]
    ) -> Optional[str]:
        for key, limit in limits.items():
            if limit is None:
                continue
            if self.quota_store.usage(request.tenant_id, request.channel, key) >= limit:
                return key
        return None
