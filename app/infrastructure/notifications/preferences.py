"""User preferences, tenant settings and global controls.

Three layers feed the eligibility resolver:

- GlobalControls: super-admin kill-switch above every tenant
- TenantNotificationSettings: per-tenant channel/type toggles, quotas,
  capability gates and sender identity/branding
- UserPreference: per (tenant, user) channel and category opt-outs,
  quiet hours, language and digest frequency

Stores are injectable; the in-memory implementations return defaults for
records that were never written and copies on every read.
"""

import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from infrastructure.notifications.models import (
    Channel,
    NotificationCategory,
    utc_now,
)
from infrastructure.notifications.templates import Branding

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

CAPABILITIES = (
    "notifications",
    "campaigns",
    "custom_templates",
    "branded_templates",
    "analytics",
    "export",
    "webhooks",
)


def parse_hhmm(value: str) -> time:
    match = _HHMM.match(value)
    if not match:
        raise ValueError(f"Time must be HH:MM (24h): {value}")
    return time(int(match.group(1)), int(match.group(2)))


def validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


class DigestFrequency(Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


class QuietHours(BaseModel):
    """Local time window during which non-urgent sends are deferred.

    ``start`` may be later than ``end``, in which case the window wraps
    midnight (22:00 to 08:00).
    """

    enabled: bool = True
    start: str = "22:00"
    end: str = "08:00"
    timezone: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone(v) if v else v

    def deferral_until(self, at: datetime, tz_name: str) -> Optional[datetime]:
        """Earliest UTC time outside the window, or None when ``at`` is outside.

        Args:
            at: Requested send time (timezone aware)
            tz_name: Fallback timezone when the window has none

        Returns:
            The window end converted to UTC, or None
        """
        if not self.enabled:
            return None
        start = parse_hhmm(self.start)
        end = parse_hhmm(self.end)
        if start == end:
            return None

        zone = ZoneInfo(self.timezone or tz_name)
        local = at.astimezone(zone)
        local_time = local.time().replace(tzinfo=None)

        if start < end:
            inside = start <= local_time < end
            end_day = local.date()
        else:
            inside = local_time >= start or local_time < end
            end_day = local.date() + timedelta(days=1) if local_time >= start else local.date()

        if not inside:
            return None
        window_end = datetime.combine(end_day, end, tzinfo=zone)
        return window_end.astimezone(timezone.utc)


class UserPreference(BaseModel):
    """Per (tenant, user) notification preferences.

    Transactional, security and system categories cannot be disabled.
    """

    tenant_id: str
    user_id: str
    channels: Dict[Channel, bool] = Field(
        default_factory=lambda: {c: True for c in Channel}
    )
    disabled_categories: Set[NotificationCategory] = Field(default_factory=set)
    disabled_event_types: Set[str] = Field(default_factory=set)
    quiet_hours: Optional[QuietHours] = None
    timezone: Optional[str] = None
    language: str = "en"
    digest_frequency: DigestFrequency = DigestFrequency.IMMEDIATE
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("disabled_categories")
    @classmethod
    def validate_categories(
        cls, v: Set[NotificationCategory]
    ) -> Set[NotificationCategory]:
        locked = {c for c in v if c.bypasses_opt_out}
        if locked:
            names = ", ".join(sorted(c.value for c in locked))
            raise ValueError(f"Categories cannot be disabled: {names}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone(v) if v else v

    def channel_enabled(self, channel: Channel) -> bool:
        return self.channels.get(channel, True)

    def opted_out_of(self, channel: Channel, category: NotificationCategory, event_type: str) -> bool:
        return (
            not self.channel_enabled(channel)
            or category in self.disabled_categories
            or event_type in self.disabled_event_types
        )


class TenantNotificationSettings(BaseModel):
    """Per-tenant feature toggles, quotas and sender identity.

    ``super_admin_disabled`` holds capability names (see CAPABILITIES) and
    channel values that are switched off regardless of the tenant-level
    toggles.
    """

    tenant_id: str
    notifications_enabled: bool = True
    channels_enabled: Dict[Channel, bool] = Field(
        default_factory=lambda: {c: True for c in Channel}
    )
    disabled_event_types: Set[str] = Field(default_factory=set)
    daily_quota: Dict[Channel, Optional[int]] = Field(default_factory=dict)
    monthly_quota: Dict[Channel, Optional[int]] = Field(default_factory=dict)
    campaigns_enabled: bool = True
    custom_templates_enabled: bool = True
    branded_templates_enabled: bool = False
    analytics_enabled: bool = True
    export_enabled: bool = True
    webhooks_enabled: bool = True
    super_admin_disabled: Set[str] = Field(default_factory=set)
    provider_overrides: Dict[Channel, str] = Field(default_factory=dict)
    branding: Branding = Field(default_factory=Branding)
    timezone: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("daily_quota", "monthly_quota")
    @classmethod
    def validate_quota(cls, v: Dict[Channel, Optional[int]]) -> Dict[Channel, Optional[int]]:
        for channel, limit in v.items():
            if limit is not None and limit < 0:
                raise ValueError(f"Quota for {channel.value} cannot be negative")
        return v

    @field_validator("super_admin_disabled")
    @classmethod
    def validate_overrides(cls, v: Set[str]) -> Set[str]:
        known = set(CAPABILITIES) | {c.value for c in Channel}
        unknown = v - known
        if unknown:
            raise ValueError(f"Unknown capabilities: {', '.join(sorted(unknown))}")
        return v

    def capability_enabled(self, name: str) -> bool:
        """Tenant toggle for a capability, after super-admin overrides."""
        if name in self.super_admin_disabled:
            return False
        return getattr(self, f"{name}_enabled", True)

    def channel_enabled(self, channel: Channel) -> bool:
        if not self.capability_enabled("notifications"):
            return False
        if channel.value in self.super_admin_disabled:
            return False
        if channel is Channel.WEBHOOK and not self.capability_enabled("webhooks"):
            return False
        return self.channels_enabled.get(channel, True)

    def quota_limits(self, channel: Channel) -> Tuple[Optional[int], Optional[int]]:
        return self.daily_quota.get(channel), self.monthly_quota.get(channel)


class GlobalControls(BaseModel):
    """Platform-wide kill-switch managed by super admins."""

    notifications_enabled: bool = True
    disabled_channels: Set[Channel] = Field(default_factory=set)
    updated_by: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    def channel_enabled(self, channel: Channel) -> bool:
        return self.notifications_enabled and channel not in self.disabled_channels


class PreferenceStore(ABC):
    @abstractmethod
    def get(self, tenant_id: str, user_id: str) -> UserPreference:
        """Stored preferences, or defaults when none were saved."""

    @abstractmethod
    def save(self, preference: UserPreference) -> UserPreference:
        pass


class TenantSettingsStore(ABC):
    @abstractmethod
    def get(self, tenant_id: str) -> TenantNotificationSettings:
        """Stored settings, or defaults when none were saved."""

    @abstractmethod
    def save(self, settings: TenantNotificationSettings) -> TenantNotificationSettings:
        pass

    @abstractmethod
    def delete(self, tenant_id: str) -> None:
        pass


class GlobalControlsStore(ABC):
    @abstractmethod
    def get(self) -> GlobalControls:
        pass

    @abstractmethod
    def save(self, controls: GlobalControls) -> GlobalControls:
        pass


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[Tuple[str, str], UserPreference] = {}

    def get(self, tenant_id: str, user_id: str) -> UserPreference:
        with self._lock:
            item = self._items.get((tenant_id, user_id))
        if item is None:
            return UserPreference(tenant_id=tenant_id, user_id=user_id)
        return item.model_copy(deep=True)

    def save(self, preference: UserPreference) -> UserPreference:
        stored = preference.model_copy(update={"updated_at": utc_now()}, deep=True)
        with self._lock:
            self._items[(preference.tenant_id, preference.user_id)] = stored
        return stored.model_copy(deep=True)


class InMemoryTenantSettingsStore(TenantSettingsStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, TenantNotificationSettings] = {}

    def get(self, tenant_id: str) -> TenantNotificationSettings:
        with self._lock:
            item = self._items.get(tenant_id)
        if item is None:
            return TenantNotificationSettings(tenant_id=tenant_id)
        return item.model_copy(deep=True)

    def save(self, settings: TenantNotificationSettings) -> TenantNotificationSettings:
        stored = settings.model_copy(update={"updated_at": utc_now()}, deep=True)
        with self._lock:
            self._items[settings.tenant_id] = stored
        return stored.model_copy(deep=True)

    def delete(self, tenant_id: str) -> None:
        with self._lock:
            self._items.pop(tenant_id, None)


class InMemoryGlobalControlsStore(GlobalControlsStore):
    def __init__(self, notifications_enabled: bool = True):
        self._lock = threading.Lock()
        self._controls = GlobalControls(notifications_enabled=notifications_enabled)

    def get(self) -> GlobalControls:
        with self._lock:
            return self._controls.model_copy(deep=True)

    def save(self, controls: GlobalControls) -> GlobalControls:
        stored = controls.model_copy(update={"updated_at": utc_now()}, deep=True)
        with self._lock:
            self._controls = stored
        return stored.model_copy(deep=True)
