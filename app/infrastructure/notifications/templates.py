"""Template store.

Templates are keyed by (tenant, event type, channel, language). A tenant
with no template of its own falls back to the system default for the same
event and channel. System templates (``is_system``) are immutable and can
never be deleted.

Resolution order for (tenant, event, channel, language):
    1. tenant template in the requested language
    2. tenant template in the default language
    3. system template in the requested language
    4. system template in the default language
"""

import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from infrastructure.notifications.errors import NotFoundError, PermissionDeniedError
from infrastructure.notifications.models import Channel, new_id, utc_now

DEFAULT_LANGUAGE = "en"

PLACEHOLDER_PATTERN = re.compile(r"#\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}")

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class Branding(BaseModel):
    """Branding fields; template-level values override tenant values."""

    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    logo_url: Optional[str] = None
    brand_color: Optional[str] = None
    footer_text: Optional[str] = None

    @field_validator("brand_color")
    @classmethod
    def validate_brand_color(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HEX_COLOR.match(v):
            raise ValueError(f"brand_color must be a hex color: {v}")
        return v

    def merged_over(self, base: Optional["Branding"]) -> "Branding":
        """Return ``base`` with every field set on ``self`` taking precedence."""
        if base is None:
            return self.model_copy()
        values = base.model_dump()
        values.update(self.model_dump(exclude_none=True))
        return Branding(**values)


class NotificationTemplate(BaseModel):
    """Reusable message body for one event type, channel and language.

    ``tenant_id`` is None for system defaults.
    """

    id: str = Field(default_factory=new_id)
    tenant_id: Optional[str] = None
    event_type: str = Field(..., min_length=1)
    channel: Channel
    language: str = DEFAULT_LANGUAGE
    name: Optional[str] = None
    subject: Optional[str] = None
    body: str = Field(..., min_length=1)
    html_body: Optional[str] = None
    branding: Optional[Branding] = None
    is_system: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def variables(self) -> List[str]:
        """Placeholder names used anywhere in the template, in order."""
        seen: Dict[str, None] = {}
        for text in (self.subject, self.body, self.html_body):
            for name in PLACEHOLDER_PATTERN.findall(text or ""):
                seen.setdefault(name, None)
        return list(seen)


class TemplateUpdate(BaseModel):
    """Editable template fields. Unset fields are left unchanged."""

    name: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = Field(default=None, min_length=1)
    html_body: Optional[str] = None
    branding: Optional[Branding] = None
    is_active: Optional[bool] = None


class TemplateStore(ABC):
    """Storage contract for notification templates."""

    @abstractmethod
    def add(self, template: NotificationTemplate) -> NotificationTemplate:
        pass

    @abstractmethod
    def get(self, template_id: str) -> Optional[NotificationTemplate]:
        pass

    @abstractmethod
    def update(
        self, template_id: str, changes: TemplateUpdate
    ) -> NotificationTemplate:
        pass

    @abstractmethod
    def delete(self, template_id: str) -> None:
        pass

    @abstractmethod
    def list(
        self,
        tenant_id: Optional[str] = None,
        event_type: Optional[str] = None,
        channel: Optional[Channel] = None,
        include_system: bool = True,
    ) -> List[NotificationTemplate]:
        pass

    def resolve(
        self,
        tenant_id: str,
        event_type: str,
        channel: Channel,
        language: Optional[str] = None,
    ) -> NotificationTemplate:
        """Find the best active template for a send.

        Raises:
            NotFoundError: No tenant or system template matches.
        """
        language = language or DEFAULT_LANGUAGE
        candidates = [
            t
            for t in self.list(event_type=event_type, channel=channel)
            if t.is_active and t.tenant_id in (tenant_id, None)
        ]
        languages = [language] if language == DEFAULT_LANGUAGE else [language, DEFAULT_LANGUAGE]
        for owner in (tenant_id, None):
            for lang in languages:
                for template in candidates:
                    if template.tenant_id == owner and template.language == lang:
                        return template
        raise NotFoundError(
            f"No template for event {event_type} on {channel.value} "
            f"(tenant {tenant_id}, language {language})"
        )


class InMemoryTemplateStore(TemplateStore):
    """Thread-safe in-memory template store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._templates: Dict[str, NotificationTemplate] = {}

    def add(self, template: NotificationTemplate) -> NotificationTemplate:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
            return template.model_copy(deep=True)

    def get(self, template_id: str) -> Optional[NotificationTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def update(
        self, template_id: str, changes: TemplateUpdate
    ) -> NotificationTemplate:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                raise NotFoundError(f"Template {template_id} not found")
            if template.is_system:
                raise PermissionDeniedError(
                    f"System template {template_id} cannot be modified"
                )
            data = template.model_dump()
            data.update(changes.model_dump(exclude_unset=True))
            data["updated_at"] = utc_now()
            updated = NotificationTemplate.model_validate(data)
            self._templates[template_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, template_id: str) -> None:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                raise NotFoundError(f"Template {template_id} not found")
            if template.is_system:
                raise PermissionDeniedError(
                    f"System template {template_id} cannot be deleted"
                )
            del self._templates[template_id]

    def list(
        self,
        tenant_id: Optional[str] = None,
        event_type: Optional[str] = None,
        channel: Optional[Channel] = None,
        include_system: bool = True,
    ) -> List[NotificationTemplate]:
        with self._lock:
            templates = list(self._templates.values())
        result = []
        for template in templates:
            if template.tenant_id is None:
                if not include_system:
                    continue
            elif tenant_id is not None and template.tenant_id != tenant_id:
                continue
            if event_type is not None and template.event_type != event_type:
                continue
            if channel is not None and template.channel is not channel:
                continue
            result.append(template.model_copy(deep=True))
        return sorted(result, key=lambda t: (t.event_type, t.channel.value, t.language))


def seed_system_templates(store: TemplateStore) -> None:
    """Install the built-in system templates every tenant falls back to."""
    defaults = [
        ("order_confirmed", Channel.EMAIL, "Order #{order_id} confirmed",
         "Hi #{name}, your order #{order_id} is confirmed. Total: #{total}."),
        ("order_confirmed", Channel.SMS, None,
         "Order #{order_id} confirmed. Total #{total}."),
        ("order_confirmed", Channel.PUSH, "Order confirmed",
         "Your order #{order_id} is confirmed."),
        ("order_confirmed", Channel.IN_APP, "Order confirmed",
         "Your order #{order_id} is confirmed."),
        ("order_confirmed", Channel.WEBHOOK, "order.confirmed",
         "Order #{order_id} confirmed."),
        ("order_shipped", Channel.EMAIL, "Order #{order_id} shipped",
         "Hi #{name}, your order #{order_id} is on its way."),
        ("order_shipped", Channel.SMS, None, "Order #{order_id} has shipped."),
        ("payment_failed", Channel.EMAIL, "Payment failed for order #{order_id}",
         "Hi #{name}, we could not process the payment for order #{order_id}."),
        ("payment_failed", Channel.SMS, None,
         "Payment for order #{order_id} failed. Please retry."),
        ("password_reset", Channel.EMAIL, "Reset your password",
         "Hi #{name}, use this link to reset your password: #{reset_url}"),
        ("system_maintenance", Channel.IN_APP, "Scheduled maintenance",
         "The store will be under maintenance at #{window}."),
        ("promotional_campaign", Channel.EMAIL, "#{headline}",
         "Hi #{name}, #{message}"),
        ("promotional_campaign", Channel.PUSH, "#{headline}", "#{message}"),
    ]
    for event_type, channel, subject, body in defaults:
        store.add(
            NotificationTemplate(
                event_type=event_type,
                channel=channel,
                subject=subject,
                body=body,
                is_system=True,
            )
        )
