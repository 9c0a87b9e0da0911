"""Template rendering.

Substitutes ``#{variable}`` placeholders and builds the channel-specific
payload stored on the notification:

- email: subject, HTML and plain text, sender identity, optional branding
- sms: single text bounded to the SMS length limit
- push: title and body bounded with an ellipsis, plus a data map
- webhook: JSON event envelope
- in_app: title, body and action link

A placeholder with no value is a hard error (TemplateRenderError), never a
silent blank. Substitution is single-pass: values that themselves contain
``#{...}`` are not expanded again.

Usage:
    renderer = TemplateRenderer.from_settings(settings.notifications)
    content = renderer.render(
        template,
        {"name": "Asha", "order_id": "ORD-42", "total": "₹500"},
        notification_id="n-1",
        tenant_id="tenant-1",
    )
"""

import html
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from infrastructure.notifications.errors import TemplateRenderError
from infrastructure.notifications.models import Channel, utc_now
from infrastructure.notifications.templates import (
    PLACEHOLDER_PATTERN,
    Branding,
    NotificationTemplate,
)

logger = structlog.get_logger()

ELLIPSIS = "…"


class EmailPayload(BaseModel):
    subject: str
    html: str
    text: str
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None


class SmsPayload(BaseModel):
    text: str
    sender_id: Optional[str] = None


class PushPayload(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)


class WebhookPayload(BaseModel):
    envelope: Dict[str, Any]


class InAppPayload(BaseModel):
    title: str
    body: str
    action_url: Optional[str] = None
    action_label: Optional[str] = None


@dataclass
class RenderedContent:
    """Rendered title/body plus the channel payload as a plain dict."""

    title: str
    body: str
    payload: Dict[str, Any] = field(default_factory=dict)


def render_text(
    text: Optional[str],
    variables: Mapping[str, Any],
    template_id: Optional[str] = None,
    escape: bool = False,
) -> str:
    """Substitute ``#{name}`` placeholders in ``text``.

    Args:
        text: Template text, None renders as an empty string
        variables: Variable map; values are converted with ``str()``
        template_id: Template id for error reporting
        escape: HTML-escape substituted values

    Returns:
        Rendered text

    Raises:
        TemplateRenderError: A placeholder has no value (or a None value)

    Example:
        render_text("Hi #{name}", {"name": "Asha"})  # "Hi Asha"
    """
    if not text:
        return ""

    def _substitute(match) -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            logger.warning(
                "template_render_failed",
                template_id=template_id,
                missing_variable=name,
            )
            raise TemplateRenderError(name, template_id=template_id)
        value = str(value)
        return html.escape(value) if escape else value

    return PLACEHOLDER_PATTERN.sub(_substitute, text)


def truncate(text: str, limit: int) -> str:
    """Bound ``text`` to ``limit`` characters, ending in an ellipsis if cut."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + ELLIPSIS


def _text_to_html(text: str) -> str:
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    return "".join(
        f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs
    )


def apply_html_branding(content: str, branding: Branding) -> str:
    """Wrap an HTML body with the logo header and footer."""
    color = branding.brand_color or "#333333"
    parts = ['<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">']
    if branding.logo_url:
        alt = html.escape(branding.from_name or "")
        parts.append(
            f'<div style="background:{color};padding:16px">'
            f'<img src="{html.escape(branding.logo_url)}" alt="{alt}" height="40"></div>'
        )
    parts.append(f'<div style="padding:16px">{content}</div>')
    if branding.footer_text:
        parts.append(
            f'<div style="border-top:3px solid {color};color:#666666;'
            f'font-size:12px;padding:16px">{html.escape(branding.footer_text)}</div>'
        )
    parts.append("</div>")
    return "".join(parts)


class TemplateRenderer:
    """Render templates into channel payloads.

    Attributes:
        sms_max_length: SMS text limit
        push_title_max_length: Push title limit
        push_body_max_length: Push body limit
        email_subject_max_length: Email subject limit
        sms_sender_id: Default SMS sender id
    """

    def __init__(
        self,
        sms_max_length: int = 1600,
        push_title_max_length: int = 65,
        push_body_max_length: int = 240,
        email_subject_max_length: int = 998,
        sms_sender_id: Optional[str] = None,
        default_sender: Optional[Branding] = None,
    ):
        self.sms_max_length = sms_max_length
        self.push_title_max_length = push_title_max_length
        self.push_body_max_length = push_body_max_length
        self.email_subject_max_length = email_subject_max_length
        self.sms_sender_id = sms_sender_id
        self.default_sender = default_sender or Branding()

    @classmethod
    def from_settings(cls, notification_settings, provider_settings=None):
        default_sender = None
        sender_id = None
        if provider_settings is not None:
            default_sender = Branding(
                from_email=provider_settings.EMAIL_FROM_ADDRESS,
                from_name=provider_settings.EMAIL_FROM_NAME,
                reply_to=provider_settings.EMAIL_REPLY_TO,
            )
            sender_id = provider_settings.SMS_SENDER_ID
        return cls(
            sms_max_length=notification_settings.sms_max_length,
            push_title_max_length=notification_settings.push_title_max_length,
            push_body_max_length=notification_settings.push_body_max_length,
            email_subject_max_length=notification_settings.email_subject_max_length,
            sms_sender_id=sender_id,
            default_sender=default_sender,
        )

    def render(
        self,
        template: NotificationTemplate,
        variables: Mapping[str, Any],
        notification_id: str,
        tenant_id: str,
        branding: Optional[Branding] = None,
        branding_entitled: bool = False,
        action_url: Optional[str] = None,
        action_label: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> RenderedContent:
        """Render ``template`` for its channel.

        Args:
            template: Resolved template
            variables: Variable map
            notification_id: Id of the notification being built
            tenant_id: Owning tenant
            branding: Tenant branding and sender identity
            branding_entitled: Whether the tenant may use visual branding
            action_url: Optional action link
            action_label: Optional action link label
            timestamp: Envelope timestamp for webhooks (default now)

        Returns:
            RenderedContent with title, body and the payload dict

        Raises:
            TemplateRenderError: A placeholder has no value
        """
        title = render_text(template.subject, variables, template.id)
        body = render_text(template.body, variables, template.id)

        if template.channel is Channel.EMAIL:
            effective = self._effective_branding(template, branding)
            payload = self._email(
                template, variables, title, body, effective, branding_entitled,
                action_url, action_label,
            )
            return RenderedContent(payload["subject"], body, payload)

        if template.channel is Channel.SMS:
            text = body if not action_url else f"{body} {action_url}"
            payload = SmsPayload(
                text=truncate(text, self.sms_max_length), sender_id=self.sms_sender_id
            )
            return RenderedContent(title, payload.text, payload.model_dump())

        if template.channel is Channel.PUSH:
            data = {"notification_id": notification_id, "event_type": template.event_type}
            if action_url:
                data["action_url"] = action_url
            payload = PushPayload(
                title=truncate(title, self.push_title_max_length),
                body=truncate(body, self.push_body_max_length),
                data=data,
            )
            return RenderedContent(payload.title, payload.body, payload.model_dump())

        if template.channel is Channel.WEBHOOK:
            data = {str(k): v for k, v in variables.items()}
            data.update({"title": title, "body": body})
            if action_url:
                data["action_url"] = action_url
            envelope = {
                "event": template.event_type,
                "tenant_id": tenant_id,
                "timestamp": (timestamp or utc_now()).isoformat(),
                "notification_id": notification_id,
                "data": data,
            }
            return RenderedContent(
                title, body, WebhookPayload(envelope=envelope).model_dump()
            )

        payload = InAppPayload(
            title=title, body=body, action_url=action_url, action_label=action_label
        )
        return RenderedContent(title, body, payload.model_dump())

    def _effective_branding(
        self, template: NotificationTemplate, branding: Optional[Branding]
    ) -> Branding:
        effective = (branding or Branding()).merged_over(self.default_sender)
        if template.branding is not None:
            effective = template.branding.merged_over(effective)
        return effective

    def _email(
        self,
        template: NotificationTemplate,
        variables: Mapping[str, Any],
        subject: str,
        text: str,
        branding: Branding,
        branding_entitled: bool,
        action_url: Optional[str],
        action_label: Optional[str],
    ) -> Dict[str, Any]:
        if template.html_body:
            content = render_text(template.html_body, variables, template.id, escape=True)
        else:
            content = _text_to_html(text)

        if action_url:
            label = action_label or "View"
            content += (
                f'<p><a href="{html.escape(action_url)}">{html.escape(label)}</a></p>'
            )
            text = f"{text}\n\n{label}: {action_url}"

        if branding_entitled:
            content = apply_html_branding(content, branding)
            if branding.footer_text:
                text = f"{text}\n\n--\n{branding.footer_text}"

        return EmailPayload(
            subject=truncate(subject, self.email_subject_max_length),
            html=content,
            text=text,
            from_email=branding.from_email,
            from_name=branding.from_name,
            reply_to=branding.reply_to,
        ).model_dump()
