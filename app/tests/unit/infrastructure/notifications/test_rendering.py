"""Unit tests for template rendering and channel payloads."""

from datetime import datetime, timezone

import pytest

from infrastructure.notifications.errors import TemplateRenderError
from infrastructure.notifications.models import Channel
from infrastructure.notifications.rendering import (
    ELLIPSIS,
    TemplateRenderer,
    render_text,
    truncate,
)
from infrastructure.notifications.templates import Branding, NotificationTemplate

VARIABLES = {"name": "Asha", "order_id": "ORD-42", "total": "₹500"}


@pytest.fixture
def renderer():
    return TemplateRenderer(
        sms_max_length=160,
        push_title_max_length=20,
        push_body_max_length=40,
        sms_sender_id="SHOPCO",
        default_sender=Branding(from_email="noreply@shop.example", from_name="Shop"),
    )


def _template(channel, subject="Order #{order_id} confirmed", body="Hi #{name}, total #{total}.", **kwargs):
    return NotificationTemplate(
        event_type="order_confirmed", channel=channel, subject=subject, body=body, **kwargs
    )


@pytest.mark.unit
class TestRenderText:
    def test_substitutes_variables(self):
        """Test every placeholder is replaced with its value."""
        assert (
            render_text("Hi #{name}, order #{order_id}", VARIABLES)
            == "Hi Asha, order ORD-42"
        )

    def test_missing_variable_raises(self):
        """Test a placeholder with no value is an error, never a blank."""
        with pytest.raises(TemplateRenderError) as exc_info:
            render_text("Hi #{name}, #{coupon}", VARIABLES, template_id="tpl-1")

        assert exc_info.value.variable == "coupon"
        assert exc_info.value.template_id == "tpl-1"
        assert str(exc_info.value) == "missing variable coupon"

    def test_none_value_is_missing(self):
        """Test a None value counts as missing."""
        with pytest.raises(TemplateRenderError):
            render_text("#{name}", {"name": None})

    def test_single_pass_substitution(self):
        """Test values containing placeholders are not expanded again."""
        result = render_text("#{a}", {"a": "#{b}", "b": "nope"})

        assert result == "#{b}"

    def test_escape(self):
        """Test escape=True HTML-escapes substituted values only."""
        result = render_text("<b>#{name}</b>", {"name": "<script>"}, escape=True)

        assert result == "<b>&lt;script&gt;</b>"

    def test_empty_text(self):
        """Test None renders as an empty string."""
        assert render_text(None, {}) == ""


@pytest.mark.unit
class TestTruncate:
    def test_short_text_unchanged(self):
        """Test text within the limit is returned as is."""
        assert truncate("hello", 5) == "hello"

    def test_long_text_ends_with_ellipsis(self):
        """Test cut text is exactly the limit and ends with an ellipsis."""
        result = truncate("a" * 50, 10)

        assert len(result) == 10
        assert result.endswith(ELLIPSIS)


@pytest.mark.unit
class TestTemplateRenderer:
    def test_email_payload(self, renderer):
        """Test email renders subject, HTML paragraphs, text and sender."""
        content = renderer.render(
            _template(Channel.EMAIL), VARIABLES, notification_id="n-1", tenant_id="t"
        )

        assert content.title == "Order ORD-42 confirmed"
        assert content.payload["subject"] == "Order ORD-42 confirmed"
        assert content.payload["html"] == "<p>Hi Asha, total ₹500.</p>"
        assert content.payload["text"] == "Hi Asha, total ₹500."
        assert content.payload["from_email"] == "noreply@shop.example"

    def test_email_html_body_escapes_values(self, renderer):
        """Test variables are escaped inside an HTML body."""
        template = _template(Channel.EMAIL, html_body="<p>Hi #{name}</p>")

        content = renderer.render(
            template, {**VARIABLES, "name": "<b>Asha</b>"}, notification_id="n-1", tenant_id="t"
        )

        assert content.payload["html"] == "<p>Hi &lt;b&gt;Asha&lt;/b&gt;</p>"

    def test_email_branding_requires_entitlement(self, renderer):
        """Test visual branding is applied only when the tenant is entitled."""
        branding = Branding(
            logo_url="https://cdn.example/logo.png", footer_text="Shop Co, Pune"
        )

        plain = renderer.render(
            _template(Channel.EMAIL), VARIABLES, "n-1", "t", branding=branding
        )
        branded = renderer.render(
            _template(Channel.EMAIL), VARIABLES, "n-1", "t",
            branding=branding, branding_entitled=True,
        )

        assert "logo.png" not in plain.payload["html"]
        assert "logo.png" in branded.payload["html"]
        assert branded.payload["text"].endswith("Shop Co, Pune")

    def test_tenant_sender_overrides_default(self, renderer):
        """Test the tenant's from address overrides the platform default."""
        content = renderer.render(
            _template(Channel.EMAIL), VARIABLES, "n-1", "t",
            branding=Branding(from_email="orders@tenant.example"),
        )

        assert content.payload["from_email"] == "orders@tenant.example"
        assert content.payload["from_name"] == "Shop"

    def test_email_action_link(self, renderer):
        """Test an action link is appended to HTML and text."""
        content = renderer.render(
            _template(Channel.EMAIL), VARIABLES, "n-1", "t",
            action_url="https://shop.example/orders/42", action_label="Track",
        )

        assert 'href="https://shop.example/orders/42"' in content.payload["html"]
        assert content.payload["text"].endswith("Track: https://shop.example/orders/42")

    def test_sms_payload(self, renderer):
        """Test SMS renders the body with the sender id."""
        content = renderer.render(_template(Channel.SMS, subject=None), VARIABLES, "n-1", "t")

        assert content.payload == {"text": "Hi Asha, total ₹500.", "sender_id": "SHOPCO"}

    def test_sms_truncated(self, renderer):
        """Test SMS text is bounded to the SMS limit."""
        content = renderer.render(
            _template(Channel.SMS, subject=None, body="#{name}"),
            {"name": "x" * 500}, "n-1", "t",
        )

        assert len(content.payload["text"]) == 160

    def test_push_payload_truncates_title_and_body(self, renderer):
        """Test push title and body are cut with an ellipsis."""
        content = renderer.render(
            _template(Channel.PUSH, subject="#{name}", body="#{name}"),
            {"name": "y" * 100}, "n-1", "t", action_url="app://orders/42",
        )

        assert len(content.payload["title"]) == 20
        assert len(content.payload["body"]) == 40
        assert content.payload["data"] == {
            "notification_id": "n-1",
            "event_type": "order_confirmed",
            "action_url": "app://orders/42",
        }

    def test_webhook_envelope(self, renderer):
        """Test webhooks get an event envelope with the variables and rendered text."""
        at = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

        content = renderer.render(
            _template(Channel.WEBHOOK), VARIABLES, "n-1", "tenant-1", timestamp=at
        )

        envelope = content.payload["envelope"]
        assert envelope["event"] == "order_confirmed"
        assert envelope["tenant_id"] == "tenant-1"
        assert envelope["notification_id"] == "n-1"
        assert envelope["timestamp"] == at.isoformat()
        assert envelope["data"]["order_id"] == "ORD-42"
        assert envelope["data"]["title"] == "Order ORD-42 confirmed"

    def test_in_app_payload(self, renderer):
        """Test in-app notifications carry title, body and action."""
        content = renderer.render(
            _template(Channel.IN_APP), VARIABLES, "n-1", "t",
            action_url="/orders/42", action_label="View order",
        )

        assert content.payload == {
            "title": "Order ORD-42 confirmed",
            "body": "Hi Asha, total ₹500.",
            "action_url": "/orders/42",
            "action_label": "View order",
        }

    def test_missing_variable_in_subject_raises(self, renderer):
        """Test rendering fails before any payload is built."""
        with pytest.raises(TemplateRenderError):
            renderer.render(_template(Channel.PUSH), {"name": "Asha"}, "n-1", "t")
