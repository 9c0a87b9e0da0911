"""Unit tests for the notification type catalogue."""

import pytest

from infrastructure.notifications.catalog import (
    MARKETING_EXPIRY,
    NotificationTypeCatalog,
)
from infrastructure.notifications.errors import ValidationError
from infrastructure.notifications.models import (
    Channel,
    ExpiryAction,
    NotificationCategory,
    NotificationPriority,
    NotificationTypeDefinition,
)


@pytest.mark.unit
class TestNotificationTypeCatalog:
    def test_default_types_are_registered(self):
        """Test the built-in catalogue knows the core event types."""
        catalog = NotificationTypeCatalog()

        assert catalog.require("order_confirmed").category is NotificationCategory.TRANSACTIONAL
        assert catalog.require("password_reset").default_priority is NotificationPriority.URGENT
        assert catalog.require("newsletter").category is NotificationCategory.MARKETING

    def test_marketing_types_expire_after_twelve_hours(self):
        """Test marketing sends are dropped when deferred past 12 hours."""
        definition = NotificationTypeCatalog().require("promotional_campaign")

        assert definition.expiry == MARKETING_EXPIRY
        assert definition.expiry.max_defer_seconds == 12 * 60 * 60
        assert definition.expiry.on_expiry is ExpiryAction.DROP

    def test_transactional_types_never_expire(self):
        """Test transactional types have no deferral limit."""
        definition = NotificationTypeCatalog().require("order_shipped")

        assert definition.expiry.max_defer_seconds is None

    def test_require_unknown_raises(self):
        """Test require() of an unknown code raises ValidationError."""
        with pytest.raises(ValidationError, match="Unknown notification type"):
            NotificationTypeCatalog().require("does_not_exist")

    def test_get_unknown_returns_none(self):
        """Test get() of an unknown code returns None."""
        assert NotificationTypeCatalog().get("does_not_exist") is None

    def test_register_and_list_sorted(self):
        """Test custom catalogues list their types by code."""
        catalog = NotificationTypeCatalog(types=[])
        catalog.register(
            NotificationTypeDefinition(
                code="wishlist_sale",
                name="Wishlist sale",
                category=NotificationCategory.MARKETING,
                default_channels=[Channel.PUSH],
            )
        )
        catalog.register(
            NotificationTypeDefinition(
                code="account_locked",
                name="Account locked",
                category=NotificationCategory.SECURITY,
            )
        )

        assert [d.code for d in catalog.list()] == ["account_locked", "wishlist_sale"]
