"""Campaigns and audience resolution.

A campaign sends one event type to an audience over one or more channels.
Audiences are resolved through an AudienceDirectory, the collaborator that
knows a tenant's users:

- ``all``: every member of the tenant
- ``segment``: members tagged with the segment name
- ``explicit``: the recipients listed on the campaign
- ``filter``: members whose attributes equal every filter value
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import (
    AudienceType,
    Campaign,
    CampaignAudience,
    CampaignStatus,
    Recipient,
)


@dataclass
class AudienceMember:
    recipient: Recipient
    segments: Set[str] = field(default_factory=set)
    attributes: Dict[str, str] = field(default_factory=dict)


class AudienceDirectory(ABC):
    """Looks up the users a campaign audience refers to."""

    @abstractmethod
    def members(self, tenant_id: str) -> List[AudienceMember]:
        pass

    def resolve(self, tenant_id: str, audience: CampaignAudience) -> List[Recipient]:
        """Recipients for ``audience``, de-duplicated by user id.

        Raises:
            ValidationError: Segment or filter audience without its criteria
        """
        if audience.type is AudienceType.EXPLICIT:
            recipients = list(audience.recipients)
        elif audience.type is AudienceType.ALL:
            recipients = [m.recipient for m in self.members(tenant_id)]
        elif audience.type is AudienceType.SEGMENT:
            if not audience.segment:
                raise ValidationError("Segment audience requires a segment name")
            recipients = [
                m.recipient
                for m in self.members(tenant_id)
                if audience.segment in m.segments
            ]
        else:
            if not audience.filters:
                raise ValidationError("Filter audience requires at least one filter")
            recipients = [
                m.recipient
                for m in self.members(tenant_id)
                if all(m.attributes.get(k) == v for k, v in audience.filters.items())
            ]

        unique: Dict[str, Recipient] = {}
        for recipient in recipients:
            unique.setdefault(recipient.user_id, recipient)
        return list(unique.values())


class InMemoryAudienceDirectory(AudienceDirectory):
    def __init__(self):
        self._lock = threading.Lock()
        self._members: Dict[str, Dict[str, AudienceMember]] = {}

    def add_member(
        self,
        tenant_id: str,
        recipient: Recipient,
        segments: Optional[Set[str]] = None,
        attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        with self._lock:
            self._members.setdefault(tenant_id, {})[recipient.user_id] = AudienceMember(
                recipient=recipient,
                segments=set(segments or ()),
                attributes=dict(attributes or {}),
            )

    def members(self, tenant_id: str) -> List[AudienceMember]:
        with self._lock:
            return list(self._members.get(tenant_id, {}).values())


class CampaignStore(ABC):
    @abstractmethod
    def add(self, campaign: Campaign) -> Campaign:
        pass

    @abstractmethod
    def get(self, tenant_id: str, campaign_id: str) -> Campaign:
        """Raises NotFoundError for unknown or other-tenant campaigns."""

    @abstractmethod
    def set_status(self, tenant_id: str, campaign_id: str, status: CampaignStatus) -> Campaign:
        pass

    @abstractmethod
    def list(self, tenant_id: str) -> List[Campaign]:
        pass


class InMemoryCampaignStore(CampaignStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, Campaign] = {}

    def add(self, campaign: Campaign) -> Campaign:
        with self._lock:
            self._items[campaign.id] = campaign.model_copy(deep=True)
        return campaign.model_copy(deep=True)

    def get(self, tenant_id: str, campaign_id: str) -> Campaign:
        with self._lock:
            campaign = self._items.get(campaign_id)
            if campaign is None or campaign.tenant_id != tenant_id:
                raise NotFoundError(f"Campaign {campaign_id} not found")
            return campaign.model_copy(deep=True)

    def set_status(self, tenant_id: str, campaign_id: str, status: CampaignStatus) -> Campaign:
        with self._lock:
            campaign = self._items.get(campaign_id)
            if campaign is None or campaign.tenant_id != tenant_id:
                raise NotFoundError(f"Campaign {campaign_id} not found")
            updated = campaign.model_copy(update={"status": status})
            self._items[campaign_id] = updated
            return updated.model_copy(deep=True)

    def list(self, tenant_id: str) -> List[Campaign]:
        with self._lock:
            items = [c for c in self._items.values() if c.tenant_id == tenant_id]
        return sorted(
            (c.model_copy(deep=True) for c in items), key=lambda c: c.created_at
        )
