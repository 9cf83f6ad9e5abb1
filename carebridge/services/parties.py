"""
Role behaviour for conversation participants.

Every role-dependent decision in the chat flow (who may touch a
conversation, which unread counter a send bumps, which counter a read
clears, who gets the push notification) goes through one ``Party``
object, so the REST routes and the websocket channel cannot drift apart.
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

from bson import ObjectId


CounterpartyKind = Literal["organization", "merchant"]


@dataclass(frozen=True)
class CounterpartyRef:
    """Resolved counterparty of a conversation."""

    kind: CounterpartyKind
    id: ObjectId

    @property
    def field(self) -> str:
        return f"{self.kind}_id"


def counterparty_of(conversation: Dict[str, Any]) -> Optional[CounterpartyRef]:
    if conversation.get("organization_id"):
        return CounterpartyRef("organization", conversation["organization_id"])
    if conversation.get("merchant_id"):
        return CounterpartyRef("merchant", conversation["merchant_id"])
    return None


class Party:

    role = ""
    # profile collection kind and the conversation field holding that profile id
    profile_kind: Optional[str] = None
    conversation_field: Optional[str] = None
    own_unread_counter = "unread_count_homeless"
    sees_all = False

    @property
    def can_chat(self) -> bool:
        return self.sees_all or self.conversation_field is not None

    def matches(self, conversation: Dict[str, Any], profile_id: Optional[ObjectId]) -> bool:
        if self.sees_all:
            return True
        if self.conversation_field is None or profile_id is None:
            return False
        value = conversation.get(self.conversation_field)
        return value is not None and str(value) == str(profile_id)

    def outbound_counter(self, conversation: Dict[str, Any]) -> Optional[str]:
        """Counter incremented when this party sends into ``conversation``."""
        return None

    def recipient(self, conversation: Dict[str, Any]) -> Optional[Tuple[str, ObjectId]]:
        """Profile (kind, id) whose owning account is notified of this party's messages."""
        homeless_id = conversation.get("homeless_id")
        return ("homeless", homeless_id) if homeless_id else None

    def list_criteria(self, profile_id: ObjectId) -> Dict[str, Any]:
        return {self.conversation_field: profile_id}

    def sender_name(self, profile: Optional[Dict[str, Any]]) -> str:
        return "Admin"


class OrganizationParty(Party):
    role = "organization"
    profile_kind = "organization"
    conversation_field = "organization_id"
    own_unread_counter = "unread_count_organization"

    def outbound_counter(self, conversation):
        return "unread_count_homeless"

    def sender_name(self, profile):
        return (profile or {}).get("org_name") or "Organization"


class MerchantParty(Party):
    role = "merchant"
    profile_kind = "merchant"
    conversation_field = "merchant_id"
    own_unread_counter = "unread_count_merchant"

    def outbound_counter(self, conversation):
        return "unread_count_homeless"

    def sender_name(self, profile):
        return (profile or {}).get("business_name") or "Merchant"


class HomelessParty(Party):
    role = "homeless"
    profile_kind = "homeless"
    conversation_field = "homeless_id"
    own_unread_counter = "unread_count_homeless"

    def outbound_counter(self, conversation):
        ref = counterparty_of(conversation)
        if ref is None:
            return None
        return f"unread_count_{ref.kind}"

    def recipient(self, conversation):
        ref = counterparty_of(conversation)
        return (ref.kind, ref.id) if ref else None

    def sender_name(self, profile):
        return (profile or {}).get("full_name") or "Homeless User"


class AdminParty(Party):
    """Moderator: reads and writes any conversation without touching unread counters."""

    role = "admin"
    sees_all = True

    def list_criteria(self, profile_id):
        return {}


class NoAccessParty(Party):
    """Donors and unknown roles: no conversation access at all."""

    def __init__(self, role: str = "donor") -> None:
        self.role = role


_PARTIES: Dict[str, Party] = {
    party.role: party
    for party in (OrganizationParty(), MerchantParty(), HomelessParty(), AdminParty())
}


def party_for(role: str) -> Party:
    return _PARTIES.get(role) or NoAccessParty(role)
