from typing import Any, Dict

from carebridge.schemas.user import Principal
from carebridge.services.errors import AccessDenied
from carebridge.services.identity_service import IdentityService
from carebridge.services.parties import party_for


class AccessControl:
    """Single participation check used by every read, write and subscribe path."""

    def __init__(self, identity: IdentityService) -> None:
        self._identity = identity

    async def has_access(self, principal: Principal, conversation: Dict[str, Any]) -> bool:
        party = party_for(principal.role)
        if party.sees_all:
            return True
        if not party.can_chat:
            return False
        profile_id = await self._identity.profile_id_for(principal)
        return party.matches(conversation, profile_id)

    async def ensure_access(self, principal: Principal, conversation: Dict[str, Any]) -> None:
        if not await self.has_access(principal, conversation):
            raise AccessDenied()
