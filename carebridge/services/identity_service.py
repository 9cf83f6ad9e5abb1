import logging
from typing import Optional

import jwt
from bson import ObjectId
from pydantic import ValidationError as PayloadError

from carebridge.repositories.user_repository import ProfileRepository, UserRepository
from carebridge.schemas.user import Principal, TokenPayload
from carebridge.services.errors import AuthenticationError
from carebridge.services.parties import party_for
from carebridge.utils.security import decode_access_token


logger = logging.getLogger(__name__)


class IdentityService:
    """Resolves tokens to principals and maps accounts to and from their role profiles."""

    def __init__(self, user_repo: UserRepository, profile_repo: ProfileRepository) -> None:
        self._user_repo = user_repo
        self._profile_repo = profile_repo

    async def authenticate(self, token: Optional[str]) -> Principal:
        if not token:
            raise AuthenticationError("Not authorized. Please provide a valid token.")
        try:
            payload = TokenPayload.model_validate(decode_access_token(token))
        except (jwt.InvalidTokenError, PayloadError) as exc:
            logger.debug("Rejected token: %s", exc)
            raise AuthenticationError("Invalid or expired token")

        user = await self._user_repo.get_user_by_id(payload.sub)
        if not user:
            raise AuthenticationError("User not found")
        if not user.get("is_active", True):
            logger.info("Inactive account %s tried to authenticate", user["_id"])
            raise AuthenticationError("User account has been deactivated")

        return Principal(
            id=user["_id"],
            role=user.get("role", ""),
            display_name=user.get("username") or "User",
        )

    async def profile_id_for(self, principal: Principal) -> Optional[ObjectId]:
        kind = party_for(principal.role).profile_kind
        if kind is None:
            return None
        profile = await self._profile_repo.get_by_owner(kind, principal.id)
        return profile["_id"] if profile else None

    async def account_id_for_profile(self, kind: str, profile_id: ObjectId) -> Optional[str]:
        profile = await self._profile_repo.get_by_id(kind, profile_id)
        if not profile or not profile.get("user_id"):
            return None
        return str(profile["user_id"])
