import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Set

from carebridge.config.settings import Config
from carebridge.repositories.device_repository import DeviceRepository
from carebridge.repositories.user_repository import ProfileRepository
from carebridge.schemas.user import Principal
from carebridge.services.identity_service import IdentityService
from carebridge.services.parties import party_for


logger = logging.getLogger(__name__)


def preview(text: str, limit: int | None = None) -> str:
    limit = limit or Config.PUSH_PREVIEW_LENGTH
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class NotificationDispatcher:
    """Runs notification jobs as detached tasks, outside any request's lifetime."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, job: Awaitable[None], name: str = "notification") -> asyncio.Task:
        task = asyncio.ensure_future(self._guarded(job, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, job: Awaitable[None], name: str) -> None:
        try:
            await job
        except Exception:
            # never reaches the sender; no retry
            logger.exception("Background job %s failed", name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class NotificationService:
    """Push fan-out of a new chat message to the other party's registered devices."""

    def __init__(self, identity: IdentityService, profile_repo: ProfileRepository, device_repo: DeviceRepository, push) -> None:
        self._identity = identity
        self._profile_repo = profile_repo
        self._device_repo = device_repo
        self._push = push

    async def notify_new_message(self, conversation: Dict[str, Any], message: Dict[str, Any], sender: Principal) -> int:
        party = party_for(sender.role)
        target = party.recipient(conversation)
        if target is None:
            logger.warning("Could not determine notification recipient for chat %s", conversation.get("_id"))
            return 0

        recipient_id: Optional[str] = await self._identity.account_id_for_profile(*target)
        if not recipient_id:
            logger.warning("No account owns %s profile %s", target[0], target[1])
            return 0

        tokens = await self._device_repo.get_tokens(recipient_id, platform="fcm")
        if not tokens:
            logger.debug("Recipient %s has no push tokens", recipient_id)
            return 0

        sender_profile = None
        if party.profile_kind:
            sender_profile = await self._profile_repo.get_by_owner(party.profile_kind, sender.id)
        title = f"New message from {party.sender_name(sender_profile)}"
        body = preview(message["text"])
        data = {
            "type": "chat_message",
            "conversationId": str(conversation["_id"]),
            "messageId": str(message["_id"]),
        }

        sent = 0
        for token in tokens:
            try:
                await self._push.send(token, title, body, data)
                sent += 1
            except Exception as exc:
                logger.warning("Push to %s failed for user %s: %s", token[:12], recipient_id, exc)
        logger.info("Chat notification: %d/%d pushes sent to user %s", sent, len(tokens), recipient_id)
        return sent
