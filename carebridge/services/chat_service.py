import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId

from carebridge.repositories.conversation_repository import ConversationRepository
from carebridge.repositories.user_repository import ProfileRepository
from carebridge.schemas.chat import ConversationSummary, MessageOut, ReadReceipt
from carebridge.schemas.user import Principal
from carebridge.services.access_control import AccessControl
from carebridge.services.errors import AccessDenied, Conflict, NotFound, ValidationError
from carebridge.services.identity_service import IdentityService
from carebridge.services.notification_service import NotificationDispatcher, NotificationService
from carebridge.services.parties import CounterpartyRef, counterparty_of, party_for
from carebridge.utils.broadcaster import Broadcaster
from carebridge.utils.ids import parse_conversation_id, parse_object_id
from carebridge.utils.locks import ConversationLockManager


logger = logging.getLogger(__name__)

MARK_READ_ATTEMPTS = 5


def _utcnow() -> datetime:
    # Mongo keeps millisecond precision; truncate so returned and stored values agree
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class ChatService:

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        profile_repo: ProfileRepository,
        identity: IdentityService,
        broadcaster: Broadcaster,
        locks: ConversationLockManager,
        notifier: Optional[NotificationService] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._profile_repo = profile_repo
        self._identity = identity
        self._access = AccessControl(identity)
        self._broadcaster = broadcaster
        self._locks = locks
        self._notifier = notifier
        self._dispatcher = dispatcher

    # -- conversation store -------------------------------------------------

    async def resolve_counterparty(self, counterparty_id: ObjectId, explicit_kind: Optional[str] = None) -> Optional[CounterpartyRef]:
        if explicit_kind == "merchant":
            merchant = await self._profile_repo.get_active_by_id("merchant", counterparty_id)
            return CounterpartyRef("merchant", counterparty_id) if merchant else None

        organization = await self._profile_repo.get_active_by_id("organization", counterparty_id)
        merchant = await self._profile_repo.get_active_by_id("merchant", counterparty_id)
        if organization and merchant:
            logger.warning("Id %s exists as both organization and merchant, resolving as organization", counterparty_id)
        if organization:
            return CounterpartyRef("organization", counterparty_id)
        if merchant:
            return CounterpartyRef("merchant", counterparty_id)
        return None

    async def get_or_create(self, principal: Principal, counterparty_id: str, homeless_id: str, explicit_kind: Optional[str] = None) -> Dict[str, Any]:
        label = "Merchant ID" if explicit_kind == "merchant" else "ID format"
        counterparty_oid = parse_object_id(counterparty_id, label)
        homeless_oid = parse_object_id(homeless_id, "Homeless ID")

        ref = await self.resolve_counterparty(counterparty_oid, explicit_kind)
        if ref is None:
            raise NotFound("Merchant not found" if explicit_kind == "merchant" else "Organization or Merchant not found")

        if not await self._profile_repo.get_active_by_id("homeless", homeless_oid):
            raise NotFound("Homeless user not found")

        # same participation rule as every other entry point, checked on the prospective record
        await self._access.ensure_access(principal, {ref.field: ref.id, "homeless_id": homeless_oid})

        conversation = await self._conversation_repo.get_or_create(ref.field, ref.id, homeless_oid)
        logger.info("Chat %s resolved for %s %s and homeless %s", conversation["_id"], ref.kind, ref.id, homeless_oid)
        return conversation

    async def authorize(self, principal: Principal, conversation_id: str) -> Dict[str, Any]:
        """Load a conversation the principal participates in, or raise."""
        oid = parse_conversation_id(conversation_id)
        conversation = await self._conversation_repo.get(oid)
        if not conversation:
            raise NotFound("Chat not found")
        await self._access.ensure_access(principal, conversation)
        return conversation

    async def list_conversations(self, principal: Principal) -> List[ConversationSummary]:
        party = party_for(principal.role)
        if not party.can_chat:
            raise AccessDenied("Access denied. Only admin, organizations, merchants, and homeless users can access chats.")

        criteria: Dict[str, Any] = {}
        if not party.sees_all:
            profile_id = await self._identity.profile_id_for(principal)
            if profile_id is None:
                raise NotFound(f"{principal.role.capitalize()} profile not found for this user")
            criteria = party.list_criteria(profile_id)

        conversations = await self._conversation_repo.list_active(criteria)
        summaries = {
            kind: await self._profile_repo.summaries(kind, (c.get(f"{kind}_id") for c in conversations))
            for kind in ("organization", "merchant", "homeless")
        }

        items = []
        for convo in conversations:
            ref = counterparty_of(convo)
            kind = ref.kind if ref else "organization"
            parties: Dict[str, Any] = {}
            # each party sees the other side; admin sees both
            if principal.role != "homeless":
                parties["homeless"] = self._summary(summaries["homeless"], convo.get("homeless_id"))
            if principal.role not in ("organization", "merchant") and ref:
                parties[kind] = self._summary(summaries[kind], ref.id)
            items.append(ConversationSummary(
                id=str(convo["_id"]),
                type=kind,
                last_message=MessageOut.from_document(convo["messages"][-1]) if convo.get("messages") else None,
                unread_count=0 if party.sees_all else convo.get(party.own_unread_counter, 0),
                updated_at=convo.get("updated_at"),
                **parties,
            ))
        return items

    @staticmethod
    def _summary(profiles: Dict[ObjectId, Dict[str, Any]], profile_id: Optional[ObjectId]) -> Optional[Dict[str, Any]]:
        if profile_id is None:
            return None
        profile = dict(profiles.get(profile_id) or {"_id": profile_id})
        profile["id"] = str(profile.pop("_id"))
        return profile

    # -- message ingestion --------------------------------------------------

    async def get_messages(self, principal: Principal, conversation_id: str) -> List[Dict[str, Any]]:
        conversation = await self.authorize(principal, conversation_id)
        # full history, oldest first
        return sorted(conversation.get("messages") or [], key=lambda m: m["created_at"])

    async def send_message(self, principal: Principal, conversation_id: str, text: Optional[str]) -> Dict[str, Any]:
        oid = parse_conversation_id(conversation_id)
        if not text or not text.strip():
            raise ValidationError("Message text is required")
        conversation = await self.authorize(principal, str(oid))

        party = party_for(principal.role)
        counter = party.outbound_counter(conversation)
        async with self._locks.locked(str(oid)):
            message = {
                "_id": ObjectId(),
                "sender_id": principal.id,
                "sender_role": principal.role,
                "text": text.strip(),
                "read": False,
                "read_at": None,
                "created_at": _utcnow(),
            }
            updated = await self._conversation_repo.append_message(oid, message, counter)
        if updated is None:
            raise NotFound("Chat not found")

        logger.info("Message %s persisted in chat %s by %s (%s)", message["_id"], oid, principal.id, principal.role)
        await self._publish_message(updated, message)
        self._schedule_notification(updated, message, principal)
        return message

    async def _publish_message(self, conversation: Dict[str, Any], message: Dict[str, Any]) -> None:
        conversation_id = str(conversation["_id"])
        payload = MessageOut.from_document(message).model_dump()
        payload["conversation_id"] = conversation_id
        payload["chat"] = {
            "id": conversation_id,
            "organization_id": conversation.get("organization_id"),
            "merchant_id": conversation.get("merchant_id"),
            "homeless_id": conversation.get("homeless_id"),
        }
        try:
            if not self._broadcaster.conversation_has_subscriber(conversation_id):
                logger.debug("No local subscribers on chat %s, relying on personal channels", conversation_id)
            await self._broadcaster.broadcast_to_conversation(conversation_id, "new_message", payload)
            # personal-channel copy for participants not yet joined; clients dedupe by message id
            for account_id in await self._participant_accounts(conversation):
                await self._broadcaster.broadcast_to_user(account_id, "new_message", payload)
        except Exception:
            logger.exception("Realtime delivery failed for message %s", message["_id"])

    async def _participant_accounts(self, conversation: Dict[str, Any]) -> List[str]:
        accounts = []
        ref = counterparty_of(conversation)
        targets = [(ref.kind, ref.id)] if ref else []
        targets.append(("homeless", conversation["homeless_id"]))
        for kind, profile_id in targets:
            account_id = await self._identity.account_id_for_profile(kind, profile_id)
            if account_id:
                accounts.append(account_id)
        return accounts

    def _schedule_notification(self, conversation: Dict[str, Any], message: Dict[str, Any], sender: Principal) -> None:
        if self._notifier is None or self._dispatcher is None:
            return
        self._dispatcher.schedule(
            self._notifier.notify_new_message(conversation, message, sender),
            name=f"chat-notification:{message['_id']}",
        )

    # -- read state ---------------------------------------------------------

    async def mark_as_read(self, principal: Principal, conversation_id: str) -> ReadReceipt:
        conversation = await self.authorize(principal, conversation_id)
        oid = conversation["_id"]
        counter = party_for(principal.role).own_unread_counter

        async with self._locks.locked(str(oid)):
            updated, indexes, read_at = await self._apply_read(oid, principal, counter)

        receipt = ReadReceipt(
            conversation_id=str(oid),
            reader_id=principal.id,
            reader_role=principal.role,
            read_at=read_at,
            marked=len(indexes),
            unread_count_organization=updated.get("unread_count_organization", 0),
            unread_count_merchant=updated.get("unread_count_merchant", 0),
            unread_count_homeless=updated.get("unread_count_homeless", 0),
        )
        try:
            await self._broadcaster.broadcast_to_conversation(str(oid), "messages_read", receipt.model_dump())
        except Exception:
            logger.exception("Read receipt broadcast failed for chat %s", oid)
        logger.info("User %s (%s) read %d message(s) in chat %s", principal.id, principal.role, len(indexes), oid)
        return receipt

    async def _apply_read(self, oid: ObjectId, principal: Principal, counter: str):
        # the lock only covers this process; the size guard catches sends from other processes
        for attempt in range(MARK_READ_ATTEMPTS):
            conversation = await self._conversation_repo.get(oid)
            if conversation is None:
                raise NotFound("Chat not found")
            messages = conversation.get("messages") or []
            indexes = [
                idx
                for idx, msg in enumerate(messages)
                if str(msg.get("sender_id")) != principal.id and not msg.get("read")
            ]
            read_at = _utcnow()
            updated = await self._conversation_repo.mark_read(oid, indexes, read_at, counter, expected_count=len(messages))
            if updated is not None:
                return updated, indexes, read_at
            logger.debug("Chat %s changed during mark-as-read, retrying (attempt %d)", oid, attempt + 1)
        raise Conflict("Chat is busy, please retry")

    # -- typing indicators --------------------------------------------------

    async def emit_typing(self, principal: Principal, conversation_id: str, is_typing: bool, exclude: Optional[str] = None) -> None:
        conversation = await self.authorize(principal, conversation_id)
        await self._broadcaster.broadcast_to_conversation(
            str(conversation["_id"]),
            "typing",
            {
                "conversation_id": str(conversation["_id"]),
                "sender_id": principal.id,
                "sender_role": principal.role,
                "display_name": principal.display_name or "User",
                "is_typing": is_typing,
                "timestamp": datetime.now(timezone.utc),
            },
            exclude=exclude,
        )
