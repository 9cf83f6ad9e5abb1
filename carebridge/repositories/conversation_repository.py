from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from carebridge.models.conversation import ConversationDocument
from carebridge.models.message import MessageDocument


COUNTERPARTY_FIELDS = ("organization_id", "merchant_id")
UNREAD_COUNTERS = ("unread_count_organization", "unread_count_merchant", "unread_count_homeless")


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("organization_id", ASCENDING), ("homeless_id", ASCENDING)])
        await self.collection.create_index([("merchant_id", ASCENDING), ("homeless_id", ASCENDING)])
        await self.collection.create_index([("updated_at", DESCENDING)])

    async def get(self, conversation_id: ObjectId) -> Optional[ConversationDocument]:
        return await self.collection.find_one({"_id": conversation_id, "is_deleted": False})

    async def get_or_create(self, counterparty_field: str, counterparty_id: ObjectId, homeless_id: ObjectId) -> ConversationDocument:
        if counterparty_field not in COUNTERPARTY_FIELDS:
            raise ValueError(f"Unknown counterparty field: {counterparty_field}")
        other_field = next(f for f in COUNTERPARTY_FIELDS if f != counterparty_field)
        now = datetime.now(timezone.utc)
        # upsert so two racing first requests converge on one conversation
        return await self.collection.find_one_and_update(
            {counterparty_field: counterparty_id, "homeless_id": homeless_id, "is_deleted": False},
            {
                "$setOnInsert": {
                    other_field: None,
                    "messages": [],
                    "last_message": None,
                    "unread_count_organization": 0,
                    "unread_count_merchant": 0,
                    "unread_count_homeless": 0,
                    "deleted_at": None,
                    "created_at": now,
                    "updated_at": now,
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def append_message(self, conversation_id: ObjectId, message: MessageDocument, counter: Optional[str]) -> Optional[ConversationDocument]:
        """Push a message, point last_message at it and bump one unread counter in a single write."""
        update: Dict[str, Any] = {
            "$push": {"messages": message},
            "$set": {"last_message": message["_id"], "updated_at": message["created_at"]},
        }
        if counter:
            if counter not in UNREAD_COUNTERS:
                raise ValueError(f"Unknown unread counter: {counter}")
            update["$inc"] = {counter: 1}
        return await self.collection.find_one_and_update(
            {"_id": conversation_id, "is_deleted": False},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def mark_read(self, conversation_id: ObjectId, indexes: Iterable[int], read_at: datetime, counter: str, expected_count: int) -> Optional[ConversationDocument]:
        """Flag messages read and reset one counter, only if no message was appended since the snapshot.

        Returns None when the conversation is gone or grew in the meantime.
        """
        # messages are append-only, so the length pins the snapshot the indexes came from
        fields: Dict[str, Any] = {counter: 0}
        for idx in indexes:
            fields[f"messages.{idx}.read"] = True
            fields[f"messages.{idx}.read_at"] = read_at
        return await self.collection.find_one_and_update(
            {"_id": conversation_id, "is_deleted": False, "messages": {"$size": expected_count}},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def list_active(self, criteria: Dict[str, Any] | None = None, limit: int = 500) -> List[ConversationDocument]:
        query: Dict[str, Any] = {"is_deleted": False}
        if criteria:
            query.update(criteria)
        cursor = self.collection.find(query).sort([("updated_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        return await cursor.to_list(length=limit)
