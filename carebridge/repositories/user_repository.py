from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from carebridge.models.user import AccountDocument, ProfileDocument


PROFILE_COLLECTIONS = {
    "organization": "organizations",
    "merchant": "merchants",
    "homeless": "homeless",
}

# Fields exposed when a profile is summarised inside a conversation listing
PROFILE_SUMMARY_FIELDS = {
    "organization": ["org_name", "name", "city", "state", "logo"],
    "merchant": ["business_name", "business_email", "city", "state"],
    "homeless": ["full_name", "name", "profile_picture"],
}


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_user_by_id(self, user_id: str) -> Optional[AccountDocument]:
        if not ObjectId.is_valid(user_id):
            return None
        user = await self._collection.find_one({"_id": ObjectId(user_id)}, {"password": 0, "hashed_password": 0})
        if user:
            user["_id"] = str(user["_id"])  # normalize to string for API layer
        return user


class ProfileRepository:
    """Organization, merchant and homeless profiles, each owned by one account."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    def collection(self, kind: str):
        return self._db[PROFILE_COLLECTIONS[kind]]

    async def get_by_id(self, kind: str, profile_id: ObjectId) -> Optional[ProfileDocument]:
        return await self.collection(kind).find_one({"_id": profile_id})

    async def get_active_by_id(self, kind: str, profile_id: ObjectId) -> Optional[ProfileDocument]:
        doc = await self.get_by_id(kind, profile_id)
        if not doc or doc.get("is_deleted"):
            return None
        return doc

    async def get_by_owner(self, kind: str, user_id: str) -> Optional[ProfileDocument]:
        owner: Any = ObjectId(user_id) if ObjectId.is_valid(user_id) else user_id
        return await self.collection(kind).find_one({"user_id": owner})

    async def summaries(self, kind: str, profile_ids: Iterable[ObjectId]) -> Dict[ObjectId, ProfileDocument]:
        ids: List[ObjectId] = list({pid for pid in profile_ids if pid is not None})
        if not ids:
            return {}
        projection = {field: 1 for field in PROFILE_SUMMARY_FIELDS[kind]}
        cursor = self.collection(kind).find({"_id": {"$in": ids}}, projection)
        items = await cursor.to_list(length=len(ids))
        return {it["_id"]: it for it in items}
