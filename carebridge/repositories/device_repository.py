from datetime import datetime, timezone
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from carebridge.models.device import DeviceDocument, PushPlatform


class DeviceRepository:
    """Push-token registry: zero or more delivery tokens per account."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["devices"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", 1), ("platform", 1)])
        await self.collection.create_index("token", unique=True)

    async def register(self, user_id: str, platform: PushPlatform, token: str) -> DeviceDocument:
        now = datetime.now(timezone.utc)
        # a device token belongs to whichever account registered it last
        await self.collection.update_one(
            {"token": token},
            {"$set": {"user_id": user_id, "platform": platform, "last_seen_at": now}},
            upsert=True,
        )
        return {"user_id": user_id, "platform": platform, "token": token}

    async def unregister(self, user_id: str, token: str) -> bool:
        result = await self.collection.delete_one({"user_id": user_id, "token": token})
        return result.deleted_count > 0

    async def get_tokens(self, user_id: str, platform: PushPlatform | None = None) -> List[str]:
        query: Dict[str, Any] = {"user_id": user_id}
        if platform:
            query["platform"] = platform
        cur = self.collection.find(query)
        items = await cur.to_list(length=100)
        return [it["token"] for it in items if it.get("token")]
