"""Shared test fixtures and helpers."""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("APP_ENV", "test")

import jwt
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from carebridge.repositories.conversation_repository import ConversationRepository
from carebridge.repositories.device_repository import DeviceRepository
from carebridge.repositories.user_repository import ProfileRepository, UserRepository
from carebridge.schemas.user import Principal
from carebridge.services.chat_service import ChatService
from carebridge.services.identity_service import IdentityService
from carebridge.services.notification_service import NotificationDispatcher, NotificationService
from carebridge.utils.broadcaster import Broadcaster
from carebridge.utils.locks import ConversationLockManager


def make_token(user_id: str, secret: str = "test-secret", ttl: int = 300) -> str:
    now = int(time.time())
    return jwt.encode({"sub": str(user_id), "iat": now, "exp": now + ttl}, secret, algorithm="HS256")


class RecordingBroadcaster(Broadcaster):
    """Keeps every broadcast in memory instead of touching sockets."""

    def __init__(self) -> None:
        self.conversation_events: List[Dict[str, Any]] = []
        self.user_events: List[Dict[str, Any]] = []
        self.subscribed: set = set()

    async def broadcast_to_conversation(self, conversation_id, event, data, exclude=None):
        self.conversation_events.append({"conversation_id": str(conversation_id), "event": event, "data": data, "exclude": exclude})

    async def broadcast_to_user(self, user_id, event, data):
        self.user_events.append({"user_id": str(user_id), "event": event, "data": data})

    def conversation_has_subscriber(self, conversation_id):
        return str(conversation_id) in self.subscribed

    def events(self, event: str) -> List[Dict[str, Any]]:
        return [e for e in self.conversation_events if e["event"] == event]


class FakePush:

    enabled = True

    def __init__(self, fail_tokens: Optional[set] = None) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail_tokens = fail_tokens or set()

    async def send(self, token, title, body, data=None):
        if token in self.fail_tokens:
            raise RuntimeError(f"push rejected for {token}")
        self.sent.append({"token": token, "title": title, "body": body, "data": data})


@dataclass
class Member:
    account_id: ObjectId
    profile_id: Optional[ObjectId] = None
    role: str = ""

    @property
    def principal(self) -> Principal:
        return Principal(id=str(self.account_id), role=self.role, display_name=f"{self.role}-user")

    @property
    def token(self) -> str:
        return make_token(str(self.account_id))


@dataclass
class Directory:
    org: Member
    merchant: Member
    homeless: Member
    admin: Member
    donor: Member
    other_org: Member
    other_homeless: Member
    deleted_org: Member
    deleted_homeless: Member


PROFILE_COLLECTION = {"organization": "organizations", "merchant": "merchants", "homeless": "homeless"}


async def add_party(db, role: str, profile: Optional[Dict[str, Any]] = None, *, active: bool = True, deleted: bool = False) -> Member:
    account_id = ObjectId()
    await db["users"].insert_one({"_id": account_id, "username": f"{role}-{account_id}", "email": f"{account_id}@example.org", "role": role, "is_active": active})
    party = Member(account_id=account_id, role=role)
    if role in PROFILE_COLLECTION:
        doc = {"_id": ObjectId(), "user_id": account_id, "is_deleted": deleted}
        doc.update(profile or {})
        await db[PROFILE_COLLECTION[role]].insert_one(doc)
        party.profile_id = doc["_id"]
    return party


async def seed_directory(db) -> Directory:
    return Directory(
        org=await add_party(db, "organization", {"org_name": "Harbor Shelter", "city": "Leeds"}),
        merchant=await add_party(db, "merchant", {"business_name": "Corner Bakery"}),
        homeless=await add_party(db, "homeless", {"full_name": "Sam Rivers"}),
        admin=await add_party(db, "admin"),
        donor=await add_party(db, "donor"),
        other_org=await add_party(db, "organization", {"org_name": "Night Kitchen"}),
        other_homeless=await add_party(db, "homeless", {"full_name": "Alex Moor"}),
        deleted_org=await add_party(db, "organization", {"org_name": "Closed Org"}, deleted=True),
        deleted_homeless=await add_party(db, "homeless", {"full_name": "Gone"}, deleted=True),
    )


def build_service(db, broadcaster: Broadcaster, push=None, dispatcher=None, locks=None, conversation_repo=None) -> ChatService:
    identity = IdentityService(UserRepository(db), ProfileRepository(db))
    profile_repo = ProfileRepository(db)
    notifier = NotificationService(identity, profile_repo, DeviceRepository(db), push or FakePush())
    return ChatService(
        conversation_repo or ConversationRepository(db),
        profile_repo,
        identity,
        broadcaster=broadcaster,
        locks=locks or ConversationLockManager(),
        notifier=notifier,
        dispatcher=dispatcher or NotificationDispatcher(),
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()[f"carebridge_test_{ObjectId()}"]


@pytest.fixture
async def directory(db) -> Directory:
    return await seed_directory(db)


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def push() -> FakePush:
    return FakePush()


@pytest.fixture
async def dispatcher():
    dispatcher = NotificationDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def service(db, broadcaster, push, dispatcher) -> ChatService:
    return build_service(db, broadcaster, push=push, dispatcher=dispatcher)


@pytest.fixture
async def org_chat(service, directory) -> Dict[str, Any]:
    """Conversation between the seeded organization and homeless profile."""
    return await service.get_or_create(directory.org.principal, str(directory.org.profile_id), str(directory.homeless.profile_id))


@pytest.fixture
async def merchant_chat(service, directory) -> Dict[str, Any]:
    return await service.get_or_create(directory.merchant.principal, str(directory.merchant.profile_id), str(directory.homeless.profile_id))


def run(coro):
    """Drive a coroutine from a synchronous test (used by the TestClient suites)."""
    return asyncio.run(coro)
